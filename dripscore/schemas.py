from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MIN_SCORE = 1
MAX_SCORE = 10

Origin = Literal["direct-json", "extracted-json", "markdown-fallback", "default"]


def clamp(value: float, low: float = MIN_SCORE, high: float = MAX_SCORE) -> float:
    return max(low, min(high, value))


class _Payload(BaseModel):
    # Field names stay snake_case in Python; the wire format is camelCase.
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


class CategoryScore(_Payload):
    category: str
    score: float
    emoji: str
    details: Optional[str] = None

    @field_validator("category")
    @classmethod
    def strip_category(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("category must not be empty")
        return v

    @field_validator("score")
    @classmethod
    def clamp_score(cls, v: float) -> float:
        return clamp(v)


class StyleTipGroup(_Payload):
    category: str
    tips: List[str]


class AnalysisResult(_Payload):
    total_score: int
    breakdown: List[CategoryScore]
    feedback: str
    style_tips: Optional[List[StyleTipGroup]] = None
    next_level_tips: Optional[List[str]] = None
    # Which stage of the normalizer produced this result. Never serialized.
    origin: Origin = Field(default="default", exclude=True)

    @field_validator("total_score")
    @classmethod
    def clamp_total(cls, v: int) -> int:
        return int(clamp(v))

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class TipsResult(_Payload):
    style_tips: List[StyleTipGroup]
    next_level_tips: List[str] = []


class StyleContext(BaseModel):
    requested_style: str = "casual"


class UserStats(BaseModel):
    average_score: float = 0.0
    best_score: int = 0
    total_scans: int = 0
    streak: int = 0


class AnalysisRecordOut(_Payload):
    id: str
    user_id: str
    created_at: datetime
    requested_style: str
    total_score: int
    feedback: str
    breakdown: List[CategoryScore]
    style_tips: List[StyleTipGroup] = []
    next_level_tips: List[str] = []
    origin: str
