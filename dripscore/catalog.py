"""
Category catalog for the markdown fallback parser.

Each entry names a style dimension, the emoji it is rendered with, and the
regex fragment that matches its label in free text. Adding a category is a
new entry here; the parser iterates the table uniformly.
"""
import re
from dataclasses import dataclass, field
from typing import Optional, Tuple

DEFAULT_EMOJI = "👕"

_NUMBER = r"(-?\d+(?:\.\d+)?)"


@dataclass(frozen=True)
class CategoryPattern:
    category: str
    emoji: str
    label: str
    score_pattern: re.Pattern = field(init=False, repr=False, compare=False)
    detail_pattern: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        # "Color Coordination: 8", "**Color Coordination**: 8", "**Color Coordination:** 8"
        score = re.compile(
            rf"(?<![\w&]){self.label}\s*(?:\*\*\s*:|:\s*\*\*|:)\s*{_NUMBER}",
            re.IGNORECASE,
        )
        # "**Color Coordination**: 8\n  * details ..." up to the next bold marker
        detail = re.compile(
            rf"\*\*\s*{self.label}\s*:?\s*\*\*\s*:?(?!\s*Tips?\b)(.+?)(?=\*\*|\n[ \t]*\n|\Z)",
            re.IGNORECASE | re.DOTALL,
        )
        object.__setattr__(self, "score_pattern", score)
        object.__setattr__(self, "detail_pattern", detail)


CATEGORY_CATALOG: Tuple[CategoryPattern, ...] = (
    CategoryPattern("Overall Style", "👑", r"Overall\s+Style"),
    CategoryPattern("Color Coordination", "🎨", r"Colou?r\s+Coordination"),
    CategoryPattern("Fit & Proportion", "📏", r"Fit\s*(?:&|and)\s*Proportions?"),
    CategoryPattern("Style Coherence", "✨", r"Style\s+Coherence"),
    CategoryPattern("Accessories", "💍", r"Accessories"),
    CategoryPattern("Outfit Creativity", "🎯", r"Outfit\s+Creativity"),
    CategoryPattern("Trend Awareness", "🌟", r"Trend\s+Awareness"),
    CategoryPattern("Trend Alignment", "📈", r"Trend\s+Alignment"),
    CategoryPattern("Style Expression", "🪄", r"Style\s+Expression"),
)


def emoji_for(
    category: str, catalog: Tuple[CategoryPattern, ...] = CATEGORY_CATALOG
) -> str:
    entry = find_entry(category, catalog)
    return entry.emoji if entry else DEFAULT_EMOJI


def find_entry(
    category: str, catalog: Tuple[CategoryPattern, ...] = CATEGORY_CATALOG
) -> Optional[CategoryPattern]:
    """Look up a catalog entry by display name or by label match."""
    name = category.strip()
    for entry in catalog:
        if entry.category.lower() == name.lower():
            return entry
    for entry in catalog:
        if re.fullmatch(entry.label, name, re.IGNORECASE):
            return entry
    return None
