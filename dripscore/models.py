import uuid
from datetime import date, datetime

from sqlalchemy import String, Integer, Text, DateTime, Date
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base
from .stats import utc_today


class StyleAnalysis(Base):
    __tablename__ = "style_analyses"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    scan_date: Mapped[date] = mapped_column(Date, default=utc_today)
    requested_style: Mapped[str] = mapped_column(String(32))
    image_filename: Mapped[str] = mapped_column(String(255))
    total_score: Mapped[int] = mapped_column(Integer)
    feedback: Mapped[str] = mapped_column(Text)
    # Stored as JSON arrays
    breakdown: Mapped[str] = mapped_column(Text)
    style_tips: Mapped[str] = mapped_column(Text, default="[]")
    next_level_tips: Mapped[str] = mapped_column(Text, default="[]")
    # Normalizer stage that produced the result
    origin: Mapped[str] = mapped_column(String(20))
    raw_analysis: Mapped[str] = mapped_column(Text, default="")


class DailyUsage(Base):
    __tablename__ = "daily_usage"

    usage_date: Mapped[date] = mapped_column(Date, primary_key=True)
    count: Mapped[int] = mapped_column(Integer, default=0)
