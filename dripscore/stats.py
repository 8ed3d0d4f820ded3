from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Tuple

from .schemas import UserStats


def utc_today() -> date:
    """Calendar day on the same UTC clock as `StyleAnalysis.created_at`."""
    return datetime.utcnow().date()


def compute_streak(scan_dates: Iterable[date], today: Optional[date] = None) -> int:
    """Count consecutive days with at least one scan.

    The streak is alive while the latest scan is from today or yesterday.
    """
    today = today or utc_today()
    days = sorted(set(scan_dates), reverse=True)
    if not days or days[0] < today - timedelta(days=1):
        return 0

    streak = 1
    for previous, current in zip(days, days[1:]):
        if previous - current != timedelta(days=1):
            break
        streak += 1
    return streak


def compute_user_stats(
    scans: Iterable[Tuple[date, int]], today: Optional[date] = None
) -> UserStats:
    """Aggregate ``(scan_date, total_score)`` pairs into dashboard stats."""
    scans = list(scans)
    if not scans:
        return UserStats()

    scores = [score for _, score in scans]
    return UserStats(
        average_score=round(sum(scores) / len(scores), 1),
        best_score=max(scores),
        total_scans=len(scans),
        streak=compute_streak((day for day, _ in scans), today=today),
    )
