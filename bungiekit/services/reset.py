"""
Daily/weekly reset arithmetic.

Destiny 2 resets daily at 17:00 UTC and weekly on Tuesday at 17:00 UTC.
All functions work in UTC; naive datetimes are treated as UTC.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

RESET_HOUR = 17
WEEKLY_RESET_WEEKDAY = 1  # Tuesday (Monday == 0)

# Season 15 started on August 24, 2021
SEASON_15_START = datetime.fromtimestamp(1629817200, tz=timezone.utc)
SEASON_15 = 15
SEASON_LENGTH = timedelta(weeks=13)


def _as_utc(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ResetService:
    """Computes reset times and season estimates."""

    def next_daily_reset(self, after: Optional[datetime] = None) -> datetime:
        """The first daily reset strictly after `after` (default: now)."""
        now = _as_utc(after)
        reset = now.replace(hour=RESET_HOUR, minute=0, second=0, microsecond=0)
        if now >= reset:
            reset += timedelta(days=1)
        return reset

    def next_weekly_reset(self, after: Optional[datetime] = None) -> datetime:
        """The first Tuesday 17:00 UTC strictly after `after` (default: now)."""
        now = _as_utc(after)
        days_until_tuesday = (WEEKLY_RESET_WEEKDAY - now.weekday()) % 7
        reset = now.replace(hour=RESET_HOUR, minute=0, second=0, microsecond=0)
        reset += timedelta(days=days_until_tuesday)

        # Tuesday after reset time: next week
        if reset <= now:
            reset += timedelta(days=7)
        return reset

    def time_until_daily_reset(self, from_: Optional[datetime] = None) -> timedelta:
        now = _as_utc(from_)
        return self.next_daily_reset(now) - now

    def time_until_weekly_reset(self, from_: Optional[datetime] = None) -> timedelta:
        now = _as_utc(from_)
        return self.next_weekly_reset(now) - now

    def estimate_current_season(self, at: Optional[datetime] = None) -> int:
        """
        Estimate the season number from a known season start.

        This is an approximation assuming 13 week seasons; the API's
        DestinySeasonDefinition entries are authoritative.
        """
        elapsed = _as_utc(at) - SEASON_15_START
        return SEASON_15 + int(elapsed // SEASON_LENGTH)
