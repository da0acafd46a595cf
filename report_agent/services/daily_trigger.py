from datetime import datetime
from typing import Optional


class DailyTrigger:
    """
    Edge-triggered daily schedule.

    The loop samples the clock every second, but the trigger fires only once
    per matching minute: the minute it fired in is remembered (with its date,
    so the same time tomorrow fires again).
    """

    def __init__(self, hour: int, minute: int):
        self.hour = hour
        self.minute = minute
        self.last_fired_at: Optional[datetime] = None

    def matches(self, now: datetime) -> bool:
        return now.hour == self.hour and now.minute == self.minute

    def should_fire(self, now: datetime) -> bool:
        """True at most once per matching minute; records the firing."""
        if not self.matches(now):
            return False

        minute = now.replace(second=0, microsecond=0)
        if self.last_fired_at == minute:
            return False

        self.last_fired_at = minute
        return True

    def __str__(self) -> str:
        return f"daily at {self.hour:02d}:{self.minute:02d}"
