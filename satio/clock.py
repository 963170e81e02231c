"""Server clock and the calendar-day partition used for daily quotas.

The day bucket follows the server's local wall clock, so the quota resets
at local midnight. Clock adjustments (DST, manual changes) move that
instant and are accepted as-is.
"""

from datetime import datetime


class Clock:
    def now(self) -> datetime:
        return datetime.now().astimezone()

    def now_ms(self) -> int:
        return int(self.now().timestamp() * 1000)


def day_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m-%d")
