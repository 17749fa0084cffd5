from dataclasses import dataclass
from datetime import MAXYEAR, MINYEAR, datetime, timezone
from typing import Optional

_EMPTY_ANCHOR = datetime(1970, 1, 1)


@dataclass(frozen=True)
class Period:
    """Half-open ``[start, end)`` window of naive UTC datetimes."""

    start: datetime
    end: datetime

    @property
    def is_empty(self) -> bool:
        return self.start >= self.end

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


def month_range(month: int, year: int) -> Period:
    if not 1 <= month <= 12 or not MINYEAR <= year < MAXYEAR:
        return Period(_EMPTY_ANCHOR, _EMPTY_ANCHOR)
    start = datetime(year, month, 1)
    if month == 12:
        end = datetime(year + 1, 1, 1)
    else:
        end = datetime(year, month + 1, 1)
    return Period(start, end)


def to_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_iso(value: datetime) -> str:
    return value.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")
