from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timezone

from subtracker.subscriptions.errors import ErrorKind, SubscriptionError


MONTH_BUCKET_RE = re.compile(r"^(0[1-9]|1[0-2])-(\d{4})$")


@dataclass(frozen=True, order=True, slots=True)
class MonthBucket:
    """A calendar month, the unit of subscription validity and billing.

    Field order matters: ordering compares ``year`` first, then ``month``.
    """

    year: int
    month: int

    def __str__(self) -> str:
        return f"{self.month:02d}-{self.year:04d}"

    def to_date(self) -> date:
        return date(self.year, self.month, 1)

    @classmethod
    def from_date(cls, value: date) -> MonthBucket:
        return cls(year=value.year, month=value.month)


def parse_bucket(value: str) -> MonthBucket:
    match = MONTH_BUCKET_RE.match(value or "")
    if match is None:
        raise SubscriptionError(ErrorKind.INVALID_DATE_FORMAT, f"invalid date format {value!r}, expected MM-YYYY")
    year = int(match.group(2))
    if year < 1:
        raise SubscriptionError(ErrorKind.INVALID_DATE_FORMAT, f"invalid year in {value!r}")
    return MonthBucket(year=year, month=int(match.group(1)))


def current_bucket(now: datetime | None = None) -> MonthBucket:
    moment = now or datetime.now(timezone.utc)
    return MonthBucket(year=moment.year, month=moment.month)


def later_of(a: MonthBucket, b: MonthBucket) -> MonthBucket:
    return a if a > b else b


def earlier_of(a: MonthBucket, b: MonthBucket) -> MonthBucket:
    return a if a < b else b


def inclusive_month_span(start: MonthBucket, end: MonthBucket) -> int:
    """Months from ``start`` through ``end`` inclusive, never negative."""
    if start > end:
        return 0
    return (end.year - start.year) * 12 + (end.month - start.month) + 1
