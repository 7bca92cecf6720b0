from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    INVALID_DATE_FORMAT = "invalid_date_format"
    INVALID_DATE_RANGE = "invalid_date_range"
    INVALID_FILTER = "invalid_filter"
    NEGATIVE_PRICE = "negative_price"
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    PAST_EXTENSION = "past_extension"
    END_BEFORE_START = "end_before_start"
    NON_ADVANCING_EXTENSION = "non_advancing_extension"
    STORAGE_FAILURE = "storage_failure"


class SubscriptionError(Exception):
    """Domain failure raised by subscription operations.

    Callers branch on ``kind``; the message is for humans only.
    """

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message

    def __repr__(self) -> str:
        return f"SubscriptionError({self.kind.value!r}, {self.message!r})"
