"""Exception types raised across meetgrid."""

from __future__ import annotations


class MeetgridError(Exception):
    """Base class for meetgrid errors."""


class InvalidInputError(MeetgridError, ValueError):
    """Rejected input. `reason` is a stable machine-readable code."""

    INVALID_BLOCK = "invalid_block"
    INVALID_TIME = "invalid_time"
    INVALID_GRANULARITY = "invalid_granularity"
    NOT_A_PARTICIPANT = "not_a_participant"

    def __init__(self, reason: str, message: str = ""):
        super().__init__(message or reason)
        self.reason = reason


class MeetingNotFoundError(MeetgridError, LookupError):
    def __init__(self, meeting_id: str):
        super().__init__(f"Meeting not found: {meeting_id}")
        self.meeting_id = meeting_id
