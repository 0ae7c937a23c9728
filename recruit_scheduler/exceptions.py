"""Custom exceptions for the Recruit Scheduler client."""

from typing import Optional


class RecruitSchedulerError(Exception):
    """Base exception for all recruit scheduler errors."""
    pass


class ConfigError(RecruitSchedulerError):
    """Raised when there's an issue with configuration."""
    pass


class ValidationError(RecruitSchedulerError):
    """Raised when form input is rejected before anything is sent."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class SlotFullError(ValidationError):
    """Raised when signing up for a slot that has no remaining capacity."""
    pass


class RemoteError(RecruitSchedulerError):
    """Raised when the backend answers with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NetworkError(RemoteError):
    """Raised when a request never completed."""
    pass


class CalendarError(RecruitSchedulerError):
    """Raised when a calendar link cannot be built."""
    pass


class SessionError(RecruitSchedulerError):
    """Raised when there's an issue with session management."""
    pass
