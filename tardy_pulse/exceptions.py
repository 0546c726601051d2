"""Exception hierarchy shared by the late-report workflow and stats layer."""

from __future__ import annotations


class TardyPulseError(Exception):
    """Base exception for business rule violations."""


class ValidationError(TardyPulseError):
    """Raised when input data is invalid. Nothing has been mutated."""


class NotFoundError(TardyPulseError):
    """Raised when a report, user or group id does not exist."""


class AuthorizationError(TardyPulseError):
    """Raised when a caller lacks the privilege for an action."""


class InvalidTransitionError(TardyPulseError):
    """Raised when a report transition is not allowed from its current status."""


class StaleReportError(TardyPulseError):
    """Raised when a report changed between being read and being written."""

    def __init__(self, report_id: int, expected_version: int) -> None:
        super().__init__(f"late report {report_id} is no longer at version {expected_version}")
        self.report_id = report_id
        self.expected_version = expected_version


__all__ = [
    "TardyPulseError",
    "ValidationError",
    "NotFoundError",
    "AuthorizationError",
    "InvalidTransitionError",
    "StaleReportError",
]
