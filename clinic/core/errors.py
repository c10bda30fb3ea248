"""Domain errors raised by the service layer.

Each error carries the HTTP status it maps to; ``clinic.main`` turns them
into ``{"detail": ...}`` JSON responses.
"""

from typing import Any, Optional


class ClinicError(Exception):
    status_code = 400

    def __init__(self, detail: str, extra: Optional[dict[str, Any]] = None):
        super().__init__(detail)
        self.detail = detail
        self.extra = extra or {}


class ValidationError(ClinicError):
    status_code = 400


class SlotUnavailable(ClinicError):
    status_code = 400


class BookingConflict(ClinicError):
    status_code = 400


class NotFound(ClinicError):
    status_code = 404


class Forbidden(ClinicError):
    status_code = 403


class Conflict(ClinicError):
    status_code = 409
