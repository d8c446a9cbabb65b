"""Exception types raised by the booking services."""
from __future__ import annotations


class SalonbookError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 400
    code = "invalid_request"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        return {"error": self.code, "message": self.message}


class NotFoundError(SalonbookError):
    status_code = 404
    code = "not_found"


class BookingValidationError(SalonbookError):
    """A booking gate failed; nothing was written."""

    code = "validation_failed"

    def __init__(self, title: str, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.title = title
        self.status_code = status_code

    def to_dict(self) -> dict[str, object]:
        return {"error": self.code, "title": self.title, "message": self.message}


class BookingSubmissionError(SalonbookError):
    """The create call failed after validation passed."""

    code = "submission_failed"
    status_code = 500

    def __init__(self, category: str, title: str, message: str) -> None:
        super().__init__(message)
        self.category = category
        self.title = title

    def to_dict(self) -> dict[str, object]:
        return {
            "error": self.code,
            "category": self.category,
            "title": self.title,
            "message": self.message,
        }


class TransitionError(SalonbookError):
    def __init__(self, code: str, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class ProfileValidationError(SalonbookError):
    code = "validation_error"


class UploadError(SalonbookError):
    code = "upload_failed"
    status_code = 502


class ConflictError(SalonbookError):
    status_code = 409
    code = "conflict"
