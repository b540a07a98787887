from __future__ import annotations

from typing import Optional


class SnippetVaultError(Exception):
    """Base class for domain errors surfaced to the HTTP layer."""

    code = "error"
    http_status = 400


class ValidationError(SnippetVaultError):
    code = "validation_error"


class NotFoundError(SnippetVaultError):
    code = "not_found"
    http_status = 404


class DuplicateNameError(SnippetVaultError):
    """שם תיקייה/קטגוריה שכבר קיים אצל אותו משתמש."""

    code = "duplicate_name"
    http_status = 409

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f'{kind} named "{name}" already exists')


class ImportFormatError(SnippetVaultError):
    code = "import_format_error"


class PinNotSetError(SnippetVaultError):
    code = "pin_not_set"


class InvalidPinError(SnippetVaultError):
    code = "invalid_pin"
    http_status = 401

    def __init__(self, attempts_remaining: Optional[int] = None, message: str = "Incorrect PIN"):
        self.attempts_remaining = attempts_remaining
        super().__init__(message)


class PinLockedError(SnippetVaultError):
    code = "pin_locked"
    http_status = 423

    def __init__(self, remaining_seconds: int):
        self.remaining_seconds = max(0, int(remaining_seconds))
        minutes = (self.remaining_seconds + 59) // 60
        super().__init__(f"Too many failed attempts. Try again in {minutes} minutes")


class MediaLockedError(SnippetVaultError):
    """The media area is locked (never unlocked or session expired)."""

    code = "media_locked"
    http_status = 401


__all__ = [
    "SnippetVaultError",
    "ValidationError",
    "NotFoundError",
    "DuplicateNameError",
    "ImportFormatError",
    "PinNotSetError",
    "InvalidPinError",
    "PinLockedError",
    "MediaLockedError",
]
