from typing import List

from .errors import (  # noqa: F401
    DuplicateNameError,
    ImportFormatError,
    InvalidPinError,
    MediaLockedError,
    NotFoundError,
    PinLockedError,
    PinNotSetError,
    SnippetVaultError,
    ValidationError,
)

__all__: List[str] = [
    "container",
    "media_service",
    "organize_service",
    "pin_gate",
    "recycle_bin",
    "session_context",
    "snippet_service",
    "snippet_transfer",
]
