from .models import (  # noqa: F401
    Category,
    Folder,
    MediaFile,
    MediaFolder,
    SecuritySettings,
    Snippet,
)
from .manager import DatabaseManager
from .media_repository import MediaRepository
from .repository import Repository
from .security_repository import SecurityRepository

__all__ = [
    "DatabaseManager",
    "Repository",
    "MediaRepository",
    "SecurityRepository",
    "Snippet",
    "Folder",
    "Category",
    "MediaFile",
    "MediaFolder",
    "SecuritySettings",
]
