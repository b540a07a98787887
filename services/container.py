from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from database import DatabaseManager, MediaRepository, Repository, SecurityRepository

from .blob_storage import GridFSBlobStore
from .media_service import MediaService
from .organize_service import OrganizeService
from .pin_gate import PinGate
from .recycle_bin import RecycleBin
from .snippet_service import SnippetService


@dataclass
class Services:
    db: DatabaseManager
    snippets: SnippetService
    organize: OrganizeService
    media: MediaService
    recycle_bin: RecycleBin
    pin_gate: PinGate


def build_services(manager: DatabaseManager, blobs: Optional[GridFSBlobStore] = None) -> Services:
    """מרכיב את כל השירותים על גבי DatabaseManager נתון (אמיתי או מזויף)."""
    repo = Repository(manager)
    media_repo = MediaRepository(manager)
    snippets = SnippetService(repo)
    organize = OrganizeService(repo)
    media = MediaService(media_repo, blobs if blobs is not None else GridFSBlobStore(manager.db))
    return Services(
        db=manager,
        snippets=snippets,
        organize=organize,
        media=media,
        recycle_bin=RecycleBin(repo, snippets, organize, media),
        pin_gate=PinGate(SecurityRepository(manager)),
    )


_services_singleton: Optional[Services] = None
_singleton_lock = threading.Lock()


def get_services() -> Services:
    """
    Composition root: build and return the process-wide Services on first use.
    """
    global _services_singleton
    if _services_singleton is not None:
        return _services_singleton
    with _singleton_lock:
        if _services_singleton is None:
            _services_singleton = build_services(DatabaseManager())
        return _services_singleton


def set_services(services: Optional[Services]) -> None:
    """החלפת ה-singleton (בטסטים, או None לאיפוס)."""
    global _services_singleton
    with _singleton_lock:
        _services_singleton = services
