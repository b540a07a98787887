"""
Recycle bin: one view over every soft-deleted record of a user.

Each kind (snippet, folder, category, media, media_folder) has its own item
type carrying only the fields that kind needs. Restore and purge dispatch to
the per-kind handlers; bulk operations are best effort and report which
selections succeeded and which failed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, ClassVar, Dict, Iterable, List, Optional, Tuple, Union

from config import config
from database import Repository
from database.models import utcnow
from observability import emit_event

from .errors import SnippetVaultError, ValidationError
from .media_service import MediaService
from .organize_service import OrganizeService
from .serialization import safe_iso
from .snippet_service import SnippetService

KINDS = ("snippet", "folder", "category", "media", "media_folder")
# קודם פריטים בודדים ואחר כך מכלים, כדי שמחיקת מכל לא "תבלע" פריט שנבחר בנפרד
PURGE_ORDER = ("snippet", "media", "folder", "category", "media_folder")
MEDIA_KINDS = ("media", "media_folder")


def _days_left(expires_at: Optional[datetime], now: datetime) -> Optional[int]:
    if expires_at is None:
        return None
    return max(0, (expires_at - now).days)


@dataclass(frozen=True)
class _BinItem:
    id: str
    deleted_at: Optional[datetime]
    expires_at: Optional[datetime]

    kind: ClassVar[str] = ""

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        out: Dict[str, Any] = {"type": self.kind}
        for key, value in self.__dict__.items():
            out[key] = safe_iso(value) if isinstance(value, datetime) else value
        out["days_left"] = _days_left(self.expires_at, now)
        return out


@dataclass(frozen=True)
class SnippetBinItem(_BinItem):
    title: str = ""
    language: str = ""
    kind: ClassVar[str] = "snippet"


@dataclass(frozen=True)
class FolderBinItem(_BinItem):
    name: str = ""
    color: str = ""
    kind: ClassVar[str] = "folder"


@dataclass(frozen=True)
class CategoryBinItem(_BinItem):
    name: str = ""
    color: str = ""
    kind: ClassVar[str] = "category"


@dataclass(frozen=True)
class MediaBinItem(_BinItem):
    file_name: str = ""
    file_type: str = ""
    file_url: str = ""
    file_size: int = 0
    kind: ClassVar[str] = "media"


@dataclass(frozen=True)
class MediaFolderBinItem(_BinItem):
    name: str = ""
    parent_id: Optional[str] = None
    kind: ClassVar[str] = "media_folder"


RecycleBinItem = Union[SnippetBinItem, FolderBinItem, CategoryBinItem, MediaBinItem, MediaFolderBinItem]


def _base(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": str(doc.get("_id")),
        "deleted_at": doc.get("deleted_at"),
        "expires_at": doc.get("deleted_expires_at"),
    }


def snippet_item(doc: Dict[str, Any]) -> SnippetBinItem:
    return SnippetBinItem(**_base(doc), title=doc.get("title") or "", language=doc.get("language") or "")


def folder_item(doc: Dict[str, Any]) -> FolderBinItem:
    return FolderBinItem(**_base(doc), name=doc.get("name") or "", color=doc.get("color") or "")


def category_item(doc: Dict[str, Any]) -> CategoryBinItem:
    return CategoryBinItem(**_base(doc), name=doc.get("name") or "", color=doc.get("color") or "")


def media_item(doc: Dict[str, Any]) -> MediaBinItem:
    return MediaBinItem(
        **_base(doc),
        file_name=doc.get("file_name") or "",
        file_type=doc.get("file_type") or "",
        file_url=doc.get("file_url") or "",
        file_size=int(doc.get("file_size") or 0),
    )


def media_folder_item(doc: Dict[str, Any]) -> MediaFolderBinItem:
    return MediaFolderBinItem(**_base(doc), name=doc.get("name") or "", parent_id=doc.get("parent_id"))


@dataclass
class RecycleBinContents:
    snippets: List[SnippetBinItem] = field(default_factory=list)
    folders: List[FolderBinItem] = field(default_factory=list)
    categories: List[CategoryBinItem] = field(default_factory=list)
    media: List[MediaBinItem] = field(default_factory=list)
    media_folders: List[MediaFolderBinItem] = field(default_factory=list)

    def groups(self) -> Dict[str, List[Any]]:
        return {
            "snippet": self.snippets,
            "folder": self.folders,
            "category": self.categories,
            "media": self.media,
            "media_folder": self.media_folders,
        }

    @property
    def counts(self) -> Dict[str, int]:
        return {kind: len(items) for kind, items in self.groups().items()}

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def items(self) -> List[RecycleBinItem]:
        out: List[RecycleBinItem] = []
        for group in self.groups().values():
            out.extend(group)
        return out

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = now or utcnow()
        return {
            "snippets": [i.to_dict(now) for i in self.snippets],
            "folders": [i.to_dict(now) for i in self.folders],
            "categories": [i.to_dict(now) for i in self.categories],
            "media": [i.to_dict(now) for i in self.media],
            "media_folders": [i.to_dict(now) for i in self.media_folders],
            "counts": self.counts,
            "total": self.total,
            "retention_days": config.RECYCLE_TTL_DAYS,
        }


@dataclass(frozen=True)
class BinSelection:
    kind: str
    id: str

    @classmethod
    def parse(cls, raw: Any) -> "BinSelection":
        if not isinstance(raw, dict):
            raise ValidationError("Each item must be an object with type and id")
        kind = str(raw.get("type") or raw.get("kind") or "").strip()
        item_id = str(raw.get("id") or "").strip()
        if kind not in KINDS:
            raise ValidationError(f"Unknown item type: {kind or '?'}")
        if not item_id:
            raise ValidationError("Item id is required")
        return cls(kind, item_id)

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.kind, "id": self.id}


@dataclass
class BulkResult:
    succeeded: List[BinSelection] = field(default_factory=list)
    failed: List[Tuple[BinSelection, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "succeeded": [s.to_dict() for s in self.succeeded],
            "failed": [dict(s.to_dict(), error=reason) for s, reason in self.failed],
        }


Handler = Callable[[str, str], bool]


class RecycleBin:
    def __init__(self, repo: Repository, snippets: SnippetService, organize: OrganizeService, media: MediaService):
        self.repo = repo
        self.media = media
        self._restore: Dict[str, Handler] = {
            "snippet": snippets.restore,
            "folder": organize.restore_folder,
            "category": organize.restore_category,
            "media": media.restore_file,
            "media_folder": media.restore_folder,
        }
        self._purge: Dict[str, Handler] = {
            "snippet": snippets.purge,
            "folder": organize.purge_folder,
            "category": organize.purge_category,
            "media": media.purge_file,
            "media_folder": media.purge_folder,
        }

    def contents(self, user_id: str, include_media: bool = True) -> RecycleBinContents:
        """`include_media=False` משמיט את קבוצות המדיה (אזור המדיה נעול)."""
        contents = RecycleBinContents(
            snippets=[snippet_item(d) for d in self.repo.list_deleted_snippets(user_id)],
            folders=[folder_item(d) for d in self.repo.list_deleted_folders(user_id)],
            categories=[category_item(d) for d in self.repo.list_deleted_categories(user_id)],
        )
        if include_media:
            contents.media = [media_item(d) for d in self.media.repo.list_deleted_files(user_id)]
            contents.media_folders = [media_folder_item(d) for d in self.media.repo.list_deleted_folders(user_id)]
        return contents

    def restore(self, user_id: str, kind: str, item_id: str) -> bool:
        if kind not in self._restore:
            raise ValidationError(f"Unknown item type: {kind}")
        ok = self._restore[kind](user_id, item_id)
        if ok:
            emit_event("recycle_bin_restored", user_id=user_id, kind=kind, item_id=item_id)
        return ok

    def purge(self, user_id: str, kind: str, item_id: str) -> bool:
        if kind not in self._purge:
            raise ValidationError(f"Unknown item type: {kind}")
        ok = self._purge[kind](user_id, item_id)
        if ok:
            emit_event("recycle_bin_purged", user_id=user_id, kind=kind, item_id=item_id)
        return ok

    def _bulk(self, user_id: str, selections: Iterable[BinSelection],
              action: Callable[[str, str, str], bool]) -> BulkResult:
        result = BulkResult()
        for sel in selections:
            try:
                if action(user_id, sel.kind, sel.id):
                    result.succeeded.append(sel)
                else:
                    result.failed.append((sel, "not_found"))
            except SnippetVaultError as e:
                result.failed.append((sel, str(e)))
        if result.failed:
            emit_event("recycle_bin_bulk_partial", severity="warn", user_id=user_id,
                       succeeded=len(result.succeeded), failed=len(result.failed))
        return result

    def bulk_restore(self, user_id: str, selections: Iterable[BinSelection]) -> BulkResult:
        return self._bulk(user_id, selections, self.restore)

    def bulk_purge(self, user_id: str, selections: Iterable[BinSelection]) -> BulkResult:
        # תיקיות מדיה מהעמוקה לרדודה, כדי שתיקיית אב לא תמחק ילד שנבחר בנפרד
        def order(sel: BinSelection) -> Tuple[int, int]:
            depth = self.media.folder_depth(user_id, sel.id) if sel.kind == "media_folder" else 0
            return PURGE_ORDER.index(sel.kind), -depth

        return self._bulk(user_id, sorted(selections, key=order), self.purge)

    def clear_all(self, user_id: str, include_media: bool = True) -> BulkResult:
        contents = self.contents(user_id, include_media=include_media)
        selections = [BinSelection(item.kind, item.id) for item in contents.items()]
        return self.bulk_purge(user_id, selections)

    def purge_expired(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """מחיקה סופית של כל מה שעבר את תקופת השמירה (דרך אותם handlers)."""
        now = now or utcnow()
        expired: Dict[str, List[Dict[str, Any]]] = {}
        expired.update(self.repo.expired_items(now))
        expired.update(self.media.repo.expired_items(now))
        purged = {kind: 0 for kind in KINDS}
        for kind in PURGE_ORDER:
            for doc in expired.get(kind, []):
                try:
                    if self.purge(str(doc.get("user_id")), kind, str(doc.get("_id"))):
                        purged[kind] += 1
                except SnippetVaultError as e:
                    emit_event("recycle_bin_expire_failed", severity="warn", kind=kind, error=str(e))
        emit_event("recycle_bin_expired_purged", cutoff=now.isoformat(), **purged)
        return purged
