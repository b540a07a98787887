from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional

from config import config
from database import Repository, Snippet
from observability import emit_event

from .errors import NotFoundError, ValidationError
from .serialization import public_doc

TIME_FILTERS = ("all", "favorites", "recent", "older")
SORT_ORDERS = ("newest", "oldest", "name-az", "name-za")
RECENT_DAYS = 7
OLDER_DAYS = 30
RECENT_SNIPPETS = 3

# ערך מיוחד בפילטר קטגוריה/תיקייה: סניפטים שאינם משויכים
UNASSIGNED = "none"


def normalize_tags(tags: Any) -> List[str]:
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    out: List[str] = []
    seen = set()
    for tag in tags:
        t = str(tag or "").strip()
        if t and t.lower() not in seen:
            seen.add(t.lower())
            out.append(t)
    return out


def _as_aware(value: Any) -> Optional[datetime]:
    if not isinstance(value, datetime):
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def apply_time_filter(docs: Iterable[Dict[str, Any]], time_filter: str,
                      now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = now or datetime.now(timezone.utc)
    docs = list(docs)
    if time_filter == "favorites":
        return [d for d in docs if d.get("is_favorite")]
    if time_filter == "recent":
        cutoff = now - timedelta(days=RECENT_DAYS)
        return [
            d for d in docs
            if any(s is not None and s >= cutoff
                   for s in (_as_aware(d.get("created_at")), _as_aware(d.get("updated_at"))))
        ]
    if time_filter == "older":
        cutoff = now - timedelta(days=OLDER_DAYS)
        return [d for d in docs if (_as_aware(d.get("created_at")) or now) < cutoff]
    return docs


def sort_snippets(docs: Iterable[Dict[str, Any]], order: str) -> List[Dict[str, Any]]:
    docs = list(docs)
    epoch = datetime.min.replace(tzinfo=timezone.utc)
    if order == "oldest":
        return sorted(docs, key=lambda d: _as_aware(d.get("created_at")) or epoch)
    if order == "name-az":
        return sorted(docs, key=lambda d: str(d.get("title") or "").casefold())
    if order == "name-za":
        return sorted(docs, key=lambda d: str(d.get("title") or "").casefold(), reverse=True)
    return sorted(docs, key=lambda d: _as_aware(d.get("created_at")) or epoch, reverse=True)


def matches_search(doc: Dict[str, Any], query: str) -> bool:
    q = (query or "").strip().casefold()
    if not q:
        return True
    for field_name in ("title", "description", "code"):
        if q in str(doc.get(field_name) or "").casefold():
            return True
    return any(q in str(t).casefold() for t in (doc.get("tags") or []))


class SnippetService:
    """יצירה, עדכון ושליפה של סניפטים, כולל פילטרים ומיון כמו במסך הרשימה."""

    def __init__(self, repo: Repository):
        self.repo = repo

    # --- Validation ---
    def _validate_title(self, title: Any) -> str:
        clean = str(title or "").strip()
        if not clean:
            raise ValidationError("Title is required")
        if len(clean) > config.SNIPPET_TITLE_MAX_LENGTH:
            raise ValidationError(f"Title must be at most {config.SNIPPET_TITLE_MAX_LENGTH} characters")
        return clean

    def _validate_description(self, description: Any) -> str:
        clean = str(description or "").strip()
        if len(clean) > config.SNIPPET_DESCRIPTION_MAX_LENGTH:
            raise ValidationError(
                f"Description must be at most {config.SNIPPET_DESCRIPTION_MAX_LENGTH} characters"
            )
        return clean

    def _validate_code(self, code: Any) -> str:
        text = str(code or "")
        if not text.strip():
            raise ValidationError("Code is required")
        if len(text.encode("utf-8")) > config.MAX_CODE_SIZE:
            raise ValidationError("Code is too large")
        return text

    def _validate_language(self, language: Any) -> str:
        lang = str(language or "").strip().lower()
        if not lang:
            raise ValidationError("Language is required")
        if config.SUPPORTED_LANGUAGES and lang not in config.SUPPORTED_LANGUAGES:
            raise ValidationError(f"Unsupported language: {lang}")
        return lang

    def _validate_links(self, user_id: str, folder_id: Optional[str], category_id: Optional[str]) -> None:
        if folder_id and self.repo.get_folder(user_id, folder_id) is None:
            raise NotFoundError("Folder not found")
        if category_id and self.repo.get_category(user_id, category_id) is None:
            raise NotFoundError("Category not found")

    # --- Commands ---
    def create(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        folder_id = data.get("folder_id") or None
        category_id = data.get("category_id") or None
        self._validate_links(user_id, folder_id, category_id)
        created_at = _as_aware(data.get("created_at"))
        snippet = Snippet(
            user_id=user_id,
            title=self._validate_title(data.get("title")),
            code=self._validate_code(data.get("code")),
            language=self._validate_language(data.get("language")),
            description=self._validate_description(data.get("description")),
            tags=normalize_tags(data.get("tags")),
            is_public=bool(data.get("is_public", False)),
            is_favorite=bool(data.get("is_favorite", False)),
            folder_id=folder_id,
            category_id=category_id,
            created_at=created_at,
        )
        snippet_id = self.repo.create_snippet(snippet)
        if not snippet_id:
            raise ValidationError("Could not save the snippet")
        emit_event("snippet_created", user_id=user_id, snippet_id=snippet_id, language=snippet.language)
        return public_doc(self.repo.get_snippet(user_id, snippet_id)) or {}

    def update(self, user_id: str, snippet_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        if self.repo.get_snippet(user_id, snippet_id) is None:
            raise NotFoundError("Snippet not found")
        fields: Dict[str, Any] = {}
        if "title" in changes:
            fields["title"] = self._validate_title(changes["title"])
        if "description" in changes:
            fields["description"] = self._validate_description(changes["description"])
        if "code" in changes:
            fields["code"] = self._validate_code(changes["code"])
        if "language" in changes:
            fields["language"] = self._validate_language(changes["language"])
        if "tags" in changes:
            fields["tags"] = normalize_tags(changes["tags"])
        for flag in ("is_public", "is_favorite"):
            if flag in changes:
                fields[flag] = bool(changes[flag])
        if "folder_id" in changes or "category_id" in changes:
            folder_id = changes.get("folder_id") or None
            category_id = changes.get("category_id") or None
            self._validate_links(
                user_id,
                folder_id if "folder_id" in changes else None,
                category_id if "category_id" in changes else None,
            )
            if "folder_id" in changes:
                fields["folder_id"] = folder_id
            if "category_id" in changes:
                fields["category_id"] = category_id
        if fields:
            self.repo.update_snippet(user_id, snippet_id, fields)
        return self.get(user_id, snippet_id)

    def get(self, user_id: str, snippet_id: str) -> Dict[str, Any]:
        doc = self.repo.get_snippet(user_id, snippet_id)
        if doc is None:
            raise NotFoundError("Snippet not found")
        return public_doc(doc) or {}

    def toggle_favorite(self, user_id: str, snippet_id: str) -> bool:
        doc = self.repo.get_snippet(user_id, snippet_id)
        if doc is None:
            raise NotFoundError("Snippet not found")
        value = not bool(doc.get("is_favorite"))
        self.repo.update_snippet(user_id, snippet_id, {"is_favorite": value})
        return value

    def set_public(self, user_id: str, snippet_id: str, is_public: bool) -> bool:
        if not self.repo.update_snippet(user_id, snippet_id, {"is_public": bool(is_public)}):
            raise NotFoundError("Snippet not found")
        return bool(is_public)

    # --- Queries ---
    def list_snippets(
        self,
        user_id: str,
        *,
        folder_id: Optional[str] = None,
        category_id: Optional[str] = None,
        language: Optional[str] = None,
        search: str = "",
        favorites_only: bool = False,
        time_filter: str = "all",
        sort: str = "newest",
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        if time_filter not in TIME_FILTERS:
            raise ValidationError(f"Unknown time filter: {time_filter}")
        if sort not in SORT_ORDERS:
            raise ValidationError(f"Unknown sort order: {sort}")
        filters: Dict[str, Any] = {}
        if folder_id:
            filters["folder_id"] = None if folder_id == UNASSIGNED else folder_id
        if category_id:
            filters["category_id"] = None if category_id == UNASSIGNED else category_id
        if language:
            filters["language"] = str(language).strip().lower()
        if favorites_only:
            filters["is_favorite"] = True
        docs = [d for d in self.repo.find_snippets(user_id, filters) if matches_search(d, search)]
        docs = apply_time_filter(docs, time_filter, now)
        return [public_doc(d) for d in sort_snippets(docs, sort)]

    def recent(self, user_id: str, limit: int = RECENT_SNIPPETS) -> List[Dict[str, Any]]:
        return self.list_snippets(user_id)[: max(0, int(limit))]

    def public_feed(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        cap = min(int(limit or config.PUBLIC_SNIPPETS_LIMIT), config.PUBLIC_SNIPPETS_LIMIT)
        return [public_doc(d) for d in self.repo.list_public_snippets(cap)]

    def public_for_user(self, owner_id: str) -> List[Dict[str, Any]]:
        return [public_doc(d) for d in self.repo.list_public_snippets(config.PUBLIC_SNIPPETS_LIMIT, owner_id)]

    def languages_in_use(self, user_id: str) -> List[str]:
        return sorted(k for k in self.repo.count_snippets_by(user_id, "language") if k)

    # --- Lifecycle ---
    def soft_delete(self, user_id: str, snippet_id: str) -> bool:
        ok = self.repo.soft_delete_snippet(user_id, snippet_id)
        if ok:
            emit_event("snippet_soft_deleted", user_id=user_id, snippet_id=str(snippet_id))
        return ok

    def list_deleted(self, user_id: str) -> List[Dict[str, Any]]:
        return [public_doc(d) for d in self.repo.list_deleted_snippets(user_id)]

    def restore(self, user_id: str, snippet_id: str) -> bool:
        return self.repo.restore_snippet(user_id, snippet_id)

    def purge(self, user_id: str, snippet_id: str) -> bool:
        return self.repo.purge_snippet(user_id, snippet_id)
