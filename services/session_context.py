from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, MutableMapping, Optional, Union

from flask import session as flask_session

from config import config
from database.models import utcnow
from observability import bind_user_context, emit_event

from .errors import NotFoundError, ValidationError
from .pin_gate import MediaSessionTimer
from .snippet_service import normalize_tags

USER_KEY = "user_id"
USERNAME_KEY = "username"
EMAIL_KEY = "email"
GUEST_USERNAME_KEY = "guest_username"
GUEST_SNIPPETS_KEY = "guest_snippets"
GUEST_PREVIOUS_KEY = "guest_previous_usernames"


@dataclass(frozen=True)
class UserIdentity:
    user_id: str
    username: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class GuestProfile:
    username: str


@dataclass(frozen=True)
class Authenticated:
    user: UserIdentity


@dataclass(frozen=True)
class Guest:
    profile: GuestProfile


@dataclass(frozen=True)
class Anonymous:
    pass


SessionContext = Union[Authenticated, Guest, Anonymous]


class AuthProvider(ABC):
    """ממשק ספק זהות: יכולות קבועות בלבד, ניתן להחלפה לפי סביבה."""

    @abstractmethod
    def sign_in(self, identity: UserIdentity) -> UserIdentity: ...

    @abstractmethod
    def sign_out(self) -> None: ...

    @abstractmethod
    def current_user(self) -> Optional[UserIdentity]: ...


class FlaskSessionAuthProvider(AuthProvider):
    """שומר את המשתמש המאומת ב-session החתום של Flask.

    הזהות מגיעה מאומתת מספק חיצוני; כאן רק נרשמת ונקראת.
    """

    def __init__(self, store: Optional[MutableMapping[str, Any]] = None):
        self._store = store

    @property
    def store(self) -> MutableMapping[str, Any]:
        return self._store if self._store is not None else flask_session

    def sign_in(self, identity: UserIdentity) -> UserIdentity:
        if not identity.user_id:
            raise ValidationError("user_id is required")
        store = self.store
        # כניסה כמשתמש רשום יוצאת ממצב אורח
        store.pop(GUEST_USERNAME_KEY, None)
        if str(store.get(USER_KEY) or "") != str(identity.user_id):
            # פתיחת אזור המדיה שייכת למשתמש הקודם
            MediaSessionTimer(store).lock()
        store[USER_KEY] = str(identity.user_id)
        store[USERNAME_KEY] = identity.username
        store[EMAIL_KEY] = identity.email
        bind_user_context(user_id=identity.user_id)
        emit_event("user_signed_in", user_id=identity.user_id)
        return identity

    def sign_out(self) -> None:
        store = self.store
        user_id = store.get(USER_KEY)
        for key in list(store.keys()):
            if key not in (GUEST_SNIPPETS_KEY, GUEST_PREVIOUS_KEY):
                store.pop(key, None)
        if user_id:
            emit_event("user_signed_out", user_id=user_id)

    def current_user(self) -> Optional[UserIdentity]:
        store = self.store
        user_id = store.get(USER_KEY)
        if not user_id:
            return None
        return UserIdentity(user_id=str(user_id), username=store.get(USERNAME_KEY), email=store.get(EMAIL_KEY))


def resolve_context(provider: AuthProvider, store: Optional[MutableMapping[str, Any]] = None) -> SessionContext:
    user = provider.current_user()
    if user is not None:
        return Authenticated(user)
    store = store if store is not None else flask_session
    guest_name = store.get(GUEST_USERNAME_KEY)
    if guest_name:
        return Guest(GuestProfile(str(guest_name)))
    return Anonymous()


def context_payload(ctx: SessionContext) -> Dict[str, Any]:
    if isinstance(ctx, Authenticated):
        return {"mode": "authenticated", "user_id": ctx.user.user_id, "username": ctx.user.username}
    if isinstance(ctx, Guest):
        return {"mode": "guest", "username": ctx.profile.username}
    return {"mode": "anonymous"}


class GuestStore:
    """מצב אורח: סניפטים נשמרים רק ב-session, לפי שם משתמש מקומי.

    נשמרים עד GUEST_PREVIOUS_USERNAMES שמות אחרונים; שם חדש מעבר לזה נחסם.
    """

    def __init__(self, store: Optional[MutableMapping[str, Any]] = None):
        self._store = store

    @property
    def store(self) -> MutableMapping[str, Any]:
        return self._store if self._store is not None else flask_session

    def previous_usernames(self) -> List[str]:
        return list(self.store.get(GUEST_PREVIOUS_KEY) or [])

    def enter(self, username: str) -> GuestProfile:
        name = str(username or "").strip()
        if not name:
            raise ValidationError("Username is required")
        if len(name) > config.GUEST_USERNAME_MAX_LENGTH:
            raise ValidationError(f"Username must be at most {config.GUEST_USERNAME_MAX_LENGTH} characters")
        previous = self.previous_usernames()
        limit = config.GUEST_PREVIOUS_USERNAMES
        if name not in previous and len(previous) >= limit:
            raise ValidationError(f"You have reached the maximum limit of {limit} guest accounts")
        self.store[GUEST_USERNAME_KEY] = name
        self.store[GUEST_PREVIOUS_KEY] = ([name] + [p for p in previous if p != name])[:limit]
        all_snippets = dict(self.store.get(GUEST_SNIPPETS_KEY) or {})
        all_snippets.setdefault(name, [])
        self.store[GUEST_SNIPPETS_KEY] = all_snippets
        return GuestProfile(name)

    def exit(self) -> None:
        self.store.pop(GUEST_USERNAME_KEY, None)

    def _username(self) -> str:
        name = self.store.get(GUEST_USERNAME_KEY)
        if not name:
            raise ValidationError("Guest mode is not active")
        return str(name)

    def _load(self) -> List[Dict[str, Any]]:
        return list((self.store.get(GUEST_SNIPPETS_KEY) or {}).get(self._username(), []))

    def _save(self, snippets: List[Dict[str, Any]]) -> None:
        all_snippets = dict(self.store.get(GUEST_SNIPPETS_KEY) or {})
        all_snippets[self._username()] = snippets
        # השמה מחדש כדי ש-Flask יסמן את ה-session כמשתנה
        self.store[GUEST_SNIPPETS_KEY] = all_snippets

    def snippet_count(self, username: str) -> int:
        return len((self.store.get(GUEST_SNIPPETS_KEY) or {}).get(username, []))

    def list_snippets(self) -> List[Dict[str, Any]]:
        return self._load()

    def add(self, data: Dict[str, Any]) -> Dict[str, Any]:
        title = str(data.get("title") or "").strip()
        code = str(data.get("code") or "")
        if not title:
            raise ValidationError("Title is required")
        if len(title) > config.SNIPPET_TITLE_MAX_LENGTH:
            raise ValidationError(f"Title must be at most {config.SNIPPET_TITLE_MAX_LENGTH} characters")
        if not code.strip():
            raise ValidationError("Code is required")
        now = utcnow().isoformat()
        snippet = {
            "id": f"guest-{uuid.uuid4().hex[:12]}",
            "title": title,
            "description": str(data.get("description") or "").strip()[: config.SNIPPET_DESCRIPTION_MAX_LENGTH],
            "code": code,
            "language": str(data.get("language") or "text").strip().lower(),
            "tags": normalize_tags(data.get("tags")),
            "is_favorite": bool(data.get("is_favorite", False)),
            "created_at": now,
            "updated_at": now,
        }
        snippets = self._load()
        snippets.append(snippet)
        self._save(snippets)
        return snippet

    def update(self, snippet_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        snippets = self._load()
        for item in snippets:
            if item.get("id") == snippet_id:
                for key in ("title", "description", "code", "language", "is_favorite"):
                    if key in changes:
                        item[key] = changes[key]
                if "tags" in changes:
                    item["tags"] = normalize_tags(changes["tags"])
                item["updated_at"] = utcnow().isoformat()
                self._save(snippets)
                return item
        raise NotFoundError("Snippet not found")

    def toggle_favorite(self, snippet_id: str) -> bool:
        current = next((s for s in self._load() if s.get("id") == snippet_id), None)
        if current is None:
            raise NotFoundError("Snippet not found")
        value = not bool(current.get("is_favorite"))
        self.update(snippet_id, {"is_favorite": value})
        return value

    def delete(self, snippet_id: str) -> bool:
        snippets = self._load()
        remaining = [s for s in snippets if s.get("id") != snippet_id]
        if len(remaining) == len(snippets):
            return False
        self._save(remaining)
        return True
