from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


MEDIA_FILE_TYPES = ("image", "video")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def name_key(name: str) -> str:
    """מפתח השוואה לשמות: ייחודיות לפי משתמש ללא תלות ברישיות."""
    return (name or "").strip().casefold()


def to_document(record: Any) -> Dict[str, Any]:
    """dataclass -> מסמך Mongo (ללא _id ריק)."""
    doc = asdict(record)
    if doc.get("_id") is None:
        doc.pop("_id", None)
    return doc


@dataclass
class Snippet:
    """קטע קוד של משתמש."""
    user_id: str
    title: str
    code: str
    language: str
    description: str = ""
    tags: Optional[List[str]] = None
    is_public: bool = False
    is_favorite: bool = False
    folder_id: Optional[str] = None
    category_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # שדות סל מיחזור: מתי נמחק ומתי יפוג התוקף למחיקה סופית
    deleted_at: Optional[datetime] = None
    deleted_expires_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.tags is None:
            self.tags = []
        if self.created_at is None:
            self.created_at = utcnow()
        if self.updated_at is None:
            self.updated_at = self.created_at


@dataclass
class Folder:
    user_id: str
    name: str
    description: str = ""
    color: str = "#3B82F6"
    icon: str = "folder"
    name_key: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    deleted_expires_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.name = (self.name or "").strip()
        self.name_key = name_key(self.name)
        if self.created_at is None:
            self.created_at = utcnow()
        if self.updated_at is None:
            self.updated_at = self.created_at


@dataclass
class Category:
    user_id: str
    name: str
    description: str = ""
    color: str = "#3B82F6"
    background: str = "#1E3A8A"
    icon: str = "tag"
    is_default: bool = False
    sort_order: int = 0
    name_key: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    deleted_expires_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        self.name = (self.name or "").strip()
        self.name_key = name_key(self.name)
        if self.created_at is None:
            self.created_at = utcnow()
        if self.updated_at is None:
            self.updated_at = self.created_at


@dataclass
class MediaFile:
    """קובץ מדיה (תמונה/וידאו); הבינארי עצמו שמור ב-GridFS."""
    user_id: str
    file_name: str
    file_type: str
    file_url: str
    file_size: int
    mime_type: str = ""
    media_folder_id: Optional[str] = None
    description: str = ""
    tags: Optional[List[str]] = None
    is_favorite: bool = False
    duration: Optional[float] = None
    width: Optional[int] = None
    height: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    deleted_expires_at: Optional[datetime] = None
    # מזהה תיקיית השורש שמחיקתה גררה את מחיקת הקובץ
    deleted_with: Optional[str] = None

    def __post_init__(self) -> None:
        if self.file_type not in MEDIA_FILE_TYPES:
            raise ValueError(f"unsupported media type: {self.file_type!r}")
        if self.tags is None:
            self.tags = []
        if self.created_at is None:
            self.created_at = utcnow()
        if self.updated_at is None:
            self.updated_at = self.created_at


@dataclass
class MediaFolder:
    user_id: str
    name: str
    color: str = "#3B82F6"
    icon: str = "folder"
    parent_id: Optional[str] = None
    name_key: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    deleted_expires_at: Optional[datetime] = None
    deleted_with: Optional[str] = None

    def __post_init__(self) -> None:
        self.name = (self.name or "").strip()
        self.name_key = name_key(self.name)
        if self.created_at is None:
            self.created_at = utcnow()
        if self.updated_at is None:
            self.updated_at = self.created_at


# --- Security settings (PIN gate) ---

@dataclass
class FailedAttempt:
    timestamp: datetime
    ip: str = "unknown"
    user_agent: str = ""


@dataclass
class AuditEntry:
    action: str
    status: str  # success | failed | warning
    timestamp: datetime
    details: str = ""
    ip: str = "unknown"
    user_agent: str = ""


@dataclass
class DeviceSession:
    device: str
    browser: str
    last_active: datetime
    ip: str = "unknown"


@dataclass
class SecuritySettings:
    """רשומת אבטחה טיפוסית לכל משתמש (PIN, ניסיונות כושלים, נעילה, יומן)."""
    user_id: str
    pin_hash: Optional[str] = None
    pin_hint: Optional[str] = None
    pin_created_at: Optional[datetime] = None
    failed_attempts: List[FailedAttempt] = field(default_factory=list)
    lockout_until: Optional[datetime] = None
    lockout_reason: Optional[str] = None
    lockout_attempts_count: int = 0
    audit_log: List[AuditEntry] = field(default_factory=list)
    active_sessions: List[DeviceSession] = field(default_factory=list)

    @property
    def has_pin(self) -> bool:
        return bool(self.pin_hash)

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]], user_id: str) -> "SecuritySettings":
        if not doc:
            return cls(user_id=user_id)
        return cls(
            user_id=str(doc.get("user_id") or user_id),
            pin_hash=doc.get("pin_hash"),
            pin_hint=doc.get("pin_hint"),
            pin_created_at=_as_aware(doc.get("pin_created_at")),
            failed_attempts=[
                FailedAttempt(
                    timestamp=_as_aware(a.get("timestamp")),
                    ip=str(a.get("ip") or "unknown"),
                    user_agent=str(a.get("user_agent") or ""),
                )
                for a in (doc.get("failed_attempts") or [])
                if isinstance(a, dict) and a.get("timestamp") is not None
            ],
            lockout_until=_as_aware(doc.get("lockout_until")),
            lockout_reason=doc.get("lockout_reason"),
            lockout_attempts_count=int(doc.get("lockout_attempts_count") or 0),
            audit_log=[
                AuditEntry(
                    action=str(e.get("action") or ""),
                    status=str(e.get("status") or ""),
                    timestamp=_as_aware(e.get("timestamp")),
                    details=str(e.get("details") or ""),
                    ip=str(e.get("ip") or "unknown"),
                    user_agent=str(e.get("user_agent") or ""),
                )
                for e in (doc.get("audit_log") or [])
                if isinstance(e, dict)
            ],
            active_sessions=[
                DeviceSession(
                    device=str(s.get("device") or ""),
                    browser=str(s.get("browser") or ""),
                    last_active=_as_aware(s.get("last_active")),
                    ip=str(s.get("ip") or "unknown"),
                )
                for s in (doc.get("active_sessions") or [])
                if isinstance(s, dict)
            ],
        )


def _as_aware(value: Any) -> Optional[datetime]:
    """Mongo ללא tz_aware מחזיר datetime נאיבי; נניח UTC."""
    if value is None:
        return None
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
