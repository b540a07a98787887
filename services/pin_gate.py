"""
PIN gate for the media area.

A per-user PIN (4-8 digits, stored as a salted werkzeug hash) with a sliding
failure window and a timed lockout, plus an inactivity timer kept in the
signed Flask session. This is a UX gate in front of already authenticated
data, not an authentication factor.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, MutableMapping, Optional

from werkzeug.security import check_password_hash, generate_password_hash

from config import config
from database import SecurityRepository
from database.models import AuditEntry, DeviceSession, FailedAttempt, SecuritySettings, utcnow
from observability import emit_event

from .errors import InvalidPinError, PinLockedError, PinNotSetError, ValidationError
from .serialization import safe_iso

MAX_DEVICE_SESSIONS = 5
LOCKOUT_REASON = "Too many failed PIN attempts"


@dataclass
class ClientInfo:
    ip: str = "unknown"
    user_agent: str = ""

    @property
    def device(self) -> str:
        return "Mobile" if "Mobile" in (self.user_agent or "") else "Desktop"

    @property
    def browser(self) -> str:
        ua = self.user_agent or ""
        # הסדר חשוב: Edge ו-Chrome מציינים גם Safari
        for marker, name in (("Edg", "Edge"), ("Chrome", "Chrome"), ("Firefox", "Firefox"), ("Safari", "Safari")):
            if marker in ua:
                return name
        return "Unknown"


def validate_pin(pin: Any) -> str:
    value = str(pin or "").strip()
    if not value.isdigit():
        raise ValidationError("PIN must contain digits only")
    if not (config.PIN_MIN_LENGTH <= len(value) <= config.PIN_MAX_LENGTH):
        raise ValidationError(f"PIN must be {config.PIN_MIN_LENGTH}-{config.PIN_MAX_LENGTH} digits")
    return value


def hint_reveals_pin(hint: str, pin: str) -> bool:
    """True אם הרמז מכיל את ה-PIN, גם עם רווחים, מקפים או נקודות בין הספרות."""
    if not hint or not pin:
        return False
    lowered = hint.lower()
    variants = [pin] + [sep.join(pin) for sep in (" ", "-", ".")]
    return any(v.lower() in lowered for v in variants)


def validate_hint(hint: Any, pin: str) -> Optional[str]:
    value = str(hint or "").strip()
    if not value:
        return None
    if len(value) > config.PIN_HINT_MAX_LENGTH:
        raise ValidationError(f"Hint must be at most {config.PIN_HINT_MAX_LENGTH} characters")
    if hint_reveals_pin(value, pin):
        raise ValidationError("Password hint cannot contain your PIN or any variation of it")
    return value


class PinGate:
    def __init__(self, repo: SecurityRepository, clock: Callable[[], datetime] = utcnow):
        self.repo = repo
        self.clock = clock

    def _audit(self, settings: SecuritySettings, action: str, status: str, details: str,
               client: ClientInfo, now: datetime) -> List[AuditEntry]:
        entries = settings.audit_log + [
            AuditEntry(action=action, status=status, timestamp=now, details=details,
                       ip=client.ip, user_agent=client.user_agent)
        ]
        return entries[-config.SECURITY_LOG_LIMIT:]

    def _check_lockout(self, settings: SecuritySettings, now: datetime) -> None:
        if settings.lockout_until is None:
            return
        if settings.lockout_until > now:
            raise PinLockedError(int((settings.lockout_until - now).total_seconds()))
        # נעילה שפגה מנוקה בבדיקה הבאה
        self.repo.update_fields(settings.user_id, {
            "lockout_until": None, "lockout_reason": None, "lockout_attempts_count": 0,
        })
        settings.lockout_until = None
        settings.lockout_reason = None
        settings.lockout_attempts_count = 0
        emit_event("pin_lockout_cleared", user_id=settings.user_id)

    def status(self, user_id: str) -> Dict[str, Any]:
        now = self.clock()
        settings = self.repo.get(user_id)
        locked_for = 0
        try:
            self._check_lockout(settings, now)
        except PinLockedError as e:
            locked_for = e.remaining_seconds
        window = now - timedelta(minutes=config.PIN_ATTEMPT_WINDOW_MINUTES)
        recent = [a for a in settings.failed_attempts if a.timestamp and a.timestamp > window]
        return {
            "has_pin": settings.has_pin,
            "hint": settings.pin_hint,
            "pin_created_at": safe_iso(settings.pin_created_at),
            "locked": locked_for > 0,
            "lockout_remaining_seconds": locked_for,
            "recent_failed_attempts": len(recent),
            "attempts_remaining": max(0, config.PIN_MAX_ATTEMPTS - len(recent)),
        }

    def create_pin(self, user_id: str, pin: Any, confirm: Any, hint: Any = None,
                   client: Optional[ClientInfo] = None) -> None:
        client = client or ClientInfo()
        now = self.clock()
        settings = self.repo.get(user_id)
        if settings.has_pin:
            raise ValidationError("A PIN already exists")
        value = validate_pin(pin)
        if str(confirm or "").strip() != value:
            raise ValidationError("PINs do not match")
        clean_hint = validate_hint(hint, value)
        self.repo.update_fields(user_id, {
            "pin_hash": generate_password_hash(value, method=config.PIN_HASH_METHOD),
            "pin_hint": clean_hint,
            "pin_created_at": now,
            "failed_attempts": [],
            "active_sessions": [DeviceSession(client.device, client.browser, now, client.ip)],
            "audit_log": self._audit(settings, "PIN Created", "success", "Media PIN created", client, now),
        })
        emit_event("pin_created", user_id=user_id)

    def verify(self, user_id: str, pin: Any, client: Optional[ClientInfo] = None) -> None:
        """מאמת PIN. מעלה PinLockedError / InvalidPinError / PinNotSetError; אחרת מצליח בשקט."""
        client = client or ClientInfo()
        now = self.clock()
        settings = self.repo.get(user_id)
        if not settings.has_pin:
            raise PinNotSetError("No PIN has been set")
        self._check_lockout(settings, now)

        if check_password_hash(settings.pin_hash or "", str(pin or "").strip()):
            sessions = [s for s in settings.active_sessions
                        if not (s.device == client.device and s.browser == client.browser)]
            sessions.append(DeviceSession(client.device, client.browser, now, client.ip))
            self.repo.update_fields(user_id, {
                "failed_attempts": [],
                "lockout_until": None,
                "lockout_reason": None,
                "lockout_attempts_count": 0,
                "active_sessions": sessions[-MAX_DEVICE_SESSIONS:],
                "audit_log": self._audit(settings, "PIN Verification Success", "success",
                                         "Media area unlocked", client, now),
            })
            emit_event("pin_verified", user_id=user_id)
            return

        attempts = settings.failed_attempts + [FailedAttempt(now, client.ip, client.user_agent)]
        window = now - timedelta(minutes=config.PIN_ATTEMPT_WINDOW_MINUTES)
        recent = [a for a in attempts if a.timestamp > window]
        attempts = attempts[-config.SECURITY_LOG_LIMIT:]
        if len(recent) >= config.PIN_MAX_ATTEMPTS:
            until = now + timedelta(minutes=config.PIN_LOCKOUT_MINUTES)
            self.repo.update_fields(user_id, {
                "failed_attempts": attempts,
                "lockout_until": until,
                "lockout_reason": LOCKOUT_REASON,
                "lockout_attempts_count": len(recent),
                "audit_log": self._audit(settings, "Account Locked", "warning",
                                         f"Locked after {len(recent)} failed attempts", client, now),
            })
            emit_event("pin_lockout", severity="warn", user_id=user_id, attempts=len(recent))
            raise PinLockedError(int((until - now).total_seconds()))

        remaining = config.PIN_MAX_ATTEMPTS - len(recent)
        self.repo.update_fields(user_id, {
            "failed_attempts": attempts,
            "audit_log": self._audit(settings, "PIN Verification Failed", "failed",
                                     f"Failed PIN attempt. {remaining} attempts remaining.", client, now),
        })
        emit_event("pin_verify_failed", severity="warn", user_id=user_id, attempts_remaining=remaining)
        raise InvalidPinError(attempts_remaining=remaining)

    def change_pin(self, user_id: str, current_pin: Any, new_pin: Any, confirm: Any,
                   hint: Any = None, client: Optional[ClientInfo] = None) -> None:
        client = client or ClientInfo()
        value = validate_pin(new_pin)
        if str(confirm or "").strip() != value:
            raise ValidationError("PINs do not match")
        clean_hint = validate_hint(hint, value)
        # ה-PIN הנוכחי נבדק כמו ניסיון אימות רגיל (כולל ספירת כשלונות)
        self.verify(user_id, current_pin, client)
        now = self.clock()
        settings = self.repo.get(user_id)
        self.repo.update_fields(user_id, {
            "pin_hash": generate_password_hash(value, method=config.PIN_HASH_METHOD),
            "pin_hint": clean_hint,
            "pin_created_at": now,
            "audit_log": self._audit(settings, "PIN Changed", "success", "Media PIN changed", client, now),
        })
        emit_event("pin_changed", user_id=user_id)

    def security_overview(self, user_id: str) -> Dict[str, Any]:
        settings = self.repo.get(user_id)
        return {
            "audit_log": [
                {"action": e.action, "status": e.status, "timestamp": safe_iso(e.timestamp),
                 "details": e.details, "ip": e.ip}
                for e in reversed(settings.audit_log)
            ],
            "active_sessions": [
                {"device": s.device, "browser": s.browser, "last_active": safe_iso(s.last_active), "ip": s.ip}
                for s in settings.active_sessions
            ],
        }


class MediaSessionTimer:
    """טיימר חוסר-פעילות לאזור המדיה, שמור בתוך ה-session (חותמות זמן epoch)."""

    UNLOCKED_AT = "media_unlocked_at"
    LAST_ACTIVITY = "media_last_activity"

    def __init__(self, store: MutableMapping[str, Any],
                 timeout_minutes: Optional[int] = None, warning_minutes: Optional[int] = None):
        self.store = store
        self.timeout = timedelta(minutes=timeout_minutes or config.MEDIA_SESSION_TIMEOUT_MINUTES)
        self.warning = timedelta(
            minutes=config.MEDIA_SESSION_WARNING_MINUTES if warning_minutes is None else warning_minutes
        )

    def unlock(self, now: Optional[datetime] = None) -> None:
        ts = (now or utcnow()).timestamp()
        self.store[self.UNLOCKED_AT] = ts
        self.store[self.LAST_ACTIVITY] = ts

    def lock(self) -> None:
        self.store.pop(self.UNLOCKED_AT, None)
        self.store.pop(self.LAST_ACTIVITY, None)

    def remaining(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        last = self.store.get(self.LAST_ACTIVITY)
        if self.store.get(self.UNLOCKED_AT) is None or last is None:
            return None
        elapsed = timedelta(seconds=(now or utcnow()).timestamp() - float(last))
        return self.timeout - elapsed

    def is_active(self, now: Optional[datetime] = None) -> bool:
        left = self.remaining(now)
        return left is not None and left > timedelta(0)

    def touch(self, now: Optional[datetime] = None) -> bool:
        """מאפס את הספירה לאחור; פג תוקף -> נועל ומחזיר False."""
        if not self.is_active(now):
            self.lock()
            return False
        self.store[self.LAST_ACTIVITY] = (now or utcnow()).timestamp()
        return True

    def state(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        left = self.remaining(now)
        active = left is not None and left > timedelta(0)
        seconds = int(left.total_seconds()) if active else 0
        return {
            "unlocked": active,
            "remaining_seconds": seconds,
            "warning": active and left <= self.warning,
            "timeout_seconds": int(self.timeout.total_seconds()),
        }
