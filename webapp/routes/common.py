"""
Shared helpers for the API blueprints: auth guards, JSON body access and
the media-session guard.
"""
from __future__ import annotations

from functools import wraps
from typing import Any, Dict, Optional

from flask import jsonify, request, session

from services.container import Services, get_services
from services.errors import MediaLockedError, ValidationError
from services.pin_gate import ClientInfo, MediaSessionTimer

MEDIA_AUTH_REDIRECT = "/confirm-media-auth"


def services() -> Services:
    return get_services()


def current_user_id() -> str:
    return str(session.get("user_id") or "")


def login_required(f):
    """Local login guard for API routes."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not session.get("user_id"):
            return jsonify({"ok": False, "error": "unauthorized", "message": "נדרש להתחבר"}), 401
        return f(*args, **kwargs)

    return decorated_function


def media_unlocked_required(f):
    """אזור המדיה דורש PIN שאומת וסשן שלא פג; כל בקשה מאפסת את הטיימר."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not MediaSessionTimer(session).touch():
            raise MediaLockedError("Session expired due to inactivity. Please enter your PIN again.")
        return f(*args, **kwargs)

    return decorated_function


def json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_confirm(data: Dict[str, Any]) -> None:
    if data.get("confirm") is not True:
        raise ValidationError("This action is permanent; send confirm=true to proceed")


def client_info() -> ClientInfo:
    forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return ClientInfo(
        ip=forwarded or request.remote_addr or "unknown",
        user_agent=request.headers.get("User-Agent", ""),
    )


def ok(payload: Optional[Dict[str, Any]] = None, status: int = 200):
    body = {"ok": True}
    body.update(payload or {})
    return jsonify(body), status
