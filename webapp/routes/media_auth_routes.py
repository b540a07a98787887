"""
Media Auth Routes - PIN lifecycle and the media session timer.

Endpoints:
- GET  /api/media-auth/status   - PIN status, lockout and timer state
- POST /api/media-auth/pin      - create PIN {pin, confirm, hint}
- POST /api/media-auth/verify   - verify PIN and unlock the media area
- POST /api/media-auth/change   - change PIN {current_pin, pin, confirm, hint}
- POST /api/media-auth/activity - reset the inactivity countdown
- POST /api/media-auth/lock     - lock the media area
- GET  /api/media-auth/security - audit log and device sessions
"""
from __future__ import annotations

from flask import Blueprint, jsonify, session

from services.errors import MediaLockedError
from services.pin_gate import MediaSessionTimer

from .common import client_info, current_user_id, json_body, login_required, ok, services

media_auth_bp = Blueprint("media_auth_api", __name__, url_prefix="/api/media-auth")


@media_auth_bp.route("/status", methods=["GET"])
@login_required
def status():
    payload = services().pin_gate.status(current_user_id())
    payload["session"] = MediaSessionTimer(session).state()
    return jsonify(payload)


@media_auth_bp.route("/pin", methods=["POST"])
@login_required
def create_pin():
    data = json_body()
    services().pin_gate.create_pin(
        current_user_id(), data.get("pin"), data.get("confirm"), data.get("hint"), client_info(),
    )
    return ok({}, 201)


@media_auth_bp.route("/verify", methods=["POST"])
@login_required
def verify():
    services().pin_gate.verify(current_user_id(), json_body().get("pin"), client_info())
    timer = MediaSessionTimer(session)
    timer.unlock()
    return ok({"session": timer.state()})


@media_auth_bp.route("/change", methods=["POST"])
@login_required
def change_pin():
    data = json_body()
    services().pin_gate.change_pin(
        current_user_id(),
        data.get("current_pin"),
        data.get("pin"),
        data.get("confirm"),
        data.get("hint"),
        client_info(),
    )
    return ok()


@media_auth_bp.route("/activity", methods=["POST"])
@login_required
def activity():
    timer = MediaSessionTimer(session)
    if not timer.touch():
        raise MediaLockedError("Session expired due to inactivity. Please enter your PIN again.")
    return ok({"session": timer.state()})


@media_auth_bp.route("/lock", methods=["POST"])
@login_required
def lock():
    MediaSessionTimer(session).lock()
    return ok()


@media_auth_bp.route("/security", methods=["GET"])
@login_required
def security():
    return jsonify(services().pin_gate.security_overview(current_user_id()))
