"""
Auth Routes - session context, sign-in/out and guest mode.

Endpoints:
- GET  /api/auth/session - current context (authenticated / guest / anonymous)
- POST /api/auth/sign-in - register a pre-verified identity in the session
- POST /api/auth/sign-out
- /api/guest/* - guest mode (snippets kept in the session only)
"""
from __future__ import annotations

from flask import Blueprint, jsonify, session

from services.errors import ValidationError
from services.session_context import (
    FlaskSessionAuthProvider,
    GuestStore,
    UserIdentity,
    context_payload,
    resolve_context,
)

from .common import json_body, ok


auth_bp = Blueprint("auth", __name__)

_provider = FlaskSessionAuthProvider()


def get_auth_provider() -> FlaskSessionAuthProvider:
    return _provider


@auth_bp.route("/api/auth/session", methods=["GET"])
def session_context():
    return jsonify(context_payload(resolve_context(get_auth_provider())))


@auth_bp.route("/api/auth/sign-in", methods=["POST"])
def sign_in():
    data = json_body()
    user_id = str(data.get("user_id") or "").strip()
    if not user_id:
        raise ValidationError("user_id is required")
    identity = get_auth_provider().sign_in(
        UserIdentity(user_id=user_id, username=data.get("username"), email=data.get("email"))
    )
    session.permanent = True
    return ok({"user": {"user_id": identity.user_id, "username": identity.username}})


@auth_bp.route("/api/auth/sign-out", methods=["POST"])
def sign_out():
    get_auth_provider().sign_out()
    return ok()


# --- Guest mode ---

@auth_bp.route("/api/guest/usernames", methods=["GET"])
def guest_usernames():
    store = GuestStore()
    names = store.previous_usernames()
    return jsonify({
        "usernames": [{"username": n, "snippet_count": store.snippet_count(n)} for n in names],
    })


@auth_bp.route("/api/guest/enter", methods=["POST"])
def guest_enter():
    if get_auth_provider().current_user() is not None:
        raise ValidationError("Already signed in")
    profile = GuestStore().enter(json_body().get("username"))
    return ok({"username": profile.username})


@auth_bp.route("/api/guest/exit", methods=["POST"])
def guest_exit():
    GuestStore().exit()
    return ok()


@auth_bp.route("/api/guest/snippets", methods=["GET"])
def guest_list_snippets():
    return jsonify({"snippets": GuestStore().list_snippets()})


@auth_bp.route("/api/guest/snippets", methods=["POST"])
def guest_add_snippet():
    return ok({"snippet": GuestStore().add(json_body())}, 201)


@auth_bp.route("/api/guest/snippets/<snippet_id>", methods=["PUT"])
def guest_update_snippet(snippet_id: str):
    return ok({"snippet": GuestStore().update(snippet_id, json_body())})


@auth_bp.route("/api/guest/snippets/<snippet_id>/favorite", methods=["POST"])
def guest_toggle_favorite(snippet_id: str):
    return ok({"is_favorite": GuestStore().toggle_favorite(snippet_id)})


@auth_bp.route("/api/guest/snippets/<snippet_id>", methods=["DELETE"])
def guest_delete_snippet(snippet_id: str):
    if not GuestStore().delete(snippet_id):
        return jsonify({"ok": False, "error": "not_found"}), 404
    return ok()
