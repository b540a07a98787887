#!/usr/bin/env python3
"""
SnippetVault - Web Application
JSON API לניהול סניפטים, תיקיות, קטגוריות, מדיה וסל מיחזור
"""

import logging
import os
from datetime import timedelta
from typing import Optional

from flask import Flask, g, jsonify, request, session
from flask_compress import Compress
from pymongo.errors import PyMongoError
from werkzeug.exceptions import HTTPException

from config import config
from observability import (
    bind_request_id,
    bind_user_context,
    clear_request_context,
    emit_event,
    generate_request_id,
    init_sentry,
    setup_structlog_logging,
)
from services.container import Services, set_services
from services.errors import DuplicateNameError, InvalidPinError, MediaLockedError, PinLockedError, SnippetVaultError
from webapp.routes import auth_bp, media_auth_bp, media_bp, organize_bp, recycle_bin_bp, snippets_bp
from webapp.routes.common import MEDIA_AUTH_REDIRECT

logger = logging.getLogger(__name__)


def _error_payload(e: SnippetVaultError):
    body = {"ok": False, "error": e.code, "message": str(e)}
    if isinstance(e, DuplicateNameError):
        body["title"] = f"Duplicate {e.kind} Name"
    elif isinstance(e, InvalidPinError):
        body["attempts_remaining"] = e.attempts_remaining
    elif isinstance(e, PinLockedError):
        body["remaining_seconds"] = e.remaining_seconds
    elif isinstance(e, MediaLockedError):
        body["redirect"] = MEDIA_AUTH_REDIRECT
    return jsonify(body), e.http_status


def create_app(services: Optional[Services] = None) -> Flask:
    """App factory. `services` מאפשר הזרקת שירותים (למשל DB מזויף בטסטים)."""
    setup_structlog_logging(config.LOG_LEVEL)
    init_sentry(config.SENTRY_DSN)

    app = Flask(__name__)
    app.secret_key = config.SECRET_KEY
    app.permanent_session_lifetime = timedelta(days=config.SESSION_LIFETIME_DAYS)
    app.config["MAX_CONTENT_LENGTH"] = config.MEDIA_MAX_UPLOAD_BYTES + 1024 * 1024
    Compress(app)

    if services is not None:
        set_services(services)

    for bp in (auth_bp, snippets_bp, organize_bp, media_bp, media_auth_bp, recycle_bin_bp):
        app.register_blueprint(bp)

    @app.before_request
    def _correlation_bind():
        """Bind a short request_id to structlog context and store for response header."""
        incoming = str(request.headers.get("X-Request-ID", "")).strip()
        rid = incoming[:64] or generate_request_id()
        bind_request_id(rid)
        g.request_id = rid
        bind_user_context(user_id=session.get("user_id"))

    @app.after_request
    def _add_request_id_header(resp):
        rid = getattr(g, "request_id", "")
        if rid:
            resp.headers["X-Request-ID"] = rid
        return resp

    @app.teardown_request
    def _clear_context(_exc):
        clear_request_context()

    @app.route("/health")
    def health():
        return jsonify({"status": "ok"})

    @app.errorhandler(SnippetVaultError)
    def handle_domain_error(e: SnippetVaultError):
        emit_event("api_domain_error", error=e.code, path=request.path, status=e.http_status)
        return _error_payload(e)

    @app.errorhandler(PyMongoError)
    def handle_store_error(e: PyMongoError):
        emit_event("api_store_error", severity="error", error=str(e), path=request.path)
        return jsonify({"ok": False, "error": "internal_error"}), 500

    @app.errorhandler(Exception)
    def handle_exception(e):
        """טיפול בכל שגיאה אחרת"""
        if isinstance(e, HTTPException):
            if request.path.startswith("/api/"):
                return jsonify({"ok": False, "error": e.name.lower().replace(" ", "_")}), e.code
            return e
        logger.exception("Unhandled exception")
        emit_event("api_unhandled_error", severity="error", error=str(e), path=request.path)
        return jsonify({"ok": False, "error": "internal_error"}), 500

    return app


if __name__ == "__main__":
    application = create_app()
    port = int(os.getenv("PORT", 5000))
    logger.info("Starting SnippetVault web app on port %s", port)
    application.run(host="0.0.0.0", port=port, debug=os.getenv("DEBUG", "false").lower() == "true")
