"""
Snippets Routes - /api/snippets endpoints (CRUD, filters, public feed,
soft delete, export/import).
"""
from __future__ import annotations

from flask import Blueprint, Response, jsonify, request

from services.errors import ImportFormatError, ValidationError
from services.snippet_transfer import export_snippets, format_from_filename, import_snippets

from .common import current_user_id, json_body, login_required, ok, services


snippets_bp = Blueprint("snippets_api", __name__, url_prefix="/api/snippets")


def _flag(name: str) -> bool:
    return str(request.args.get(name, "")).lower() in {"1", "true", "yes"}


@snippets_bp.route("", methods=["GET"])
@login_required
def list_snippets():
    items = services().snippets.list_snippets(
        current_user_id(),
        folder_id=request.args.get("folder_id") or None,
        category_id=request.args.get("category_id") or None,
        language=request.args.get("language") or None,
        search=request.args.get("q", ""),
        favorites_only=_flag("favorites"),
        time_filter=request.args.get("time", "all"),
        sort=request.args.get("sort", "newest"),
    )
    return jsonify({"snippets": items, "count": len(items)})


@snippets_bp.route("", methods=["POST"])
@login_required
def create_snippet():
    snippet = services().snippets.create(current_user_id(), json_body())
    return ok({"snippet": snippet}, 201)


@snippets_bp.route("/recent", methods=["GET"])
@login_required
def recent_snippets():
    return jsonify({"snippets": services().snippets.recent(current_user_id())})


@snippets_bp.route("/languages", methods=["GET"])
@login_required
def languages():
    return jsonify({"languages": services().snippets.languages_in_use(current_user_id())})


@snippets_bp.route("/public", methods=["GET"])
def public_feed():
    limit = request.args.get("limit", type=int)
    return jsonify({"snippets": services().snippets.public_feed(limit)})


@snippets_bp.route("/public/<owner_id>", methods=["GET"])
def public_for_user(owner_id: str):
    return jsonify({"snippets": services().snippets.public_for_user(owner_id)})


@snippets_bp.route("/deleted", methods=["GET"])
@login_required
def deleted_snippets():
    return jsonify({"snippets": services().snippets.list_deleted(current_user_id())})


@snippets_bp.route("/export", methods=["GET"])
@login_required
def export():
    fmt = (request.args.get("format") or "json").lower()
    items = services().snippets.list_snippets(current_user_id())
    wanted = {i for i in (request.args.get("ids") or "").split(",") if i}
    if wanted:
        items = [s for s in items if s["id"] in wanted]
    if not items:
        raise ValidationError("Please select at least one snippet to export")
    content, filename, mimetype = export_snippets(items, fmt)
    return Response(
        content,
        mimetype=mimetype,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@snippets_bp.route("/import", methods=["POST"])
@login_required
def import_():
    upload = request.files.get("file")
    if upload is not None:
        fmt = request.form.get("format") or format_from_filename(upload.filename or "")
        try:
            content = upload.read().decode("utf-8")
        except UnicodeDecodeError as e:
            raise ImportFormatError("File must be UTF-8 text") from e
    else:
        data = json_body()
        fmt = str(data.get("format") or "").lower() or format_from_filename(str(data.get("filename") or ""))
        content = str(data.get("content") or "")
    result = import_snippets(services().snippets, current_user_id(), content, fmt)
    return ok(result.to_dict())


@snippets_bp.route("/<snippet_id>", methods=["GET"])
@login_required
def get_snippet(snippet_id: str):
    return jsonify({"snippet": services().snippets.get(current_user_id(), snippet_id)})


@snippets_bp.route("/<snippet_id>", methods=["PUT", "PATCH"])
@login_required
def update_snippet(snippet_id: str):
    return ok({"snippet": services().snippets.update(current_user_id(), snippet_id, json_body())})


@snippets_bp.route("/<snippet_id>/favorite", methods=["POST"])
@login_required
def toggle_favorite(snippet_id: str):
    return ok({"is_favorite": services().snippets.toggle_favorite(current_user_id(), snippet_id)})


@snippets_bp.route("/<snippet_id>/public", methods=["POST"])
@login_required
def set_public(snippet_id: str):
    value = bool(json_body().get("is_public"))
    return ok({"is_public": services().snippets.set_public(current_user_id(), snippet_id, value)})


@snippets_bp.route("/<snippet_id>/soft-delete", methods=["POST"])
@login_required
def soft_delete(snippet_id: str):
    if not services().snippets.soft_delete(current_user_id(), snippet_id):
        return jsonify({"ok": False, "error": "not_found"}), 404
    return ok()
