"""
Media Routes - /api/media endpoints. Every route requires an unlocked media
session (PIN verified, not idle past the timeout).
"""
from __future__ import annotations

from flask import Blueprint, jsonify, request, send_file

from services.errors import ValidationError

from .common import current_user_id, json_body, login_required, media_unlocked_required, ok, services


media_bp = Blueprint("media_api", __name__, url_prefix="/api/media")


def _not_found():
    return jsonify({"ok": False, "error": "not_found"}), 404


@media_bp.route("", methods=["GET"])
@login_required
@media_unlocked_required
def browse():
    return jsonify(services().media.browse(current_user_id(), request.args.get("folder_id") or None))


@media_bp.route("/favorites", methods=["GET"])
@login_required
@media_unlocked_required
def favorites():
    return jsonify({"files": services().media.favorites(current_user_id())})


@media_bp.route("/upload", methods=["POST"])
@login_required
@media_unlocked_required
def upload():
    upload_file = request.files.get("file")
    if upload_file is None or not upload_file.filename:
        raise ValidationError("No file selected")
    data = upload_file.read()
    media = services().media.upload(
        current_user_id(),
        data,
        file_name=upload_file.filename,
        mime_type=upload_file.mimetype or "",
        file_size=len(data),
        folder_id=request.form.get("folder_id") or None,
        description=request.form.get("description") or "",
    )
    return ok({"file": media}, 201)


@media_bp.route("/blob/<path>", methods=["GET"])
@login_required
@media_unlocked_required
def download_blob(path: str):
    grid_out = services().media.open_blob(current_user_id(), path)
    metadata = grid_out.metadata or {}
    return send_file(
        grid_out,
        mimetype=getattr(grid_out, "content_type", None) or "application/octet-stream",
        download_name=metadata.get("original_name") or path,
    )


@media_bp.route("/<file_id>/favorite", methods=["POST"])
@login_required
@media_unlocked_required
def toggle_favorite(file_id: str):
    return ok({"is_favorite": services().media.toggle_favorite(current_user_id(), file_id)})


@media_bp.route("/<file_id>/move", methods=["POST"])
@login_required
@media_unlocked_required
def move(file_id: str):
    target = json_body().get("folder_id") or None
    if not services().media.move_file(current_user_id(), file_id, target):
        return _not_found()
    return ok({"folder_id": target})


@media_bp.route("/<file_id>/soft-delete", methods=["POST"])
@login_required
@media_unlocked_required
def soft_delete_file(file_id: str):
    if not services().media.soft_delete_file(current_user_id(), file_id):
        return _not_found()
    return ok()


@media_bp.route("/folders", methods=["POST"])
@login_required
@media_unlocked_required
def create_folder():
    data = json_body()
    folder = services().media.create_folder(
        current_user_id(),
        data.get("name"),
        parent_id=data.get("parent_id") or None,
        color=data.get("color"),
        icon=data.get("icon"),
    )
    return ok({"folder": folder}, 201)


@media_bp.route("/folders/<folder_id>", methods=["PUT", "PATCH"])
@login_required
@media_unlocked_required
def rename_folder(folder_id: str):
    services().media.rename_folder(current_user_id(), folder_id, json_body().get("name"))
    return ok()


@media_bp.route("/folders/<folder_id>/soft-delete", methods=["POST"])
@login_required
@media_unlocked_required
def soft_delete_folder(folder_id: str):
    if not services().media.soft_delete_folder(current_user_id(), folder_id):
        return _not_found()
    return ok()
