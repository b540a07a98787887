"""
Organize Routes - snippet folders and categories.
"""
from __future__ import annotations

from flask import Blueprint, jsonify

from .common import current_user_id, json_body, login_required, ok, services

organize_bp = Blueprint("organize_api", __name__, url_prefix="/api")


def _not_found():
    return jsonify({"ok": False, "error": "not_found"}), 404


# --- Folders ---

@organize_bp.route("/folders", methods=["GET"])
@login_required
def list_folders():
    return jsonify({"folders": services().organize.list_folders(current_user_id())})


@organize_bp.route("/folders", methods=["POST"])
@login_required
def create_folder():
    data = json_body()
    folder = services().organize.create_folder(
        current_user_id(),
        data.get("name"),
        description=data.get("description") or "",
        color=data.get("color"),
        icon=data.get("icon"),
    )
    return ok({"folder": folder}, 201)


@organize_bp.route("/folders/<folder_id>", methods=["PUT", "PATCH"])
@login_required
def update_folder(folder_id: str):
    return ok({"folder": services().organize.update_folder(current_user_id(), folder_id, json_body())})


@organize_bp.route("/folders/<folder_id>/soft-delete", methods=["POST"])
@login_required
def soft_delete_folder(folder_id: str):
    if not services().organize.soft_delete_folder(current_user_id(), folder_id):
        return _not_found()
    return ok()


# --- Categories ---

@organize_bp.route("/categories", methods=["GET"])
@login_required
def list_categories():
    return jsonify(services().organize.list_categories(current_user_id()))


@organize_bp.route("/categories", methods=["POST"])
@login_required
def create_category():
    data = json_body()
    category = services().organize.create_category(
        current_user_id(),
        data.get("name"),
        description=data.get("description") or "",
        color=data.get("color"),
        background=data.get("background"),
        icon=data.get("icon"),
        sort_order=int(data.get("sort_order") or 0),
        is_default=bool(data.get("is_default", False)),
    )
    return ok({"category": category}, 201)


@organize_bp.route("/categories/<category_id>", methods=["PUT", "PATCH"])
@login_required
def update_category(category_id: str):
    return ok({"category": services().organize.update_category(current_user_id(), category_id, json_body())})


@organize_bp.route("/categories/<category_id>/soft-delete", methods=["POST"])
@login_required
def soft_delete_category(category_id: str):
    if not services().organize.soft_delete_category(current_user_id(), category_id):
        return _not_found()
    return ok()


@organize_bp.route("/categories/<category_id>", methods=["DELETE"])
@login_required
def delete_category(category_id: str):
    services().organize.delete_category(current_user_id(), category_id)
    return ok()
