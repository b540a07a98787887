"""
Recycle Bin Routes - one bin for snippets, folders, categories, media files
and media folders.

Media items are listed and handled only while the media area is unlocked.
Bulk delete and Clear All require {"confirm": true}; a single permanent
delete is refused only when the body carries "confirm": false.
"""
from __future__ import annotations

from typing import Any, Iterable, List

from flask import Blueprint, jsonify, session

from services.errors import MediaLockedError, ValidationError
from services.pin_gate import MediaSessionTimer
from services.recycle_bin import BinSelection, MEDIA_KINDS

from .common import current_user_id, json_body, login_required, ok, require_confirm, services

recycle_bin_bp = Blueprint("recycle_bin_api", __name__, url_prefix="/api/recycle-bin")


def _selections(raw: Any) -> List[BinSelection]:
    if not isinstance(raw, list) or not raw:
        raise ValidationError("items must be a non-empty list")
    return [BinSelection.parse(item) for item in raw]


def _media_unlocked() -> bool:
    return MediaSessionTimer(session).touch()


def _guard_media(selections: Iterable[BinSelection]) -> None:
    if any(sel.kind in MEDIA_KINDS for sel in selections) and not _media_unlocked():
        raise MediaLockedError("Media items require an unlocked media session. Please enter your PIN.")


@recycle_bin_bp.route("", methods=["GET"])
@login_required
def contents():
    unlocked = _media_unlocked()
    payload = services().recycle_bin.contents(current_user_id(), include_media=unlocked).to_dict()
    payload["media_locked"] = not unlocked
    return jsonify(payload)


@recycle_bin_bp.route("/restore", methods=["POST"])
@login_required
def restore():
    sel = BinSelection.parse(json_body())
    _guard_media([sel])
    if not services().recycle_bin.restore(current_user_id(), sel.kind, sel.id):
        return jsonify({"ok": False, "error": "not_found"}), 404
    return ok({"restored": sel.to_dict()})


@recycle_bin_bp.route("/permanent-delete", methods=["POST"])
@login_required
def permanent_delete():
    data = json_body()
    if data.get("confirm", True) is not True:
        raise ValidationError("This action is permanent; send confirm=true to proceed")
    sel = BinSelection.parse(data)
    _guard_media([sel])
    if not services().recycle_bin.purge(current_user_id(), sel.kind, sel.id):
        return jsonify({"ok": False, "error": "not_found"}), 404
    return ok({"deleted": sel.to_dict()})


@recycle_bin_bp.route("/bulk-restore", methods=["POST"])
@login_required
def bulk_restore():
    selections = _selections(json_body().get("items"))
    _guard_media(selections)
    result = services().recycle_bin.bulk_restore(current_user_id(), selections)
    return jsonify(result.to_dict()), (200 if result.ok else 207)


@recycle_bin_bp.route("/bulk-delete", methods=["POST"])
@login_required
def bulk_delete():
    data = json_body()
    require_confirm(data)
    selections = _selections(data.get("items"))
    _guard_media(selections)
    result = services().recycle_bin.bulk_purge(current_user_id(), selections)
    return jsonify(result.to_dict()), (200 if result.ok else 207)


@recycle_bin_bp.route("/clear", methods=["POST"])
@login_required
def clear():
    require_confirm(json_body())
    # נעול: מנקה רק את מה שמוצג, בלי פריטי המדיה
    result = services().recycle_bin.clear_all(current_user_id(), include_media=_media_unlocked())
    return jsonify(result.to_dict()), (200 if result.ok else 207)
