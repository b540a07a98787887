import io

import pytest

from config import config
from services.pin_gate import MediaSessionTimer


@pytest.fixture(autouse=True)
def _fast_hash(monkeypatch):
    monkeypatch.setattr(config, "PIN_HASH_METHOD", "pbkdf2:sha256:1000")


def _create_snippet(client, **kw):
    body = {"title": "hello", "code": "print(1)", "language": "python"}
    body.update(kw)
    resp = client.post("/api/snippets", json=body)
    assert resp.status_code == 201
    return resp.get_json()["snippet"]


def _unlock_media(client):
    client.post("/api/media-auth/pin", json={"pin": "1234", "confirm": "1234"})
    resp = client.post("/api/media-auth/verify", json={"pin": "1234"})
    assert resp.status_code == 200


def test_health_and_request_id_header(client):
    resp = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert resp.status_code == 200
    assert resp.headers["X-Request-ID"] == "abc123"
    generated = client.get("/health")
    assert generated.headers.get("X-Request-ID")


def test_api_requires_login(client):
    resp = client.get("/api/snippets")
    assert resp.status_code == 401
    assert resp.get_json()["error"] == "unauthorized"


def test_public_feed_needs_no_login(client):
    resp = client.get("/api/snippets/public")
    assert resp.status_code == 200
    assert resp.get_json() == {"snippets": []}


def test_sign_in_and_session_context(client):
    assert client.get("/api/auth/session").get_json() == {"mode": "anonymous"}
    resp = client.post("/api/auth/sign-in", json={"user_id": "7", "username": "dana"})
    assert resp.status_code == 200
    assert client.get("/api/auth/session").get_json()["mode"] == "authenticated"
    client.post("/api/auth/sign-out")
    assert client.get("/api/auth/session").get_json() == {"mode": "anonymous"}


def test_guest_flow(client):
    assert client.post("/api/guest/enter", json={"username": "alice"}).status_code == 200
    resp = client.post("/api/guest/snippets", json={"title": "t", "code": "x"})
    assert resp.status_code == 201
    listing = client.get("/api/guest/usernames").get_json()
    assert listing["usernames"] == [{"username": "alice", "snippet_count": 1}]


def test_snippet_crud_and_validation_errors(auth_client):
    snip = _create_snippet(auth_client)
    resp = auth_client.patch(f"/api/snippets/{snip['id']}", json={"title": "x" * 21})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "validation_error"

    resp = auth_client.get("/api/snippets/5f0000000000000000000000")
    assert resp.status_code == 404

    listing = auth_client.get("/api/snippets?sort=name-az").get_json()
    assert listing["count"] == 1


def test_duplicate_folder_returns_409_with_title(auth_client):
    assert auth_client.post("/api/folders", json={"name": "Work"}).status_code == 201
    resp = auth_client.post("/api/folders", json={"name": "work"})
    assert resp.status_code == 409
    body = resp.get_json()
    assert body["error"] == "duplicate_name"
    assert body["title"] == "Duplicate Folder Name"


def test_export_download(auth_client):
    _create_snippet(auth_client)
    resp = auth_client.get("/api/snippets/export?format=md")
    assert resp.status_code == 200
    assert resp.mimetype == "text/markdown"
    assert "attachment; filename=\"snippets-export-" in resp.headers["Content-Disposition"]
    assert "# hello" in resp.get_data(as_text=True)


def test_export_with_nothing_selected(auth_client):
    resp = auth_client.get("/api/snippets/export?format=json")
    assert resp.status_code == 400


def test_import_from_uploaded_file(auth_client):
    content = b"=== imported ===\nLanguage: python\n\nCode:\nx = 1\n\n" + b"=" * 50 + b"\n"
    resp = auth_client.post(
        "/api/snippets/import",
        data={"file": (io.BytesIO(content), "backup.txt")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 200
    assert resp.get_json()["imported"] == 1


def test_import_rejects_unknown_extension(auth_client):
    resp = auth_client.post("/api/snippets/import", json={"filename": "x.csv", "content": "a,b"})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "import_format_error"


def test_recycle_bin_permanent_actions_confirmation(auth_client):
    snip = _create_snippet(auth_client)
    auth_client.post(f"/api/snippets/{snip['id']}/soft-delete")

    resp = auth_client.post("/api/recycle-bin/permanent-delete",
                            json={"confirm": False, "type": "snippet", "id": snip["id"]})
    assert resp.status_code == 400
    resp = auth_client.post("/api/recycle-bin/clear", json={})
    assert resp.status_code == 400
    resp = auth_client.post("/api/recycle-bin/bulk-delete", json={"items": [{"type": "snippet", "id": snip["id"]}]})
    assert resp.status_code == 400

    # the single-item endpoint takes a plain {type, id} body
    resp = auth_client.post("/api/recycle-bin/permanent-delete", json={"type": "snippet", "id": snip["id"]})
    assert resp.status_code == 200
    assert auth_client.get("/api/recycle-bin").get_json()["total"] == 0


def test_recycle_bin_hides_media_while_locked(auth_client):
    _unlock_media(auth_client)
    media = auth_client.post(
        "/api/media/upload",
        data={"file": (io.BytesIO(b"fake-png"), "pic.png", "image/png")},
        content_type="multipart/form-data",
    ).get_json()["file"]
    auth_client.post(f"/api/media/{media['id']}/soft-delete")
    snip = _create_snippet(auth_client)
    auth_client.post(f"/api/snippets/{snip['id']}/soft-delete")
    auth_client.post("/api/media-auth/lock")

    body = auth_client.get("/api/recycle-bin").get_json()
    assert body["media_locked"] is True
    assert body["media"] == []
    assert body["counts"] == {"snippet": 1, "folder": 0, "category": 0, "media": 0, "media_folder": 0}

    selection = {"type": "media", "id": media["id"]}
    assert auth_client.post("/api/recycle-bin/restore", json=selection).status_code == 401
    assert auth_client.post("/api/recycle-bin/permanent-delete", json=selection).status_code == 401
    resp = auth_client.post("/api/recycle-bin/bulk-restore", json={"items": [selection]})
    assert resp.status_code == 401
    assert resp.get_json()["redirect"] == "/confirm-media-auth"

    # Clear All while locked leaves the media item in place
    assert auth_client.post("/api/recycle-bin/clear", json={"confirm": True}).status_code == 200

    auth_client.post("/api/media-auth/verify", json={"pin": "1234"})
    body = auth_client.get("/api/recycle-bin").get_json()
    assert body["media_locked"] is False
    assert body["total"] == 1
    assert auth_client.post("/api/recycle-bin/restore", json=selection).status_code == 200


def test_recycle_bin_restore_and_bulk_partial(auth_client):
    snip = _create_snippet(auth_client)
    auth_client.post(f"/api/snippets/{snip['id']}/soft-delete")
    assert auth_client.get("/api/recycle-bin").get_json()["counts"]["snippet"] == 1

    resp = auth_client.post("/api/recycle-bin/bulk-restore", json={"items": [
        {"type": "snippet", "id": snip["id"]},
        {"type": "snippet", "id": "5f0000000000000000000000"},
    ]})
    assert resp.status_code == 207
    assert len(resp.get_json()["succeeded"]) == 1

    resp = auth_client.post("/api/recycle-bin/restore", json={"type": "snippet", "id": snip["id"]})
    assert resp.status_code == 404


def test_media_locked_until_pin_verified(auth_client):
    resp = auth_client.get("/api/media")
    assert resp.status_code == 401
    body = resp.get_json()
    assert body["error"] == "media_locked"
    assert body["redirect"] == "/confirm-media-auth"

    _unlock_media(auth_client)
    resp = auth_client.get("/api/media")
    assert resp.status_code == 200
    assert resp.get_json()["files"] == []


def test_signing_in_as_another_user_locks_media(client):
    client.post("/api/auth/sign-in", json={"user_id": "alice"})
    _unlock_media(client)
    assert client.get("/api/media").status_code == 200

    client.post("/api/auth/sign-in", json={"user_id": "bob"})
    status = client.get("/api/media-auth/status").get_json()
    assert status["has_pin"] is False
    assert status["session"]["unlocked"] is False
    assert client.get("/api/media").status_code == 401


def test_creating_pin_does_not_unlock(auth_client):
    resp = auth_client.post("/api/media-auth/pin", json={"pin": "1234", "confirm": "1234"})
    assert resp.status_code == 201
    assert auth_client.get("/api/media").status_code == 401


def test_wrong_pin_payload(auth_client):
    auth_client.post("/api/media-auth/pin", json={"pin": "1234", "confirm": "1234"})
    resp = auth_client.post("/api/media-auth/verify", json={"pin": "0000"})
    assert resp.status_code == 401
    assert resp.get_json()["attempts_remaining"] == 4


def test_media_session_expires(auth_client):
    _unlock_media(auth_client)
    with auth_client.session_transaction() as sess:
        sess[MediaSessionTimer.LAST_ACTIVITY] = sess[MediaSessionTimer.LAST_ACTIVITY] - 31 * 60
    assert auth_client.post("/api/media-auth/activity").status_code == 401
    assert auth_client.get("/api/media").status_code == 401


def test_media_upload_and_download(auth_client):
    _unlock_media(auth_client)
    resp = auth_client.post(
        "/api/media/upload",
        data={"file": (io.BytesIO(b"fake-png"), "pic.png", "image/png")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 201
    media = resp.get_json()["file"]
    assert media["file_type"] == "image"

    download = auth_client.get(media["file_url"])
    assert download.status_code == 200
    assert download.data == b"fake-png"
