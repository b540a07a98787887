from datetime import datetime, timedelta, timezone

from database import Category, Folder, Repository, Snippet


def _repo(manager):
    return Repository(manager)


def _snippet(repo, user_id="u1", **kw):
    data = dict(user_id=user_id, title="hello", code="print(1)", language="python")
    data.update(kw)
    return repo.create_snippet(Snippet(**data))


def test_soft_delete_moves_snippet_to_bin_and_restore_brings_it_back(manager):
    repo = _repo(manager)
    sid = _snippet(repo)

    assert repo.soft_delete_snippet("u1", sid) is True
    assert repo.get_snippet("u1", sid) is None
    deleted = repo.list_deleted_snippets("u1")
    assert [str(d["_id"]) for d in deleted] == [sid]
    assert deleted[0]["deleted_expires_at"] - deleted[0]["deleted_at"] == timedelta(days=30)

    assert repo.restore_snippet("u1", sid) is True
    doc = repo.get_snippet("u1", sid)
    assert doc is not None
    assert doc["deleted_at"] is None
    assert doc["deleted_expires_at"] is None
    assert repo.list_deleted_snippets("u1") == []


def test_soft_delete_twice_is_a_noop(manager):
    repo = _repo(manager)
    sid = _snippet(repo)
    assert repo.soft_delete_snippet("u1", sid) is True
    assert repo.soft_delete_snippet("u1", sid) is False


def test_purge_requires_item_in_bin(manager):
    repo = _repo(manager)
    sid = _snippet(repo)

    assert repo.purge_snippet("u1", sid) is False
    assert repo.get_snippet("u1", sid) is not None

    repo.soft_delete_snippet("u1", sid)
    assert repo.purge_snippet("u1", sid) is True
    assert repo.get_snippet("u1", sid, include_deleted=True) is None


def test_operations_are_scoped_to_owner(manager):
    repo = _repo(manager)
    sid = _snippet(repo, user_id="owner")

    assert repo.soft_delete_snippet("intruder", sid) is False
    repo.soft_delete_snippet("owner", sid)
    assert repo.restore_snippet("intruder", sid) is False
    assert repo.purge_snippet("intruder", sid) is False
    assert repo.list_deleted_snippets("intruder") == []


def test_invalid_object_id_is_not_found(manager):
    repo = _repo(manager)
    assert repo.get_snippet("u1", "not-an-id") is None
    assert repo.soft_delete_snippet("u1", "not-an-id") is False
    assert repo.update_snippet("u1", "zzz", {"title": "x"}) is False


def test_purge_folder_deletes_its_snippets_by_default(manager):
    repo = _repo(manager)
    fid = repo.create_folder(Folder(user_id="u1", name="Work"))
    inside = _snippet(repo, folder_id=fid)
    outside = _snippet(repo)

    repo.soft_delete_folder("u1", fid)
    # snippets stay linked while the folder is in the bin
    assert repo.get_snippet("u1", inside)["folder_id"] == fid

    assert repo.purge_folder("u1", fid) is True
    assert repo.get_snippet("u1", inside, include_deleted=True) is None
    assert repo.get_snippet("u1", outside) is not None


def test_purge_folder_unlink_policy_keeps_snippets(manager):
    repo = _repo(manager)
    fid = repo.create_folder(Folder(user_id="u1", name="Work"))
    sid = _snippet(repo, folder_id=fid)

    repo.soft_delete_folder("u1", fid)
    assert repo.purge_folder("u1", fid, policy="unlink") is True
    assert repo.get_snippet("u1", sid)["folder_id"] is None
    assert repo.get_folder("u1", fid, include_deleted=True) is None


def test_purge_live_folder_is_refused(manager):
    repo = _repo(manager)
    fid = repo.create_folder(Folder(user_id="u1", name="Work"))
    sid = _snippet(repo, folder_id=fid)
    assert repo.purge_folder("u1", fid) is False
    assert repo.get_snippet("u1", sid) is not None


def test_soft_delete_category_moves_snippets_to_uncategorized(manager):
    repo = _repo(manager)
    cid = repo.create_category(Category(user_id="u1", name="Snips"))
    sid = _snippet(repo, category_id=cid)

    assert repo.soft_delete_category("u1", cid) is True
    assert repo.get_snippet("u1", sid)["category_id"] is None
    assert repo.restore_category("u1", cid) is True
    # restoring the category does not relink snippets
    assert repo.get_snippet("u1", sid)["category_id"] is None


def test_delete_category_is_hard_delete(manager):
    repo = _repo(manager)
    cid = repo.create_category(Category(user_id="u1", name="Snips"))
    sid = _snippet(repo, category_id=cid)

    assert repo.delete_category("u1", cid) is True
    assert repo.get_category("u1", cid, include_deleted=True) is None
    assert repo.list_deleted_categories("u1") == []
    assert repo.get_snippet("u1", sid)["category_id"] is None


def test_name_exists_ignores_case_and_deleted_rows(manager):
    repo = _repo(manager)
    fid = repo.create_folder(Folder(user_id="u1", name="Work"))
    assert repo.folder_name_exists("u1", "work") is True
    assert repo.folder_name_exists("u1", "WORK", exclude_id=fid) is False
    assert repo.folder_name_exists("u2", "Work") is False

    repo.soft_delete_folder("u1", fid)
    assert repo.folder_name_exists("u1", "Work") is False


def test_update_folder_recomputes_name_key(manager, fake_db):
    repo = _repo(manager)
    fid = repo.create_folder(Folder(user_id="u1", name="Work"))
    assert repo.update_folder("u1", fid, {"name": "  Personal "}) is True
    doc = repo.get_folder("u1", fid)
    assert doc["name"] == "Personal"
    assert doc["name_key"] == "personal"


def test_expired_items_lists_only_past_retention(manager):
    repo = _repo(manager)
    old = _snippet(repo)
    fresh = _snippet(repo)
    now = datetime.now(timezone.utc)
    repo.soft_delete_snippet("u1", old, now=now - timedelta(days=31))
    repo.soft_delete_snippet("u1", fresh, now=now - timedelta(days=2))

    expired = repo.expired_items(now)
    assert [str(d["_id"]) for d in expired["snippet"]] == [old]
    assert expired["folder"] == []
    assert expired["category"] == []


def test_store_errors_are_reported_not_raised(manager, fake_db):
    repo = _repo(manager)
    sid = _snippet(repo)
    fake_db["snippets"].fail = True

    assert repo.get_snippet("u1", sid) is None
    assert repo.find_snippets("u1") == []
    assert repo.soft_delete_snippet("u1", sid) is False
    assert repo.create_snippet(Snippet(user_id="u1", title="t", code="c", language="python")) is None
