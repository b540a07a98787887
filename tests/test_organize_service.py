import pytest

from services.errors import DuplicateNameError, NotFoundError, ValidationError


def test_folder_names_are_unique_per_user_case_insensitive(svc):
    svc.organize.create_folder("u1", "Work")
    with pytest.raises(DuplicateNameError) as exc:
        svc.organize.create_folder("u1", "  work ")
    assert exc.value.kind == "Folder"
    # another user may reuse the name
    assert svc.organize.create_folder("u2", "Work")["name"] == "Work"


def test_folder_name_length_limit(svc):
    with pytest.raises(ValidationError):
        svc.organize.create_folder("u1", "x" * 31)
    with pytest.raises(ValidationError):
        svc.organize.create_folder("u1", "   ")


def test_rename_folder_to_existing_name_is_refused(svc):
    svc.organize.create_folder("u1", "Work")
    other = svc.organize.create_folder("u1", "Home")
    with pytest.raises(DuplicateNameError):
        svc.organize.update_folder("u1", other["id"], {"name": "WORK"})
    # renaming to its own name with different case is allowed
    assert svc.organize.update_folder("u1", other["id"], {"name": "HOME"})["name"] == "HOME"


def test_update_folder_ignores_unknown_fields(svc):
    folder = svc.organize.create_folder("u1", "Work")
    updated = svc.organize.update_folder("u1", folder["id"], {"color": "#000000", "user_id": "evil"})
    assert updated["color"] == "#000000"
    assert updated["user_id"] == "u1"


def test_list_folders_counts_live_snippets(svc):
    folder = svc.organize.create_folder("u1", "Work")
    keep = svc.snippets.create("u1", {"title": "a", "code": "x", "language": "python", "folder_id": folder["id"]})
    gone = svc.snippets.create("u1", {"title": "b", "code": "y", "language": "python", "folder_id": folder["id"]})
    svc.snippets.soft_delete("u1", gone["id"])

    folders = svc.organize.list_folders("u1")
    assert folders[0]["snippet_count"] == 1
    assert keep["folder_id"] == folder["id"]


def test_restore_folder_with_taken_name_raises(svc):
    folder = svc.organize.create_folder("u1", "Work")
    svc.organize.soft_delete_folder("u1", folder["id"])
    svc.organize.create_folder("u1", "Work")
    with pytest.raises(DuplicateNameError):
        svc.organize.restore_folder("u1", folder["id"])


def test_list_categories_reports_uncategorized(svc):
    cat = svc.organize.create_category("u1", "Utils", sort_order=2)
    svc.organize.create_category("u1", "Algorithms", sort_order=1)
    svc.snippets.create("u1", {"title": "a", "code": "x", "language": "python", "category_id": cat["id"]})
    svc.snippets.create("u1", {"title": "b", "code": "y", "language": "python"})

    payload = svc.organize.list_categories("u1")
    assert [c["name"] for c in payload["categories"]] == ["Algorithms", "Utils"]
    assert payload["categories"][1]["snippet_count"] == 1
    assert payload["uncategorized"] == 1


def test_category_duplicate_name(svc):
    svc.organize.create_category("u1", "Utils")
    with pytest.raises(DuplicateNameError) as exc:
        svc.organize.create_category("u1", "UTILS")
    assert exc.value.kind == "Category"


def test_delete_category_missing_raises(svc):
    with pytest.raises(NotFoundError):
        svc.organize.delete_category("u1", "5f0000000000000000000000")


def test_delete_category_unlinks_snippets(svc):
    cat = svc.organize.create_category("u1", "Utils")
    snip = svc.snippets.create("u1", {"title": "a", "code": "x", "language": "python", "category_id": cat["id"]})
    assert svc.organize.delete_category("u1", cat["id"]) is True
    assert svc.snippets.get("u1", snip["id"])["category_id"] is None
