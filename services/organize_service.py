from __future__ import annotations

from typing import Any, Dict, List, Optional

from config import config
from database import Category, Folder, Repository
from observability import emit_event

from .errors import DuplicateNameError, NotFoundError, ValidationError
from .serialization import public_doc

_EDITABLE_FOLDER_FIELDS = ("name", "description", "color", "icon")
_EDITABLE_CATEGORY_FIELDS = ("name", "description", "color", "background", "icon", "sort_order", "is_default")


def _clean_name(name: Any, label: str) -> str:
    clean = str(name or "").strip()
    if not clean:
        raise ValidationError(f"{label} name is required")
    if len(clean) > config.FOLDER_NAME_MAX_LENGTH:
        raise ValidationError(f"{label} name must be at most {config.FOLDER_NAME_MAX_LENGTH} characters")
    return clean


def _clean_description(description: Any) -> str:
    clean = str(description or "").strip()
    if len(clean) > config.FOLDER_DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f"Description must be at most {config.FOLDER_DESCRIPTION_MAX_LENGTH} characters"
        )
    return clean


class OrganizeService:
    """תיקיות וקטגוריות של סניפטים: שמות ייחודיים למשתמש (ללא תלות ברישיות)."""

    def __init__(self, repo: Repository):
        self.repo = repo

    # --- Folders ---
    def create_folder(self, user_id: str, name: str, description: str = "",
                      color: Optional[str] = None, icon: Optional[str] = None) -> Dict[str, Any]:
        clean = _clean_name(name, "Folder")
        # בדיקת קיום לפני הכנסה (אין נעילה; מרוץ נדיר יסתיים בשתי תיקיות)
        if self.repo.folder_name_exists(user_id, clean):
            raise DuplicateNameError("Folder", clean)
        folder = Folder(
            user_id=user_id,
            name=clean,
            description=_clean_description(description),
            color=color or config.DEFAULT_COLOR,
            icon=icon or "folder",
        )
        folder_id = self.repo.create_folder(folder)
        if not folder_id:
            raise ValidationError("Could not create the folder")
        emit_event("folder_created", user_id=user_id, folder_id=folder_id)
        return public_doc(self.repo.get_folder(user_id, folder_id)) or {}

    def update_folder(self, user_id: str, folder_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        if self.repo.get_folder(user_id, folder_id) is None:
            raise NotFoundError("Folder not found")
        fields = {k: v for k, v in changes.items() if k in _EDITABLE_FOLDER_FIELDS}
        if "name" in fields:
            fields["name"] = _clean_name(fields["name"], "Folder")
            if self.repo.folder_name_exists(user_id, fields["name"], exclude_id=folder_id):
                raise DuplicateNameError("Folder", fields["name"])
        if "description" in fields:
            fields["description"] = _clean_description(fields["description"])
        if fields:
            self.repo.update_folder(user_id, folder_id, fields)
        return public_doc(self.repo.get_folder(user_id, folder_id)) or {}

    def list_folders(self, user_id: str) -> List[Dict[str, Any]]:
        counts = self.repo.count_snippets_by(user_id, "folder_id")
        out = []
        for doc in self.repo.list_folders(user_id):
            item = public_doc(doc) or {}
            item["snippet_count"] = counts.get(item["id"], 0)
            out.append(item)
        return out

    def soft_delete_folder(self, user_id: str, folder_id: str) -> bool:
        return self.repo.soft_delete_folder(user_id, folder_id)

    def restore_folder(self, user_id: str, folder_id: str) -> bool:
        doc = self.repo.get_folder(user_id, folder_id, include_deleted=True)
        if doc is None or doc.get("deleted_at") is None:
            return False
        if self.repo.folder_name_exists(user_id, doc.get("name") or ""):
            raise DuplicateNameError("Folder", doc.get("name") or "")
        return self.repo.restore_folder(user_id, folder_id)

    def purge_folder(self, user_id: str, folder_id: str) -> bool:
        return self.repo.purge_folder(user_id, folder_id)

    # --- Categories ---
    def create_category(self, user_id: str, name: str, description: str = "",
                        color: Optional[str] = None, background: Optional[str] = None,
                        icon: Optional[str] = None, sort_order: int = 0,
                        is_default: bool = False) -> Dict[str, Any]:
        clean = _clean_name(name, "Category")
        if self.repo.category_name_exists(user_id, clean):
            raise DuplicateNameError("Category", clean)
        category = Category(
            user_id=user_id,
            name=clean,
            description=_clean_description(description),
            color=color or config.DEFAULT_COLOR,
            background=background or "#1E3A8A",
            icon=icon or "tag",
            sort_order=int(sort_order or 0),
            is_default=bool(is_default),
        )
        category_id = self.repo.create_category(category)
        if not category_id:
            raise ValidationError("Could not create the category")
        emit_event("category_created", user_id=user_id, category_id=category_id)
        return public_doc(self.repo.get_category(user_id, category_id)) or {}

    def update_category(self, user_id: str, category_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        if self.repo.get_category(user_id, category_id) is None:
            raise NotFoundError("Category not found")
        fields = {k: v for k, v in changes.items() if k in _EDITABLE_CATEGORY_FIELDS}
        if "name" in fields:
            fields["name"] = _clean_name(fields["name"], "Category")
            if self.repo.category_name_exists(user_id, fields["name"], exclude_id=category_id):
                raise DuplicateNameError("Category", fields["name"])
        if "description" in fields:
            fields["description"] = _clean_description(fields["description"])
        if fields:
            self.repo.update_category(user_id, category_id, fields)
        return public_doc(self.repo.get_category(user_id, category_id)) or {}

    def list_categories(self, user_id: str) -> Dict[str, Any]:
        counts = self.repo.count_snippets_by(user_id, "category_id")
        items = []
        for doc in self.repo.list_categories(user_id):
            item = public_doc(doc) or {}
            item["snippet_count"] = counts.get(item["id"], 0)
            items.append(item)
        return {"categories": items, "uncategorized": counts.get(None, 0)}

    def soft_delete_category(self, user_id: str, category_id: str) -> bool:
        return self.repo.soft_delete_category(user_id, category_id)

    def restore_category(self, user_id: str, category_id: str) -> bool:
        doc = self.repo.get_category(user_id, category_id, include_deleted=True)
        if doc is None or doc.get("deleted_at") is None:
            return False
        if self.repo.category_name_exists(user_id, doc.get("name") or ""):
            raise DuplicateNameError("Category", doc.get("name") or "")
        return self.repo.restore_category(user_id, category_id)

    def purge_category(self, user_id: str, category_id: str) -> bool:
        return self.repo.purge_category(user_id, category_id)

    def delete_category(self, user_id: str, category_id: str) -> bool:
        ok = self.repo.delete_category(user_id, category_id)
        if not ok:
            raise NotFoundError("Category not found")
        emit_event("category_deleted", user_id=user_id, category_id=str(category_id))
        return ok
