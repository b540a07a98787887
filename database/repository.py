from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from config import config
from observability import emit_event

from .manager import CollectionLike, DatabaseManager
from .models import Category, Folder, Snippet, name_key, to_document, utcnow


# פילטרים בסיסיים: רשומה חיה מול רשומה בסל המיחזור
ACTIVE: Dict[str, Any] = {"deleted_at": None}
DELETED: Dict[str, Any] = {"deleted_at": {"$ne": None}}


def to_object_id(value: Any) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def recycle_expiry(now: datetime) -> datetime:
    return now + timedelta(days=max(1, int(config.RECYCLE_TTL_DAYS)))


class SoftDeleteStore:
    """פעולות מחזור-חיים משותפות לכל אוסף שתומך במחיקה רכה.

    ACTIVE -> DELETED (deleted_at=now) -> ACTIVE (restore) | PURGED (מחיקה סופית).
    כל עדכון מסונן לפי user_id כדי למנוע פגיעה ברשומות של משתמש אחר.
    """

    def __init__(self, manager: DatabaseManager):
        self.manager = manager

    def _soft_delete(self, collection: CollectionLike, user_id: str, item_id: str,
                     now: Optional[datetime] = None, extra: Optional[Dict[str, Any]] = None) -> bool:
        oid = to_object_id(item_id)
        if oid is None:
            return False
        now = now or utcnow()
        fields = {"deleted_at": now, "deleted_expires_at": recycle_expiry(now), "updated_at": now}
        fields.update(extra or {})
        result = collection.update_one({"_id": oid, "user_id": user_id, **ACTIVE}, {"$set": fields})
        return bool(result.modified_count)

    def _restore(self, collection: CollectionLike, user_id: str, item_id: str,
                 now: Optional[datetime] = None) -> bool:
        oid = to_object_id(item_id)
        if oid is None:
            return False
        result = collection.update_one(
            {"_id": oid, "user_id": user_id, **DELETED},
            {"$set": {"deleted_at": None, "deleted_expires_at": None, "deleted_with": None,
                      "updated_at": now or utcnow()}},
        )
        return bool(result.modified_count)

    def _purge(self, collection: CollectionLike, user_id: str, item_id: str) -> bool:
        oid = to_object_id(item_id)
        if oid is None:
            return False
        result = collection.delete_one({"_id": oid, "user_id": user_id, **DELETED})
        return bool(result.deleted_count)

    def _get(self, collection: CollectionLike, user_id: str, item_id: str,
             include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        oid = to_object_id(item_id)
        if oid is None:
            return None
        flt: Dict[str, Any] = {"_id": oid, "user_id": user_id}
        if not include_deleted:
            flt.update(ACTIVE)
        return collection.find_one(flt)

    def _get_deleted(self, collection: CollectionLike, user_id: str, item_id: str) -> Optional[Dict[str, Any]]:
        oid = to_object_id(item_id)
        if oid is None:
            return None
        return collection.find_one({"_id": oid, "user_id": user_id, **DELETED})

    def _list_deleted(self, collection: CollectionLike, user_id: str,
                      scope: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        flt: Dict[str, Any] = {"user_id": user_id, **DELETED}
        flt.update(scope or {})
        return list(collection.find(flt, sort=[("deleted_at", DESCENDING)]))

    def _list_expired(self, collection: CollectionLike, now: datetime,
                      scope: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        flt: Dict[str, Any] = {"deleted_at": {"$ne": None}, "deleted_expires_at": {"$lte": now}}
        flt.update(scope or {})
        return list(collection.find(flt, {"_id": 1, "user_id": 1}))

    def _exists_name(self, collection: CollectionLike, user_id: str, name: str,
                     exclude_id: Optional[str] = None, scope: Optional[Dict[str, Any]] = None) -> bool:
        flt: Dict[str, Any] = {"user_id": user_id, "name_key": name_key(name), **ACTIVE}
        flt.update(scope or {})
        for doc in collection.find(flt, {"_id": 1}):
            if exclude_id is None or str(doc.get("_id")) != str(exclude_id):
                return True
        return False


class Repository(SoftDeleteStore):
    """CRUD נקי עבור סניפטים, תיקיות וקטגוריות, כולל מחיקה רכה ומחיקה סופית."""

    # --- Snippets ---
    def create_snippet(self, snippet: Snippet) -> Optional[str]:
        try:
            result = self.manager.snippets.insert_one(to_document(snippet))
            return str(result.inserted_id) if result.inserted_id else None
        except PyMongoError as e:
            emit_event("db_create_snippet_error", severity="error", error=str(e))
            return None

    def get_snippet(self, user_id: str, snippet_id: str, include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        try:
            return self._get(self.manager.snippets, user_id, snippet_id, include_deleted)
        except PyMongoError as e:
            emit_event("db_get_snippet_error", severity="error", error=str(e))
            return None

    def find_snippets(self, user_id: str, filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """שליפת סניפטים חיים של המשתמש; חיפוש טקסט ומיון נעשים בשכבת השירות."""
        flt: Dict[str, Any] = {"user_id": user_id, **ACTIVE}
        flt.update(filters or {})
        try:
            return list(self.manager.snippets.find(flt, sort=[("created_at", DESCENDING)]))
        except PyMongoError as e:
            emit_event("db_find_snippets_error", severity="error", error=str(e))
            return []

    def list_public_snippets(self, limit: int, user_id: Optional[str] = None) -> List[Dict[str, Any]]:
        flt: Dict[str, Any] = {"is_public": True, **ACTIVE}
        if user_id is not None:
            flt["user_id"] = user_id
        try:
            return list(self.manager.snippets.find(flt, sort=[("created_at", DESCENDING)], limit=int(limit)))
        except PyMongoError as e:
            emit_event("db_list_public_snippets_error", severity="error", error=str(e))
            return []

    def update_snippet(self, user_id: str, snippet_id: str, fields: Dict[str, Any]) -> bool:
        oid = to_object_id(snippet_id)
        if oid is None:
            return False
        fields = dict(fields)
        fields.setdefault("updated_at", utcnow())
        try:
            result = self.manager.snippets.update_one({"_id": oid, "user_id": user_id, **ACTIVE}, {"$set": fields})
            return bool(result.matched_count)
        except PyMongoError as e:
            emit_event("db_update_snippet_error", severity="error", error=str(e))
            return False

    def count_snippets_by(self, user_id: str, field_name: str) -> Dict[Optional[str], int]:
        counts: Dict[Optional[str], int] = {}
        try:
            for doc in self.manager.snippets.find({"user_id": user_id, **ACTIVE}, {field_name: 1}):
                key = doc.get(field_name)
                counts[key] = counts.get(key, 0) + 1
        except PyMongoError as e:
            emit_event("db_count_snippets_error", severity="error", error=str(e), field=field_name)
        return counts

    def soft_delete_snippet(self, user_id: str, snippet_id: str, now: Optional[datetime] = None) -> bool:
        try:
            return self._soft_delete(self.manager.snippets, user_id, snippet_id, now)
        except PyMongoError as e:
            emit_event("db_soft_delete_snippet_error", severity="error", error=str(e))
            return False

    def restore_snippet(self, user_id: str, snippet_id: str, now: Optional[datetime] = None) -> bool:
        try:
            return self._restore(self.manager.snippets, user_id, snippet_id, now)
        except PyMongoError as e:
            emit_event("db_restore_snippet_error", severity="error", error=str(e))
            return False

    def purge_snippet(self, user_id: str, snippet_id: str) -> bool:
        try:
            return self._purge(self.manager.snippets, user_id, snippet_id)
        except PyMongoError as e:
            emit_event("db_purge_snippet_error", severity="error", error=str(e))
            return False

    # --- Folders ---
    def create_folder(self, folder: Folder) -> Optional[str]:
        try:
            result = self.manager.folders.insert_one(to_document(folder))
            return str(result.inserted_id) if result.inserted_id else None
        except PyMongoError as e:
            emit_event("db_create_folder_error", severity="error", error=str(e))
            return None

    def get_folder(self, user_id: str, folder_id: str, include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        try:
            return self._get(self.manager.folders, user_id, folder_id, include_deleted)
        except PyMongoError as e:
            emit_event("db_get_folder_error", severity="error", error=str(e))
            return None

    def list_folders(self, user_id: str) -> List[Dict[str, Any]]:
        try:
            return list(self.manager.folders.find({"user_id": user_id, **ACTIVE}, sort=[("name_key", 1)]))
        except PyMongoError as e:
            emit_event("db_list_folders_error", severity="error", error=str(e))
            return []

    def folder_name_exists(self, user_id: str, name: str, exclude_id: Optional[str] = None) -> bool:
        return self._exists_name(self.manager.folders, user_id, name, exclude_id)

    def update_folder(self, user_id: str, folder_id: str, fields: Dict[str, Any]) -> bool:
        oid = to_object_id(folder_id)
        if oid is None:
            return False
        fields = dict(fields)
        if "name" in fields:
            fields["name"] = str(fields["name"]).strip()
            fields["name_key"] = name_key(fields["name"])
        fields.setdefault("updated_at", utcnow())
        try:
            result = self.manager.folders.update_one({"_id": oid, "user_id": user_id, **ACTIVE}, {"$set": fields})
            return bool(result.matched_count)
        except PyMongoError as e:
            emit_event("db_update_folder_error", severity="error", error=str(e))
            return False

    def soft_delete_folder(self, user_id: str, folder_id: str, now: Optional[datetime] = None) -> bool:
        # הסניפטים נשארים מקושרים, כך ששחזור התיקייה מחזיר אותם אליה
        try:
            return self._soft_delete(self.manager.folders, user_id, folder_id, now)
        except PyMongoError as e:
            emit_event("db_soft_delete_folder_error", severity="error", error=str(e))
            return False

    def restore_folder(self, user_id: str, folder_id: str, now: Optional[datetime] = None) -> bool:
        try:
            return self._restore(self.manager.folders, user_id, folder_id, now)
        except PyMongoError as e:
            emit_event("db_restore_folder_error", severity="error", error=str(e))
            return False

    def purge_folder(self, user_id: str, folder_id: str, policy: Optional[str] = None) -> bool:
        """מחיקה סופית של תיקייה. סניפטים מקושרים נמחקים או מנותקים לפי FOLDER_PURGE_POLICY."""
        policy = policy or config.FOLDER_PURGE_POLICY
        try:
            if self._get_deleted(self.manager.folders, user_id, folder_id) is None:
                return False
            flt = {"user_id": user_id, "folder_id": str(folder_id)}
            if policy == "unlink":
                res = self.manager.snippets.update_many(flt, {"$set": {"folder_id": None, "updated_at": utcnow()}})
                affected = int(res.modified_count or 0)
            else:
                res = self.manager.snippets.delete_many(flt)
                affected = int(res.deleted_count or 0)
            ok = self._purge(self.manager.folders, user_id, folder_id)
            if ok:
                emit_event("folder_purged", user_id=user_id, folder_id=str(folder_id),
                           policy=policy, snippets_affected=affected)
            return ok
        except PyMongoError as e:
            emit_event("db_purge_folder_error", severity="error", error=str(e))
            return False

    # --- Categories ---
    def create_category(self, category: Category) -> Optional[str]:
        try:
            result = self.manager.categories.insert_one(to_document(category))
            return str(result.inserted_id) if result.inserted_id else None
        except PyMongoError as e:
            emit_event("db_create_category_error", severity="error", error=str(e))
            return None

    def get_category(self, user_id: str, category_id: str, include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        try:
            return self._get(self.manager.categories, user_id, category_id, include_deleted)
        except PyMongoError as e:
            emit_event("db_get_category_error", severity="error", error=str(e))
            return None

    def list_categories(self, user_id: str) -> List[Dict[str, Any]]:
        try:
            return list(self.manager.categories.find(
                {"user_id": user_id, **ACTIVE}, sort=[("sort_order", 1), ("name_key", 1)],
            ))
        except PyMongoError as e:
            emit_event("db_list_categories_error", severity="error", error=str(e))
            return []

    def category_name_exists(self, user_id: str, name: str, exclude_id: Optional[str] = None) -> bool:
        return self._exists_name(self.manager.categories, user_id, name, exclude_id)

    def update_category(self, user_id: str, category_id: str, fields: Dict[str, Any]) -> bool:
        oid = to_object_id(category_id)
        if oid is None:
            return False
        fields = dict(fields)
        if "name" in fields:
            fields["name"] = str(fields["name"]).strip()
            fields["name_key"] = name_key(fields["name"])
        fields.setdefault("updated_at", utcnow())
        try:
            result = self.manager.categories.update_one({"_id": oid, "user_id": user_id, **ACTIVE}, {"$set": fields})
            return bool(result.matched_count)
        except PyMongoError as e:
            emit_event("db_update_category_error", severity="error", error=str(e))
            return False

    def unlink_category(self, user_id: str, category_id: str) -> int:
        """מעביר את כל הסניפטים של הקטגוריה ל'ללא קטגוריה' (כולל סניפטים בסל)."""
        res = self.manager.snippets.update_many(
            {"user_id": user_id, "category_id": str(category_id)},
            {"$set": {"category_id": None, "updated_at": utcnow()}},
        )
        return int(res.modified_count or 0)

    def soft_delete_category(self, user_id: str, category_id: str, now: Optional[datetime] = None) -> bool:
        try:
            if self._get(self.manager.categories, user_id, category_id) is None:
                return False
            self.unlink_category(user_id, category_id)
            return self._soft_delete(self.manager.categories, user_id, category_id, now)
        except PyMongoError as e:
            emit_event("db_soft_delete_category_error", severity="error", error=str(e))
            return False

    def restore_category(self, user_id: str, category_id: str, now: Optional[datetime] = None) -> bool:
        try:
            return self._restore(self.manager.categories, user_id, category_id, now)
        except PyMongoError as e:
            emit_event("db_restore_category_error", severity="error", error=str(e))
            return False

    def purge_category(self, user_id: str, category_id: str) -> bool:
        try:
            if self._get_deleted(self.manager.categories, user_id, category_id) is None:
                return False
            self.unlink_category(user_id, category_id)
            return self._purge(self.manager.categories, user_id, category_id)
        except PyMongoError as e:
            emit_event("db_purge_category_error", severity="error", error=str(e))
            return False

    def delete_category(self, user_id: str, category_id: str) -> bool:
        """מחיקה קשיחה ממסך הארגון: ניתוק סניפטים ואז הסרת הקטגוריה (חיה או בסל)."""
        oid = to_object_id(category_id)
        if oid is None:
            return False
        try:
            self.unlink_category(user_id, category_id)
            result = self.manager.categories.delete_one({"_id": oid, "user_id": user_id})
            return bool(result.deleted_count)
        except PyMongoError as e:
            emit_event("db_delete_category_error", severity="error", error=str(e))
            return False

    # --- Recycle bin listings ---
    def list_deleted_snippets(self, user_id: str) -> List[Dict[str, Any]]:
        return self._list_deleted(self.manager.snippets, user_id)

    def list_deleted_folders(self, user_id: str) -> List[Dict[str, Any]]:
        return self._list_deleted(self.manager.folders, user_id)

    def list_deleted_categories(self, user_id: str) -> List[Dict[str, Any]]:
        return self._list_deleted(self.manager.categories, user_id)

    def expired_items(self, now: datetime) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "snippet": self._list_expired(self.manager.snippets, now),
            "folder": self._list_expired(self.manager.folders, now),
            "category": self._list_expired(self.manager.categories, now),
        }
