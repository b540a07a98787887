from datetime import datetime
from typing import Any, Dict, List, Optional

from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from observability import emit_event

from .models import MediaFile, MediaFolder, name_key, to_document, utcnow
from .repository import ACTIVE, DELETED, SoftDeleteStore, recycle_expiry, to_object_id


# פריטים שנמחקו כחלק ממחיקת תיקייה לא מוצגים בסל בנפרד; הם חוזרים עם התיקייה
INDEPENDENT = {"deleted_with": None}


class MediaRepository(SoftDeleteStore):
    """קבצי מדיה ותיקיות מדיה (עץ לפי parent_id).

    מחיקת תיקייה מסמנת את כל תת-העץ ב-deleted_with=<מזהה השורש>, כך ששחזור
    מחזיר רק את מה שנמחק יחד איתה.
    """

    # --- Files ---
    def create_file(self, media: MediaFile) -> Optional[str]:
        try:
            result = self.manager.media_files.insert_one(to_document(media))
            return str(result.inserted_id) if result.inserted_id else None
        except PyMongoError as e:
            emit_event("db_create_media_error", severity="error", error=str(e))
            return None

    def get_file(self, user_id: str, file_id: str, include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        try:
            return self._get(self.manager.media_files, user_id, file_id, include_deleted)
        except PyMongoError as e:
            emit_event("db_get_media_error", severity="error", error=str(e))
            return None

    def get_deleted_file(self, user_id: str, file_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self._get_deleted(self.manager.media_files, user_id, file_id)
        except PyMongoError as e:
            emit_event("db_get_media_error", severity="error", error=str(e))
            return None

    def list_files(self, user_id: str, folder_id: Optional[str] = None,
                   favorites_only: bool = False) -> List[Dict[str, Any]]:
        flt: Dict[str, Any] = {"user_id": user_id, "media_folder_id": folder_id, **ACTIVE}
        if favorites_only:
            flt["is_favorite"] = True
        try:
            return list(self.manager.media_files.find(flt, sort=[("created_at", DESCENDING)]))
        except PyMongoError as e:
            emit_event("db_list_media_error", severity="error", error=str(e))
            return []

    def list_favorite_files(self, user_id: str) -> List[Dict[str, Any]]:
        try:
            return list(self.manager.media_files.find(
                {"user_id": user_id, "is_favorite": True, **ACTIVE}, sort=[("created_at", DESCENDING)],
            ))
        except PyMongoError as e:
            emit_event("db_list_media_error", severity="error", error=str(e))
            return []

    def update_file(self, user_id: str, file_id: str, fields: Dict[str, Any]) -> bool:
        oid = to_object_id(file_id)
        if oid is None:
            return False
        fields = dict(fields)
        fields.setdefault("updated_at", utcnow())
        try:
            result = self.manager.media_files.update_one({"_id": oid, "user_id": user_id, **ACTIVE}, {"$set": fields})
            return bool(result.matched_count)
        except PyMongoError as e:
            emit_event("db_update_media_error", severity="error", error=str(e))
            return False

    def files_in_folders(self, user_id: str, folder_ids: List[str]) -> List[Dict[str, Any]]:
        """כל הקבצים (חיים ומחוקים) שנמצאים באחת מהתיקיות."""
        if not folder_ids:
            return []
        return list(self.manager.media_files.find(
            {"user_id": user_id, "media_folder_id": {"$in": list(folder_ids)}},
            {"_id": 1, "file_url": 1},
        ))

    def soft_delete_file(self, user_id: str, file_id: str, now: Optional[datetime] = None) -> bool:
        try:
            return self._soft_delete(self.manager.media_files, user_id, file_id, now, {"deleted_with": None})
        except PyMongoError as e:
            emit_event("db_soft_delete_media_error", severity="error", error=str(e))
            return False

    def restore_file(self, user_id: str, file_id: str, now: Optional[datetime] = None) -> bool:
        try:
            return self._restore(self.manager.media_files, user_id, file_id, now)
        except PyMongoError as e:
            emit_event("db_restore_media_error", severity="error", error=str(e))
            return False

    def purge_file(self, user_id: str, file_id: str) -> bool:
        try:
            return self._purge(self.manager.media_files, user_id, file_id)
        except PyMongoError as e:
            emit_event("db_purge_media_error", severity="error", error=str(e))
            return False

    # --- Folders ---
    def create_folder(self, folder: MediaFolder) -> Optional[str]:
        try:
            result = self.manager.media_folders.insert_one(to_document(folder))
            return str(result.inserted_id) if result.inserted_id else None
        except PyMongoError as e:
            emit_event("db_create_media_folder_error", severity="error", error=str(e))
            return None

    def get_folder(self, user_id: str, folder_id: str, include_deleted: bool = False) -> Optional[Dict[str, Any]]:
        try:
            return self._get(self.manager.media_folders, user_id, folder_id, include_deleted)
        except PyMongoError as e:
            emit_event("db_get_media_folder_error", severity="error", error=str(e))
            return None

    def get_deleted_folder(self, user_id: str, folder_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self._get_deleted(self.manager.media_folders, user_id, folder_id)
        except PyMongoError as e:
            emit_event("db_get_media_folder_error", severity="error", error=str(e))
            return None

    def list_child_folders(self, user_id: str, parent_id: Optional[str] = None) -> List[Dict[str, Any]]:
        try:
            return list(self.manager.media_folders.find(
                {"user_id": user_id, "parent_id": parent_id, **ACTIVE}, sort=[("name_key", 1)],
            ))
        except PyMongoError as e:
            emit_event("db_list_media_folders_error", severity="error", error=str(e))
            return []

    def folder_name_exists(self, user_id: str, name: str, parent_id: Optional[str] = None,
                           exclude_id: Optional[str] = None) -> bool:
        return self._exists_name(self.manager.media_folders, user_id, name, exclude_id, {"parent_id": parent_id})

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
            result = self.manager.media_folders.update_one(
                {"_id": oid, "user_id": user_id, **ACTIVE}, {"$set": fields},
            )
            return bool(result.matched_count)
        except PyMongoError as e:
            emit_event("db_update_media_folder_error", severity="error", error=str(e))
            return False

    def descendant_folder_ids(self, user_id: str, root_id: str, live_only: bool = True) -> List[str]:
        """מעבר BFS על העץ מתחת לשורש (לא כולל השורש עצמו)."""
        result: List[str] = []
        seen = {str(root_id)}
        frontier = [str(root_id)]
        while frontier:
            flt: Dict[str, Any] = {"user_id": user_id, "parent_id": {"$in": frontier}}
            if live_only:
                flt.update(ACTIVE)
            frontier = []
            for doc in self.manager.media_folders.find(flt, {"_id": 1}):
                fid = str(doc.get("_id"))
                if fid in seen:
                    continue
                seen.add(fid)
                result.append(fid)
                frontier.append(fid)
        return result

    def soft_delete_folder_tree(self, user_id: str, folder_id: str, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        try:
            descendants = self.descendant_folder_ids(user_id, folder_id)
            if not self._soft_delete(self.manager.media_folders, user_id, folder_id, now, {"deleted_with": None}):
                return False
            stamp = {
                "deleted_at": now,
                "deleted_expires_at": recycle_expiry(now),
                "updated_at": now,
                "deleted_with": str(folder_id),
            }
            oids = [to_object_id(fid) for fid in descendants]
            if oids:
                self.manager.media_folders.update_many(
                    {"user_id": user_id, "_id": {"$in": oids}, **ACTIVE}, {"$set": stamp},
                )
            res = self.manager.media_files.update_many(
                {"user_id": user_id, "media_folder_id": {"$in": [str(folder_id)] + descendants}, **ACTIVE},
                {"$set": stamp},
            )
            emit_event("media_folder_soft_deleted", user_id=user_id, folder_id=str(folder_id),
                       folders=len(descendants), files=int(res.modified_count or 0))
            return True
        except PyMongoError as e:
            emit_event("db_soft_delete_media_folder_error", severity="error", error=str(e))
            return False

    def restore_folder_tree(self, user_id: str, folder_id: str, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        try:
            if not self._restore(self.manager.media_folders, user_id, folder_id, now):
                return False
            cleared = {"deleted_at": None, "deleted_expires_at": None, "deleted_with": None, "updated_at": now}
            flt = {"user_id": user_id, "deleted_with": str(folder_id)}
            self.manager.media_folders.update_many(flt, {"$set": cleared})
            self.manager.media_files.update_many(flt, {"$set": cleared})
            return True
        except PyMongoError as e:
            emit_event("db_restore_media_folder_error", severity="error", error=str(e))
            return False

    def purge_folder_rows(self, user_id: str, folder_id: str, descendants: List[str]) -> bool:
        """מוחק את שורות תת-העץ; הסרת ה-blobs נעשית לפני כן בשכבת השירות."""
        try:
            folder_ids = [str(folder_id)] + list(descendants)
            self.manager.media_files.delete_many({"user_id": user_id, "media_folder_id": {"$in": folder_ids}})
            oids = [to_object_id(fid) for fid in descendants]
            if oids:
                self.manager.media_folders.delete_many({"user_id": user_id, "_id": {"$in": oids}})
            return self._purge(self.manager.media_folders, user_id, folder_id)
        except PyMongoError as e:
            emit_event("db_purge_media_folder_error", severity="error", error=str(e))
            return False

    # --- Recycle bin listings ---
    def list_deleted_files(self, user_id: str) -> List[Dict[str, Any]]:
        return self._list_deleted(self.manager.media_files, user_id, INDEPENDENT)

    def list_deleted_folders(self, user_id: str) -> List[Dict[str, Any]]:
        return self._list_deleted(self.manager.media_folders, user_id, INDEPENDENT)

    def expired_items(self, now: datetime) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "media": self._list_expired(self.manager.media_files, now, INDEPENDENT),
            "media_folder": self._list_expired(self.manager.media_folders, now, INDEPENDENT),
        }


__all__ = ["MediaRepository", "DELETED", "INDEPENDENT"]
