from __future__ import annotations

from typing import Any, BinaryIO, Dict, List, Optional, Union

from pymongo.errors import PyMongoError

from config import config
from database import MediaFile, MediaFolder, MediaRepository
from observability import emit_event

from .blob_storage import GridFSBlobStore, blob_path_from_url, blob_url
from .errors import DuplicateNameError, NotFoundError, ValidationError
from .serialization import public_doc


def media_type_for(mime_type: str) -> Optional[str]:
    mime = (mime_type or "").lower()
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"
    return None


class MediaService:
    def __init__(self, repo: MediaRepository, blobs: GridFSBlobStore):
        self.repo = repo
        self.blobs = blobs

    # --- Files ---
    def upload(
        self,
        user_id: str,
        data: Union[bytes, BinaryIO],
        *,
        file_name: str,
        mime_type: str,
        file_size: int,
        folder_id: Optional[str] = None,
        description: str = "",
    ) -> Dict[str, Any]:
        file_type = media_type_for(mime_type)
        if file_type is None:
            raise ValidationError("Only image and video files are supported")
        if file_size > config.MEDIA_MAX_UPLOAD_BYTES:
            raise ValidationError("File is too large")
        if folder_id and self.repo.get_folder(user_id, folder_id) is None:
            raise NotFoundError("Media folder not found")
        path = self.blobs.put(data, original_name=file_name, content_type=mime_type, user_id=user_id)
        media = MediaFile(
            user_id=user_id,
            file_name=file_name,
            file_type=file_type,
            file_url=blob_url(path),
            file_size=int(file_size),
            mime_type=mime_type,
            media_folder_id=folder_id or None,
            description=(description or "").strip(),
        )
        file_id = self.repo.create_file(media)
        if not file_id:
            # השורה לא נשמרה; לא משאירים blob יתום
            self._remove_blob(media.file_url)
            raise ValidationError("Could not save the uploaded file")
        emit_event("media_uploaded", user_id=user_id, file_type=file_type, size=int(file_size))
        return public_doc(self.repo.get_file(user_id, file_id)) or {}

    def toggle_favorite(self, user_id: str, file_id: str) -> bool:
        doc = self.repo.get_file(user_id, file_id)
        if doc is None:
            raise NotFoundError("Media file not found")
        value = not bool(doc.get("is_favorite"))
        self.repo.update_file(user_id, file_id, {"is_favorite": value})
        return value

    def move_file(self, user_id: str, file_id: str, target_folder_id: Optional[str]) -> bool:
        if self.repo.get_file(user_id, file_id) is None:
            raise NotFoundError("Media file not found")
        if target_folder_id and self.repo.get_folder(user_id, target_folder_id) is None:
            raise NotFoundError("Media folder not found")
        return self.repo.update_file(user_id, file_id, {"media_folder_id": target_folder_id or None})

    def favorites(self, user_id: str) -> List[Dict[str, Any]]:
        return [public_doc(d) for d in self.repo.list_favorite_files(user_id)]

    def open_blob(self, user_id: str, path: str):
        grid_out = self.blobs.open(path, user_id=user_id)
        if grid_out is None:
            raise NotFoundError("Media not found")
        return grid_out

    # --- Folders ---
    def _validate_folder_name(self, name: str) -> str:
        clean = (name or "").strip()
        if not clean:
            raise ValidationError("Folder name is required")
        if len(clean) > config.FOLDER_NAME_MAX_LENGTH:
            raise ValidationError(f"Folder name must be at most {config.FOLDER_NAME_MAX_LENGTH} characters")
        return clean

    def create_folder(self, user_id: str, name: str, parent_id: Optional[str] = None,
                      color: Optional[str] = None, icon: Optional[str] = None) -> Dict[str, Any]:
        clean = self._validate_folder_name(name)
        parent_id = parent_id or None
        if parent_id and self.repo.get_folder(user_id, parent_id) is None:
            raise NotFoundError("Parent folder not found")
        if self.repo.folder_name_exists(user_id, clean, parent_id):
            raise DuplicateNameError("Folder", clean)
        folder = MediaFolder(
            user_id=user_id,
            name=clean,
            color=color or config.DEFAULT_COLOR,
            icon=icon or "folder",
            parent_id=parent_id,
        )
        folder_id = self.repo.create_folder(folder)
        if not folder_id:
            raise ValidationError("Could not create the folder")
        return public_doc(self.repo.get_folder(user_id, folder_id)) or {}

    def rename_folder(self, user_id: str, folder_id: str, name: str) -> bool:
        clean = self._validate_folder_name(name)
        doc = self.repo.get_folder(user_id, folder_id)
        if doc is None:
            raise NotFoundError("Media folder not found")
        if self.repo.folder_name_exists(user_id, clean, doc.get("parent_id"), exclude_id=folder_id):
            raise DuplicateNameError("Folder", clean)
        return self.repo.update_folder(user_id, folder_id, {"name": clean})

    def breadcrumbs(self, user_id: str, folder_id: Optional[str]) -> List[Dict[str, Any]]:
        """שרשרת תיקיות מהשורש ועד התיקייה הנוכחית."""
        trail: List[Dict[str, Any]] = []
        seen = set()
        current = folder_id
        while current and current not in seen:
            seen.add(current)
            doc = self.repo.get_folder(user_id, current)
            if doc is None:
                break
            trail.append({"id": str(doc["_id"]), "name": doc.get("name")})
            current = doc.get("parent_id")
        trail.reverse()
        return trail

    def folder_depth(self, user_id: str, folder_id: str) -> int:
        """עומק התיקייה בעץ (0 = בשורש), כולל תיקיות שנמחקו."""
        depth = 0
        seen = {str(folder_id)}
        doc = self.repo.get_folder(user_id, folder_id, include_deleted=True)
        while doc is not None and doc.get("parent_id") and str(doc["parent_id"]) not in seen:
            seen.add(str(doc["parent_id"]))
            depth += 1
            doc = self.repo.get_folder(user_id, doc["parent_id"], include_deleted=True)
        return depth

    def browse(self, user_id: str, folder_id: Optional[str] = None) -> Dict[str, Any]:
        folder = None
        if folder_id:
            folder = self.repo.get_folder(user_id, folder_id)
            if folder is None:
                raise NotFoundError("Media folder not found")
        return {
            "folder": public_doc(folder),
            "breadcrumbs": self.breadcrumbs(user_id, folder_id),
            "folders": [public_doc(d) for d in self.repo.list_child_folders(user_id, folder_id or None)],
            "files": [public_doc(d) for d in self.repo.list_files(user_id, folder_id or None)],
        }

    # --- Lifecycle ---
    def soft_delete_file(self, user_id: str, file_id: str) -> bool:
        return self.repo.soft_delete_file(user_id, file_id)

    def soft_delete_folder(self, user_id: str, folder_id: str) -> bool:
        return self.repo.soft_delete_folder_tree(user_id, folder_id)

    def restore_file(self, user_id: str, file_id: str) -> bool:
        return self.repo.restore_file(user_id, file_id)

    def restore_folder(self, user_id: str, folder_id: str) -> bool:
        doc = self.repo.get_deleted_folder(user_id, folder_id)
        if doc is None:
            return False
        if self.repo.folder_name_exists(user_id, doc.get("name") or "", doc.get("parent_id")):
            raise DuplicateNameError("Folder", doc.get("name") or "")
        return self.repo.restore_folder_tree(user_id, folder_id)

    def _remove_blob(self, file_url: str) -> None:
        path = blob_path_from_url(file_url)
        if not path:
            return
        try:
            self.blobs.remove(path)
        except PyMongoError as e:
            # כשל באחסון לא חוסם את מחיקת השורה
            emit_event("media_blob_remove_failed", severity="warn", path=path, error=str(e))

    def purge_file(self, user_id: str, file_id: str) -> bool:
        doc = self.repo.get_deleted_file(user_id, file_id)
        if doc is None:
            return False
        self._remove_blob(doc.get("file_url") or "")
        return self.repo.purge_file(user_id, file_id)

    def purge_folder(self, user_id: str, folder_id: str) -> bool:
        if self.repo.get_deleted_folder(user_id, folder_id) is None:
            return False
        try:
            descendants = self.repo.descendant_folder_ids(user_id, folder_id, live_only=False)
            files = self.repo.files_in_folders(user_id, [str(folder_id)] + descendants)
        except PyMongoError as e:
            emit_event("db_purge_media_folder_error", severity="error", error=str(e))
            return False
        for fdoc in files:
            self._remove_blob(fdoc.get("file_url") or "")
        ok = self.repo.purge_folder_rows(user_id, folder_id, descendants)
        if ok:
            emit_event("media_folder_purged", user_id=user_id, folder_id=str(folder_id),
                       folders=len(descendants) + 1, files=len(files))
        return ok
