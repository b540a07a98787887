from __future__ import annotations

import os
import uuid
from typing import Any, BinaryIO, Optional, Union

import gridfs  # from pymongo
from gridfs.errors import NoFile

from config import config
from observability import emit_event


def blob_path_from_url(file_url: str) -> str:
    """נתיב ה-blob הוא המקטע האחרון של ה-URL (אחרי ה-'/' האחרון)."""
    return str(file_url or "").rsplit("/", 1)[-1]


def blob_url(path: str) -> str:
    return f"{config.MEDIA_BASE_URL.rstrip('/')}/{path}"


class GridFSBlobStore:
    """אחסון קבצי מדיה ב-GridFS. כל blob נשמר תחת שם ייחודי (filename == path)."""

    def __init__(self, mongo_db: Any, collection: Optional[str] = None):
        self._fs = gridfs.GridFS(mongo_db, collection=collection or config.MEDIA_BUCKET)

    def put(self, data: Union[bytes, BinaryIO], *, original_name: str, content_type: str, user_id: str) -> str:
        ext = os.path.splitext(original_name or "")[1].lower()[:10]
        path = f"{uuid.uuid4().hex}{ext}"
        self._fs.put(
            data,
            filename=path,
            content_type=content_type,
            metadata={"user_id": user_id, "original_name": original_name},
        )
        return path

    def open(self, path: str, user_id: Optional[str] = None):
        """מחזיר GridOut או None אם לא נמצא / לא שייך למשתמש."""
        try:
            grid_out = self._fs.get_last_version(filename=path)
        except NoFile:
            return None
        if user_id is not None:
            owner = (grid_out.metadata or {}).get("user_id")
            if owner != user_id:
                return None
        return grid_out

    def remove(self, path: str) -> int:
        removed = 0
        for fdoc in self._fs.find({"filename": path}):
            self._fs.delete(fdoc._id)
            removed += 1
        if removed:
            emit_event("media_blob_removed", path=path)
        return removed
