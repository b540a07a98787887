from datetime import timezone
from typing import Any, Optional, Protocol

from pymongo import ASCENDING, DESCENDING, IndexModel, MongoClient

from config import config
from observability import emit_event


SNIPPETS = "snippets"
FOLDERS = "folders"
CATEGORIES = "categories"
MEDIA_FILES = "media_files"
MEDIA_FOLDERS = "media_folders"
SECURITY_SETTINGS = "security_settings"


class CollectionLike(Protocol):
    def insert_one(self, *args: Any, **kwargs: Any) -> Any: ...
    def update_one(self, *args: Any, **kwargs: Any) -> Any: ...
    def update_many(self, *args: Any, **kwargs: Any) -> Any: ...
    def delete_one(self, *args: Any, **kwargs: Any) -> Any: ...
    def delete_many(self, *args: Any, **kwargs: Any) -> Any: ...
    def find_one(self, *args: Any, **kwargs: Any) -> Any: ...
    def find(self, *args: Any, **kwargs: Any) -> Any: ...
    def count_documents(self, *args: Any, **kwargs: Any) -> int: ...
    def create_indexes(self, *args: Any, **kwargs: Any) -> Any: ...


class DBLike(Protocol):
    def __getitem__(self, name: str) -> CollectionLike: ...


class DatabaseManager:
    """אחראי על חיבור MongoDB, גישה לאוספים והגדרת אינדקסים.

    ניתן להזריק `db` מוכן (למשל DB מזויף בטסטים); אחרת החיבור נוצר לפי הקונפיגורציה.
    """

    client: Optional[MongoClient]
    db: Optional[DBLike]

    def __init__(self, db: Optional[DBLike] = None, *, create_indexes: bool = True):
        self.client = None
        self.db = db
        if self.db is None:
            self.connect()
            if create_indexes:
                self._create_indexes()

    def connect(self) -> None:
        try:
            self.client = MongoClient(
                config.MONGODB_URL,
                maxPoolSize=config.MONGODB_MAX_POOL_SIZE,
                minPoolSize=config.MONGODB_MIN_POOL_SIZE,
                serverSelectionTimeoutMS=config.MONGODB_SERVER_SELECTION_TIMEOUT_MS,
                socketTimeoutMS=config.MONGODB_SOCKET_TIMEOUT_MS,
                connectTimeoutMS=config.MONGODB_CONNECT_TIMEOUT_MS,
                appname=config.MONGODB_APPNAME,
                retryWrites=True,
                retryReads=True,
                tz_aware=True,
                tzinfo=timezone.utc,
            )
            self.db = self.client[config.DATABASE_NAME]
            self.client.admin.command("ping")
            emit_event("db_connected", severity="info", database=config.DATABASE_NAME)
        except Exception as e:
            emit_event("db_connection_failed", severity="error", error=str(e))
            raise

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None

    # --- Collections ---
    @property
    def snippets(self) -> CollectionLike:
        return self.db[SNIPPETS]

    @property
    def folders(self) -> CollectionLike:
        return self.db[FOLDERS]

    @property
    def categories(self) -> CollectionLike:
        return self.db[CATEGORIES]

    @property
    def media_files(self) -> CollectionLike:
        return self.db[MEDIA_FILES]

    @property
    def media_folders(self) -> CollectionLike:
        return self.db[MEDIA_FOLDERS]

    @property
    def security_settings(self) -> CollectionLike:
        return self.db[SECURITY_SETTINGS]

    def _create_indexes(self) -> None:
        # אין אינדקס TTL על deleted_expires_at: מחיקה סופית חייבת לעבור דרך ה-handlers
        # כדי לנקות ילדים וקבצי GridFS
        soft_delete_indexes = [
            IndexModel([("user_id", ASCENDING), ("deleted_at", DESCENDING)], name="user_deleted_idx"),
            IndexModel([("deleted_expires_at", ASCENDING)], name="deleted_expires_idx", sparse=True),
        ]
        snippets_indexes = soft_delete_indexes + [
            IndexModel([("user_id", ASCENDING), ("created_at", DESCENDING)], name="user_created_idx"),
            IndexModel([("user_id", ASCENDING), ("folder_id", ASCENDING)], name="user_folder_idx"),
            IndexModel([("user_id", ASCENDING), ("category_id", ASCENDING)], name="user_category_idx"),
            IndexModel([("user_id", ASCENDING), ("language", ASCENDING)], name="user_lang_idx"),
            IndexModel([("is_public", ASCENDING), ("created_at", DESCENDING)], name="public_feed_idx"),
        ]
        named_indexes = soft_delete_indexes + [
            IndexModel([("user_id", ASCENDING), ("name_key", ASCENDING)], name="user_name_key_idx"),
        ]
        media_files_indexes = soft_delete_indexes + [
            IndexModel([("user_id", ASCENDING), ("media_folder_id", ASCENDING), ("created_at", DESCENDING)],
                       name="user_media_folder_idx"),
            IndexModel([("deleted_with", ASCENDING)], name="deleted_with_idx", sparse=True),
        ]
        media_folders_indexes = soft_delete_indexes + [
            IndexModel([("user_id", ASCENDING), ("parent_id", ASCENDING), ("name_key", ASCENDING)],
                       name="user_parent_name_idx"),
            IndexModel([("deleted_with", ASCENDING)], name="deleted_with_idx", sparse=True),
        ]
        security_indexes = [
            IndexModel([("user_id", ASCENDING)], name="user_id_unique", unique=True),
        ]
        plan = (
            (self.snippets, snippets_indexes),
            (self.folders, named_indexes),
            (self.categories, named_indexes + [
                IndexModel([("user_id", ASCENDING), ("sort_order", ASCENDING)], name="user_sort_idx"),
            ]),
            (self.media_files, media_files_indexes),
            (self.media_folders, media_folders_indexes),
            (self.security_settings, security_indexes),
        )
        for collection, indexes in plan:
            try:
                collection.create_indexes(indexes)
            except Exception as e:
                emit_event("db_create_indexes_error", severity="warn", error=str(e))
