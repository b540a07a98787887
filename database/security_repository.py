from dataclasses import asdict, is_dataclass
from typing import Any, Dict

from pymongo.errors import PyMongoError

from observability import emit_event

from .manager import DatabaseManager
from .models import SecuritySettings, utcnow


def _plain(value: Any) -> Any:
    if is_dataclass(value):
        return asdict(value)
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


class SecurityRepository:
    """מסמך הגדרות אבטחה יחיד לכל משתמש (PIN, נעילה, יומן ביקורת)."""

    def __init__(self, manager: DatabaseManager):
        self.manager = manager

    def get(self, user_id: str) -> SecuritySettings:
        doc = self.manager.security_settings.find_one({"user_id": user_id})
        return SecuritySettings.from_document(doc, user_id)

    def update_fields(self, user_id: str, fields: Dict[str, Any]) -> bool:
        """קריאה-שינוי-כתיבה לפי שדה: רק השדות שהשתנו נכתבים עם $set."""
        payload = {k: _plain(v) for k, v in fields.items()}
        payload["updated_at"] = utcnow()
        try:
            self.manager.security_settings.update_one(
                {"user_id": user_id},
                {"$set": payload, "$setOnInsert": {"user_id": user_id, "created_at": utcnow()}},
                upsert=True,
            )
            return True
        except PyMongoError as e:
            emit_event("db_update_security_settings_error", severity="error", error=str(e))
            return False
