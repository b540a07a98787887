from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from bson import ObjectId


def safe_iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def public_doc(doc: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """מסמך Mongo -> dict שמתאים ל-JSON: _id הופך ל-id ותאריכים ל-ISO."""
    if doc is None:
        return None
    out: Dict[str, Any] = {}
    for key, value in doc.items():
        if key == "_id":
            out["id"] = str(value)
        elif key == "name_key":
            continue
        elif isinstance(value, datetime):
            out[key] = value.isoformat()
        elif isinstance(value, ObjectId):
            out[key] = str(value)
        else:
            out[key] = value
    return out
