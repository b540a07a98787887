import pytest
from pydantic import ValidationError

from config import AppConfig


def test_defaults(monkeypatch):
    monkeypatch.delenv("RECYCLE_TTL_DAYS", raising=False)
    cfg = AppConfig(MONGODB_URL="mongodb://localhost:27017")
    assert cfg.RECYCLE_TTL_DAYS == 30
    assert cfg.PIN_MAX_ATTEMPTS == 5
    assert cfg.FOLDER_PURGE_POLICY == "purge_children"


def test_mongodb_url_must_be_mongo_scheme():
    with pytest.raises(ValidationError):
        AppConfig(MONGODB_URL="postgres://localhost")


def test_folder_purge_policy_is_validated(monkeypatch):
    monkeypatch.setenv("FOLDER_PURGE_POLICY", " UNLINK ")
    assert AppConfig(MONGODB_URL="mongodb://x").FOLDER_PURGE_POLICY == "unlink"
    monkeypatch.setenv("FOLDER_PURGE_POLICY", "archive")
    with pytest.raises(ValidationError):
        AppConfig(MONGODB_URL="mongodb://x")


def test_supported_languages_are_lowercased(monkeypatch):
    monkeypatch.setenv("SUPPORTED_LANGUAGES", '["Python", " go ", ""]')
    assert AppConfig(MONGODB_URL="mongodb://x").SUPPORTED_LANGUAGES == ["python", "go"]
