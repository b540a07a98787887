from __future__ import annotations

from typing import List, Optional
import json

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    DotEnvSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)


FOLDER_PURGE_POLICIES = ("purge_children", "unlink")


class AppConfig(BaseSettings):
    """
    קונפיגורציה עיקרית של SnippetVault המבוססת על Pydantic Settings.

    - קורא אוטומטית משתני סביבה ו-`.env`.
    - מבצע המרות טיפוסים ו-Validation ברור.
    """

    # שדות חובה
    MONGODB_URL: str = Field(..., description="MongoDB connection string")

    # בסיסי DB
    DATABASE_NAME: str = Field(
        default="snippet_vault", description="MongoDB database name"
    )

    # MongoDB Pooling/Timeouts via ENV
    MONGODB_MAX_POOL_SIZE: int = Field(
        default=50,
        ge=1,
        le=100_000,
        description="MongoDB connection pool max size (maxPoolSize)",
    )
    MONGODB_MIN_POOL_SIZE: int = Field(
        default=5,
        ge=0,
        le=100_000,
        description="MongoDB connection pool min size (minPoolSize)",
    )
    MONGODB_SERVER_SELECTION_TIMEOUT_MS: int = Field(
        default=3_000,
        ge=100,
        le=600_000,
        description="MongoDB server selection timeout in ms (serverSelectionTimeoutMS)",
    )
    MONGODB_SOCKET_TIMEOUT_MS: int = Field(
        default=20_000,
        ge=0,
        le=3_600_000,
        description="MongoDB socket timeout in ms (socketTimeoutMS)",
    )
    MONGODB_CONNECT_TIMEOUT_MS: int = Field(
        default=10_000,
        ge=0,
        le=3_600_000,
        description="MongoDB connect timeout in ms (connectTimeoutMS)",
    )
    MONGODB_APPNAME: Optional[str] = Field(
        default=None, description="MongoDB appName client metadata"
    )

    # ווב
    SECRET_KEY: str = Field(
        default="dev-secret-key-change-in-production",
        description="Flask session signing key",
    )
    SESSION_LIFETIME_DAYS: int = Field(
        default=30, ge=1, le=365, description="Signed session lifetime (days)"
    )

    # סניפטים
    SNIPPET_TITLE_MAX_LENGTH: int = Field(
        default=20, ge=1, le=500, description="Maximum snippet title length"
    )
    SNIPPET_DESCRIPTION_MAX_LENGTH: int = Field(
        default=50, ge=0, le=10_000, description="Maximum snippet description length"
    )
    MAX_CODE_SIZE: int = Field(
        default=100_000,
        ge=1_000,
        le=10_000_000,
        description="Maximum code size in bytes",
    )
    PUBLIC_SNIPPETS_LIMIT: int = Field(
        default=100, ge=1, le=10_000, description="Cap for the public snippets feed"
    )
    SUPPORTED_LANGUAGES: List[str] = Field(
        default_factory=lambda: [
            "text",
            "python",
            "javascript",
            "typescript",
            "html",
            "css",
            "java",
            "cpp",
            "c",
            "csharp",
            "php",
            "ruby",
            "go",
            "rust",
            "swift",
            "kotlin",
            "sql",
            "bash",
            "json",
            "yaml",
            "markdown",
        ],
        description="Languages offered for snippets",
    )

    # תיקיות וקטגוריות
    FOLDER_NAME_MAX_LENGTH: int = Field(default=30, ge=1, le=200)
    FOLDER_DESCRIPTION_MAX_LENGTH: int = Field(default=100, ge=0, le=2_000)
    DEFAULT_COLOR: str = Field(default="#3B82F6", description="Default folder/category color")

    # סל מיחזור
    RECYCLE_TTL_DAYS: int = Field(
        default=30, ge=1, description="Days to keep items in recycle bin"
    )
    FOLDER_PURGE_POLICY: str = Field(
        default="purge_children",
        description="What purging a snippet folder does to its snippets: purge_children | unlink",
    )

    # מדיה
    MEDIA_BUCKET: str = Field(default="media", description="GridFS bucket for media blobs")
    MEDIA_BASE_URL: str = Field(
        default="/api/media/blob", description="Prefix used to build media file URLs"
    )
    MEDIA_MAX_UPLOAD_BYTES: int = Field(
        default=50 * 1024 * 1024, ge=1, description="Maximum media upload size in bytes"
    )

    # PIN ונעילה
    PIN_MIN_LENGTH: int = Field(default=4, ge=1, le=32)
    PIN_MAX_LENGTH: int = Field(default=8, ge=1, le=32)
    PIN_HINT_MAX_LENGTH: int = Field(default=100, ge=0, le=1_000)
    PIN_MAX_ATTEMPTS: int = Field(
        default=5, ge=1, le=100, description="Failed PIN attempts before lockout"
    )
    PIN_ATTEMPT_WINDOW_MINUTES: int = Field(
        default=15, ge=1, le=1_440, description="Sliding window for counting failures"
    )
    PIN_LOCKOUT_MINUTES: int = Field(
        default=30, ge=1, le=10_080, description="Lockout duration after too many failures"
    )
    PIN_HASH_METHOD: str = Field(
        default="pbkdf2:sha256", description="werkzeug password hash method for PINs"
    )
    MEDIA_SESSION_TIMEOUT_MINUTES: int = Field(
        default=30, ge=1, le=1_440, description="Inactivity timeout for the media area"
    )
    MEDIA_SESSION_WARNING_MINUTES: int = Field(
        default=5, ge=0, le=1_440, description="Warn this long before the media session expires"
    )
    SECURITY_LOG_LIMIT: int = Field(
        default=50, ge=1, le=10_000, description="Cap for audit log and failed attempt history"
    )

    # אורח
    GUEST_USERNAME_MAX_LENGTH: int = Field(default=30, ge=1, le=200)
    GUEST_PREVIOUS_USERNAMES: int = Field(default=3, ge=0, le=50)

    # Observability
    LOG_LEVEL: str = Field(default="INFO", description="Minimum log level")
    SENTRY_DSN: Optional[str] = Field(
        default=None, description="Sentry DSN for error reporting"
    )

    # הגדרות קריאה מ-.env ומשתני סביבה
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """אפשר שרשרת קבצי .env: קודם .env.local ואז .env, בנוסף למשתני סביבה."""
        return (
            init_settings,
            env_settings,
            DotEnvSettingsSource(settings_cls, env_file=".env.local", case_sensitive=True),
            DotEnvSettingsSource(settings_cls, env_file=".env", case_sensitive=True),
            file_secret_settings,
        )

    @field_validator("MONGODB_URL")
    @classmethod
    def _validate_mongodb_url(cls, v: str) -> str:
        if not v or not v.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError(
                "MONGODB_URL must start with mongodb:// or mongodb+srv://"
            )
        return v

    @field_validator("FOLDER_PURGE_POLICY")
    @classmethod
    def _validate_folder_purge_policy(cls, v: str) -> str:
        value = (v or "").strip().lower()
        if value not in FOLDER_PURGE_POLICIES:
            raise ValueError(
                f"FOLDER_PURGE_POLICY must be one of: {', '.join(FOLDER_PURGE_POLICIES)}"
            )
        return value

    @field_validator("SUPPORTED_LANGUAGES", mode="before")
    @classmethod
    def _parse_languages(cls, v):
        """Accept a JSON list or a CSV string; values are lower-cased."""
        if v is None or v == "":
            return []
        if isinstance(v, str):
            s = v.strip()
            try:
                parsed = json.loads(s)
            except Exception:
                parsed = [p for p in s.split(",")]
            v = parsed if isinstance(parsed, list) else [parsed]
        return [str(item).strip().lower() for item in v if str(item).strip()]


def load_config() -> AppConfig:
    """טוען את הקונפיגורציה ומחזיר מופע של AppConfig."""
    return AppConfig()


# יצירת אינסטנס גלובלי של הקונפיגורציה בזמן import
try:
    config = load_config()
except ValidationError as exc:
    raise ValueError(str(exc)) from exc
