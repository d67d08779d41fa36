"""Configuration management for the console core."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

_config_logger = logging.getLogger(__name__)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class ServerSettings(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8080, ge=1024, le=65535)
    enable_cors: bool = Field(default=False)
    allowed_origins: tuple[str, ...] = Field(default=())


class StorageSettings(BaseModel):
    backend: Literal["sqlite", "memory"] = Field(default="sqlite")
    sqlite_path: str = Field(default="./data/console.sqlite")
    sqlite_wal: bool = Field(default=True)
    profiles_collection: str = Field(default="users")
    audit_collection: str = Field(default="audit_logs")
    attachments_collection: str = Field(default="attachments")


class BlobSettings(BaseModel):
    root: str = Field(default="./data/blobs")


class AuthSettings(BaseModel):
    """Identity and authorization settings.

    The console sits behind an identity-aware proxy that authenticates the
    caller and forwards the subject identifier (and optionally the email) in
    request headers. Token verification happens upstream.
    """

    subject_header: str = Field(default="X-Authenticated-Subject")
    email_header: str = Field(default="X-Authenticated-Email")
    trust_forwarded_headers: bool = Field(default=False)
    request_log_enabled: bool = Field(default=True)
    superuser_missing_target_fallback: bool = Field(
        default=True,
        description=(
            "If True, a superuser updating a user whose profile record is missing "
            "proceeds as if the target were an operator. Every use is logged."
        ),
    )

    @field_validator("subject_header", "email_header")
    @classmethod
    def _validate_header_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("header name must not be empty")
        return value


class AuditSettings(BaseModel):
    retention_days: int = Field(default=90, ge=0)
    retention_batch_size: int = Field(default=500, ge=1, le=500)
    max_query_limit: int = Field(default=500, ge=1, le=10_000)


class Settings(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    blobs: BlobSettings = Field(default_factory=BlobSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    audit: AuditSettings = Field(default_factory=AuditSettings)


ENV_KEYS = {
    "host": "CONSOLE_HOST",
    "port": "CONSOLE_PORT",
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "store_backend": "STORE_BACKEND",
    "sqlite_path": "SQLITE_PATH",
    "blob_root": "BLOB_ROOT",
    "subject_header": "AUTH_SUBJECT_HEADER",
    "email_header": "AUTH_EMAIL_HEADER",
    "retention_days": "AUDIT_RETENTION_DAYS",
    "retention_batch_size": "AUDIT_RETENTION_BATCH_SIZE",
    "max_query_limit": "AUDIT_MAX_QUERY_LIMIT",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _split_csv_preserve_case(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path)
    root = _project_root().resolve()
    if candidate.is_absolute():
        resolved = candidate.resolve()
    else:
        resolved = (root / candidate).resolve()
    if not resolved.is_relative_to(root):
        raise ValueError(f"Path traversal detected: '{path}' resolves outside project root")
    return str(resolved)


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])

    settings_data: dict[str, object] = {
        "server": {
            "host": os.getenv(ENV_KEYS["host"], ServerSettings().host),
            "port": _env_int(ENV_KEYS["port"], ServerSettings().port),
            "enable_cors": _env_bool("CONSOLE_ENABLE_CORS", ServerSettings().enable_cors),
            "allowed_origins": tuple(
                _split_csv_preserve_case(os.getenv("CONSOLE_ALLOWED_ORIGINS"))
            ),
        },
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "storage": {
            "backend": os.getenv(ENV_KEYS["store_backend"], StorageSettings().backend),
            "sqlite_path": _resolve_path(
                os.getenv(ENV_KEYS["sqlite_path"], StorageSettings().sqlite_path)
            ),
            "sqlite_wal": _env_bool("SQLITE_WAL", StorageSettings().sqlite_wal),
        },
        "blobs": {
            "root": _resolve_path(os.getenv(ENV_KEYS["blob_root"], BlobSettings().root)),
        },
        "auth": {
            "subject_header": os.getenv(
                ENV_KEYS["subject_header"], AuthSettings().subject_header
            ),
            "email_header": os.getenv(ENV_KEYS["email_header"], AuthSettings().email_header),
            "trust_forwarded_headers": _env_bool(
                "AUTH_TRUST_FORWARDED_HEADERS",
                AuthSettings().trust_forwarded_headers,
            ),
            "request_log_enabled": _env_bool(
                "AUTH_REQUEST_LOG_ENABLED",
                AuthSettings().request_log_enabled,
            ),
            "superuser_missing_target_fallback": _env_bool(
                "AUTH_SUPERUSER_MISSING_TARGET_FALLBACK",
                AuthSettings().superuser_missing_target_fallback,
            ),
        },
        "audit": {
            "retention_days": _env_int(
                ENV_KEYS["retention_days"], AuditSettings().retention_days
            ),
            "retention_batch_size": _env_int(
                ENV_KEYS["retention_batch_size"], AuditSettings().retention_batch_size
            ),
            "max_query_limit": _env_int(
                ENV_KEYS["max_query_limit"], AuditSettings().max_query_limit
            ),
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    if settings.storage.backend == "sqlite":
        Path(settings.storage.sqlite_path).parent.mkdir(parents=True, exist_ok=True)
    Path(settings.blobs.root).mkdir(parents=True, exist_ok=True)

    return settings
