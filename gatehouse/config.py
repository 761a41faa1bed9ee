from __future__ import annotations

import os
import re
from typing import Any, List

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_PASSWORD_PATTERN = r"(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{8,}"


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for identity resolution and the security API."""

    store_backend: str = env_field(
        "memory",
        "SECURITY_STORE",
        description="Name of the registered user/role store backend",
    )
    database_url: str = env_field(
        "postgresql://localhost:5432/gatehouse", "DATABASE_URL"
    )
    shared_fs_root: str | None = env_field(
        None,
        "SHARED_FS_ROOT",
        description="Directory for memory store state; unset keeps it in memory only",
    )
    admin_password: str | None = env_field(
        None,
        "ADMIN_PASSWORD",
        description="Secret for the reserved super-user; unset disables super-user login",
    )
    authorization_cache_ttl_seconds: int = env_field(300, "AUTHORIZATION_CACHE_TTL")
    user_cache_ttl_seconds: int = env_field(300, "USER_CACHE_TTL")
    role_cache_ttl_seconds: int = env_field(300, "ROLE_CACHE_TTL")
    password_pattern: str = env_field(
        DEFAULT_PASSWORD_PATTERN,
        "PASSWORD_PATTERN",
        description="Regular expression every newly set password must fully match",
    )
    directory_enabled: bool = env_field(False, "DIRECTORY_ENABLED")
    directory_url: str | None = env_field(None, "DIRECTORY_URL")
    directory_user_dn_template: str = env_field(
        "uid={user_id},ou=people,dc=example,dc=org", "DIRECTORY_USER_DN_TEMPLATE"
    )
    cors_allow_origins: str = env_field("", "CORS_ALLOW_ORIGINS")

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("store_backend")
    @classmethod
    def _normalize_backend(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator(
        "authorization_cache_ttl_seconds",
        "user_cache_ttl_seconds",
        "role_cache_ttl_seconds",
    )
    @classmethod
    def _validate_ttl(cls, value: int) -> int:
        if value < 0:
            raise ValueError("cache TTL must be zero or positive")
        return value

    @field_validator("password_pattern")
    @classmethod
    def _validate_pattern(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid password pattern: {exc}") from exc
        return value

    @model_validator(mode="after")
    def _validate_directory(self) -> "Settings":
        if self.directory_enabled and not self.directory_url:
            raise ValueError("DIRECTORY_URL is required when DIRECTORY_ENABLED is set")
        return self

    @property
    def allowed_origins(self) -> List[str]:
        return [o.strip() for o in self.cors_allow_origins.split(",") if o.strip()]


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
