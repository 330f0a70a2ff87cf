"""Application settings using pydantic-settings.

Two named sections mirror the deployment config: ``JwtSettings`` (signing
secret and token policy) and ``DbSettings`` (connection string). They are
bound once at startup by :func:`load_settings` and handed to the app
factory; components receive them explicitly rather than importing a global.

Sources, lowest precedence first:
  1. JSON file named by SETTINGS_FILE (``JwtSettings``/``DbSettings``/
     ``PasswordPolicy`` sections with PascalCase keys)
  2. ``.env`` in the working directory
  3. Environment variables; sections use ``__`` as the nesting delimiter
     (JWT__SECRET, DB__CONNECTION_STRING, DEV_MODE, ...)
Values passed to ``Settings(...)`` directly win over all of them.
"""
from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Annotated, Any, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_snake
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

DEV_SECRET = "dev-secret-change-in-production-0123456789"  # pragma: allowlist secret

# JSON section name -> Settings field
SECTIONS = {"JwtSettings": "jwt", "DbSettings": "db", "PasswordPolicy": "password"}


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True)


class JwtSettings(_Section):
    """Bearer token signing and validation policy."""

    secret: str = DEV_SECRET
    algorithm: str = "HS256"
    token_lifetime_minutes: int = Field(default=120, ge=0)
    # Legacy deployments accepted tokens without an exp claim forever.
    # That only happens here when this is explicitly switched off.
    require_expiration: bool = True
    validate_lifetime: bool = True

    @model_validator(mode="after")
    def check_lifetime_consistent(self):
        if self.require_expiration and self.token_lifetime_minutes == 0:
            raise ValueError("token_lifetime_minutes=0 issues tokens without exp, which require_expiration rejects")
        return self


class DbSettings(_Section):
    connection_string: str = "sqlite:///./storage/dailyhelper.db"
    echo: bool = False


class PasswordPolicy(_Section):
    """Registration password rules; non-alphanumeric characters are optional."""

    required_length: int = Field(default=6, ge=1)
    required_unique_chars: int = Field(default=1, ge=0)
    require_digit: bool = True
    require_lowercase: bool = True
    require_uppercase: bool = True
    require_non_alphanumeric: bool = False

    def violations(self, password: str) -> List[str]:
        errors = []
        if len(password) < self.required_length:
            errors.append(f"Passwords must be at least {self.required_length} characters.")
        if self.require_digit and not re.search(r"\d", password):
            errors.append("Passwords must have at least one digit ('0'-'9').")
        if self.require_lowercase and not re.search(r"[a-z]", password):
            errors.append("Passwords must have at least one lowercase ('a'-'z').")
        if self.require_uppercase and not re.search(r"[A-Z]", password):
            errors.append("Passwords must have at least one uppercase ('A'-'Z').")
        if self.require_non_alphanumeric and password.isalnum():
            errors.append("Passwords must have at least one non alphanumeric character.")
        if len(set(password)) < self.required_unique_chars:
            errors.append(f"Passwords must use at least {self.required_unique_chars} different characters.")
        return errors


class SectionedJsonSource(JsonConfigSettingsSource):
    """JSON file source that maps PascalCase sections onto the settings fields."""

    def _read_file(self, file_path: Path) -> dict[str, Any]:
        raw = super()._read_file(file_path)
        if not isinstance(raw, dict):
            raise ValueError(f"settings file {file_path} must contain a JSON object")
        data: dict[str, Any] = {}
        for key, value in raw.items():
            field = SECTIONS.get(key, key)
            if field in SECTIONS.values() and isinstance(value, dict):
                value = {to_snake(k): v for k, v in value.items()}
            data[field] = value
        return data


class Settings(BaseSettings):
    """Application settings with validation."""

    DEV_MODE: bool = True

    # CORS: any origin by default; env takes a comma-separated list
    ALLOWED_ORIGINS: Annotated[List[str], NoDecode] = ["*"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None

    jwt: JwtSettings = Field(default_factory=JwtSettings)
    db: DbSettings = Field(default_factory=DbSettings)
    password: PasswordPolicy = Field(default_factory=PasswordPolicy)

    model_config = SettingsConfigDict(
        frozen=True,
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        env_ignore_empty=True,
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        path = os.environ.get("SETTINGS_FILE") or None
        if path and not Path(path).is_file():
            raise FileNotFoundError(f"SETTINGS_FILE {path} does not exist")
        json_settings = SectionedJsonSource(settings_cls, json_file=path)
        return init_settings, env_settings, dotenv_settings, json_settings, file_secret_settings

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def split_origins(cls, value):
        if isinstance(value, str):
            return [o.strip() for o in value.split(",") if o.strip()]
        return value

    @field_validator("LOG_LEVEL")
    @classmethod
    def upper_log_level(cls, value: str) -> str:
        return value.upper()

    @field_validator("jwt", "db", "password", mode="before")
    @classmethod
    def empty_section_means_defaults(cls, value):
        return {} if value is None else value

    @model_validator(mode="after")
    def check_production_secret(self):
        secret = self.jwt.secret
        if not self.DEV_MODE and (len(secret) < 32 or secret == DEV_SECRET):
            raise ValueError("JwtSettings.Secret must be at least 32 characters in production mode")
        return self


def load_settings() -> Settings:
    """Bind settings from the JSON file, .env and the process environment."""
    return Settings()


__all__ = ["JwtSettings", "DbSettings", "PasswordPolicy", "Settings", "load_settings", "DEV_SECRET"]
