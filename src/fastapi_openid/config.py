"""Middleware configuration, read from ``OPENID_*`` environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class OpenIDSettings(BaseSettings):
    timeout: float = Field(
        default=10.0,
        gt=0,
        description="Seconds to wait for the identity provider during begin and complete",
    )
    challenge_status: int = Field(
        default=401,
        description="Status code of application responses that request authentication",
    )
    challenge_header: str = Field(
        default="WWW-Authenticate",
        description="Header carrying the OpenID challenge parameters",
    )
    store_path: Path | None = Field(
        default=None,
        description="Directory for the file based association store (in-memory when unset)",
    )

    model_config = SettingsConfigDict(
        env_prefix="OPENID_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> OpenIDSettings:
    return OpenIDSettings()
