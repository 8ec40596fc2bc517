# cipherline_core/config.py
"""
Runtime configuration loaded from CIPHERLINE_* environment variables
(or a local .env file). Keyword arguments passed to Settings(...) win over
the environment, which wins over the defaults below.
"""

from __future__ import annotations
from typing import Any, Dict, Optional

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cipherline_core.constants import (
    DEFAULT_KEY_SIZE, SUPPORTED_KEY_SIZES, DEFAULT_TIMEOUT_S, KEY_CACHE_SIZE,
    RETRY_MAX_ATTEMPTS, RETRY_BASE_DELAY_S, RETRY_MULTIPLIER,
    NOTARY_CHANNEL, NOTARY_CHAINCODE,
)
from cipherline_core.retry import RetryPolicy

STORAGE_PROVIDERS = ("memory", "sqlite", "rest")
NOTARY_MODES = ("local", "http", "disabled")


class Settings(BaseSettings):
    """Settings for one device."""

    model_config = SettingsConfigDict(
        env_prefix="CIPHERLINE_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    # Storage
    storage_provider: str = "sqlite"
    sqlite_path: str = Field("db/cipherline.db", validation_alias=AliasChoices("sqlite_path", "CIPHERLINE_DB_PATH"))
    rest_url: Optional[str] = None
    rest_key: Optional[str] = None

    # Notarization
    notary: str = "local"
    notary_url: str = "http://localhost:8080/api/fabric"
    notary_channel: str = NOTARY_CHANNEL
    notary_chaincode: str = NOTARY_CHAINCODE

    # Keys and network
    key_size: int = DEFAULT_KEY_SIZE
    timeout_s: float = Field(DEFAULT_TIMEOUT_S, gt=0)
    retry_attempts: int = Field(RETRY_MAX_ATTEMPTS, ge=1)
    retry_base_delay_s: float = Field(RETRY_BASE_DELAY_S, ge=0)
    retry_multiplier: float = Field(RETRY_MULTIPLIER, ge=1)
    key_cache_size: int = Field(KEY_CACHE_SIZE, ge=1)

    # Device-local state; None keeps it in memory
    vault_path: Optional[str] = None
    outbox_path: Optional[str] = None

    require_verified_email: bool = Field(
        True, validation_alias=AliasChoices("require_verified_email", "CIPHERLINE_REQUIRE_VERIFIED")
    )
    log_level: str = "INFO"

    @field_validator("storage_provider", "notary", mode="before")
    @classmethod
    def lower_case(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("storage_provider")
    @classmethod
    def known_provider(cls, v: str) -> str:
        if v not in STORAGE_PROVIDERS:
            raise ValueError(f"Unknown storage provider: {v}")
        return v

    @field_validator("notary")
    @classmethod
    def known_notary(cls, v: str) -> str:
        if v not in NOTARY_MODES:
            raise ValueError(f"Unknown notary mode: {v}")
        return v

    @field_validator("key_size")
    @classmethod
    def supported_key_size(cls, v: int) -> int:
        if v not in SUPPORTED_KEY_SIZES:
            raise ValueError(f"Unsupported key size {v}; use one of {SUPPORTED_KEY_SIZES}")
        return v

    @field_validator("log_level")
    @classmethod
    def upper_case(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def rest_needs_url(self) -> "Settings":
        if self.storage_provider == "rest" and not self.rest_url:
            raise ValueError("rest storage provider requires CIPHERLINE_REST_URL")
        return self

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_attempts,
            base_delay=self.retry_base_delay_s,
            multiplier=self.retry_multiplier,
        )

    def storage_config(self) -> Dict[str, Any]:
        """Config dict understood by load_storage_provider()."""
        return {
            "provider": self.storage_provider,
            "sqlite_path": self.sqlite_path,
            "rest_url": self.rest_url,
            "rest_key": self.rest_key,
            "timeout": self.timeout_s,
        }

    def notary_config(self) -> Dict[str, Any]:
        """Config dict understood by notary_factory()."""
        return {
            "mode": self.notary,
            "url": self.notary_url,
            "channel": self.notary_channel,
            "chaincode": self.notary_chaincode,
            "timeout": self.timeout_s,
        }
