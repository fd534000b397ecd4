"""
Configuration — typed, validated settings loaded from environment/.env.

Only the composition root (main.py) reads these settings. The engine itself
receives issuer keys, ttl and timeouts as explicit arguments and never
touches the environment.

env_nested_delimiter="__" maps ISSUER__SEED → issuer.seed,
CREDENTIAL__TTL_SECONDS → credential.ttl_seconds, and so on.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the .env file relative to the project root (two levels above this file),
# so settings load correctly regardless of the working directory at runtime.
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class IssuerSettings(BaseModel):
    """
    The issuing authority's key pair.

    Generate one with scripts/generate_issuer_keys.py. The seed is the
    private signing material and stays a SecretStr until handed to the
    key provider.
    """

    public_id: str = Field(description="Issuer public id (starts with 'A')")
    seed: SecretStr = Field(description="Issuer seed (starts with 'SA')")

    @field_validator("public_id")
    @classmethod
    def validate_public_id(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith("A"):
            raise ValueError(f"Issuer public id must start with 'A', got {value[:1]!r}")
        return value

    @field_validator("seed")
    @classmethod
    def validate_seed(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value().strip().startswith("SA"):
            raise ValueError("Issuer seed must start with 'SA'")
        return SecretStr(value.get_secret_value().strip())


class CredentialSettings(BaseModel):
    """The subject a credential is issued for, and its lifetime."""

    subject: str = Field(default="john-doe", min_length=1, description="Subject identity")
    ttl_seconds: int = Field(default=30 * 60, ge=1, description="Credential lifetime")


class ProbeSettings(BaseModel):
    """What the scope probe tries and how long it waits for messages."""

    prohibited_pattern: str = Field(default="users.>", description="Subscription expected to be refused")
    timeout_ms: int = Field(default=1000, ge=1, description="Wait for the first message on the allowed topic")
    probe_broker: bool = Field(default=True, description="Forward locally denied operations to the broker")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class AppSettings(BaseSettings):
    """
    Root application settings — aggregates all sub-settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    issuer: IssuerSettings
    credential: CredentialSettings = Field(default_factory=lambda: CredentialSettings())
    probe: ProbeSettings = Field(default_factory=lambda: ProbeSettings())

    log_level: str = Field(default="INFO")
