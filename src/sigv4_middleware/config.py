"""Configuration loading and Pydantic models for the SigV4 middleware."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, SecretStr, field_validator


class SigningConfig(BaseModel):
    """Credentials and scope used to sign forwarded requests.

    Required values must be non-empty so a misconfigured deployment fails at
    startup instead of producing headers the remote service rejects.
    """

    access_key: str = Field(min_length=1)
    secret_key: SecretStr
    session_token: str | None = None
    service: str = Field(min_length=1)
    region: str = Field(min_length=1)
    endpoint: str = Field(min_length=1)
    canonicalize: bool = False
    cache_signing_keys: bool = False

    @field_validator("secret_key")
    @classmethod
    def secret_key_not_empty(cls, value: SecretStr) -> SecretStr:
        if not value.get_secret_value():
            raise ValueError("secret_key must not be empty")
        return value


class LoggingConfig(BaseModel):
    """Log level and output format."""

    level: str = "INFO"
    format: str = "text"


class ObservabilityConfig(BaseModel):
    """Prometheus metrics toggle."""

    metrics: bool = False


class SigV4MiddlewareConfig(BaseModel):
    """Top-level configuration."""

    signing: SigningConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


def _parse_signing(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the signing section from YAML data into a dict for Pydantic.

    Missing keys are passed through as empty strings so Pydantic reports
    every absent required value at once.
    """
    if data is None:
        data = {}
    return {
        "access_key": data.get("access_key", ""),
        "secret_key": data.get("secret_key", ""),
        "session_token": data.get("session_token"),
        "service": data.get("service", ""),
        "region": data.get("region", ""),
        "endpoint": data.get("endpoint", ""),
        "canonicalize": data.get("canonicalize", False),
        "cache_signing_keys": data.get("cache_signing_keys", False),
    }


def _parse_logging(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the logging section from YAML data."""
    if data is None:
        return {}
    return {
        "level": data.get("level", "INFO"),
        "format": data.get("format", "text"),
    }


def _parse_observability(data: dict[str, Any] | None) -> dict[str, Any]:
    """Parse the observability section from YAML data."""
    if data is None:
        return {}
    return {"metrics": data.get("metrics", False)}


def load_config(path: Path) -> SigV4MiddlewareConfig:
    """Load a SigV4MiddlewareConfig from a YAML file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        A fully populated SigV4MiddlewareConfig validated by Pydantic.

    Raises:
        FileNotFoundError: If the config file does not exist.
        yaml.YAMLError: If the file is not valid YAML.
        pydantic.ValidationError: If a required signing value is missing or empty.
    """
    with open(path, "r") as fh:
        raw: dict[str, Any] = yaml.safe_load(fh) or {}

    return SigV4MiddlewareConfig(
        signing=SigningConfig(**_parse_signing(raw.get("signing"))),
        logging=LoggingConfig(**_parse_logging(raw.get("logging"))),
        observability=ObservabilityConfig(**_parse_observability(raw.get("observability"))),
    )
