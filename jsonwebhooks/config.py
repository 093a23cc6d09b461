"""Configuration management for jsonwebhooks."""

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError, ParseError
from .json_path import decode_json


DEFAULT_CONFIG_PATH = "config.json"


def parse_body_fragment(fragment: Optional[str]) -> Dict[str, Any]:
    """Decode a body fragment string into a dict. None or "" means no fragment."""
    if not fragment:
        return {}
    value = decode_json(fragment)
    if not isinstance(value, dict):
        raise ParseError(f"body fragment must be a JSON object, got {type(value).__name__}")
    return value


class QuerySpec(BaseModel):
    """One monitored condition and where to report it."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1, description="Unique query name, used as state key and in logs")
    query_url: str = Field(alias="queryUrl", min_length=1, description="URL polled for the condition")
    query_headers: Dict[str, str] = Field(
        default_factory=dict, alias="queryHeaders", description="Static headers sent with the poll"
    )
    json_query: str = Field(alias="jsonQuery", min_length=1, description="JSONPath applied to the response")
    invert: bool = Field(default=False, strict=True, description="Negate the matched value's truthiness")
    webhook_url: str = Field(alias="webhookUrl", min_length=1, description="Webhook target")
    webhook_method: Literal["GET", "POST"] = Field(alias="webhookMethod", description="Webhook HTTP method")
    resend: bool = Field(default=False, strict=True, description="Dispatch on every poll, not only on change")
    common_body: Optional[str] = Field(default=None, alias="commonBody")
    body_when_occurs: Optional[str] = Field(default=None, alias="bodyWhenOccurs")
    body_when_not_occurs: Optional[str] = Field(default=None, alias="bodyWhenNotOccurs")
    interval: float = Field(gt=0, strict=True, allow_inf_nan=False, description="Poll period in milliseconds")

    @field_validator("common_body", "body_when_occurs", "body_when_not_occurs")
    @classmethod
    def _body_is_json_object(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            parse_body_fragment(value)
        return value

    @property
    def interval_seconds(self) -> float:
        return self.interval / 1000.0


class WebhooksConfig(BaseModel):
    """Top-level configuration."""

    queries: List[QuerySpec] = Field(min_length=1, description="Queries to monitor")
    log_level: str = Field(default="INFO", description="Logging level")
    http_timeout_seconds: Optional[float] = Field(
        default=None, gt=0, description="Timeout for query and webhook requests; None waits forever"
    )

    @model_validator(mode="after")
    def _unique_names(self) -> "WebhooksConfig":
        seen = set()
        for query in self.queries:
            if query.name in seen:
                raise ValueError(f"duplicate query name: {query.name!r}")
            seen.add(query.name)
        return self


def _read_config_file(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Error reading configuration file {path}: {e}") from e

    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            return yaml.safe_load(text)
        return json.loads(text)
    except (yaml.YAMLError, ValueError) as e:
        raise ConfigurationError(f"Error parsing configuration file {path}: {e}") from e


def load_config(config_path: Optional[str] = None) -> WebhooksConfig:
    """Load configuration from file, then apply environment overrides."""
    if config_path is None:
        config_path = os.getenv("JSONWEBHOOKS_CONFIG", DEFAULT_CONFIG_PATH)

    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    config_data = _read_config_file(path)
    if not isinstance(config_data, dict):
        raise ConfigurationError("Configuration file is not a valid JSON object.")
    bad_keys = [key for key in config_data if not isinstance(key, str)]
    if bad_keys:
        raise ConfigurationError(f"Configuration keys must be strings, got: {bad_keys!r}")
    if "queries" not in config_data:
        raise ConfigurationError("Configuration file is missing the 'queries' field.")

    env_overrides = {
        "log_level": os.getenv("LOG_LEVEL"),
        "http_timeout_seconds": os.getenv("JSONWEBHOOKS_HTTP_TIMEOUT"),
    }

    for key, value in env_overrides.items():
        if value is not None:
            if key == "http_timeout_seconds":
                try:
                    value = float(value)
                except ValueError as e:
                    raise ConfigurationError(f"JSONWEBHOOKS_HTTP_TIMEOUT must be a number: {value!r}") from e
            config_data[key] = value

    try:
        return WebhooksConfig.model_validate(config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}:\n{e}") from e
