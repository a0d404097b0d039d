"""
Configuration loading and validation for poller pipelines.

Every pipeline is validated into a frozen :class:`PollerConfig` before any
scheduling begins. The deprecated ``interval`` option and the ``schedule``
mapping are folded into a single ``trigger`` at parse time, so the scheduler
only ever sees one of :class:`IntervalSchedule` or :class:`ScheduleSpec`.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union
from urllib.parse import urlsplit

import yaml
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

logger = logging.getLogger(__name__)

SCHEDULE_TYPES = ("cron", "every", "at", "in")
DEFAULT_NAMESPACE = "_"
DEFAULT_METADATA_TARGET = "@metadata"

_MSG_INVALID_SCHEDULE = (
    "Invalid config. schedule hash must contain exactly one of the "
    "following keys - cron, at, every or in"
)


class ConfigurationError(ValueError):
    """Invalid configuration. Fatal at startup."""


class IntervalSchedule(BaseModel):
    """Fixed-interval polling (deprecated ``interval`` option)."""

    model_config = ConfigDict(frozen=True)

    seconds: float


class ScheduleSpec(BaseModel):
    """One declarative schedule: a kind from cron/every/at/in and its value."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["cron", "every", "at", "in"]
    value: str

    @classmethod
    def from_mapping(cls, schedule: Any) -> "ScheduleSpec":
        if not isinstance(schedule, dict) or len(schedule) != 1:
            raise ConfigurationError(_MSG_INVALID_SCHEDULE)
        kind, value = next(iter(schedule.items()))
        if kind not in SCHEDULE_TYPES:
            raise ConfigurationError(_MSG_INVALID_SCHEDULE)
        if value is None or not str(value).strip():
            raise ConfigurationError(f"Invalid config. schedule '{kind}' has no value")
        return cls(kind=kind, value=str(value).strip())


Trigger = Union[IntervalSchedule, ScheduleSpec]


class SinkConfig(BaseModel):
    """A sink reference: discovered class path plus constructor kwargs."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    class_path: str = Field(validation_alias=AliasChoices("class", "class_path"))
    kwargs: Dict[str, Any] = Field(default_factory=dict)


class PollerConfig(BaseModel):
    """Validated configuration of one activation poller."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    name: str = "openwhisk"
    host: str = Field(validation_alias=AliasChoices("host", "hostname"))
    principal: str = Field(validation_alias=AliasChoices("principal", "username"))
    secret: str = Field(validation_alias=AliasChoices("secret", "password"), repr=False)
    namespace: str = DEFAULT_NAMESPACE
    trigger: Trigger
    target: Optional[str] = None
    metadata_target: Optional[str] = Field(
        default=DEFAULT_METADATA_TARGET,
        validation_alias=AliasChoices("metadata_target", "metadataTarget"),
    )
    codec: str = "json"
    request_timeout: float = Field(default=60.0, gt=0)
    max_retries: int = Field(default=0, ge=0)
    sinks: List[SinkConfig] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _resolve_trigger(cls, data: Any) -> Any:
        """Fold interval/schedule into exactly one trigger."""
        if not isinstance(data, dict) or "trigger" in data:
            return data

        data = dict(data)
        interval = data.pop("interval", None)
        schedule = data.pop("schedule", None)

        if interval is None and schedule is None:
            raise ConfigurationError("Invalid config. Neither interval nor schedule was specified.")
        if interval is not None and schedule is not None:
            raise ConfigurationError("Invalid config. Specify only interval or schedule. Not both.")

        if schedule is not None:
            data["trigger"] = ScheduleSpec.from_mapping(schedule)
            return data

        if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
            raise ConfigurationError(f"Invalid config. interval must be a positive number of seconds, got {interval!r}")
        logger.warning("The 'interval' option is deprecated, use 'schedule' instead")
        data["trigger"] = IntervalSchedule(seconds=float(interval))
        return data

    @field_validator("host", "principal", "secret")
    @classmethod
    def _required_text(cls, value: str) -> str:
        if not value or not value.strip():
            raise ConfigurationError("must not be empty")
        return value.strip()

    @field_validator("host")
    @classmethod
    def _valid_host(cls, value: str) -> str:
        candidate = value if "://" in value else f"https://{value}"
        parts = urlsplit(candidate)
        if any(ch.isspace() for ch in value) or parts.scheme not in ("http", "https") or not parts.hostname:
            raise ConfigurationError(f"Invalid host {value!r}")
        return value.rstrip("/")

    @field_validator("namespace", mode="before")
    @classmethod
    def _valid_namespace(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return DEFAULT_NAMESPACE
        if isinstance(value, str) and ("/" in value or any(ch.isspace() for ch in value)):
            raise ConfigurationError(f"Invalid namespace {value!r}")
        return value

    @field_validator("sinks", mode="before")
    @classmethod
    def _sink_shorthand(cls, value: Any) -> Any:
        # "module.Class" is shorthand for {"class": "module.Class"}
        if isinstance(value, list):
            return [{"class": entry} if isinstance(entry, str) else entry for entry in value]
        return value


def _format_validation_error(exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or "config"
        msg = err.get("msg", "invalid value")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        problems.append(f"{loc}: {msg}")
    return "; ".join(problems)


def build_config(data: Dict[str, Any]) -> PollerConfig:
    """Validate one pipeline's raw settings into a :class:`PollerConfig`."""
    try:
        return PollerConfig.model_validate(data)
    except ValidationError as e:
        name = data.get("name", "unnamed") if isinstance(data, dict) else "unnamed"
        raise ConfigurationError(f"Pipeline '{name}': {_format_validation_error(e)}") from e


def _expand_env(value: Any) -> Any:
    """Expand ${VAR} references in every string of a loaded YAML tree."""
    if isinstance(value, str):
        expanded = os.path.expandvars(value)
        if "${" in expanded:
            logger.warning(f"Unresolved environment reference in config value: {expanded}")
        return expanded
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    return value


def load_pipelines_config(config_path: str = "pipelines.yml") -> List[Dict[str, Any]]:
    """Load pipeline configuration from YAML file."""
    path = Path(config_path)

    if not path.exists():
        logger.warning(f"Pipeline config file not found: {config_path}")
        return []

    with path.open() as f:
        data = yaml.safe_load(f) or {}

    if "pipelines" not in data:
        logger.error(f"No 'pipelines' key found in {config_path}")
        return []

    pipelines = _expand_env(data["pipelines"])

    # Convert dict format to list format
    if isinstance(pipelines, dict):
        result = []
        for name, config in pipelines.items():
            config = dict(config or {})
            config["name"] = name
            result.append(config)
        return result

    return list(pipelines or [])
