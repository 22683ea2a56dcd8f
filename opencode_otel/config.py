"""
Configuration for opencode-otel.

Settings come from a JSON config file, validated with pydantic. The file is
located via (first found wins):
    $OPENCODE_OTEL_CONFIG_PATH   (env var override for the file path)
    ~/.config/opencode/otel.json (standard location)

Environment-level settings (the path override and LOG_LEVEL) use pydantic
BaseSettings so the usual env var parsing applies.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Dict, List, Literal, Optional, Tuple

from pydantic import AfterValidator, AnyUrl, BaseModel, ConfigDict, PositiveInt, TypeAdapter
from pydantic import ValidationError
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from opencode_otel.errors import ConfigError, ConfigValidationError
from opencode_otel.profiles import TelemetryProfile

logger = logging.getLogger(__name__)

ExporterType = Literal["otlp", "console", "none"]
OtelProtocol = Literal["grpc", "http/json", "http/protobuf"]
Temporality = Literal["delta", "cumulative"]

_url_adapter = TypeAdapter(AnyUrl)


def _check_url(value: str) -> str:
    # Validate as a URL but keep the caller's exact string (AnyUrl normalizes).
    _url_adapter.validate_python(value)
    return value


Url = Annotated[str, AfterValidator(_check_url)]


class PluginSettings(BaseSettings):
    """Process environment settings."""

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    opencode_otel_config_path: Optional[str] = None
    log_level: str = "INFO"


class OtelJsonConfig(BaseModel):
    """Shape of the JSON config file. Every field is optional."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    metrics_exporter: Optional[ExporterType] = None
    logs_exporter: Optional[ExporterType] = None
    protocol: Optional[OtelProtocol] = None
    endpoint: Optional[Url] = None
    metrics_endpoint: Optional[Url] = None
    logs_endpoint: Optional[Url] = None
    headers: Optional[Dict[str, str]] = None
    metric_export_interval_ms: Optional[PositiveInt] = None
    logs_export_interval_ms: Optional[PositiveInt] = None
    metrics_temporality: Optional[Temporality] = None
    resource_attributes: Optional[Dict[str, str]] = None
    log_user_prompts: Optional[bool] = None
    log_tool_details: Optional[bool] = None
    include_session_id: Optional[bool] = None
    include_version: Optional[bool] = None
    include_account_uuid: Optional[bool] = None
    telemetry_profile: Optional[TelemetryProfile] = None


class OtelConfig(BaseModel):
    """Fully resolved configuration, immutable for the process lifetime."""

    model_config = ConfigDict(frozen=True)

    endpoint: Url
    metrics_exporter: ExporterType = "otlp"
    logs_exporter: ExporterType = "otlp"
    protocol: OtelProtocol = "grpc"
    metrics_endpoint: Optional[Url] = None
    logs_endpoint: Optional[Url] = None
    headers: Dict[str, str] = {}
    metric_export_interval_ms: PositiveInt = 60000
    logs_export_interval_ms: PositiveInt = 5000
    metrics_temporality: Temporality = "delta"
    resource_attributes: Dict[str, str] = {}
    log_user_prompts: bool = False
    log_tool_details: bool = False
    include_session_id: bool = True
    include_version: bool = False
    include_account_uuid: bool = True
    telemetry_profile: TelemetryProfile = TelemetryProfile.OPENCODE


def _issues(error: ValidationError) -> List[Tuple[str, str]]:
    issues = []
    for err in error.errors():
        path = ".".join(str(part) for part in err["loc"]) or "(root)"
        issues.append((path, err["msg"]))
    return issues


def config_candidates(settings: PluginSettings, home: Optional[Path] = None) -> List[Path]:
    """Config file paths to try, in priority order."""
    candidates = []
    if settings.opencode_otel_config_path:
        candidates.append(Path(settings.opencode_otel_config_path))
    candidates.append((home or Path.home()) / ".config" / "opencode" / "otel.json")
    return candidates


def load_json_config(settings: PluginSettings, home: Optional[Path] = None) -> OtelJsonConfig:
    """Read and validate the first config file found.

    Returns an empty config if no candidate file can be read.

    Raises:
        ConfigError: The file is not valid JSON
        ConfigValidationError: The file has invalid fields
    """
    for path in config_candidates(settings, home):
        try:
            raw = path.read_text(encoding="utf-8")
        except OSError:
            continue

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigError(str(path), str(e)) from e

        try:
            config = OtelJsonConfig.model_validate(parsed)
        except ValidationError as e:
            raise ConfigValidationError(str(path), _issues(e)) from e

        logger.debug(f"Loaded config from {path}")
        return config

    return OtelJsonConfig()


def load_config(
    settings: Optional[PluginSettings] = None, home: Optional[Path] = None
) -> Optional[OtelConfig]:
    """Load and resolve the plugin configuration.

    Returns None if no endpoint is configured, which disables telemetry.

    Raises:
        ConfigError: The config file is not valid JSON
        ConfigValidationError: The config file or the resolved config is invalid
    """
    settings = settings or PluginSettings()
    json_config = load_json_config(settings, home)

    if not json_config.endpoint:
        return None

    # Unset fields fall back to OtelConfig's defaults.
    values = json_config.model_dump(exclude_none=True)
    try:
        return OtelConfig.model_validate(values)
    except ValidationError as e:
        raise ConfigValidationError("config file", _issues(e)) from e
