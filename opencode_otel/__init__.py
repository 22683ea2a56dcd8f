"""
opencode-otel: OpenTelemetry metrics and log events for OpenCode.

Translates host lifecycle events (sessions, chat turns, tool calls, file
edits, errors) into the Claude Code telemetry surface, in either the native
"opencode" profile or the schema-mirroring "claude-code" profile.
"""

from opencode_otel.config import OtelConfig, PluginSettings, load_config
from opencode_otel.errors import ConfigError, ConfigValidationError, OtelPluginError
from opencode_otel.hooks import HookState, ToggleResult, create_hook_state, handle_event
from opencode_otel.plugin import OtelPlugin, create_plugin
from opencode_otel.profiles import ProfileConfig, TelemetryProfile, profile_for
from opencode_otel.telemetry import PLUGIN_VERSION, TelemetryContext, init_telemetry

__version__ = PLUGIN_VERSION

__all__ = [
    # Configuration
    "OtelConfig",
    "PluginSettings",
    "load_config",
    "ConfigError",
    "ConfigValidationError",
    "OtelPluginError",
    # Profiles
    "ProfileConfig",
    "TelemetryProfile",
    "profile_for",
    # Telemetry pipeline
    "TelemetryContext",
    "init_telemetry",
    # Translator
    "HookState",
    "ToggleResult",
    "create_hook_state",
    "handle_event",
    # Host adapter
    "OtelPlugin",
    "create_plugin",
]
