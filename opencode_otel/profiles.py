"""
Telemetry profiles.

A profile bundles the naming and encoding rules that make the emitted metrics
and log events match a target wire-format convention. "opencode" emits native
OpenTelemetry types under the opencode names; "claude-code" mirrors Claude
Code's schema, where every custom event attribute travels as a string and no
session.created log event exists.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet


class TelemetryProfile(str, Enum):
    """Profile identity as it appears in the config file."""

    OPENCODE = "opencode"
    CLAUDE_CODE = "claude-code"


@dataclass(frozen=True)
class ProfileConfig:
    """Immutable naming/encoding rules for one profile."""

    profile: TelemetryProfile
    service_name: str
    prefix: str
    meter_name: str
    logger_name: str
    stringify_event_numbers: bool
    suppressed_events: FrozenSet[str]
    arch_map: Dict[str, str]

    def metric_name(self, name: str) -> str:
        return f"{self.prefix}.{name}"

    def event_name(self, name: str) -> str:
        return f"{self.prefix}.{name}"

    def suppresses(self, event_name: str) -> bool:
        return event_name in self.suppressed_events


# Python's platform.machine() values mapped to the Go-style GOARCH values
# that Claude Code reports in host.arch.
GO_ARCH_MAP: Dict[str, str] = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i686": "386",
    "x86": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm",
    "arm": "arm",
}

_PROFILES: Dict[TelemetryProfile, ProfileConfig] = {
    TelemetryProfile.OPENCODE: ProfileConfig(
        profile=TelemetryProfile.OPENCODE,
        service_name="opencode",
        prefix="opencode",
        meter_name="com.opencode.telemetry",
        logger_name="com.opencode.telemetry",
        stringify_event_numbers=False,
        suppressed_events=frozenset(),
        arch_map={},
    ),
    TelemetryProfile.CLAUDE_CODE: ProfileConfig(
        profile=TelemetryProfile.CLAUDE_CODE,
        service_name="claude-code",
        prefix="claude_code",
        meter_name="com.anthropic.claude_code",
        logger_name="com.anthropic.claude_code",
        stringify_event_numbers=True,
        suppressed_events=frozenset({"session.created"}),
        arch_map=GO_ARCH_MAP,
    ),
}


def profile_for(profile: TelemetryProfile) -> ProfileConfig:
    """Return the fixed rules for a profile.

    Accepts either the enum member or its config-file string value.
    """
    return _PROFILES[TelemetryProfile(profile)]
