"""
Tests for telemetry profiles.
"""

import pytest

from opencode_otel.profiles import GO_ARCH_MAP, TelemetryProfile, profile_for


class TestProfileFor:
    def test_opencode(self):
        profile = profile_for(TelemetryProfile.OPENCODE)
        assert profile.service_name == "opencode"
        assert profile.prefix == "opencode"
        assert profile.meter_name == "com.opencode.telemetry"
        assert profile.stringify_event_numbers is False
        assert not profile.suppresses("session.created")
        assert profile.arch_map == {}

    def test_claude_code(self):
        profile = profile_for(TelemetryProfile.CLAUDE_CODE)
        assert profile.service_name == "claude-code"
        assert profile.prefix == "claude_code"
        assert profile.meter_name == "com.anthropic.claude_code"
        assert profile.logger_name == "com.anthropic.claude_code"
        assert profile.stringify_event_numbers is True
        assert profile.suppresses("session.created")
        assert not profile.suppresses("user_prompt")
        assert profile.arch_map is GO_ARCH_MAP

    def test_accepts_string_value(self):
        assert profile_for("claude-code") is profile_for(TelemetryProfile.CLAUDE_CODE)

    def test_unknown_profile(self):
        with pytest.raises(ValueError):
            profile_for("datadog")

    def test_names_are_prefixed(self):
        profile = profile_for(TelemetryProfile.CLAUDE_CODE)
        assert profile.metric_name("token.usage") == "claude_code.token.usage"
        assert profile.event_name("api_request") == "claude_code.api_request"


@pytest.mark.parametrize(
    "machine,arch",
    [("x86_64", "amd64"), ("aarch64", "arm64"), ("arm64", "arm64"), ("i686", "386"), ("armv7l", "arm")],
)
def test_go_arch_map(machine, arch):
    assert GO_ARCH_MAP[machine] == arch
