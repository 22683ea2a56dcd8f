"""
Attribute rendering for metric data points and log events.

Every data point and event carries the base attribute set (user id, and
depending on config the session id, terminal type and app version). Log
events additionally carry a timestamp, the next sequence number and the
current prompt id. In the claude-code profile numeric event attributes are
sent as strings, since Claude Code serializes all custom event attributes
that way.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from opencode_otel.profiles import ProfileConfig
from opencode_otel.state import SequenceTracker

Attributes = Dict[str, Any]


def _format_number(value: Any) -> str:
    # Integral floats render without a fractional part ("1000", not "1000.0").
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def stringify_numbers(attrs: Attributes) -> Attributes:
    """Convert int/float values to their decimal string form. Booleans are left alone."""
    return {
        key: _format_number(value)
        if isinstance(value, (int, float)) and not isinstance(value, bool)
        else value
        for key, value in attrs.items()
    }


def encode(attrs: Attributes, profile: ProfileConfig) -> Attributes:
    """Apply the profile's event attribute encoding. Only for log events."""
    if profile.stringify_event_numbers:
        return stringify_numbers(attrs)
    return dict(attrs)


def _utc_timestamp() -> str:
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class AttributeRenderer:
    """Builds the common attribute sets attached to all telemetry."""

    def __init__(
        self,
        user_id: str,
        sequence: SequenceTracker,
        terminal_type: Optional[str] = None,
        include_session_id: bool = True,
        include_version: bool = False,
        app_version: str = "",
        timestamp: Callable[[], str] = _utc_timestamp,
    ):
        self.user_id = user_id
        self.sequence = sequence
        self.terminal_type = terminal_type
        self.include_session_id = include_session_id
        self.include_version = include_version
        self.app_version = app_version
        self._timestamp = timestamp

    def base_attributes(self, session_id: Optional[str] = None) -> Attributes:
        attrs: Attributes = {"user.id": self.user_id}
        if session_id and self.include_session_id:
            attrs["session.id"] = session_id
        if self.terminal_type:
            attrs["terminal.type"] = self.terminal_type
        if self.include_version:
            attrs["app.version"] = self.app_version
        return attrs

    def event_attributes(self, session_id: Optional[str] = None) -> Attributes:
        """Base attributes plus timestamp, sequence number and prompt id.

        Consumes one sequence number per call, so call it exactly once per
        emitted log event.
        """
        attrs = self.base_attributes(session_id)
        attrs["event.timestamp"] = self._timestamp()
        attrs["event.sequence"] = self.sequence.next_sequence()
        prompt_id = self.sequence.current_correlation_id
        if prompt_id:
            attrs["prompt.id"] = prompt_id
        return attrs
