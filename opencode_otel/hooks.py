"""
Event translator: turns host events into OpenTelemetry metrics and log events.

Every host hook is folded into a ``{"type": ..., "properties": ...}`` event by
the plugin adapter and routed through handle_event(). Handlers are plain
functions over an explicit HookState, so a fresh state per test gives full
isolation.

Synthetic event types produced by the adapter:
- "command.execute.before" - slash command interception (/otel toggle)
- "tool.execute.before"    - tool call start
- "tool.execute.after"     - tool call end
- "chat.message"           - user prompt

Server-pushed event types (forwarded as-is):
- "session.created", "session.idle", "session.status", "session.error",
  "session.diff", "file.edited", "message.updated", "message.part.updated",
  "permission.replied"

Unknown types are ignored.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from opencode_otel import extract
from opencode_otel.attributes import AttributeRenderer, Attributes, encode
from opencode_otel.config import OtelConfig
from opencode_otel.runtime import detect_terminal, get_user_id
from opencode_otel.state import (
    Clock,
    MessageDeduplicator,
    PendingToolCallRegistry,
    SequenceTracker,
    SessionRegistry,
)
from opencode_otel.telemetry import PLUGIN_VERSION, TelemetryContext

logger = logging.getLogger(__name__)

# Slash command intercepted for the runtime toggle.
OTEL_COMMAND_NAME = "otel"

SHELL_TOOL = "bash"
LINE_TAG_BY_TOOL = {"write": "added", "edit": "modified"}
ACCEPT_RESPONSES = ("once", "always")
REDACTED_TOOL_NAME = "redacted"
MAX_TOOL_ARGS_LENGTH = 2048
MAX_PROMPT_LENGTH = 4096


@dataclass
class ToggleResult:
    """Returned when the /otel command was handled, so the host can notify the user."""

    enabled: bool


@dataclass
class HookState:
    """All mutable translator state for one process."""

    config: OtelConfig
    telemetry: TelemetryContext
    renderer: AttributeRenderer
    sequence: SequenceTracker
    sessions: SessionRegistry
    tool_calls: PendingToolCallRegistry
    messages: MessageDeduplicator = field(default_factory=MessageDeduplicator)
    enabled: bool = True
    host_version: Optional[str] = None

    def common_attributes(self, session_id: Optional[str] = None, **extra: Any) -> Attributes:
        """Metric data point attributes. Never profile-encoded."""
        attrs = self.renderer.base_attributes(session_id)
        attrs.update(extra)
        return attrs

    def emit(self, event_name: str, session_id: Optional[str], payload: Attributes) -> None:
        """Emit a log event unless the profile suppresses it."""
        if self.telemetry.profile.suppresses(event_name):
            logger.debug(f"{event_name} suppressed by profile {self.telemetry.profile.profile.value}")
            return
        attrs = self.renderer.event_attributes(session_id)
        attrs.update(payload)
        self.telemetry.emit_event(event_name, encode(attrs, self.telemetry.profile))


def create_hook_state(
    config: OtelConfig,
    telemetry: TelemetryContext,
    user_id: Optional[str] = None,
    terminal_type: Optional[str] = None,
    clock: Clock = time.time,
) -> HookState:
    """Build translator state.

    Args:
        config: Resolved plugin configuration
        telemetry: Metric/log pipeline to emit into
        user_id: Anonymous user id (read from ~/.claude.json when omitted)
        terminal_type: Terminal label (detected from the environment when omitted)
        clock: Seconds clock for session activity and tool durations
    """
    sequence = SequenceTracker()
    renderer = AttributeRenderer(
        user_id=user_id or get_user_id(),
        sequence=sequence,
        terminal_type=terminal_type or detect_terminal(),
        include_session_id=config.include_session_id,
        include_version=config.include_version,
        app_version=PLUGIN_VERSION,
    )
    return HookState(
        config=config,
        telemetry=telemetry,
        renderer=renderer,
        sequence=sequence,
        sessions=SessionRegistry(clock),
        tool_calls=PendingToolCallRegistry(clock),
    )


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


def _session_created(state: HookState, props: Mapping[str, Any]) -> None:
    session_id = extract.created_session_id(props)
    if not session_id:
        return
    info = extract.as_dict(props.get("info"))
    state.sessions.upsert(session_id)

    version = info.get("version")
    if not state.host_version and isinstance(version, str) and version:
        state.host_version = version
        state.renderer.app_version = version

    state.telemetry.metrics.session_count.add(1, state.common_attributes(session_id))
    state.emit("session.created", session_id, {"session.title": info.get("title") or ""})
    logger.debug(f"session.created: {session_id}")


def _session_idle(state: HookState, props: Mapping[str, Any]) -> None:
    session_id = extract.session_id(props)
    session = state.sessions.get(session_id) if session_id else None
    if session is None:
        return
    previous = session.last_activity_at
    state.sessions.touch(session_id)
    active_seconds = session.last_activity_at - previous
    if active_seconds > 0:
        state.telemetry.metrics.active_time.add(
            active_seconds, state.common_attributes(session_id)
        )
        logger.debug(f"active_time for {session_id}: {active_seconds:.3f}s")


def _session_status(state: HookState, props: Mapping[str, Any]) -> None:
    session_id = extract.session_id(props)
    if session_id:
        state.sessions.touch(session_id)


def _session_error(state: HookState, props: Mapping[str, Any]) -> None:
    error = props.get("error")
    if not isinstance(error, dict) or not error:
        return
    payload = extract.error_attributes(error)
    state.emit("api_error", props.get("sessionID"), payload)
    logger.debug(f"api_error emitted (session.error): {payload['error.name']}")


def _session_diff(state: HookState, props: Mapping[str, Any]) -> None:
    counts = extract.diff_line_counts(props)
    if counts is None:
        return
    _add_line_counts(state, props.get("sessionID"), *counts)


# ---------------------------------------------------------------------------
# Lines of code
# ---------------------------------------------------------------------------


def _add_line_counts(
    state: HookState, session_id: Optional[str], added: float, removed: float
) -> None:
    lines = state.telemetry.metrics.lines_of_code
    if added > 0:
        lines.add(added, state.common_attributes(session_id, type="added"))
    if removed > 0:
        lines.add(removed, state.common_attributes(session_id, type="removed"))


def _file_edited(state: HookState, props: Mapping[str, Any]) -> None:
    _add_line_counts(state, None, *extract.edited_line_counts(props))


# ---------------------------------------------------------------------------
# Model requests
# ---------------------------------------------------------------------------


def _message_updated(state: HookState, props: Mapping[str, Any]) -> None:
    message = extract.as_dict(props.get("info"))
    if message.get("role") != "assistant":
        return
    tokens = extract.as_dict(message.get("tokens"))
    time_info = extract.as_dict(message.get("time"))
    if not tokens or time_info.get("completed") is None:
        return
    if not state.messages.first_time(message.get("id") or ""):
        return

    session_id = message.get("sessionID")
    model = message.get("modelID") or "unknown"
    metrics = state.telemetry.metrics

    counts = extract.token_counts(tokens)
    for token_type, count in counts.items():
        if count:
            metrics.token_usage.add(
                count, state.common_attributes(session_id, type=token_type, model=model)
            )

    cost = extract.as_number(message.get("cost"))
    if cost > 0:
        metrics.cost_usage.add(cost, state.common_attributes(session_id, model=model))

    speed = message.get("speed")
    state.emit(
        "api_request",
        session_id,
        {
            "model": model,
            "input_tokens": counts["input"],
            "output_tokens": counts["output"],
            "cache_read_tokens": counts["cacheRead"],
            "cache_creation_tokens": counts["cacheCreation"],
            "cost_usd": cost,
            "duration_ms": extract.message_duration_ms(time_info),
            "speed": speed if isinstance(speed, str) and speed else "normal",
        },
    )

    error = message.get("error")
    if isinstance(error, dict) and error:
        state.emit("api_error", session_id, extract.error_attributes(error))

    logger.debug(
        f"api_request emitted: model={model} input={counts['input']} "
        f"output={counts['output']} cost={cost}"
    )


def _message_part_updated(state: HookState, props: Mapping[str, Any]) -> None:
    part = extract.retry_part(props)
    if part.get("type") != "retry":
        return
    error = extract.as_dict(part.get("error"))
    payload = extract.error_attributes(error, default_name="APIError")
    payload["attempt"] = part.get("attempt") or 0
    state.emit("api_error", part.get("sessionID") or props.get("sessionID"), payload)
    logger.debug(f"api_error emitted (retry part): attempt={payload['attempt']}")


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


def _permission_replied(state: HookState, props: Mapping[str, Any]) -> None:
    response = props.get("response")
    decision = "accept" if response in ACCEPT_RESPONSES else "reject"
    state.telemetry.metrics.tool_decision.add(
        1, state.common_attributes(props.get("sessionID"), decision=decision)
    )
    logger.debug(f"permission.replied: {props.get('permissionID')} {response} -> {decision}")


def _tool_execute_before(state: HookState, props: Mapping[str, Any]) -> None:
    call_id = props.get("callID")
    if not call_id:
        logger.debug("tool.execute.before without callID, not tracked")
        return
    state.tool_calls.begin(call_id, props.get("tool") or "", props.get("args"))


def _tool_execute_after(state: HookState, props: Mapping[str, Any]) -> None:
    tool = props.get("tool") or ""
    session_id = props.get("sessionID")
    args = props.get("args")
    output = props.get("output")
    output_text = output if isinstance(output, str) else ""
    metrics = state.telemetry.metrics

    result = state.tool_calls.end(props.get("callID")) if props.get("callID") else None
    duration_ms = result.elapsed_ms if result else 0

    if tool == SHELL_TOOL:
        command = extract.shell_command(args)
        if command:
            if extract.is_commit(command):
                metrics.commit_count.add(1, state.common_attributes(session_id))
            if extract.is_pull_request(command):
                metrics.pull_request_count.add(1, state.common_attributes(session_id))

    line_tag = LINE_TAG_BY_TOOL.get(tool)
    if line_tag:
        # Heuristic: session.diff is the authoritative line count.
        metrics.lines_of_code.add(
            len(output_text.split("\n")), state.common_attributes(session_id, type=line_tag)
        )

    log_details = state.config.log_tool_details
    payload: Attributes = {
        "tool_name": tool if log_details else REDACTED_TOOL_NAME,
        "duration_ms": duration_ms,
        "success": "Error" not in output_text,
    }
    if log_details:
        payload["tool_args"] = json.dumps(
            args if args is not None else {},
            separators=(",", ":"),
            ensure_ascii=False,
            default=str,
        )[:MAX_TOOL_ARGS_LENGTH]
        payload["tool_result_size_bytes"] = len(output_text.encode("utf-8"))

    state.emit("tool_result", session_id, payload)
    logger.debug(f"tool_result emitted: {tool} {duration_ms}ms")


# ---------------------------------------------------------------------------
# User prompts
# ---------------------------------------------------------------------------


def _chat_message(state: HookState, props: Mapping[str, Any]) -> None:
    text = extract.prompt_text(props.get("parts"))
    state.sequence.new_correlation_id()

    payload: Attributes = {"prompt_length": len(text)}
    agent = props.get("agent")
    if agent:
        payload["agent"] = agent
    model = props.get("model")
    if isinstance(model, dict) and model:
        if model.get("providerID"):
            payload["model.provider"] = model["providerID"]
        if model.get("modelID"):
            payload["model.id"] = model["modelID"]
    if state.config.log_user_prompts:
        payload["prompt"] = text[:MAX_PROMPT_LENGTH]

    state.emit("user_prompt", props.get("sessionID"), payload)
    logger.debug(f"user_prompt emitted: length={len(text)} agent={agent}")


# ---------------------------------------------------------------------------
# /otel command
# ---------------------------------------------------------------------------


def handle_command(state: HookState, props: Mapping[str, Any]) -> Optional[ToggleResult]:
    """Handle the /otel toggle. Runs regardless of the enabled flag.

    ``on`` and ``off`` set the flag; anything else flips it.
    """
    if props.get("command") != OTEL_COMMAND_NAME:
        return None

    arg = str(props.get("arguments") or "").strip().lower()
    if arg == "on":
        state.enabled = True
    elif arg == "off":
        state.enabled = False
    else:
        state.enabled = not state.enabled

    logger.info(f"telemetry {'enabled' if state.enabled else 'disabled'} via /otel command")
    state.telemetry.emit_event("telemetry.toggled", {"telemetry.enabled": state.enabled})
    return ToggleResult(enabled=state.enabled)


EventHandler = Callable[[HookState, Mapping[str, Any]], None]

_HANDLERS: Dict[str, EventHandler] = {
    "session.created": _session_created,
    "session.idle": _session_idle,
    "session.status": _session_status,
    "session.error": _session_error,
    "session.diff": _session_diff,
    "file.edited": _file_edited,
    "message.updated": _message_updated,
    "message.part.updated": _message_part_updated,
    "permission.replied": _permission_replied,
    "tool.execute.before": _tool_execute_before,
    "tool.execute.after": _tool_execute_after,
    "chat.message": _chat_message,
}


def handle_event(state: HookState, event: Mapping[str, Any]) -> Optional[ToggleResult]:
    """Translate one host event.

    Args:
        state: Translator state
        event: ``{"type": str, "properties": dict}``

    Returns:
        ToggleResult when the /otel command was handled, else None
    """
    event_type = event.get("type")
    props = extract.as_dict(event.get("properties"))

    if event_type == "command.execute.before":
        return handle_command(state, props)

    if not state.enabled:
        return None

    handler = _HANDLERS.get(event_type)
    if handler is not None:
        handler(state, props)
    return None
