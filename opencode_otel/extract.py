"""
Field extraction from host event payloads.

Payload shapes vary between event types and host versions, and the same
logical field may live under different keys. Each function here documents the
lookup order and returns a safe default instead of raising.
"""

import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

COMMIT_PATTERN = re.compile(r"\bgit\s+commit\b")
PULL_REQUEST_PATTERNS = (
    re.compile(r"\bgh\s+pr\s+create\b"),
    re.compile(r"\bgit\s+push\b.*--.*pull-request"),
)


def as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def as_number(value: Any) -> float:
    """Numeric value or 0. Booleans and strings count as missing."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    return 0


def first_present(mapping: Mapping[str, Any], *keys: str) -> Any:
    """Value of the first key whose value is not None."""
    for key in keys:
        value = mapping.get(key)
        if value is not None:
            return value
    return None


def created_session_id(props: Mapping[str, Any]) -> Optional[str]:
    """Session id for session.created: ``info.id``, then ``id``."""
    return first_present(as_dict(props.get("info")), "id") or props.get("id") or None


def session_id(props: Mapping[str, Any]) -> Optional[str]:
    """Session id for idle/status events: ``info.id``, then ``id``, then ``sessionID``."""
    return (
        first_present(as_dict(props.get("info")), "id")
        or first_present(props, "id", "sessionID")
        or None
    )


def edited_line_counts(props: Mapping[str, Any]) -> Tuple[float, float]:
    """(added, removed) for file.edited: ``linesAdded``/``added`` and ``linesRemoved``/``removed``."""
    added = as_number(first_present(props, "linesAdded", "added"))
    removed = as_number(first_present(props, "linesRemoved", "removed"))
    return added, removed


def diff_line_counts(props: Mapping[str, Any]) -> Optional[Tuple[float, float]]:
    """Summed (additions, deletions) across ``diff`` entries, or None without a diff list."""
    diffs = props.get("diff")
    if not isinstance(diffs, list):
        return None
    added = sum(as_number(as_dict(d).get("additions")) for d in diffs)
    removed = sum(as_number(as_dict(d).get("deletions")) for d in diffs)
    return added, removed


def retry_part(props: Mapping[str, Any]) -> Dict[str, Any]:
    """The message part: ``part``, falling back to the properties themselves."""
    part = props.get("part")
    return part if isinstance(part, dict) else dict(props)


def error_attributes(error: Mapping[str, Any], default_name: str = "UnknownError") -> Dict[str, Any]:
    """api_error attributes from a host error payload.

    ``error.status_code`` is included only when truthy, ``error.is_retryable``
    only when the payload carries the flag.
    """
    data = as_dict(error.get("data"))
    attrs: Dict[str, Any] = {
        "error.name": error.get("name") or default_name,
        "error.message": data.get("message") or "unknown",
    }
    if data.get("statusCode"):
        attrs["error.status_code"] = data["statusCode"]
    if data.get("isRetryable") is not None:
        attrs["error.is_retryable"] = data["isRetryable"]
    return attrs


def token_counts(tokens: Mapping[str, Any]) -> Dict[str, float]:
    """Token counts keyed by metric type: input, output, cacheRead, cacheCreation."""
    cache = as_dict(tokens.get("cache"))
    return {
        "input": as_number(tokens.get("input")),
        "output": as_number(tokens.get("output")),
        "cacheRead": as_number(cache.get("read")),
        "cacheCreation": as_number(cache.get("write")),
    }


def message_duration_ms(time_info: Mapping[str, Any]) -> float:
    """``completed - created`` when both are set, else 0."""
    created = as_number(time_info.get("created"))
    completed = as_number(time_info.get("completed"))
    if created and completed:
        return completed - created
    return 0


def shell_command(args: Any) -> Optional[str]:
    command = as_dict(args).get("command")
    return command if isinstance(command, str) else None


def is_commit(command: str) -> bool:
    return bool(COMMIT_PATTERN.search(command))


def is_pull_request(command: str) -> bool:
    return any(pattern.search(command) for pattern in PULL_REQUEST_PATTERNS)


def prompt_text(parts: Any) -> str:
    """Join text parts with newlines, trim, and strip one layer of surrounding quotes.

    Parts without a ``type`` count as text when they carry a ``text`` string.

    The quotes come from the host's ``run -p "..."`` prompt passing.
    """
    texts: List[str] = []
    if isinstance(parts, list):
        for part in parts:
            part = as_dict(part)
            text = part.get("text")
            if part.get("type", "text") == "text" and isinstance(text, str) and text:
                texts.append(text)
    text = "\n".join(texts).strip()
    if len(text) >= 2 and text.startswith('"') and text.endswith('"'):
        text = text[1:-1]
    return text
