"""
In-memory state for the event translator.

Session and pending tool-call registries plus the event sequence / prompt
correlation tracker. Everything lives for the process lifetime; nothing is
persisted. Events are handled serially, so there is no locking.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Set

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class Session:
    """One host session. Timestamps are clock seconds."""

    session_id: str
    created_at: float
    last_activity_at: float


@dataclass
class PendingToolCall:
    """A tool call between its before and after signals."""

    call_id: str
    tool: str
    started_at: float
    args: Any


@dataclass
class ToolCallResult:
    tool: str
    elapsed_ms: int


class SessionRegistry:
    """Active sessions keyed by session id. Entries are never removed."""

    def __init__(self, clock: Clock = time.time):
        self._clock = clock
        self._sessions: Dict[str, Session] = {}

    def upsert(self, session_id: str) -> Session:
        """Create the session if absent; an existing one is returned untouched."""
        session = self._sessions.get(session_id)
        if session is None:
            now = self._clock()
            session = Session(session_id=session_id, created_at=now, last_activity_at=now)
            self._sessions[session_id] = session
            logger.debug(f"Registered session: {session_id}")
        return session

    def touch(self, session_id: str) -> None:
        session = self._sessions.get(session_id)
        if session is not None:
            session.last_activity_at = self._clock()

    def get(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class PendingToolCallRegistry:
    """In-flight tool calls keyed by call id."""

    def __init__(self, clock: Clock = time.time):
        self._clock = clock
        self._calls: Dict[str, PendingToolCall] = {}

    def begin(self, call_id: str, tool: str, args: Any = None) -> None:
        """Record a tool call start. A repeated call id overwrites the earlier record."""
        self._calls[call_id] = PendingToolCall(
            call_id=call_id, tool=tool, started_at=self._clock(), args=args
        )

    def end(self, call_id: str) -> Optional[ToolCallResult]:
        """Remove a pending call and return its elapsed time.

        Returns None for an unknown call id; callers treat that as zero elapsed.
        """
        pending = self._calls.pop(call_id, None)
        if pending is None:
            return None
        elapsed_ms = max(0, int(round((self._clock() - pending.started_at) * 1000)))
        return ToolCallResult(tool=pending.tool, elapsed_ms=elapsed_ms)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._calls

    def __len__(self) -> int:
        return len(self._calls)


class SequenceTracker:
    """Event sequence numbers and the current prompt correlation id."""

    def __init__(self) -> None:
        self._sequence = 0
        self._prompt_id: Optional[str] = None

    def next_sequence(self) -> int:
        """Return the current value, then increment. The first value is 0."""
        seq = self._sequence
        self._sequence += 1
        return seq

    def new_correlation_id(self) -> str:
        self._prompt_id = str(uuid.uuid4())
        return self._prompt_id

    @property
    def current_correlation_id(self) -> Optional[str]:
        return self._prompt_id


class MessageDeduplicator:
    """Remembers which completed messages already produced telemetry."""

    def __init__(self) -> None:
        self._seen: Set[str] = set()

    def first_time(self, key: str) -> bool:
        """Mark ``key`` as processed. True only on its first occurrence."""
        if key in self._seen:
            return False
        self._seen.add(key)
        return True

    def __contains__(self, key: object) -> bool:
        return key in self._seen
