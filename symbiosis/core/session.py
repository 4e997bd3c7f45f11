"""
Conversation session state and startup bootstrap from the store.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from symbiosis.core.store import StoreClient, StoreError
from symbiosis.models.memory import ChatMessage

logger = logging.getLogger(__name__)

DEFAULT_GAP_HOURS = 6.0


@dataclass
class SessionContext:
    """
    Per-conversation state passed through every pipeline turn.

    ``last_retrieved_context`` and ``raw_memories`` are turn-scoped: the
    Global Retrieval stage overwrites them at the start of each Standard turn.
    """

    history: list[ChatMessage] = field(default_factory=list)
    last_retrieved_context: str = ""
    raw_memories: list[str] = field(default_factory=list)
    current_mood: str = "NEUTRAL"

    def reset_retrieval(self) -> None:
        self.last_retrieved_context = ""
        self.raw_memories = []

    def history_text(self, window: int | None = None) -> str:
        text = "\n".join(msg.to_prompt_line() for msg in self.history)
        if window is not None:
            return text[-window:]
        return text

    def append(self, role: str, content: str) -> ChatMessage:
        msg = ChatMessage(role=role, content=content)
        self.history.append(msg)
        return msg


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, (int, float)):
        ts = datetime.fromtimestamp(value / 1000, UTC)
    elif isinstance(value, str) and value.strip():
        try:
            ts = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


def rows_to_history(rows: list[list[Any]]) -> list[ChatMessage]:
    """Convert [timestamp, role, content] rows, keeping storage order."""
    history: list[ChatMessage] = []
    for row in rows:
        role = str(row[1]).lower()
        if role not in ("user", "assistant", "system"):
            logger.debug("Skipping history row with unknown role %r", row[1])
            continue
        history.append(
            ChatMessage(role=role, content=str(row[2] or ""), timestamp=_parse_timestamp(row[0]))
        )
    return history


def time_gap_note(
    history: list[ChatMessage],
    now: datetime | None = None,
    gap_hours: float = DEFAULT_GAP_HOURS,
) -> ChatMessage | None:
    """System note for a user returning after a long gap, or None."""
    if not history or history[-1].timestamp is None:
        return None
    now = now or datetime.now(UTC)
    hours = (now - history[-1].timestamp).total_seconds() / 3600
    if hours <= gap_hours:
        return None
    logger.info("Time gap detected: %.1f hours", hours)
    return ChatMessage(
        role="system",
        content=(
            f"[SYSTEM_NOTE: The user has returned after {math.floor(hours)} hours. "
            "Treat this as a new session context, but retain previous memories.]"
        ),
        timestamp=None,
    )


def bootstrap_session(
    store: StoreClient | None,
    now: datetime | None = None,
    gap_hours: float = DEFAULT_GAP_HOURS,
) -> SessionContext:
    """
    Restore short-term memory from the store's recent chat log.

    An unreachable store is not fatal: the session starts empty.
    """
    session = SessionContext()
    if store is None:
        return session

    try:
        rows = store.get_recent_chat()
    except StoreError as e:
        logger.error("Session restore failed: %s", e)
        return session

    session.history = rows_to_history(rows)
    note = time_gap_note(session.history, now=now, gap_hours=gap_hours)
    if note is not None:
        session.history.append(note)
    logger.info("Session restored: %d messages", len(session.history))
    return session
