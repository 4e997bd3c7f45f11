"""
Pydantic models for conversation history, memory entries and pipeline replies.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

TOPIC_TAXONOMY = ("Identity", "Preference", "Location", "Relationship", "History", "Work")

NEUTRAL_MOOD = "NEUTRAL"


def _utcnow() -> datetime:
    """Get current UTC time."""
    return datetime.now(UTC)


class ChatMessage(BaseModel):
    """A single message in the conversation history."""

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant", "system"]
    content: str
    timestamp: datetime | None = Field(default_factory=_utcnow)

    def to_prompt_line(self) -> str:
        return f"{self.role.upper()}: {self.content}"


class MemoryEntry(BaseModel):
    """An atomic fact extracted from user input."""

    fact: str = ""
    entities: str = ""  # comma-separated
    topics: list[str] = Field(default_factory=list)
    importance: int = 1

    @field_validator("fact", mode="before")
    @classmethod
    def fact_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("entities", mode="before")
    @classmethod
    def join_entities(cls, value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, list):
            return ", ".join(str(v).strip() for v in value if str(v).strip())
        return str(value)

    @field_validator("topics", mode="before")
    @classmethod
    def closed_taxonomy(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        elif not isinstance(value, (list, tuple)):
            raise ValueError(f"topics must be a list or comma-separated string, got {type(value).__name__}")
        lookup = {t.lower(): t for t in TOPIC_TAXONOMY}
        topics: list[str] = []
        for raw in value:
            topic = lookup.get(str(raw).strip().lower())
            if topic and topic not in topics:
                topics.append(topic)
        return topics

    @field_validator("importance", mode="before")
    @classmethod
    def clamp_importance(cls, value: Any) -> int:
        try:
            score = int(float(value))
        except (TypeError, ValueError):
            return 1
        return max(1, min(10, score))


class Intent(str, Enum):
    STORE = "STORE"
    SEARCH = "SEARCH"
    CHAT = "CHAT"


class SearchQuery(BaseModel):
    """Include/exclude constraint sets sent to the archive search."""

    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)

    @field_validator("include", "exclude", mode="before")
    @classmethod
    def unique_terms(cls, value: Any) -> list[str]:
        if not value:
            return []
        if isinstance(value, str):
            value = [value]
        elif not isinstance(value, (list, tuple)):
            raise ValueError(f"expected a list of terms, got {type(value).__name__}")
        seen: list[str] = []
        for item in value:
            item = str(item).strip()
            if item and item not in seen:
                seen.append(item)
        return seen

    def drop_excluded(self, files: list[ArchiveFile]) -> list[ArchiveFile]:
        """Remove files whose name or description mentions an excluded term."""
        if not self.exclude:
            return list(files)
        terms = [term.lower() for term in self.exclude]
        kept = []
        for f in files:
            meta = f"{f.name} {f.description or ''}".lower()
            if not any(term in meta for term in terms):
                kept.append(f)
        return kept


class DirectorMemory(BaseModel):
    """A fact row from the director archive."""

    model_config = ConfigDict(populate_by_name=True)

    entity: str = Field(default="", alias="Entity")
    fact: str = Field(default="", alias="Fact")

    @field_validator("entity", "fact", mode="before")
    @classmethod
    def cell_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    def describe(self) -> str:
        return f"[{self.entity or 'Unknown'}]: {self.fact}"


class ArchiveFile(BaseModel):
    """A media file returned by the archive search."""

    model_config = ConfigDict(extra="allow")

    name: str = ""
    description: str | None = None

    @field_validator("name", mode="before")
    @classmethod
    def name_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("description", mode="before")
    @classmethod
    def description_text(cls, value: Any) -> str | None:
        return value if value is None else str(value)


class ArchiveSearchResult(BaseModel):
    found: bool = False
    files: list[ArchiveFile] = Field(default_factory=list)
    debug_query: Any = None


# ── Knowledge graph ─────────────────────────────────────────────────


def _dict_items(value: Any) -> list[Any]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, (dict, BaseModel))]


class GraphLeaf(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    text: str | None = ""
    mood: str | None = NEUTRAL_MOOD


class GraphBranch(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    label: str | None = ""
    mood: str | None = NEUTRAL_MOOD
    leaves: list[GraphLeaf] = Field(default_factory=list)

    @field_validator("leaves", mode="before")
    @classmethod
    def only_objects(cls, value: Any) -> list[Any]:
        return _dict_items(value)


class GraphRoot(BaseModel):
    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    label: str | None = ""
    mood: str | None = NEUTRAL_MOOD
    branches: list[GraphBranch] = Field(default_factory=list)

    @field_validator("branches", mode="before")
    @classmethod
    def only_objects(cls, value: Any) -> list[Any]:
        return _dict_items(value)


class Reply(BaseModel):
    """The single structured output of a pipeline turn."""

    response: str = "..."
    mood: str = NEUTRAL_MOOD
    roots: list[GraphRoot] | None = None
    director_action: Literal["SHOW_DECKS", "PLAY_MEDIA"] | None = None
    deck_keywords: list[str] | None = None
    files: list[ArchiveFile] | None = None
    debug_query: Any = None

    def to_payload(self) -> dict[str, Any]:
        """Renderer-facing dict using the wire field names."""
        payload: dict[str, Any] = {"response": self.response, "mood": self.mood}
        if self.roots is not None:
            payload["roots"] = [r.model_dump() for r in self.roots]
        if self.director_action:
            payload["directorAction"] = self.director_action
        if self.deck_keywords is not None:
            payload["deckKeywords"] = list(self.deck_keywords)
        if self.files is not None:
            payload["files"] = [f.model_dump(exclude_none=True) for f in self.files]
        if self.debug_query is not None:
            payload["debug_query"] = self.debug_query
        return payload
