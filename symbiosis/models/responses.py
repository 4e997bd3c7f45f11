"""
Structured response schemas, one per inference call site.

Every schema accepts the safe-mode payload ``{"mood": "NEUTRAL", "response": "..."}``
so an exhausted call still yields a well-formed object. Required fields are
enforced by the validator predicate passed alongside the schema.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from symbiosis.models.memory import GraphRoot, Intent, MemoryEntry

SAFE_MODE_PAYLOAD: dict[str, Any] = {"mood": "NEUTRAL", "response": "..."}


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"expected a list or comma-separated string, got {type(value).__name__}")
    return [str(v) for v in value if v is not None and str(v).strip()]


class InferencePayload(BaseModel):
    """Minimal shared schema: every call may carry a response and a mood."""

    model_config = ConfigDict(extra="ignore")

    response: str | None = None
    mood: str | None = None


class IntentPayload(InferencePayload):
    intent: str | None = None
    fact_to_store: str | None = None
    entity_name: str | None = None
    positive_constraints: list[str] = Field(default_factory=list)
    negative_constraints: list[str] = Field(default_factory=list)

    @field_validator("intent", mode="before")
    @classmethod
    def upper_intent(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("positive_constraints", "negative_constraints", mode="before")
    @classmethod
    def coerce_constraints(cls, value: Any) -> list[str]:
        return _as_list(value)

    def intent_kind(self) -> Intent | None:
        """The classified intent, or None when missing or unrecognised."""
        try:
            return Intent(self.intent) if self.intent else None
        except ValueError:
            return None


class MatchPayload(InferencePayload):
    matches: list[str] | None = None
    reasoning: str | None = None


class ContradictionPayload(InferencePayload):
    is_duplicate: bool | None = None
    is_contradiction: bool = False
    warning_message: str | None = None


class AmbiguityPayload(InferencePayload):
    status: str | None = None
    clarification_question: str | None = None
    resolved_names: list[str] = Field(default_factory=list)
    resolved_excludes: list[str] = Field(default_factory=list)

    @field_validator("resolved_names", "resolved_excludes", mode="before")
    @classmethod
    def coerce_names(cls, value: Any) -> list[str]:
        return _as_list(value)


class AnalysisPayload(InferencePayload):
    search_keywords: list[str] | str | None = None
    entries: list[MemoryEntry] = Field(default_factory=list)

    @field_validator("entries", mode="before")
    @classmethod
    def coerce_entries(cls, value: Any) -> list[Any]:
        if not value:
            return []
        if not isinstance(value, list):
            raise ValueError(f"entries must be a list, got {type(value).__name__}")
        return [e for e in value if isinstance(e, dict)]

    def keywords(self) -> list[str]:
        return _as_list(self.search_keywords)


class TimeframePayload(InferencePayload):
    valid: bool | None = None
    rewritten_fact: str | None = None


class GenerationPayload(InferencePayload):
    roots: list[GraphRoot] | None = None

    @field_validator("roots", mode="before")
    @classmethod
    def coerce_roots(cls, value: Any) -> Any:
        if value is None:
            return None
        if not isinstance(value, list):
            return []
        return [r for r in value if isinstance(r, dict)]


class RedundancyPayload(InferencePayload):
    is_redundant: bool | None = None


class RefinementPayload(InferencePayload):
    status: str | None = None
    better_fact: str | None = None
    better_entities: str | None = None

    @field_validator("better_entities", mode="before")
    @classmethod
    def coerce_entities(cls, value: Any) -> Any:
        if isinstance(value, list):
            return ", ".join(str(v) for v in value)
        return value
