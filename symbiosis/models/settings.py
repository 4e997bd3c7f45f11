"""
Runtime settings for the conversation pipeline.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "openrouter/x-ai/grok-4-fast"


class InferenceSettings(BaseModel):
    """Invocation engine limits."""

    model: str = Field(default=DEFAULT_MODEL, description="LiteLLM model identifier")
    timeout: float = Field(default=15.0, gt=0, description="Hard deadline per attempt (seconds)")
    max_attempts: int = Field(default=3, ge=1, description="Attempts before safe-mode fallback")
    retry_delay: float = Field(default=1.0, ge=0, description="Initial backoff delay in seconds")
    retry_backoff: float = Field(default=2.0, gt=1, description="Exponential backoff multiplier")


class PipelineSettings(BaseModel):
    """Thresholds used by the conversational pipelines."""

    user_name: str = Field(default="Arvin", min_length=1)
    gap_hours: float = Field(default=6.0, gt=0, description="Idle time before a session note is added")
    history_window: int = Field(default=800, gt=0, description="Trailing history characters sent to prompts")
    timekeeper_threshold: int = Field(default=4, ge=1, le=10)
    dedup_context_threshold: int = Field(
        default=50,
        ge=0,
        description="Retrieved context must exceed this many characters before dedup runs",
    )
    drilldown_limit: int = Field(default=15, ge=0)


class SymbiosisSettings(BaseModel):
    """Top-level settings, optionally loaded from YAML."""

    inference: InferenceSettings = Field(default_factory=InferenceSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    telemetry: bool = Field(default=False, description="Write per-attempt JSONL diagnostics")


class SettingsError(Exception):
    """Raised when a settings file is invalid, with a user-friendly message."""

    def __init__(self, path: Path, issues: list[str]):
        self.path = path
        self.issues = issues
        msg = f"Invalid settings in '{path}':\n" + "\n".join(f"  - {issue}" for issue in issues)
        super().__init__(msg)


def load_settings(path: Path | None = None) -> SymbiosisSettings:
    """
    Load settings from YAML.

    A missing file yields defaults. An empty file yields defaults too.

    Raises:
        SettingsError: If the YAML does not validate
    """
    if path is None:
        path = Path("symbiosis.yaml")

    if not path.exists():
        logger.debug("No settings file at %s, using defaults", path)
        return SymbiosisSettings()

    with open(path) as f:
        data = yaml.safe_load(f)

    if data is None:
        return SymbiosisSettings()

    try:
        return SymbiosisSettings(**data)
    except ValidationError as e:
        issues = [
            f"{'.'.join(str(x) for x in error['loc'])}: {error['msg']}" for error in e.errors()
        ]
        raise SettingsError(path, issues) from e
