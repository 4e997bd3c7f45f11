"""
Structured diagnostics for pipeline turns and inference attempts.

Events are appended as JSONL so a flaky inference session can be inspected
after the fact. Nothing here ever raises into the pipeline.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class Span:
    """A timed span of execution (a turn or a stage)."""

    def __init__(self, name: str, span_type: str, metadata: dict[str, Any] | None = None):
        self.name = name
        self.span_type = span_type
        self.metadata = metadata or {}
        self.start_time = time.monotonic()
        self.start_ts = datetime.now(UTC)
        self.end_time: float | None = None
        self.status: str = "running"
        self.result_metadata: dict[str, Any] = {}

    def finish(self, status: str = "ok", metadata: dict[str, Any] | None = None) -> None:
        self.end_time = time.monotonic()
        self.status = status
        if metadata:
            self.result_metadata.update(metadata)

    @property
    def duration_ms(self) -> float:
        end = self.end_time or time.monotonic()
        return (end - self.start_time) * 1000

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "name": self.name,
            "type": self.span_type,
            "status": self.status,
            "started_at": self.start_ts.isoformat(),
            "duration_ms": round(self.duration_ms, 1),
        }
        if self.metadata:
            d["metadata"] = self.metadata
        if self.result_metadata:
            d["result"] = self.result_metadata
        return d


class TelemetryCollector:
    """
    Collects diagnostic events from the invocation engine and pipelines.

    Events are stored as JSONL in .symbiosis/telemetry/<session>.jsonl.
    When disabled, events are only sent to the debug log.
    """

    def __init__(
        self,
        session_id: str | None = None,
        base_dir: Path | None = None,
        enabled: bool = True,
    ):
        self.session_id = session_id or "default"
        self.enabled = enabled
        if base_dir is None:
            base_dir = Path(".symbiosis/telemetry")
        self._base_dir = base_dir

    def _log_path(self) -> Path:
        self._base_dir.mkdir(parents=True, exist_ok=True)
        return self._base_dir / f"{self.session_id}.jsonl"

    def _write_event(self, event: dict[str, Any]) -> None:
        logger.debug("telemetry: %s", event)
        if not self.enabled:
            return
        try:
            with open(self._log_path(), "a") as f:
                f.write(json.dumps(event, default=str) + "\n")
        except OSError:
            pass

    def start_turn(self, mode: str) -> Span:
        return Span(name=f"turn_{mode}", span_type="turn", metadata={"mode": mode})

    def end_turn(self, span: Span, status: str = "ok", metadata: dict[str, Any] | None = None) -> None:
        span.finish(status=status, metadata=metadata)
        self._write_event(span.to_dict())

    def track_attempt(
        self,
        label: str,
        attempt: int,
        outcome: str,
        duration_ms: float,
        model: str | None = None,
        error: str | None = None,
    ) -> None:
        """Record one inference attempt (ok, retryable, fatal)."""
        event: dict[str, Any] = {
            "type": "attempt",
            "label": label,
            "attempt": attempt,
            "outcome": outcome,
            "duration_ms": round(duration_ms, 1),
            "ts": datetime.now(UTC).isoformat(),
        }
        if model:
            event["model"] = model
        if error:
            event["error"] = error
        self._write_event(event)

    def track_error(self, error_type: str, message: str, context: dict[str, Any] | None = None) -> None:
        event: dict[str, Any] = {
            "type": "error",
            "error_type": error_type,
            "message": message,
            "ts": datetime.now(UTC).isoformat(),
        }
        if context:
            event["context"] = context
        self._write_event(event)

    def get_summary(self) -> dict[str, Any]:
        """Aggregate counts for this session's log."""
        summary = {"turns": 0, "attempts": 0, "failed_attempts": 0, "exhausted": 0, "errors": 0}
        log_path = self._base_dir / f"{self.session_id}.jsonl"
        if not log_path.exists():
            return summary

        try:
            with open(log_path) as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    event = json.loads(line)
                    etype = event.get("type")
                    if etype == "turn":
                        summary["turns"] += 1
                    elif etype == "attempt":
                        summary["attempts"] += 1
                        if event.get("outcome") != "ok":
                            summary["failed_attempts"] += 1
                    elif etype == "error":
                        summary["errors"] += 1
                        if event.get("error_type") == "exhausted":
                            summary["exhausted"] += 1
        except (json.JSONDecodeError, OSError):
            pass

        return summary
