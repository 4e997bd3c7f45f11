"""
LiteLLM wrapper with timeout, retry, backoff and response-schema validation.
"""

from __future__ import annotations

import json
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

import litellm
from litellm import completion
from litellm.exceptions import (
    APIConnectionError,
    APIError,
    AuthenticationError,
    BadRequestError,
    BudgetExceededError,
    ContextWindowExceededError,
    InternalServerError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ServiceUnavailableError,
    Timeout,
)
from pydantic import ValidationError

from symbiosis.models.responses import SAFE_MODE_PAYLOAD, InferencePayload

# Suppress LiteLLM debug messages (e.g., "Provider List: ...")
litellm.suppress_debug_info = True

logger = logging.getLogger(__name__)

P = TypeVar("P", bound=InferencePayload)

FATAL_STATUS_CODES = (401, 403)
SAFE_MODE_RAW = json.dumps(SAFE_MODE_PAYLOAD, separators=(",", ":"))

_RETRYABLE_ERRORS = (
    RateLimitError,
    ServiceUnavailableError,
    InternalServerError,
    Timeout,
    APIConnectionError,
    BadRequestError,
    NotFoundError,
    ContextWindowExceededError,
    BudgetExceededError,
    APIError,
)


def _extract_error_message(error: Exception) -> str:
    """Extract the most useful part of a LiteLLM error message."""
    msg = str(error)
    # OpenRouter-style errors embed a JSON message
    match = re.search(r'"message"\s*:\s*"([^"]+)"', msg)
    if match:
        return match.group(1)
    if len(msg) > 200:
        return msg[:200] + "..."
    return msg


class LLMError(Exception):
    """User-friendly LLM error with actionable guidance."""

    def __init__(self, message: str, original: Exception | None = None):
        self.original = original
        super().__init__(message)


class InferenceAuthError(LLMError):
    """The inference service rejected the credential (401/403). Never retried."""

    def __init__(self, model: str, status_code: int | None, original: Exception | None = None):
        self.model = model
        self.status_code = status_code
        super().__init__(
            f"Authentication failed for '{model}' (status {status_code}). "
            f"Check that OPENROUTER_API_KEY is set correctly.\n"
            f"  Run: symbiosis config set OPENROUTER_API_KEY",
            original=original,
        )


class ResponseValidationError(Exception):
    """The response body did not match the expected structure."""


@dataclass
class Invocation(Generic[P]):
    """Outcome of a resilient call: a validated payload or the safe-mode default."""

    payload: P
    raw: str
    attempts: int
    exhausted: bool = False


def _status_code(error: Exception) -> int | None:
    code = getattr(error, "status_code", None)
    return code if isinstance(code, int) else None


def _strip_code_fence(content: str) -> str:
    content = content.strip()
    match = re.fullmatch(r"```(?:json)?\s*\n?(.*?)\n?```", content, re.DOTALL)
    if match:
        return match.group(1).strip()
    return content


class LLMClient:
    """
    Resilient invocation engine for structured (JSON object) chat completions.

    Each call gets at most ``max_attempts`` tries under a per-attempt deadline.
    Authentication failures raise immediately; everything else is retried with
    exponential backoff and, once retries are spent, replaced by a neutral
    safe-mode payload so callers always receive a well-formed result.
    """

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        timeout: float = 15.0,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        retry_backoff: float = 2.0,
        telemetry: Any = None,
    ):
        """
        Initialize the LLM client.

        Args:
            model: LiteLLM model identifier (e.g., 'openrouter/x-ai/grok-4-fast')
            api_key: Bearer credential for the inference service
            timeout: Hard deadline per attempt (seconds)
            max_attempts: Attempts before falling back to safe mode
            retry_delay: Delay before the first retry (seconds)
            retry_backoff: Exponential backoff multiplier
            telemetry: Optional TelemetryCollector receiving per-attempt events
        """
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.retry_backoff = retry_backoff
        self.telemetry = telemetry

    def _request(self, messages: list[dict[str, Any]]) -> str:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "response_format": {"type": "json_object"},
            "timeout": self.timeout,
            "extra_headers": {"X-Title": "Symbiosis"},
            # Skip extended reasoning for latency
            "extra_body": {"include_reasoning": False, "reasoning": {"enabled": False}},
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key

        response = self._call_with_deadline(kwargs)
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            raise ResponseValidationError(f"Malformed completion body: {e}") from e
        if not isinstance(content, str):
            raise ResponseValidationError("Completion carried no text content")
        return content

    def _call_with_deadline(self, kwargs: dict[str, Any]) -> Any:
        """
        Run one completion under a wall-clock deadline.

        The litellm timeout bounds individual socket reads, not the whole call.
        The call runs on its own thread and is abandoned at the deadline; a late
        body is discarded.
        """
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="symbiosis-llm")
        future = executor.submit(completion, **kwargs)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout as e:
            future.cancel()
            raise Timeout(
                f"No complete response within {self.timeout:g}s",
                model=self.model,
                llm_provider="",
            ) from e
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    @staticmethod
    def _parse(content: str, schema: type[P], validator: Callable[[P], Any] | None) -> P:
        try:
            data = json.loads(_strip_code_fence(content))
        except json.JSONDecodeError as e:
            raise ResponseValidationError(f"Invalid JSON structure received: {e}") from e
        if not isinstance(data, dict):
            raise ResponseValidationError("Expected a JSON object")
        try:
            payload = schema.model_validate(data)
        except ValidationError as e:
            raise ResponseValidationError(f"Schema mismatch: {e.error_count()} error(s)") from e
        except (TypeError, ValueError) as e:
            raise ResponseValidationError(f"Schema mismatch: {e}") from e
        if validator is not None and not validator(payload):
            raise ResponseValidationError("Content failed schema validation")
        return payload

    def _track(self, label: str, attempt: int, outcome: str, started: float, error: str | None = None) -> None:
        if self.telemetry is not None:
            self.telemetry.track_attempt(
                label,
                attempt,
                outcome,
                (time.monotonic() - started) * 1000,
                model=self.model,
                error=error,
            )

    def invoke(
        self,
        messages: list[dict[str, Any]],
        schema: type[P],
        validator: Callable[[P], Any] | None = None,
        label: str = "LLM",
    ) -> Invocation[P]:
        """
        Obtain a schema-valid structured response.

        Args:
            messages: Ordered chat messages (role/content dicts)
            schema: Response model for this call site
            validator: Predicate over the parsed payload; falsy means retry
            label: Name used in logs and diagnostics

        Returns:
            Invocation with the validated payload, or the safe-mode payload
            when every attempt failed.

        Raises:
            InferenceAuthError: On 401/403 from the inference service
        """
        delay = self.retry_delay

        for attempt in range(1, self.max_attempts + 1):
            logger.debug("%s (attempt %d/%d)", label, attempt, self.max_attempts)
            started = time.monotonic()
            try:
                content = self._request(messages)
                payload = self._parse(content, schema, validator)
            except (AuthenticationError, PermissionDeniedError) as e:
                self._track(label, attempt, "fatal", started, _extract_error_message(e))
                raise InferenceAuthError(self.model, _status_code(e), original=e) from e
            except _RETRYABLE_ERRORS as e:
                if _status_code(e) in FATAL_STATUS_CODES:
                    self._track(label, attempt, "fatal", started, _extract_error_message(e))
                    raise InferenceAuthError(self.model, _status_code(e), original=e) from e
                error = _extract_error_message(e)
            except ResponseValidationError as e:
                error = str(e)
            else:
                self._track(label, attempt, "ok", started)
                return Invocation(payload=payload, raw=content, attempts=attempt)

            self._track(label, attempt, "retryable", started, error)
            if attempt >= self.max_attempts:
                break
            logger.warning(
                "%s failed (attempt %d/%d, model %s): %s. Retrying in %.1fs...",
                label,
                attempt,
                self.max_attempts,
                self.model,
                error,
                delay,
            )
            time.sleep(delay)
            delay *= self.retry_backoff

        logger.error("%s failed after %d attempts, using safe mode", label, self.max_attempts)
        if self.telemetry is not None:
            self.telemetry.track_error("exhausted", f"{label} exhausted retries", {"model": self.model})
        return Invocation(
            payload=schema.model_validate(SAFE_MODE_PAYLOAD),
            raw=SAFE_MODE_RAW,
            attempts=self.max_attempts,
            exhausted=True,
        )

    def change_model(self, model: str) -> None:
        """Change the model being used."""
        self.model = model
