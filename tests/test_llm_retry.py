"""
Tests for the resilient invocation engine.
"""

import threading
import time
from unittest.mock import patch

import httpx
import pytest
from litellm.exceptions import (
    APIConnectionError,
    APIError,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitError,
    Timeout,
)

from symbiosis.core.llm import InferenceAuthError, LLMClient
from symbiosis.core.telemetry import TelemetryCollector
from symbiosis.models.responses import AnalysisPayload, InferencePayload, IntentPayload

MESSAGES = [{"role": "system", "content": "test"}]


class TestLLMRetry:
    """Tests for LLMClient.invoke retry logic."""

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_success_no_retry(self, mock_completion, mock_sleep, completion_response):
        """A valid first response is returned without retrying."""
        mock_completion.return_value = completion_response({"response": "hi", "mood": "HAPPY"})

        client = LLMClient("test-model")
        result = client.invoke(MESSAGES, InferencePayload, validator=lambda p: p.response)

        assert result.payload.response == "hi"
        assert result.attempts == 1
        assert result.exhausted is False
        assert mock_completion.call_count == 1
        mock_sleep.assert_not_called()

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_request_shape(self, mock_completion, mock_sleep, completion_response):
        """JSON mode, per-attempt timeout and the reasoning opt-out are always sent."""
        mock_completion.return_value = completion_response({"response": "ok"})

        LLMClient("openrouter/x-ai/grok-4-fast", api_key="sk-test").invoke(MESSAGES, InferencePayload)

        kwargs = mock_completion.call_args.kwargs
        assert kwargs["model"] == "openrouter/x-ai/grok-4-fast"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["timeout"] == 15.0
        assert kwargs["api_key"] == "sk-test"
        assert kwargs["extra_body"]["reasoning"] == {"enabled": False}

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_backoff_sleeps_one_then_two(self, mock_completion, mock_sleep, completion_response):
        """Two failures then success: sleeps of 1s and 2s, three attempts."""
        mock_completion.side_effect = [
            RateLimitError("Rate limited", "openrouter", "test-model"),
            Timeout("Timed out", "test-model", "openrouter"),
            completion_response({"response": "finally"}),
        ]

        result = LLMClient("test-model").invoke(MESSAGES, InferencePayload)

        assert result.payload.response == "finally"
        assert result.attempts == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_exhaustion_returns_safe_mode(self, mock_completion, mock_sleep):
        """After three failures the neutral payload comes back, no sleep after the last."""
        mock_completion.side_effect = APIConnectionError("Connection failed", "openrouter", "test-model")

        result = LLMClient("test-model").invoke(MESSAGES, InferencePayload)

        assert result.exhausted is True
        assert result.attempts == 3
        assert result.payload.mood == "NEUTRAL"
        assert result.payload.response == "..."
        assert mock_completion.call_count == 3
        assert mock_sleep.call_count == 2

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_safe_mode_validates_against_call_schema(self, mock_completion, mock_sleep):
        """The fallback is a well-formed instance of the requested schema."""
        mock_completion.side_effect = APIConnectionError("down", "openrouter", "test-model")

        result = LLMClient("test-model").invoke(MESSAGES, IntentPayload, validator=lambda p: p.intent)

        assert isinstance(result.payload, IntentPayload)
        assert result.payload.intent is None
        assert result.payload.intent_kind() is None

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_authentication_error_single_attempt(self, mock_completion, mock_sleep):
        """401 is fatal: exactly one attempt, no sleep, raised to the caller."""
        mock_completion.side_effect = AuthenticationError("bad key", "openrouter", "test-model")

        with pytest.raises(InferenceAuthError) as exc_info:
            LLMClient("test-model").invoke(MESSAGES, InferencePayload)

        assert "OPENROUTER_API_KEY" in str(exc_info.value)
        assert mock_completion.call_count == 1
        mock_sleep.assert_not_called()

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_permission_denied_single_attempt(self, mock_completion, mock_sleep):
        """403 is fatal too."""
        response = httpx.Response(403, request=httpx.Request("POST", "https://openrouter.ai/api/v1"))
        mock_completion.side_effect = PermissionDeniedError("forbidden", "openrouter", "test-model", response)

        with pytest.raises(InferenceAuthError):
            LLMClient("test-model").invoke(MESSAGES, InferencePayload)

        assert mock_completion.call_count == 1

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_generic_error_with_auth_status_is_fatal(self, mock_completion, mock_sleep):
        """Provider errors carrying status 401 are not retried either."""
        mock_completion.side_effect = APIError(401, "unauthorized", "openrouter", "test-model")

        with pytest.raises(InferenceAuthError) as exc_info:
            LLMClient("test-model").invoke(MESSAGES, InferencePayload)

        assert exc_info.value.status_code == 401
        assert mock_completion.call_count == 1

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_server_error_is_retried(self, mock_completion, mock_sleep, completion_response):
        """5xx is an ordinary failure."""
        mock_completion.side_effect = [
            APIError(502, "bad gateway", "openrouter", "test-model"),
            completion_response({"response": "ok"}),
        ]

        result = LLMClient("test-model").invoke(MESSAGES, InferencePayload)

        assert result.attempts == 2
        assert mock_sleep.call_count == 1

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_malformed_json_is_retried(self, mock_completion, mock_sleep, completion_response):
        """Unparseable content counts as a failed attempt."""
        mock_completion.side_effect = [
            completion_response("not json at all"),
            completion_response('["a", "list"]'),
            completion_response({"response": "ok"}),
        ]

        result = LLMClient("test-model").invoke(MESSAGES, InferencePayload)

        assert result.payload.response == "ok"
        assert result.attempts == 3

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_code_fenced_json_is_accepted(self, mock_completion, mock_sleep, completion_response):
        mock_completion.return_value = completion_response('```json\n{"response": "fenced"}\n```')

        result = LLMClient("test-model").invoke(MESSAGES, InferencePayload)

        assert result.payload.response == "fenced"

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_validator_rejection_is_retried(self, mock_completion, mock_sleep, completion_response):
        """Parseable JSON missing a required field is retried like any failure."""
        mock_completion.side_effect = [
            completion_response({"mood": "HAPPY"}),
            completion_response({"response": "now with text", "mood": "HAPPY"}),
        ]

        result = LLMClient("test-model").invoke(
            MESSAGES, InferencePayload, validator=lambda p: p.response and p.mood
        )

        assert result.payload.response == "now with text"
        assert result.attempts == 2

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_empty_content_is_retried(self, mock_completion, mock_sleep, completion_response):
        mock_completion.side_effect = [
            completion_response(None),
            completion_response({"response": "ok"}),
        ]

        result = LLMClient("test-model").invoke(MESSAGES, InferencePayload)

        assert result.attempts == 2

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_custom_attempt_budget(self, mock_completion, mock_sleep):
        mock_completion.side_effect = RateLimitError("Rate limited", "openrouter", "test-model")

        client = LLMClient("test-model", max_attempts=1)
        result = client.invoke(MESSAGES, InferencePayload)

        assert result.exhausted is True
        assert mock_completion.call_count == 1
        mock_sleep.assert_not_called()

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_attempts_are_tracked(self, mock_completion, mock_sleep, completion_response, temp_dir):
        mock_completion.side_effect = [
            RateLimitError("Rate limited", "openrouter", "test-model"),
            completion_response({"response": "ok"}),
        ]
        telemetry = TelemetryCollector(session_id="s1", base_dir=temp_dir)

        LLMClient("test-model", telemetry=telemetry).invoke(MESSAGES, InferencePayload, label="Analysis")

        summary = telemetry.get_summary()
        assert summary["attempts"] == 2
        assert summary["failed_attempts"] == 1


class TestDeadline:
    """The per-attempt deadline bounds the whole call, not just each read."""

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_slow_body_is_abandoned(self, mock_completion, mock_sleep, completion_response):
        """A call still running at the deadline fails the attempt; the late body is ignored."""
        release = threading.Event()

        def trickle(**kwargs):
            release.wait(5)
            return completion_response({"response": "late"})

        mock_completion.side_effect = trickle
        started = time.monotonic()
        try:
            result = LLMClient("test-model", timeout=0.2, max_attempts=1).invoke(MESSAGES, InferencePayload)
        finally:
            release.set()

        assert time.monotonic() - started < 2
        assert result.exhausted is True
        assert result.payload.response == "..."

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_deadline_expiry_is_retried(self, mock_completion, mock_sleep, completion_response):
        release = threading.Event()

        def slow_then_fast(**kwargs):
            if mock_completion.call_count == 1:
                release.wait(5)
                return completion_response({"response": "late"})
            return completion_response({"response": "on time"})

        mock_completion.side_effect = slow_then_fast
        try:
            result = LLMClient("test-model", timeout=0.2).invoke(MESSAGES, InferencePayload)
        finally:
            release.set()

        assert result.payload.response == "on time"
        assert result.attempts == 2
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0]


class TestWrongTypedBodies:
    """Schema-shaped JSON with wrong value types is a failed attempt, never a crash."""

    @pytest.mark.parametrize(
        "schema, body",
        [
            (IntentPayload, {"intent": "CHAT", "positive_constraints": 5}),
            (AnalysisPayload, {"search_keywords": [], "entries": [{"fact": "x", "topics": 3}]}),
            (AnalysisPayload, {"search_keywords": [], "entries": True}),
        ],
    )
    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_falls_back_to_safe_mode(self, mock_completion, mock_sleep, schema, body, completion_response):
        mock_completion.return_value = completion_response(body)

        result = LLMClient("test-model").invoke(MESSAGES, schema)

        assert result.exhausted is True
        assert mock_completion.call_count == 3
        assert result.payload.response == "..."

    @patch("symbiosis.core.llm.time.sleep")
    @patch("symbiosis.core.llm.completion")
    def test_recovers_on_next_attempt(self, mock_completion, mock_sleep, completion_response):
        mock_completion.side_effect = [
            completion_response({"intent": "SEARCH", "positive_constraints": 5}),
            completion_response({"intent": "SEARCH", "positive_constraints": ["Mika"]}),
        ]

        result = LLMClient("test-model").invoke(MESSAGES, IntentPayload)

        assert result.attempts == 2
        assert result.payload.positive_constraints == ["Mika"]


class TestChangeModel:
    def test_change_model(self):
        client = LLMClient("model-a")
        client.change_model("model-b")
        assert client.model == "model-b"
