"""
Pytest fixtures for symbiosis tests.
"""

import json
import os
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from symbiosis.core.llm import SAFE_MODE_RAW, Invocation
from symbiosis.core.persistence import PersistenceWorker
from symbiosis.core.store import StoreClient
from symbiosis.models.responses import SAFE_MODE_PAYLOAD


@pytest.fixture(autouse=True)
def _clean_env():
    """Prevent environment variable pollution between tests.

    CLI commands call ConfigManager.get(), which reads OPENROUTER_API_KEY and
    SYMBIOSIS_STORE_URL from the environment first.
    """
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class ScriptedLLM:
    """
    Stand-in for LLMClient.invoke that answers by call-site label.

    Each label maps to one payload dict or a list consumed in order. Unknown
    labels, and payloads rejected by the call site's validator, come back as
    the safe-mode fallback just like an exhausted engine.
    """

    def __init__(self, script: dict | None = None):
        self.script = {k: list(v) if isinstance(v, list) else [v] for k, v in (script or {}).items()}
        self.calls: list[dict] = []
        self.model = "test-model"

    def labels(self) -> list[str]:
        return [c["label"] for c in self.calls]

    def prompt_for(self, label: str) -> str:
        for call in self.calls:
            if call["label"] == label:
                return call["messages"][0]["content"]
        raise KeyError(label)

    def invoke(self, messages, schema, validator=None, label="LLM"):
        self.calls.append({"label": label, "messages": messages, "schema": schema})
        queue = self.script.get(label)
        if queue:
            data = queue.pop(0) if len(queue) > 1 else queue[0]
            payload = schema.model_validate(data)
            if validator is None or validator(payload):
                return Invocation(payload=payload, raw=json.dumps(data), attempts=1)
        return Invocation(
            payload=schema.model_validate(SAFE_MODE_PAYLOAD),
            raw=SAFE_MODE_RAW,
            attempts=3,
            exhausted=True,
        )

    def change_model(self, model):
        self.model = model


@pytest.fixture
def scripted_llm():
    """Factory for ScriptedLLM instances."""
    return ScriptedLLM


@pytest.fixture
def mock_store():
    """A StoreClient double with empty defaults for every action."""
    store = MagicMock(spec=StoreClient)
    store.get_recent_chat.return_value = []
    store.retrieve.return_value = []
    store.retrieve_director_memory.return_value = []
    return store


@pytest.fixture
def worker():
    """A real background worker, drained and shut down after the test."""
    w = PersistenceWorker()
    yield w
    w.shutdown(wait_for_jobs=True)


@pytest.fixture
def completion_response():
    """Build a litellm-shaped completion response carrying ``content``."""

    def _make(content):
        if isinstance(content, dict):
            content = json.dumps(content)
        response = MagicMock()
        response.choices = [MagicMock()]
        response.choices[0].message.content = content
        return response

    return _make
