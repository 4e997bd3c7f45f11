"""
Client for the remote fact store (an action-tagged JSON POST endpoint).

The request bodies are compact JSON with a fixed key order so they match
what the store's script expects byte for byte.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from symbiosis.models.memory import ArchiveFile, ArchiveSearchResult, DirectorMemory, MemoryEntry

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


def _rows(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


class StoreError(Exception):
    """The store could not be reached or returned something unusable."""


class StoreClient:
    """
    Narrow request/response client for the fact store.

    Every method raises StoreError on transport, HTTP or decoding failures;
    callers decide how soft each failure is.
    """

    def __init__(self, url: str, timeout: float = DEFAULT_TIMEOUT, client: httpx.Client | None = None):
        self.url = url
        # text/plain keeps the POST a "simple" request for script hosts
        self._client = client or httpx.Client(
            headers={"Content-Type": "text/plain"},
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
        )

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def encode(body: dict[str, Any]) -> bytes:
        """Serialize like JSON.stringify: compact, insertion-ordered, UTF-8."""
        return json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")

    def _post(self, body: dict[str, Any]) -> dict[str, Any]:
        action = body.get("action")
        try:
            response = self._client.post(
                self.url,
                content=self.encode(body),
                headers={"Content-Type": "text/plain"},
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise StoreError(f"Store rejected '{action}': HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise StoreError(f"Could not reach store for '{action}': {e}") from e
        except ValueError as e:
            raise StoreError(f"Invalid JSON from store for '{action}': {e}") from e
        if not isinstance(data, dict):
            raise StoreError(f"Unexpected response shape for '{action}'")
        return data

    def _send(self, body: dict[str, Any]) -> None:
        """Fire a write whose response body is not used."""
        action = body.get("action")
        try:
            response = self._client.post(
                self.url,
                content=self.encode(body),
                headers={"Content-Type": "text/plain"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise StoreError(f"Store rejected '{action}': HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise StoreError(f"Could not reach store for '{action}': {e}") from e

    # ── Chat log ────────────────────────────────────────────────────

    def get_recent_chat(self) -> list[list[Any]]:
        """Return raw history rows: [timestamp, role, content]."""
        data = self._post({"action": "get_recent_chat"})
        history = data.get("history")
        if not isinstance(history, list):
            return []
        return [row for row in history if isinstance(row, list) and len(row) >= 3]

    def log_chat(self, role: str, content: str) -> None:
        self._send({"action": "log_chat", "role": role, "content": content})

    # ── Retrieval ───────────────────────────────────────────────────

    def retrieve(self, keywords: list[str]) -> list[str]:
        """Keyword retrieval over atomic memories. Empty list when nothing matched."""
        data = self._post({"action": "retrieve", "keywords": list(keywords)})
        if not data.get("found"):
            return []
        memories = _rows(data.get("relevant_memories"))
        return [m if isinstance(m, str) else json.dumps(m) for m in memories]

    def retrieve_director_memory(self, keywords: list[str]) -> list[DirectorMemory]:
        data = self._post({"action": "retrieve_director_memory", "keywords": list(keywords)})
        if not data.get("found"):
            return []
        memories: list[DirectorMemory] = []
        for m in _rows(data.get("relevant_memories")):
            if isinstance(m, dict):
                memory = DirectorMemory.model_validate(m)
            elif isinstance(m, str):
                memory = DirectorMemory(Fact=m)
            else:
                continue
            if memory.fact:
                memories.append(memory)
        return memories

    # ── Writes ──────────────────────────────────────────────────────

    def store_atomic(self, entry: MemoryEntry) -> None:
        self._send(
            {
                "action": "store_atomic",
                "fact": entry.fact,
                "entities": entry.entities,
                "topics": ", ".join(entry.topics),
                "importance": entry.importance,
            }
        )

    def store_director_fact(self, fact: str | None, entity: str | None) -> None:
        self._send(
            {
                "action": "store_director_fact",
                "fact": fact,
                "entity": entity,
                "tags": "Metadata",
            }
        )

    # ── Archive search ──────────────────────────────────────────────

    def director_search(self, query: str, constraints: list[str], exclude: list[str]) -> ArchiveSearchResult:
        data = self._post(
            {
                "action": "director_search",
                "query": query,
                "constraints": list(constraints),
                "exclude_constraints": list(exclude),
            }
        )
        rows = [ArchiveFile.model_validate(f) for f in _rows(data.get("files")) if isinstance(f, dict)]
        # Rows without a file name cannot be played
        files = [f for f in rows if f.name]
        return ArchiveSearchResult(
            found=bool(data.get("found")) and (bool(files) or not rows),
            files=files,
            debug_query=data.get("debug_query"),
        )
