"""
Detached persistence: background writes that never block or fail a turn.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING, Any, Callable

from symbiosis.core import prompts
from symbiosis.core.store import StoreClient, StoreError
from symbiosis.models.memory import MemoryEntry
from symbiosis.models.responses import RefinementPayload

if TYPE_CHECKING:
    from symbiosis.core.llm import LLMClient

logger = logging.getLogger(__name__)


class PersistenceWorker:
    """
    Single background worker for fire-and-forget jobs.

    Jobs run one at a time in submission order. Failures go to the error sink
    (the module logger by default) and are never re-raised to the submitter.
    """

    def __init__(self, error_sink: Callable[[str, BaseException], None] | None = None):
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="symbiosis-persist")
        self._pending: set[Future] = set()
        self._lock = threading.Lock()
        self._error_sink = error_sink or self._log_failure

    @staticmethod
    def _log_failure(label: str, error: BaseException) -> None:
        logger.error("Background job '%s' failed: %s", label, error)

    def submit(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        future = self._executor.submit(fn, *args, **kwargs)
        with self._lock:
            self._pending.add(future)

        def _done(f: Future) -> None:
            with self._lock:
                self._pending.discard(f)
            error = f.exception()
            if error is not None:
                self._error_sink(label, error)

        future.add_done_callback(_done)

    def drain(self, timeout: float | None = None) -> bool:
        """Wait for queued jobs. Returns True when nothing is left running."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_jobs: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_jobs)


class MemoryPersister:
    """
    Refines and writes extracted entries to the store.

    When enough retrieved context is available, each entry goes through one
    combined duplicate check / entity resolution / cleanup call first.
    """

    def __init__(
        self,
        llm: LLMClient,
        store: StoreClient,
        user_name: str = "Arvin",
        context_threshold: int = 50,
    ):
        self.llm = llm
        self.store = store
        self.user_name = user_name
        self.context_threshold = context_threshold

    def refine(self, entry: MemoryEntry, retrieved_context: str) -> MemoryEntry | None:
        """Return the refined entry, or None when it duplicates a stored fact."""
        result = self.llm.invoke(
            [
                {
                    "role": "system",
                    "content": prompts.refinement(self.user_name, retrieved_context, entry.fact, entry.entities),
                }
            ],
            RefinementPayload,
            validator=lambda p: p.status,
            label="DedupRefine",
        )
        check = result.payload
        if check.status == "DUPLICATE":
            logger.info("Skipped duplicate: %s", entry.fact)
            return None

        refined = entry.model_copy()
        if check.better_fact and len(check.better_fact) > 5:
            logger.debug("Refined fact: %r -> %r", entry.fact, check.better_fact)
            refined.fact = check.better_fact
        if check.better_entities and len(check.better_entities) > 2:
            logger.debug("Refined tags: %r -> %r", entry.entities, check.better_entities)
            refined.entities = check.better_entities
        return refined

    def persist(self, entries: list[MemoryEntry], retrieved_context: str) -> int:
        """Write every non-duplicate entry. Returns the number written."""
        written = 0
        for entry in entries:
            if not entry.fact or entry.fact == "null":
                continue

            if len(retrieved_context) > self.context_threshold:
                refined = self.refine(entry, retrieved_context)
                if refined is None:
                    continue
                entry = refined

            logger.info("Saving memory: %s", entry.fact)
            try:
                self.store.store_atomic(entry)
            except StoreError as e:
                logger.error("Store failed for %r: %s", entry.fact, e)
                continue
            written += 1
        return written
