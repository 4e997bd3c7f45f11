"""
Conversation pipeline entry point.

Routes each user turn to the Director or Standard sub-pipeline, logs the
exchange to the store in the background and keeps the session history.
"""

from __future__ import annotations

import logging
from typing import Any

from symbiosis.core.director import DirectorPipeline
from symbiosis.core.llm import InferenceAuthError, LLMClient
from symbiosis.core.persistence import PersistenceWorker
from symbiosis.core.session import SessionContext
from symbiosis.core.standard import StandardPipeline
from symbiosis.core.store import StoreClient
from symbiosis.core.telemetry import TelemetryCollector
from symbiosis.models.memory import ChatMessage, Reply
from symbiosis.models.settings import SymbiosisSettings

logger = logging.getLogger(__name__)


class ConversationPipeline:
    """
    One conversational agent bound to an inference client and an optional store.

    Example:
        >>> pipeline = ConversationPipeline.from_settings(api_key, store_url=url)
        >>> session = bootstrap_session(pipeline.store)
        >>> reply = pipeline.process("I moved to Lisbon last spring", session)
        >>> reply.mood
        'JOYFUL'
    """

    def __init__(
        self,
        llm: LLMClient,
        store: StoreClient | None = None,
        settings: SymbiosisSettings | None = None,
        worker: PersistenceWorker | None = None,
        telemetry: TelemetryCollector | None = None,
    ):
        self.llm = llm
        self.store = store
        self.settings = settings or SymbiosisSettings()
        self.worker = worker or PersistenceWorker()
        self.telemetry = telemetry
        self.director = DirectorPipeline(llm, store, self.worker, self.settings.pipeline)
        self.standard = StandardPipeline(llm, store, self.worker, self.settings.pipeline)

    @classmethod
    def from_settings(
        cls,
        api_key: str | None,
        settings: SymbiosisSettings | None = None,
        store_url: str | None = None,
        model: str | None = None,
    ) -> ConversationPipeline:
        settings = settings or SymbiosisSettings()
        telemetry = TelemetryCollector() if settings.telemetry else None
        inference = settings.inference
        llm = LLMClient(
            model=model or inference.model,
            api_key=api_key,
            timeout=inference.timeout,
            max_attempts=inference.max_attempts,
            retry_delay=inference.retry_delay,
            retry_backoff=inference.retry_backoff,
            telemetry=telemetry,
        )
        store = StoreClient(store_url) if store_url else None
        return cls(llm, store=store, settings=settings, telemetry=telemetry)

    def _log_chat(self, role: str, content: str) -> None:
        if self.store is None:
            return
        self.worker.submit(f"log_chat:{role}", self.store.log_chat, role, content)

    def process(
        self,
        user_text: str,
        session: SessionContext,
        question_mode: bool = False,
        director_mode: bool = False,
    ) -> Reply:
        """
        Run one conversational turn.

        Returns:
            The structured Reply. Always well-formed, even when every
            inference call fell back to safe mode.

        Raises:
            InferenceAuthError: When the inference service rejects the credential
        """
        mode = "director" if director_mode else "standard"
        span = self.telemetry.start_turn(mode) if self.telemetry else None

        self._log_chat("user", user_text)

        try:
            if director_mode:
                reply = self.director.run(user_text, session)
            else:
                turn = self.standard.run(user_text, session, question_mode=question_mode)
                reply = turn.reply
                self._log_chat("assistant", reply.response)
        except InferenceAuthError as e:
            if span is not None:
                self.telemetry.track_error("auth", str(e), {"mode": mode})
                self.telemetry.end_turn(span, status="error")
            raise

        session.append("user", user_text)
        session.append("assistant", reply.response)

        if span is not None:
            self.telemetry.end_turn(span, metadata={"mood": reply.mood, "action": reply.director_action})
        return reply

    def close(self, wait_for_jobs: bool = True) -> None:
        self.worker.shutdown(wait_for_jobs=wait_for_jobs)
        if self.store is not None:
            self.store.close()


def process_memory_chat(
    user_text: str,
    api_key: str | None,
    model: str | None,
    history: list[ChatMessage] | None = None,
    question_mode: bool = False,
    director_mode: bool = False,
    store: StoreClient | None = None,
) -> dict[str, Any]:
    """
    Functional wrapper around ConversationPipeline for one-shot callers.

    Returns the renderer-facing payload (``response``, ``mood`` and, where
    present, ``roots``, ``directorAction``, ``deckKeywords``, ``files``).
    """
    llm = LLMClient(model=model or SymbiosisSettings().inference.model, api_key=api_key)
    pipeline = ConversationPipeline(llm, store=store)
    session = SessionContext(history=list(history or []))
    try:
        reply = pipeline.process(
            user_text,
            session,
            question_mode=question_mode,
            director_mode=director_mode,
        )
    finally:
        pipeline.worker.shutdown(wait_for_jobs=False)
    return reply.to_payload()
