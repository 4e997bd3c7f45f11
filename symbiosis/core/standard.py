"""
Standard mode: the memory-augmented companion pipeline.

    ANALYSIS -> TIMEKEEPER -> RETRIEVAL -> GENERATION -> [REDUNDANCY_GUARD] -> MOOD -> PERSIST -> DONE
                    |
                    +-> INTERCEPTED   (important fact with no timeframe)

Each handler mutates the turn and returns the next state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Callable

from symbiosis.core import prompts
from symbiosis.core.graph import normalize_roots, sanitize_mood
from symbiosis.core.keywords import build_retrieval_keywords, informative_words
from symbiosis.core.persistence import MemoryPersister
from symbiosis.core.store import StoreClient, StoreError
from symbiosis.models.memory import MemoryEntry, Reply
from symbiosis.models.responses import (
    AnalysisPayload,
    GenerationPayload,
    InferencePayload,
    RedundancyPayload,
    TimeframePayload,
)
from symbiosis.models.settings import PipelineSettings

if TYPE_CHECKING:
    from symbiosis.core.llm import LLMClient
    from symbiosis.core.persistence import PersistenceWorker
    from symbiosis.core.session import SessionContext

logger = logging.getLogger(__name__)

RETRIEVAL_HEADER = "=== DATABASE SEARCH RESULTS ==="


class StandardState(str, Enum):
    ANALYSIS = "ANALYSIS"
    TIMEKEEPER = "TIMEKEEPER"
    RETRIEVAL = "RETRIEVAL"
    GENERATION = "GENERATION"
    REDUNDANCY_GUARD = "REDUNDANCY_GUARD"
    MOOD = "MOOD"
    PERSIST = "PERSIST"
    INTERCEPTED = "INTERCEPTED"
    DONE = "DONE"


TERMINAL_STATES = frozenset({StandardState.INTERCEPTED, StandardState.DONE})


def format_today(now: datetime) -> str:
    """e.g. 'Mon, October 19, 2026'"""
    return f"{now:%a}, {now:%B} {now.day}, {now.year}"


@dataclass
class StandardTurn:
    user_text: str
    question_mode: bool
    today: str
    keywords: list[str] = field(default_factory=list)
    entries: list[MemoryEntry] = field(default_factory=list)
    retrieved: str = ""
    generation: GenerationPayload = field(default_factory=GenerationPayload)
    reply: Reply | None = None
    trace: list[StandardState] = field(default_factory=list)


class StandardPipeline:
    """Runs one Standard-mode turn."""

    def __init__(
        self,
        llm: LLMClient,
        store: StoreClient | None,
        worker: PersistenceWorker,
        settings: PipelineSettings | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.llm = llm
        self.store = store
        self.worker = worker
        self.settings = settings or PipelineSettings()
        self.clock = clock
        self.persister = (
            MemoryPersister(
                llm,
                store,
                user_name=self.settings.user_name,
                context_threshold=self.settings.dedup_context_threshold,
            )
            if store is not None
            else None
        )
        self._handlers: dict[StandardState, Callable[[StandardTurn, SessionContext], StandardState]] = {
            StandardState.ANALYSIS: self._analyze,
            StandardState.TIMEKEEPER: self._timekeeper,
            StandardState.RETRIEVAL: self._retrieve,
            StandardState.GENERATION: self._generate,
            StandardState.REDUNDANCY_GUARD: self._redundancy_guard,
            StandardState.MOOD: self._mood,
            StandardState.PERSIST: self._persist,
        }

    def run(self, user_text: str, session: SessionContext, question_mode: bool = False) -> StandardTurn:
        turn = StandardTurn(
            user_text=user_text,
            question_mode=question_mode,
            today=format_today(self.clock()),
        )
        state = StandardState.ANALYSIS
        while state not in TERMINAL_STATES:
            turn.trace.append(state)
            state = self._handlers[state](turn, session)
        turn.trace.append(state)
        logger.debug("Standard turn: %s", " -> ".join(s.value for s in turn.trace))
        return turn

    @staticmethod
    def _system(prompt: str) -> list[dict[str, str]]:
        return [{"role": "system", "content": prompt}]

    # ── ANALYSIS ────────────────────────────────────────────────────

    def _analyze(self, turn: StandardTurn, session: SessionContext) -> StandardState:
        result = self.llm.invoke(
            self._system(
                prompts.analysis(
                    self.settings.user_name,
                    turn.today,
                    session.history_text(self.settings.history_window),
                    turn.user_text,
                )
            ),
            AnalysisPayload,
            validator=lambda p: p.search_keywords is not None,
            label="Analysis",
        )
        turn.keywords = result.payload.keywords()
        turn.entries = list(result.payload.entries)
        logger.info("Analysis: %d keyword(s), %d entr(ies)", len(turn.keywords), len(turn.entries))
        return StandardState.TIMEKEEPER

    # ── TIMEKEEPER ──────────────────────────────────────────────────

    def _timekeeper(self, turn: StandardTurn, session: SessionContext) -> StandardState:
        kept: list[MemoryEntry] = []
        for entry in turn.entries:
            if entry.importance < self.settings.timekeeper_threshold:
                kept.append(entry)
                continue

            check = self.llm.invoke(
                self._system(prompts.timekeeper(entry.fact, turn.today)),
                TimeframePayload,
                validator=lambda p: isinstance(p.valid, bool),
                label="Timekeeper",
            ).payload

            if check.valid:
                if check.rewritten_fact:
                    logger.debug("Timekeeper rewrote: %r -> %r", entry.fact, check.rewritten_fact)
                    entry = entry.model_copy(update={"fact": check.rewritten_fact})
                kept.append(entry)
                continue

            logger.warning("Vague fact intercepted: %s", entry.fact)
            question = self.llm.invoke(
                self._system(prompts.interceptor(turn.user_text, entry.fact)),
                InferencePayload,
                validator=lambda p: p.response,
                label="Interceptor",
            ).payload
            turn.entries = []
            turn.reply = Reply(response=question.response or "...", mood="CURIOUS", roots=[])
            return StandardState.INTERCEPTED

        turn.entries = kept
        return StandardState.RETRIEVAL

    # ── RETRIEVAL ───────────────────────────────────────────────────

    def _retrieve(self, turn: StandardTurn, session: SessionContext) -> StandardState:
        session.reset_retrieval()
        if self.store is None:
            return StandardState.GENERATION

        keys = build_retrieval_keywords(turn.user_text, turn.keywords, session.history, turn.question_mode)
        logger.info("Retrieving with keywords: %s", keys)
        try:
            memories = self.store.retrieve(keys)
        except StoreError as e:
            logger.warning("Retrieval failed: %s", e)
            memories = []

        if memories:
            turn.retrieved = RETRIEVAL_HEADER + "\n" + "\n".join(memories)
            session.last_retrieved_context = turn.retrieved
            session.raw_memories = list(memories)
        return StandardState.GENERATION

    # ── GENERATION ──────────────────────────────────────────────────

    def _generate(self, turn: StandardTurn, session: SessionContext) -> StandardState:
        result = self.llm.invoke(
            [
                {
                    "role": "user",
                    "content": prompts.generation(
                        turn.retrieved,
                        session.history_text(self.settings.history_window),
                        turn.user_text,
                        turn.question_mode,
                    ),
                }
            ],
            GenerationPayload,
            validator=lambda p: p.response and p.mood,
            label="Generation",
        )
        turn.generation = result.payload

        if turn.question_mode and self.store is not None and turn.generation.response:
            return StandardState.REDUNDANCY_GUARD
        return StandardState.MOOD

    # ── REDUNDANCY_GUARD ────────────────────────────────────────────

    def _redundancy_guard(self, turn: StandardTurn, session: SessionContext) -> StandardState:
        candidate = turn.generation.response or ""
        words = informative_words(candidate)
        if not words:
            return StandardState.MOOD

        try:
            memories = self.store.retrieve(words)
        except StoreError as e:
            logger.warning("Redundancy lookup failed: %s", e)
            return StandardState.MOOD
        if not memories:
            return StandardState.MOOD

        known = "\n".join(memories)
        check = self.llm.invoke(
            self._system(prompts.redundancy_check(candidate, known)),
            RedundancyPayload,
            validator=lambda p: isinstance(p.is_redundant, bool),
            label="SanityCheck",
        ).payload
        if not check.is_redundant:
            return StandardState.MOOD

        logger.warning("Redundant question caught: %s", candidate)
        corrected = self.llm.invoke(
            self._system(prompts.correction(candidate, known)),
            GenerationPayload,
            validator=lambda p: p.response,
            label="CorrectionGeneration",
        ).payload
        turn.generation = corrected
        return StandardState.MOOD

    # ── MOOD ────────────────────────────────────────────────────────

    def _mood(self, turn: StandardTurn, session: SessionContext) -> StandardState:
        gen = turn.generation
        mood = sanitize_mood(gen.mood)
        session.current_mood = mood
        turn.reply = Reply(
            response=gen.response or "...",
            mood=mood,
            roots=normalize_roots(gen.roots) if gen.roots is not None else None,
        )
        return StandardState.PERSIST

    # ── PERSIST ─────────────────────────────────────────────────────

    def _persist(self, turn: StandardTurn, session: SessionContext) -> StandardState:
        if self.persister is None or not turn.entries:
            return StandardState.DONE
        # Snapshot: the next turn overwrites the session cache
        self.worker.submit(
            "persist_entries",
            self.persister.persist,
            list(turn.entries),
            session.last_retrieved_context,
        )
        return StandardState.DONE
