"""
Director mode: an intent-routed state machine over the media archive.

    CLASSIFY -> STORE | SEARCH | CHAT      (FALLBACK for unknown intents)

Every state after CLASSIFY is terminal for the turn and produces the Reply.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable

from symbiosis.core import prompts
from symbiosis.core.keywords import bridge_entities, lookup_keys, unique
from symbiosis.core.store import StoreClient, StoreError
from symbiosis.models.memory import ArchiveSearchResult, ChatMessage, DirectorMemory, Intent, Reply, SearchQuery
from symbiosis.models.responses import (
    AmbiguityPayload,
    ContradictionPayload,
    InferencePayload,
    IntentPayload,
    MatchPayload,
)
from symbiosis.models.settings import PipelineSettings

if TYPE_CHECKING:
    from symbiosis.core.llm import LLMClient
    from symbiosis.core.persistence import PersistenceWorker
    from symbiosis.core.session import SessionContext

logger = logging.getLogger(__name__)

NEED_SPECIFICS = "I need more specific names or traits to search the archive."
ALREADY_RECORDED = "I already have that recorded in the archives."
NO_MATCH_ANSWER = "I couldn't find anyone matching that description in the archive."


class DirectorState(str, Enum):
    CLASSIFY = "CLASSIFY"
    STORE = "STORE"
    SEARCH = "SEARCH"
    CHAT = "CHAT"
    FALLBACK = "FALLBACK"


@dataclass
class DirectorTurn:
    user_text: str
    history: list[ChatMessage]
    bridge: list[str] = field(default_factory=list)
    classification: IntentPayload = field(default_factory=IntentPayload)


class DirectorPipeline:
    """Runs one Director-mode turn."""

    def __init__(
        self,
        llm: LLMClient,
        store: StoreClient | None,
        worker: PersistenceWorker,
        settings: PipelineSettings | None = None,
    ):
        self.llm = llm
        self.store = store
        self.worker = worker
        self.settings = settings or PipelineSettings()
        self._handlers: dict[DirectorState, Callable[[DirectorTurn, SessionContext], Reply]] = {
            DirectorState.CHAT: self._chat,
            DirectorState.STORE: self._store,
            DirectorState.SEARCH: self._search,
            DirectorState.FALLBACK: self._fallback,
        }

    def run(self, user_text: str, session: SessionContext) -> Reply:
        turn = DirectorTurn(user_text=user_text, history=list(session.history))
        state = self._classify(turn, session)
        logger.info("Director intent: %s (keywords=%s, excludes=%s)",
                    state.value,
                    turn.classification.positive_constraints,
                    turn.classification.negative_constraints)
        return self._handlers[state](turn, session)

    def _system(self, prompt: str) -> list[dict[str, str]]:
        return [{"role": "system", "content": prompt}]

    # ── CLASSIFY ────────────────────────────────────────────────────

    def _classify(self, turn: DirectorTurn, session: SessionContext) -> DirectorState:
        turn.bridge = bridge_entities(turn.user_text, turn.history)
        if turn.bridge:
            logger.debug("Intent bridge built: %s", turn.bridge)

        result = self.llm.invoke(
            self._system(
                prompts.director_intent(
                    session.history_text(self.settings.history_window), turn.bridge, turn.user_text
                )
            ),
            IntentPayload,
            validator=lambda p: p.intent,
            label="DirectorAI",
        )
        turn.classification = result.payload

        intent = turn.classification.intent_kind()
        if intent is Intent.CHAT:
            return DirectorState.CHAT
        # Writes and archive searches need the store
        if intent is Intent.STORE and self.store is not None:
            return DirectorState.STORE
        if intent is Intent.SEARCH and self.store is not None:
            return DirectorState.SEARCH
        return DirectorState.FALLBACK

    # ── CHAT ────────────────────────────────────────────────────────

    def _lookup(self, keywords: list[str]) -> list[DirectorMemory]:
        try:
            return self.store.retrieve_director_memory(keywords)
        except StoreError as e:
            logger.warning("Director memory lookup failed: %s", e)
            return []

    def _drilldown_targets(self, memories: list[DirectorMemory], constraints: list[str]) -> list[str]:
        """Discovered entities not already named, trait matches first."""
        entities = unique(m.entity for m in memories if m.entity)
        targets = [e for e in entities if e not in constraints]
        lowered = [k.lower() for k in constraints]

        def _first_fact(entity: str) -> str:
            return next((m.fact for m in memories if m.entity == entity), "").lower()

        targets.sort(key=lambda e: 0 if any(k in _first_fact(e) for k in lowered) else 1)
        return targets[: self.settings.drilldown_limit]

    def _chat(self, turn: DirectorTurn, session: SessionContext) -> Reply:
        constraints = turn.classification.positive_constraints
        if not constraints or self.store is None:
            return Reply(response=NEED_SPECIFICS, mood="CRYPTIC")

        try:
            memories = self.store.retrieve_director_memory(constraints)
        except StoreError as e:
            logger.warning("Chat lookup failed: %s", e)
            return Reply(response=NEED_SPECIFICS, mood="CRYPTIC")

        if not memories:
            return Reply(
                response=f"I searched the archives for {', '.join(constraints)} but found no records.",
                mood="SAD",
            )

        targets = self._drilldown_targets(memories, constraints)
        if targets:
            logger.debug("Drill-down triggered for: %s", targets)
            known = {m.fact for m in memories}
            for m in self._lookup(targets):
                if m.fact not in known:
                    memories.append(m)
                    known.add(m.fact)

        facts = "\n".join(m.describe() for m in memories)

        matched = self.llm.invoke(
            self._system(prompts.director_filter(session.history_text(600), turn.user_text, facts)),
            MatchPayload,
            validator=lambda p: isinstance(p.matches, list),
            label="DirectorFilter",
        )
        matches = matched.payload.matches or []
        logger.info("Filtered matches: %s", matches)

        answer = self.llm.invoke(
            self._system(prompts.director_answer(session.history_text(300), turn.user_text, matches, facts)),
            InferencePayload,
            validator=lambda p: p.response,
            label="DirectorContextChat",
        )

        reply = Reply(response=answer.payload.response or NO_MATCH_ANSWER, mood="CRYPTIC")
        if matches:
            reply.director_action = "SHOW_DECKS"
            reply.deck_keywords = list(matches)
        return reply

    # ── STORE ───────────────────────────────────────────────────────

    def _store(self, turn: DirectorTurn, session: SessionContext) -> Reply:
        c = turn.classification
        keys = lookup_keys(c.entity_name, c.positive_constraints, c.fact_to_store)

        is_duplicate = False
        is_contradiction = False
        warning = ""

        existing = self._lookup(keys) if keys else []
        if existing:
            logs = "\n".join(f"[{m.entity or 'Unknown'}] {m.fact}" for m in existing)
            check = self.llm.invoke(
                self._system(prompts.director_contradiction(logs, c.fact_to_store, c.entity_name)),
                ContradictionPayload,
                validator=lambda p: isinstance(p.is_duplicate, bool),
                label="DirectorDedup",
            ).payload
            if check.is_duplicate:
                logger.warning("Duplicate intercepted: %s", c.fact_to_store)
                is_duplicate = True
            if check.is_contradiction:
                logger.warning("Contradiction detected: %s", c.fact_to_store)
                is_contradiction = True
                warning = check.warning_message or ""

        if is_duplicate:
            return Reply(response=ALREADY_RECORDED, mood="NEUTRAL")

        if is_contradiction:
            return Reply(response=f"{warning} Shall I overwrite the old data?".strip(), mood="QUESTION")

        self.worker.submit("store_director_fact", self.store.store_director_fact, c.fact_to_store, c.entity_name)
        return Reply(response=c.response or "Database Updated.")

    # ── SEARCH ──────────────────────────────────────────────────────

    def _resolve(self, turn: DirectorTurn, query: SearchQuery) -> SearchQuery | Reply:
        """Ambiguity gate: a clarification Reply, or the (possibly rewritten) query."""
        memories = self._lookup(query.include)
        if not memories:
            return query

        listing = "\n".join(f"{m.entity}: {m.fact}" for m in memories)
        check = self.llm.invoke(
            self._system(prompts.director_ambiguity(turn.user_text, query.include, listing)),
            AmbiguityPayload,
            validator=lambda p: p.status,
            label="DirectorAmbiguity",
        ).payload

        status = (check.status or "").upper()
        if status == "AMBIGUOUS":
            return Reply(response=check.clarification_question or "...", mood="QUESTION")
        if status == "RESOLVED" and check.resolved_names:
            return SearchQuery(
                include=check.resolved_names,
                exclude=check.resolved_excludes or query.exclude,
            )
        return query

    def _search(self, turn: DirectorTurn, session: SessionContext) -> Reply:
        c = turn.classification
        query = SearchQuery(include=c.positive_constraints, exclude=c.negative_constraints)

        if query.include:
            resolved = self._resolve(turn, query)
            if isinstance(resolved, Reply):
                return resolved
            query = resolved

        logger.info("Executing search: include=%s exclude=%s", query.include, query.exclude)
        try:
            result = self.store.director_search(turn.user_text, query.include, query.exclude)
        except StoreError as e:
            logger.warning("Archive search failed: %s", e)
            result = ArchiveSearchResult()

        files = result.files
        found = result.found
        if found and query.exclude:
            files = query.drop_excluded(result.files)
            if not files and result.files:
                logger.info("All files filtered by negative constraints")
                found = False

        if not found and len(query.include) > 1:
            logger.warning("Strict search failed, offering cooperative fallback")
            return Reply(
                response=(
                    f"I couldn't find a single scene with BOTH {' and '.join(query.include)}. "
                    "However, I can likely access their individual footage. Which one should I prioritize?"
                ),
                mood="QUESTION",
                director_action="SHOW_DECKS",
                deck_keywords=list(query.include),
                files=[],
            )

        return Reply(
            response=(c.response or "Archive accessed.") if found else "No matching footage found.",
            mood="CRYPTIC" if found else "SAD",
            director_action="PLAY_MEDIA",
            files=files,
            debug_query=result.debug_query,
        )

    # ── FALLBACK ────────────────────────────────────────────────────

    def _fallback(self, turn: DirectorTurn, session: SessionContext) -> Reply:
        return Reply(response=turn.classification.response or "...", mood="CRYPTIC")
