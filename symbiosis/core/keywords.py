"""
Lightweight text heuristics used to build store lookups.

None of these call a model: they pick capitalized names out of recent turns,
carry topic words forward from the assistant, and clean keyword lists.
"""

from __future__ import annotations

import re
from typing import Iterable

from symbiosis.models.memory import ChatMessage

_CAPITALIZED = re.compile(r"[A-Z][a-zA-Z]+")
_CAPITALIZED_SIMPLE = re.compile(r"[A-Z][a-z]+")
_ALPHA = re.compile(r"^[a-zA-Z]+$")
_PRONOUNS = re.compile(r"\b(he|him|she|her|it|them|that|those)\b", re.IGNORECASE)

BRIDGE_STOP_WORDS = frozenset(
    ["The", "A", "An", "I", "He", "She", "It", "They", "We", "Who", "What", "Where", "When"]
)
ANCHOR_STOP_WORDS = frozenset(["Who", "What", "Where", "When", "Why", "How", "I", "No", "Yes", "I'm"])
UTTERANCE_STOP_WORDS = frozenset(
    ["no", "yes", "nope", "yeah", "dont", "know", "what", "when", "where", "who", "why", "i"]
)
FALLBACK_STOP_WORDS = frozenset(["what", "when", "where", "dont", "know"])
QUESTION_STOP_WORDS = frozenset(["what", "when", "where", "who", "why", "does", "this", "that", "have"])

DEEP_ANCHOR_DEPTH = 5


def last_of_role(history: Iterable[ChatMessage], role: str) -> ChatMessage | None:
    last = None
    for msg in history:
        if msg.role == role:
            last = msg
    return last


def needs_bridge(text: str) -> bool:
    """Short commands and pronoun-laden input usually point at the previous turn."""
    return len(text.split(" ")) < 5 or bool(_PRONOUNS.search(text))


def bridge_entities(text: str, history: list[ChatMessage]) -> list[str]:
    """Capitalized candidates from the last assistant turn, when the input needs resolving."""
    if not needs_bridge(text):
        return []
    last_assistant = last_of_role(history, "assistant")
    if last_assistant is None:
        return []
    return [w for w in _CAPITALIZED.findall(last_assistant.content) if w not in BRIDGE_STOP_WORDS]


def capitalized_tokens(text: str) -> list[str]:
    return _CAPITALIZED_SIMPLE.findall(text or "")


def unique(items: Iterable[str]) -> list[str]:
    seen: list[str] = []
    for item in items:
        if item and item not in seen:
            seen.append(item)
    return seen


def title_case_input(text: str) -> str | None:
    """Title-cased raw input for short utterances that carry content."""
    if len(text) >= 50:
        return None
    clean = re.sub(r"[^a-z ]", "", text.lower()).strip()
    if not clean or clean in UTTERANCE_STOP_WORDS:
        return None
    return " ".join(w[:1].upper() + w[1:] for w in text.lower().split(" "))


def sticky_words(history: list[ChatMessage], limit: int = 2) -> list[str]:
    """Long alphabetic words from the last assistant turn."""
    last_assistant = last_of_role(history, "assistant")
    if last_assistant is None:
        return []
    words = [w for w in last_assistant.content.split(" ") if len(w) > 5 and _ALPHA.match(w)]
    return words[:limit]


def deep_anchor(history: list[ChatMessage], depth: int = DEEP_ANCHOR_DEPTH) -> list[str]:
    """
    Scan back through recent user turns for the last named subject.

    Stops at the first turn (newest first) that yields a capitalized word
    outside the stop list, so a run of "I don't know" answers does not lose
    the person being discussed.
    """
    user_turns = [m for m in history if m.role == "user"]
    for msg in reversed(user_turns[-depth:]):
        caps = [w for w in _CAPITALIZED.findall(msg.content) if w not in ANCHOR_STOP_WORDS]
        if caps:
            return caps
    return []


def fallback_keywords(text: str) -> list[str]:
    return [w for w in text.split(" ") if len(w) > 3 and w not in FALLBACK_STOP_WORDS]


def build_retrieval_keywords(
    text: str,
    analysis_keywords: list[str],
    history: list[ChatMessage],
    question_mode: bool,
) -> list[str]:
    """Union of analysis keywords, raw input, sticky words and the deep anchor."""
    keys = list(analysis_keywords)

    titled = title_case_input(text)
    if titled:
        keys.insert(0, titled)

    if history:
        keys.extend(sticky_words(history))
        if question_mode or len(text) < 30:
            keys.extend(deep_anchor(history))

    keys = [k for k in unique(keys) if len(k) > 2]
    if not keys:
        keys = fallback_keywords(text)
    return keys


def informative_words(text: str) -> list[str]:
    """Content words of a candidate question, used to re-query the store."""
    return [
        w
        for w in text.split(" ")
        if len(w) > 3 and _ALPHA.match(w) and w.lower() not in QUESTION_STOP_WORDS
    ]


def lookup_keys(entity_name: str | None, constraints: list[str], fact: str | None) -> list[str]:
    """Keys for checking an archive fact against what is already recorded."""
    keys: list[str] = []
    if entity_name:
        keys.append(entity_name)
    keys.extend(constraints)
    if not keys and fact:
        keys = capitalized_tokens(fact)
    return [k for k in unique(keys) if len(k) > 1]
