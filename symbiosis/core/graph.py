"""
Mood sanitization and knowledge-graph bounding for the renderer.
"""

from __future__ import annotations

import re
from typing import Any

from symbiosis.models.memory import NEUTRAL_MOOD, GraphBranch, GraphLeaf, GraphRoot

MAX_ROOTS = 3
MAX_BRANCHES = 5
MAX_LEAVES = 5

_TOKEN = re.compile(r"[^\W\d_]+(?:['-][^\W\d_]+)*")


def sanitize_mood(mood: Any) -> str:
    if mood is None:
        return NEUTRAL_MOOD
    text = str(mood).strip().upper()
    return text or NEUTRAL_MOOD


def single_word(label: Any) -> str:
    """First alphabetic word of a label, upper-cased. Empty when none survives."""
    if label is None:
        return ""
    for token in str(label).split():
        if any(ch.isdigit() for ch in token):
            continue
        match = _TOKEN.search(token)
        if match:
            return match.group(0).upper()
    return ""


def normalize_roots(roots: list[GraphRoot] | None) -> list[GraphRoot]:
    """Bound the graph to 3/5/5 nodes, one word per label, every mood sanitized."""
    clean: list[GraphRoot] = []
    for root in roots or []:
        label = single_word(root.label)
        if not label:
            continue
        branches: list[GraphBranch] = []
        for branch in root.branches:
            branch_label = single_word(branch.label)
            if not branch_label:
                continue
            leaves: list[GraphLeaf] = []
            for leaf in branch.leaves:
                text = single_word(leaf.text)
                if text:
                    leaves.append(GraphLeaf(text=text, mood=sanitize_mood(leaf.mood)))
                if len(leaves) == MAX_LEAVES:
                    break
            branches.append(GraphBranch(label=branch_label, mood=sanitize_mood(branch.mood), leaves=leaves))
            if len(branches) == MAX_BRANCHES:
                break
        clean.append(GraphRoot(label=label, mood=sanitize_mood(root.mood), branches=branches))
        if len(clean) == MAX_ROOTS:
            break
    return clean
