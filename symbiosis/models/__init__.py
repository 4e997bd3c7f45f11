"""Data models for symbiosis."""

from symbiosis.models.memory import (
    ArchiveFile,
    ArchiveSearchResult,
    ChatMessage,
    DirectorMemory,
    GraphBranch,
    GraphLeaf,
    GraphRoot,
    Intent,
    MemoryEntry,
    Reply,
    SearchQuery,
)
from symbiosis.models.settings import SymbiosisSettings, load_settings

__all__ = [
    "ArchiveFile",
    "ArchiveSearchResult",
    "ChatMessage",
    "DirectorMemory",
    "GraphBranch",
    "GraphLeaf",
    "GraphRoot",
    "Intent",
    "MemoryEntry",
    "Reply",
    "SearchQuery",
    "SymbiosisSettings",
    "load_settings",
]
