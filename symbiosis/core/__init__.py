"""Core module for symbiosis."""

from symbiosis.core.config import ConfigManager, load_config
from symbiosis.core.director import DirectorPipeline, DirectorState
from symbiosis.core.llm import InferenceAuthError, Invocation, LLMClient, LLMError
from symbiosis.core.persistence import MemoryPersister, PersistenceWorker
from symbiosis.core.pipeline import ConversationPipeline, process_memory_chat
from symbiosis.core.session import SessionContext, bootstrap_session
from symbiosis.core.standard import StandardPipeline, StandardState
from symbiosis.core.store import StoreClient, StoreError
from symbiosis.core.telemetry import TelemetryCollector

__all__ = [
    "ConfigManager",
    "ConversationPipeline",
    "DirectorPipeline",
    "DirectorState",
    "InferenceAuthError",
    "Invocation",
    "LLMClient",
    "LLMError",
    "MemoryPersister",
    "PersistenceWorker",
    "SessionContext",
    "StandardPipeline",
    "StandardState",
    "StoreClient",
    "StoreError",
    "TelemetryCollector",
    "bootstrap_session",
    "load_config",
    "process_memory_chat",
]
