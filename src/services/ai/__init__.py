"""Init file for AI services."""

from .forwarder import StreamForwarder
from .orchestrator import RetryFallbackOrchestrator
from .prompts import DiffPromptBuilder, RephrasePromptBuilder


__all__ = [
    "DiffPromptBuilder",
    "RephrasePromptBuilder",
    "RetryFallbackOrchestrator",
    "StreamForwarder",
]
