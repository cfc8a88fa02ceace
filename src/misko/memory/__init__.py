"""Message log and per-user fact memory."""

from .extractor import FactExtractor
from .manager import FactExtractionDisabledError, FactManager, HistoryAnalysisResult
from .models import ChatMessage, ExtractedFact, FactType, UserFact
from .store import MemoryStore

__all__ = [
    "ChatMessage",
    "ExtractedFact",
    "FactExtractionDisabledError",
    "FactExtractor",
    "FactManager",
    "FactType",
    "HistoryAnalysisResult",
    "MemoryStore",
    "UserFact",
]
