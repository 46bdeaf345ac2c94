"""
Models package: in-memory queue types and the history database model.
"""

from models.database import Base, engine, async_session
from models.history import HistoryEntry
from models.transcription import (
    TranscriptionResult,
    TranscriptSegment,
    TranscriptionConfig,
    ExportFormat,
)
from models.queue_item import (
    QueuedItem,
    SourceRef,
    SourceKind,
    ItemStatus,
    RunState,
    BatchMode,
    RetryPosition,
    BatchSession,
)

__all__ = [
    "Base",
    "engine",
    "async_session",
    "HistoryEntry",
    "TranscriptionResult",
    "TranscriptSegment",
    "TranscriptionConfig",
    "ExportFormat",
    "QueuedItem",
    "SourceRef",
    "SourceKind",
    "ItemStatus",
    "RunState",
    "BatchMode",
    "RetryPosition",
    "BatchSession",
]
