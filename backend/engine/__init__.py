"""
Engine package for batch transcription.
Contains the queue store, dispatcher, workers and the faster-whisper manager.
"""

from engine.batch_controller import BatchController, BatchSettingsUpdate
from engine.queue_store import QueueStore, ReorderDirection
from engine.transcription_manager import TranscriptionManager, WhisperEngine

__all__ = [
    "BatchController",
    "BatchSettingsUpdate",
    "QueueStore",
    "ReorderDirection",
    "TranscriptionManager",
    "WhisperEngine",
]
