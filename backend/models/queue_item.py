"""
Batch queue data model.

Items are immutable snapshots; the queue store replaces them wholesale on
every transition. An item's state is a tagged union, so a result only exists
on a Completed state and an error only on a Failed state.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union, Dict, Any, ClassVar

from models.transcription import TranscriptionResult, TranscriptionConfig, ExportFormat


class SourceKind(str, enum.Enum):
    """Where an item's media comes from."""
    LOCAL_FILE = "local_file"
    REMOTE_URL = "remote_url"


class ItemStatus(str, enum.Enum):
    """Status of a queued item."""
    PENDING = "pending"
    DOWNLOADING = "downloading"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (ItemStatus.DOWNLOADING, ItemStatus.PROCESSING)

    @property
    def is_terminal(self) -> bool:
        return self in (ItemStatus.COMPLETED, ItemStatus.FAILED, ItemStatus.CANCELLED)


class RunState(str, enum.Enum):
    """Run state of a batch session."""
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class BatchMode(str, enum.Enum):
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class RetryPosition(str, enum.Enum):
    """Where a retried item re-enters the pending set."""
    ORIGINAL = "original"
    END = "end"


# --- Item states ---

@dataclass(frozen=True)
class Pending:
    status: ClassVar[ItemStatus] = ItemStatus.PENDING


@dataclass(frozen=True)
class Downloading:
    progress: float = 0.0
    status: ClassVar[ItemStatus] = ItemStatus.DOWNLOADING


@dataclass(frozen=True)
class Processing:
    progress: float = 0.0
    status: ClassVar[ItemStatus] = ItemStatus.PROCESSING


@dataclass(frozen=True)
class Completed:
    result: TranscriptionResult
    status: ClassVar[ItemStatus] = ItemStatus.COMPLETED


@dataclass(frozen=True)
class Failed:
    error: str
    error_type: str = "EngineError"
    status: ClassVar[ItemStatus] = ItemStatus.FAILED


@dataclass(frozen=True)
class Cancelled:
    status: ClassVar[ItemStatus] = ItemStatus.CANCELLED


ItemState = Union[Pending, Downloading, Processing, Completed, Failed, Cancelled]


@dataclass(frozen=True)
class SourceRef:
    """Path or URL of an item's media, plus what we know about it."""
    location: str
    display_name: str
    size_bytes: Optional[int] = None
    local_path: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class QueuedItem:
    """One media source moving through the batch pipeline."""
    source_kind: SourceKind
    source: SourceRef
    state: ItemState = field(default_factory=Pending)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    attempt_count: int = 0
    retry_count: int = 0
    queue_position: int = 0
    sequence: int = 0
    processing_duration: Optional[float] = None
    added_at: datetime = field(default_factory=datetime.utcnow)
    claimed_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def status(self) -> ItemStatus:
        return self.state.status

    @property
    def progress(self) -> float:
        if isinstance(self.state, Processing):
            return self.state.progress
        if isinstance(self.state, Completed):
            return 1.0
        return 0.0

    @property
    def download_progress(self) -> Optional[float]:
        if isinstance(self.state, Downloading):
            return self.state.progress
        return None

    @property
    def error(self) -> Optional[str]:
        return self.state.error if isinstance(self.state, Failed) else None

    @property
    def error_type(self) -> Optional[str]:
        return self.state.error_type if isinstance(self.state, Failed) else None

    @property
    def result(self) -> Optional[TranscriptionResult]:
        return self.state.result if isinstance(self.state, Completed) else None

    @property
    def is_remote(self) -> bool:
        return self.source_kind == SourceKind.REMOTE_URL

    @property
    def media_path(self) -> Optional[str]:
        """Local file to hand to the engine, once known."""
        if self.source.local_path:
            return self.source.local_path
        if self.source_kind == SourceKind.LOCAL_FILE:
            return self.source.location
        return None

    def to_dict(self, include_result: bool = False) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "source_kind": self.source_kind.value,
            "location": self.source.location,
            "display_name": self.source.display_name,
            "size_bytes": self.source.size_bytes,
            "status": self.status.value,
            "progress": self.progress,
            "download_progress": self.download_progress,
            "error": self.error,
            "error_type": self.error_type,
            "attempt_count": self.attempt_count,
            "retry_count": self.retry_count,
            "queue_position": self.queue_position,
            "processing_duration": self.processing_duration,
            "added_at": self.added_at.isoformat(),
            "has_result": self.result is not None,
        }
        if include_result and self.result is not None:
            data["result"] = self.result.to_dict()
        return data


@dataclass
class BatchSession:
    """Settings and run state of the current batch run."""
    mode: BatchMode = BatchMode.SEQUENTIAL
    max_concurrent_jobs: int = 2
    auto_retry_failed: bool = True
    max_retry_attempts: int = 1
    retry_position: RetryPosition = RetryPosition.ORIGINAL
    auto_save_enabled: bool = False
    auto_save_format: ExportFormat = ExportFormat.TXT
    auto_save_directory: Optional[str] = None
    model: str = "distil-large-v3"
    language: Optional[str] = None
    initial_prompt: Optional[str] = None
    run_state: RunState = RunState.IDLE
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def slot_limit(self) -> int:
        """Concurrent workers allowed: 1 in sequential mode, else the user cap."""
        if self.mode == BatchMode.SEQUENTIAL:
            return 1
        return self.max_concurrent_jobs

    @property
    def transcription_config(self) -> TranscriptionConfig:
        return TranscriptionConfig(
            model=self.model,
            language=self.language,
            initial_prompt=self.initial_prompt,
        )

    def elapsed(self, now: Optional[datetime] = None) -> Optional[float]:
        if self.started_at is None:
            return None
        end = self.finished_at or now or datetime.utcnow()
        return max(0.0, (end - self.started_at).total_seconds())

    def settings_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode.value,
            "max_concurrent_jobs": self.max_concurrent_jobs,
            "auto_retry_failed": self.auto_retry_failed,
            "max_retry_attempts": self.max_retry_attempts,
            "retry_position": self.retry_position.value,
            "auto_save_enabled": self.auto_save_enabled,
            "auto_save_format": self.auto_save_format.value,
            "auto_save_directory": self.auto_save_directory,
            "model": self.model,
            "language": self.language,
            "initial_prompt": self.initial_prompt,
        }
