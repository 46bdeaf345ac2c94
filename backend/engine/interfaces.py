"""
Contracts for the collaborators the batch engine depends on.

The default implementations live in services.fetcher (yt-dlp),
engine.transcription_manager (faster-whisper) and services.export_service.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Protocol

from engine.cancellation import CancellationToken
from models.transcription import TranscriptionResult, TranscriptionConfig, ExportFormat

ProgressCallback = Callable[[float], None]


@dataclass(frozen=True)
class FetchedMedia:
    """A remote source resolved to a local media file."""
    local_path: str
    title: Optional[str] = None
    size_bytes: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class Fetcher(Protocol):
    async def fetch(
        self,
        url: str,
        on_progress: ProgressCallback,
        token: CancellationToken,
    ) -> FetchedMedia:
        """Download `url`; raise DownloadError on failure."""
        ...


class TranscriptionEngine(Protocol):
    async def transcribe(
        self,
        file_path: str,
        config: TranscriptionConfig,
        on_progress: ProgressCallback,
        token: CancellationToken,
    ) -> TranscriptionResult:
        """Transcribe a local file; raise EngineError on failure."""
        ...


class Exporter(Protocol):
    def render(self, result: TranscriptionResult, export_format: ExportFormat) -> bytes:
        ...

    async def save(
        self,
        result: TranscriptionResult,
        export_format: ExportFormat,
        directory: Path,
        base_name: str,
    ) -> Path:
        ...


class HistoryRecorder(Protocol):
    async def record(self, item: Any) -> None:
        ...
