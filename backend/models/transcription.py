"""
Transcription result types produced by the engine and consumed by exporters.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any


@dataclass(frozen=True)
class TranscriptSegment:
    """A timed piece of transcribed text."""
    start_time: float
    end_time: float
    text: str
    speaker: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "start_time": self.start_time,
            "end_time": self.end_time,
            "text": self.text,
        }
        if self.speaker:
            data["speaker"] = self.speaker
        return data


@dataclass(frozen=True)
class TranscriptionResult:
    """Result of a transcription job."""
    text: str
    segments: List[TranscriptSegment] = field(default_factory=list)
    language: Optional[str] = None
    duration: float = 0.0
    processing_time: float = 0.0
    model_used: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    @property
    def real_time_factor(self) -> float:
        """Processing time relative to media duration (lower is faster)."""
        if self.duration <= 0:
            return 0.0
        return self.processing_time / self.duration

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "segments": [s.to_dict() for s in self.segments],
            "language": self.language,
            "duration": self.duration,
            "processing_time": self.processing_time,
            "model_used": self.model_used,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class TranscriptionConfig:
    """Engine configuration for one transcription call."""
    model: str
    language: Optional[str] = None
    initial_prompt: Optional[str] = None


class ExportFormat(str, enum.Enum):
    """Supported export formats for transcription results."""
    TXT = "txt"
    SRT = "srt"
    VTT = "vtt"
    MD = "md"
    CSV = "csv"
    JSON = "json"

    @property
    def file_extension(self) -> str:
        return self.value

    @property
    def mime_type(self) -> str:
        return {
            ExportFormat.TXT: "text/plain",
            ExportFormat.SRT: "application/x-subrip",
            ExportFormat.VTT: "text/vtt",
            ExportFormat.MD: "text/markdown",
            ExportFormat.CSV: "text/csv",
            ExportFormat.JSON: "application/json",
        }[self]
