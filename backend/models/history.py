"""
Transcription history database model.
"""

from datetime import datetime
from sqlalchemy import Column, Integer, String, Float, Text, DateTime, JSON

from models.database import Base


class HistoryEntry(Base):
    """A completed transcription, kept after the item leaves the queue."""

    __tablename__ = "transcription_history"

    id = Column(Integer, primary_key=True, index=True)
    item_id = Column(String(32), nullable=False, index=True)
    source_kind = Column(String(20), nullable=False)
    source_location = Column(String(1000), nullable=False)
    title = Column(String(500), nullable=True)
    full_text = Column(Text, nullable=False, default="")
    segments = Column(JSON, nullable=False, default=list)
    language = Column(String(10), nullable=True)
    duration_seconds = Column(Float, nullable=True)
    processing_seconds = Column(Float, nullable=True)
    model_used = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def to_dict(self, include_segments: bool = False) -> dict:
        data = {
            "id": self.id,
            "item_id": self.item_id,
            "source_kind": self.source_kind,
            "source_location": self.source_location,
            "title": self.title,
            "text": self.full_text,
            "language": self.language,
            "duration_seconds": self.duration_seconds,
            "processing_seconds": self.processing_seconds,
            "model_used": self.model_used,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_segments:
            data["segments"] = self.segments or []
        return data
