"""
Transcription history service.
Persists completed queue items so transcripts outlive the in-memory queue.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, delete, func

from models.database import async_session
from models.history import HistoryEntry
from models.queue_item import QueuedItem
from utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class HistoryService:
    """Reads and writes `transcription_history` rows."""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory or async_session

    async def record(self, item: QueuedItem) -> HistoryEntry:
        """Save a completed item's transcript."""
        result = item.result
        if result is None:
            raise ValueError(f"Item {item.id} has no transcription result")

        entry = HistoryEntry(
            item_id=item.id,
            source_kind=item.source_kind.value,
            source_location=item.source.location,
            title=item.source.display_name,
            full_text=result.text,
            segments=[s.to_dict() for s in result.segments],
            language=result.language,
            duration_seconds=result.duration,
            processing_seconds=item.processing_duration,
            model_used=result.model_used,
        )
        async with self.session_factory() as db:
            db.add(entry)
            await db.commit()
            await db.refresh(entry)

        logger.info(f"History saved for item {item.id} (entry {entry.id})")
        return entry

    async def list_entries(self, limit: int = 50, offset: int = 0, search: Optional[str] = None) -> List[HistoryEntry]:
        """Most recent first, optionally filtered by title or text."""
        query = select(HistoryEntry).order_by(HistoryEntry.created_at.desc(), HistoryEntry.id.desc())
        if search:
            pattern = f"%{search}%"
            query = query.where(HistoryEntry.title.ilike(pattern) | HistoryEntry.full_text.ilike(pattern))
        query = query.offset(offset).limit(limit)

        async with self.session_factory() as db:
            result = await db.execute(query)
            return list(result.scalars().all())

    async def count(self) -> int:
        async with self.session_factory() as db:
            result = await db.execute(select(func.count(HistoryEntry.id)))
            return result.scalar_one()

    async def get_entry(self, entry_id: int) -> HistoryEntry:
        async with self.session_factory() as db:
            result = await db.execute(select(HistoryEntry).where(HistoryEntry.id == entry_id))
            entry = result.scalar_one_or_none()
        if entry is None:
            raise NotFoundError("History entry not found")
        return entry

    async def delete_entry(self, entry_id: int) -> None:
        async with self.session_factory() as db:
            result = await db.execute(delete(HistoryEntry).where(HistoryEntry.id == entry_id))
            await db.commit()
        if result.rowcount == 0:
            raise NotFoundError("History entry not found")
        logger.info(f"Deleted history entry {entry_id}")

    async def clear(self) -> int:
        async with self.session_factory() as db:
            result = await db.execute(delete(HistoryEntry))
            await db.commit()
        logger.info(f"Cleared {result.rowcount} history entries")
        return result.rowcount
