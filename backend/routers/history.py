"""
Transcription history endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from services.history_service import HistoryService

router = APIRouter()


def get_history_service() -> HistoryService:
    return HistoryService()


@router.get("")
async def list_history(
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    search: Optional[str] = None,
    history: HistoryService = Depends(get_history_service),
):
    """List saved transcriptions, most recent first."""
    entries = await history.list_entries(limit=limit, offset=offset, search=search)
    return {
        "total": await history.count(),
        "entries": [e.to_dict() for e in entries],
    }


@router.get("/{entry_id}")
async def get_history_entry(entry_id: int, history: HistoryService = Depends(get_history_service)):
    entry = await history.get_entry(entry_id)
    return entry.to_dict(include_segments=True)


@router.delete("/{entry_id}")
async def delete_history_entry(entry_id: int, history: HistoryService = Depends(get_history_service)):
    await history.delete_entry(entry_id)
    return {"message": "History entry deleted"}


@router.delete("")
async def clear_history(history: HistoryService = Depends(get_history_service)):
    return {"deleted": await history.clear()}
