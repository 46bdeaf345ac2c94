"""
Progress aggregation: overall progress, counts, ETA and status text derived
from a queue snapshot and the batch session.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence, List, Dict, Any

from models.queue_item import QueuedItem, ItemStatus, BatchSession, RunState
from utils.formatting import format_abbreviated


def item_contribution(item: QueuedItem) -> float:
    """How much of one item counts toward overall progress."""
    if item.status == ItemStatus.PROCESSING:
        return item.progress
    if item.status == ItemStatus.COMPLETED:
        return 1.0
    # pending/downloading have produced nothing yet; failed/cancelled work is not credited
    return 0.0


def overall_progress(items: Sequence[QueuedItem]) -> float:
    if not items:
        return 0.0
    return sum(item_contribution(i) for i in items) / len(items)


def estimated_remaining(items: Sequence[QueuedItem]) -> Optional[float]:
    """
    Mean duration of completed items times the number of unfinished items.
    None until at least one item has completed.
    """
    durations = [
        i.processing_duration for i in items
        if i.status == ItemStatus.COMPLETED and i.processing_duration is not None
    ]
    if not durations:
        return None
    unfinished = sum(1 for i in items if not i.status.is_terminal)
    return (sum(durations) / len(durations)) * unfinished


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


@dataclass(frozen=True)
class BatchStatus:
    """Read-only projection published to the presentation layer."""
    items: List[QueuedItem]
    run_state: RunState
    overall_progress: float
    pending_count: int
    active_count: int
    completed_count: int
    failed_count: int
    cancelled_count: int
    total_count: int
    elapsed: Optional[float]
    estimated_remaining: Optional[float]
    status_text: str
    selected_item_id: Optional[str] = None
    settings: Dict[str, Any] = field(default_factory=dict)

    @property
    def formatted_elapsed_time(self) -> Optional[str]:
        return format_abbreviated(self.elapsed)

    @property
    def formatted_estimated_time(self) -> Optional[str]:
        if self.estimated_remaining is None or self.estimated_remaining <= 0:
            return None
        return format_abbreviated(self.estimated_remaining)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_state": self.run_state.value,
            "overall_progress": self.overall_progress,
            "pending_count": self.pending_count,
            "active_count": self.active_count,
            "completed_count": self.completed_count,
            "failed_count": self.failed_count,
            "cancelled_count": self.cancelled_count,
            "total_count": self.total_count,
            "elapsed_seconds": self.elapsed,
            "estimated_remaining_seconds": self.estimated_remaining,
            "formatted_elapsed_time": self.formatted_elapsed_time,
            "formatted_estimated_time": self.formatted_estimated_time,
            "status_text": self.status_text,
            "selected_item_id": self.selected_item_id,
            "settings": self.settings,
            "items": [i.to_dict() for i in self.items],
        }


class ProgressAggregator:
    """Builds BatchStatus projections."""

    def build(
        self,
        items: Sequence[QueuedItem],
        session: BatchSession,
        selected_item_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BatchStatus:
        counts = {status: 0 for status in ItemStatus}
        for item in items:
            counts[item.status] += 1

        active = counts[ItemStatus.DOWNLOADING] + counts[ItemStatus.PROCESSING]
        return BatchStatus(
            items=list(items),
            run_state=session.run_state,
            overall_progress=overall_progress(items),
            pending_count=counts[ItemStatus.PENDING],
            active_count=active,
            completed_count=counts[ItemStatus.COMPLETED],
            failed_count=counts[ItemStatus.FAILED],
            cancelled_count=counts[ItemStatus.CANCELLED],
            total_count=len(items),
            elapsed=session.elapsed(now),
            estimated_remaining=estimated_remaining(items),
            status_text=self.status_text(items, session, counts),
            selected_item_id=selected_item_id,
            settings=session.settings_dict(),
        )

    def status_text(
        self,
        items: Sequence[QueuedItem],
        session: BatchSession,
        counts: Dict[ItemStatus, int],
    ) -> str:
        total = len(items)
        pending = counts[ItemStatus.PENDING]
        completed = counts[ItemStatus.COMPLETED]
        failed = counts[ItemStatus.FAILED]
        finished = completed + failed + counts[ItemStatus.CANCELLED]

        if session.run_state == RunState.RUNNING:
            return f"Processing {min(finished + 1, total)} of {total}..."
        if session.run_state == RunState.PAUSED:
            return "Paused"
        if session.run_state == RunState.CANCELLED:
            return "Cancelled"

        if not items:
            return "Ready to start"
        if session.finished_at is not None and pending == 0:
            if failed > 0:
                return f"Completed with {_plural(failed, 'failure')}"
            return f"All {_plural(completed, 'file')} completed"
        if failed > 0 and pending == 0:
            return f"{failed} failed"
        return f"{_plural(pending, 'file')} ready"
