"""
Batch controller: lifecycle (start/pause/resume/cancel) and every queue
command the presentation layer may issue, over one in-memory batch session.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Union

from pydantic import BaseModel, Field

from config import settings
from engine.dispatcher import Dispatcher
from engine.ingestion import Ingestion, SubmissionReport
from engine.interfaces import Fetcher, TranscriptionEngine, Exporter, HistoryRecorder
from engine.progress import ProgressAggregator, BatchStatus
from engine.queue_store import QueueStore, ReorderDirection, Snapshot
from engine.retry_policy import RetryPolicy
from engine.worker import Worker
from models.queue_item import (
    BatchSession,
    BatchMode,
    RetryPosition,
    RunState,
    ItemStatus,
    QueuedItem,
)
from models.transcription import ExportFormat
from utils.exceptions import NotFoundError, ConflictError, ValidationError

logger = logging.getLogger(__name__)


class BatchSettingsUpdate(BaseModel):
    """Partial update of the batch session settings."""
    mode: Optional[BatchMode] = None
    max_concurrent_jobs: Optional[int] = Field(None, ge=1, le=4)
    auto_retry_failed: Optional[bool] = None
    max_retry_attempts: Optional[int] = Field(None, ge=0, le=3)
    retry_position: Optional[RetryPosition] = None
    auto_save_enabled: Optional[bool] = None
    auto_save_format: Optional[ExportFormat] = None
    auto_save_directory: Optional[str] = None
    model: Optional[str] = None
    language: Optional[str] = None
    initial_prompt: Optional[str] = None


def session_from_settings() -> BatchSession:
    """Build a fresh session from the application defaults."""
    return BatchSession(
        mode=BatchMode(settings.batch_mode),
        max_concurrent_jobs=min(4, max(1, settings.max_concurrent_jobs)),
        auto_retry_failed=settings.auto_retry_failed,
        max_retry_attempts=min(3, max(0, settings.max_retry_attempts)),
        retry_position=RetryPosition(settings.retry_position),
        auto_save_enabled=settings.auto_save_enabled,
        auto_save_format=ExportFormat(settings.auto_save_format),
        model=settings.whisper_model,
        language=settings.default_language,
    )


class BatchController:
    """
    Owns the batch session and wires the queue store, ingestion, dispatcher,
    worker and retry policy together.

    Lifecycle commands never raise: an invalid call returns False and leaves
    the run state and queue untouched.
    """

    _instance: Optional["BatchController"] = None

    def __init__(
        self,
        fetcher: Fetcher,
        engine: TranscriptionEngine,
        exporter: Optional[Exporter] = None,
        history: Optional[HistoryRecorder] = None,
        session: Optional[BatchSession] = None,
    ):
        from services.export_service import ExportService

        self.store = QueueStore()
        self.session = session or session_from_settings()
        self.ingestion = Ingestion(self.store)
        self.exporter = exporter or ExportService()
        self.worker = Worker(self.store, self.session, fetcher, engine, self.exporter, history)
        self.retry_policy = RetryPolicy(self.session)
        self.dispatcher = Dispatcher(
            self.store,
            self.session,
            self.worker,
            self.retry_policy,
            on_session_finished=self._finish_session,
        )
        self.aggregator = ProgressAggregator()
        self.selected_item_id: Optional[str] = None

    @classmethod
    def get_instance(cls) -> "BatchController":
        """Get or create the singleton wired with the default collaborators."""
        if cls._instance is None:
            from services.fetcher import MediaFetcher
            from services.history_service import HistoryService
            from engine.transcription_manager import WhisperEngine

            cls._instance = cls(
                fetcher=MediaFetcher(),
                engine=WhisperEngine(),
                history=HistoryService(),
            )
        return cls._instance

    # --- Published state ---

    def status(self) -> BatchStatus:
        return self.aggregator.build(self.store.snapshot(), self.session, self.selected_item_id)

    def subscribe(self, listener: Callable[[Snapshot], None]) -> Callable[[], None]:
        return self.store.subscribe(listener)

    def get_item(self, item_id: str) -> QueuedItem:
        item = self.store.get(item_id)
        if item is None:
            raise NotFoundError(f"Queue item not found: {item_id}")
        return item

    @property
    def run_state(self) -> RunState:
        return self.session.run_state

    # --- Lifecycle ---

    def start(self) -> bool:
        """Begin a session. Requires `idle` and at least one pending item."""
        if self.session.run_state != RunState.IDLE:
            logger.debug(f"start() ignored: run_state={self.session.run_state.value}")
            return False
        if not self.store.pending_items():
            logger.debug("start() ignored: no pending items")
            return False

        self.session.run_state = RunState.RUNNING
        self.session.started_at = datetime.utcnow()
        self.session.finished_at = None
        self.dispatcher.new_token()
        logger.info(
            f"Batch session started: mode={self.session.mode.value}, "
            f"slots={self.session.slot_limit}, pending={len(self.store.pending_items())}"
        )
        self.dispatcher.pump()
        return True

    def pause(self) -> bool:
        """Stop claiming new items; in-flight workers run to completion."""
        if self.session.run_state != RunState.RUNNING:
            return False
        self.session.run_state = RunState.PAUSED
        logger.info(f"Batch session paused ({self.dispatcher.active_count} worker(s) still running)")
        return True

    def resume(self) -> bool:
        if self.session.run_state != RunState.PAUSED:
            return False
        self.session.run_state = RunState.RUNNING
        logger.info("Batch session resumed")
        self.dispatcher.pump()
        return True

    def cancel(self) -> bool:
        """Stop claiming and signal in-flight workers to abort."""
        if self.session.run_state not in (RunState.RUNNING, RunState.PAUSED):
            return False
        self.session.run_state = RunState.CANCELLED
        self.session.finished_at = datetime.utcnow()
        self.dispatcher.token.cancel()
        logger.warning(f"Batch session cancelled ({self.dispatcher.active_count} worker(s) signalled)")
        return True

    def reset_session(self) -> bool:
        """Leave a cancelled session so a new one can be started."""
        if self.session.run_state != RunState.CANCELLED:
            return False
        self.session.run_state = RunState.IDLE
        self.session.started_at = None
        self.session.finished_at = None
        return True

    async def wait_until_idle(self) -> None:
        """Wait for every running worker, including ones launched meanwhile."""
        await self.dispatcher.drain()

    async def shutdown(self) -> None:
        self.cancel()
        await self.dispatcher.drain()

    # --- Queue commands ---

    def add_files(self, paths: Iterable[Union[str, Path]]) -> SubmissionReport:
        report = self.ingestion.submit_many(str(p) for p in paths)
        if report.rejected:
            logger.warning(f"{report.skipped_count} file(s) skipped")
        self._pump_if_running()
        return report

    def add_url(self, url: str) -> QueuedItem:
        item = self.ingestion.submit(url)
        self._pump_if_running()
        return item

    def remove_item(self, item_id: str) -> bool:
        """Remove one item. Returns False if it is currently being worked on."""
        self.get_item(item_id)
        removed = self.store.remove(item_id)
        if removed and self.selected_item_id == item_id:
            self.selected_item_id = None
        return removed

    def move_up(self, item_id: str) -> bool:
        return self._reorder(item_id, ReorderDirection.UP)

    def move_down(self, item_id: str) -> bool:
        return self._reorder(item_id, ReorderDirection.DOWN)

    def move_to_top(self, item_id: str) -> bool:
        return self._reorder(item_id, ReorderDirection.TOP)

    def move_to_bottom(self, item_id: str) -> bool:
        return self._reorder(item_id, ReorderDirection.BOTTOM)

    def retry_item(self, item_id: str) -> bool:
        """
        Manually requeue a failed item. Cancelled items stay cancelled.

        A manual retry gives the item a fresh attempt budget. An idle session
        is started automatically.
        """
        self.get_item(item_id)
        to_end = self.session.retry_position == RetryPosition.END
        if not self.store.requeue(item_id, to_end=to_end, reset_attempts=True):
            return False
        logger.info(f"Item requeued by user: id={item_id}")
        self._start_or_pump()
        return True

    def retry_all_failed(self) -> int:
        to_end = self.session.retry_position == RetryPosition.END
        failed = [i.id for i in self.store.snapshot() if i.status == ItemStatus.FAILED]
        count = sum(1 for item_id in failed if self.store.requeue(item_id, to_end=to_end, reset_attempts=True))
        if count:
            logger.info(f"{count} failed item(s) requeued by user")
            self._start_or_pump()
        return count

    def clear_queue(self) -> int:
        """Cancel any session and remove every item."""
        self.cancel()
        removed = self.store.clear()
        self.selected_item_id = None
        self.session.run_state = RunState.IDLE
        self.session.started_at = None
        self.session.finished_at = None
        logger.info(f"Queue cleared ({removed} item(s) removed)")
        return removed

    def remove_completed(self) -> int:
        return self._remove_where(ItemStatus.COMPLETED)

    def remove_failed(self) -> int:
        return self._remove_where(ItemStatus.FAILED)

    def select_item(self, item_id: str) -> None:
        self.get_item(item_id)
        self.selected_item_id = item_id

    def deselect_item(self) -> None:
        self.selected_item_id = None

    def configure(self, update: Union[BatchSettingsUpdate, dict]) -> dict:
        """Apply a partial settings update; takes effect at the next scheduling decision."""
        if isinstance(update, dict):
            update = BatchSettingsUpdate(**update)
        changes = update.model_dump(exclude_unset=True)
        for name, value in changes.items():
            if value is None and name not in ("language", "initial_prompt", "auto_save_directory"):
                continue
            setattr(self.session, name, value)
        if changes:
            logger.info(f"Batch settings updated: {changes}")
        self._pump_if_running()
        return self.session.settings_dict()

    # --- Export ---

    def export_item(self, item_id: str, export_format: ExportFormat) -> bytes:
        item = self.get_item(item_id)
        if item.result is None:
            raise ConflictError(f"Item has no transcription yet: {item.source.display_name}")
        return self.exporter.render(item.result, ExportFormat(export_format))

    async def export_completed(self, export_format: ExportFormat, directory: Optional[Path] = None) -> List[Path]:
        """Write every completed result to `directory` (default: the export dir)."""
        completed = [i for i in self.store.snapshot() if i.result is not None]
        if not completed:
            raise ValidationError("No completed transcriptions to export")

        target = Path(directory) if directory else Path(settings.export_dir)
        paths = []
        for item in completed:
            path = await self.exporter.save(
                item.result,
                ExportFormat(export_format),
                target,
                Path(item.source.display_name).stem or item.id,
            )
            paths.append(path)
        logger.info(f"Exported {len(paths)} transcript(s) to {target}")
        return paths

    # --- Internals ---

    def _reorder(self, item_id: str, direction: ReorderDirection) -> bool:
        self.get_item(item_id)
        return self.store.reorder(item_id, direction)

    def _remove_where(self, status: ItemStatus) -> int:
        removed = self.store.remove_where([status])
        if self.selected_item_id and self.store.get(self.selected_item_id) is None:
            self.selected_item_id = None
        return removed

    def _pump_if_running(self) -> None:
        if self.session.run_state == RunState.RUNNING:
            self.dispatcher.pump()

    def _start_or_pump(self) -> None:
        if self.session.run_state == RunState.IDLE:
            self.start()
        else:
            self._pump_if_running()

    def _finish_session(self) -> None:
        self.session.run_state = RunState.IDLE
        self.session.finished_at = datetime.utcnow()
        counts = self.store.count_by_status()
        logger.info(
            f"Batch complete: {counts[ItemStatus.COMPLETED]} completed, "
            f"{counts[ItemStatus.FAILED]} failed, {counts[ItemStatus.CANCELLED]} cancelled "
            f"(elapsed {self.session.elapsed():.1f}s)"
        )
