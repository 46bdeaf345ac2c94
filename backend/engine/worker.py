"""
Worker: runs fetch -> transcribe -> auto-save for one claimed item.
"""

import logging
import time
from pathlib import Path
from typing import Optional

from engine.cancellation import CancellationToken
from engine.interfaces import Fetcher, TranscriptionEngine, Exporter, HistoryRecorder
from engine.queue_store import QueueStore
from models.queue_item import (
    QueuedItem,
    BatchSession,
    SourceRef,
    Completed,
    Failed,
    Cancelled,
)
from utils.exceptions import (
    AppError,
    CancellationError,
    DownloadError,
    EngineError,
    ExportError,
)
from utils.perf_logger import perf_logger
from config import settings

logger = logging.getLogger(__name__)


class Worker:
    """
    Executes one claimed item.

    The worker only touches the queue through the store's claim-scoped
    operations (progress updates, source attachment, release). Cancellation
    is checked after the fetch returns and on every progress callback.
    """

    def __init__(
        self,
        store: QueueStore,
        session: BatchSession,
        fetcher: Fetcher,
        engine: TranscriptionEngine,
        exporter: Optional[Exporter] = None,
        history: Optional[HistoryRecorder] = None,
    ):
        self.store = store
        self.session = session
        self.fetcher = fetcher
        self.engine = engine
        self.exporter = exporter
        self.history = history

    async def run(self, item_id: str, token: CancellationToken) -> Optional[QueuedItem]:
        """
        Process a claimed item to a terminal state.

        Returns the released item snapshot, or None if the item disappeared
        from the queue while the worker ran.
        """
        started = time.perf_counter()
        item = self.store.get(item_id)
        if item is None:
            return None

        try:
            token.raise_if_cancelled()
            media_path = await self._fetch_if_remote(item, token)
            token.raise_if_cancelled()
            released = await self._transcribe(item, media_path, token, started)
        except CancellationError:
            return self._cancel(item_id, started)
        except DownloadError as e:
            if token.is_cancelled:
                return self._cancel(item_id, started)
            logger.error(f"Download failed: id={item_id}, error={e.message}")
            return self._fail(item_id, f"Download failed: {e.message}", DownloadError, started)
        except AppError as e:
            if token.is_cancelled:
                return self._cancel(item_id, started)
            logger.error(f"Transcription failed: id={item_id}, error={e.message}")
            return self._fail(item_id, e.message, EngineError, started)
        except Exception as e:
            if token.is_cancelled:
                return self._cancel(item_id, started)
            logger.error(f"Transcription failed: id={item_id}, error={e}")
            return self._fail(item_id, str(e) or type(e).__name__, EngineError, started)

        if released is not None:
            await self._after_completion(released)
        return released

    # --- Steps ---

    async def _fetch_if_remote(self, item: QueuedItem, token: CancellationToken) -> str:
        if not item.is_remote or item.source.local_path:
            return item.media_path

        phase = f"Download (Item {item.id})"
        perf_logger.start_phase(phase)

        def on_progress(fraction: float) -> None:
            self.store.update_download_progress(item.id, fraction)
            token.raise_if_cancelled()

        try:
            fetched = await self.fetcher.fetch(item.source.location, on_progress, token)
        except BaseException:
            perf_logger.end_phase(phase, "FAILED")
            raise
        perf_logger.end_phase(phase, fetched.local_path)

        current = self.store.get(item.id) or item
        self.store.attach_source(
            item.id,
            SourceRef(
                location=current.source.location,
                display_name=fetched.title or current.source.display_name,
                size_bytes=fetched.size_bytes,
                local_path=fetched.local_path,
                metadata=dict(fetched.metadata),
            ),
        )
        token.raise_if_cancelled()
        self.store.begin_processing(item.id)
        return fetched.local_path

    async def _transcribe(
        self,
        item: QueuedItem,
        media_path: str,
        token: CancellationToken,
        started: float,
    ) -> Optional[QueuedItem]:
        phase = f"Transcription (Item {item.id})"
        perf_logger.start_phase(phase)

        def on_progress(fraction: float) -> None:
            self.store.update_progress(item.id, fraction)
            token.raise_if_cancelled()

        try:
            result = await self.engine.transcribe(
                media_path,
                self.session.transcription_config,
                on_progress,
                token,
            )
        except BaseException:
            perf_logger.end_phase(phase, "FAILED")
            raise
        perf_logger.end_phase(phase, f"{len(result.segments)} segments")

        token.raise_if_cancelled()
        released = self.store.release(item.id, Completed(result), time.perf_counter() - started)
        if released is not None:
            logger.info(f"Item completed: id={item.id}, duration={released.processing_duration:.1f}s")
        return released

    async def _after_completion(self, item: QueuedItem) -> None:
        """Best-effort side effects; failures never change the item's status."""
        if self.session.auto_save_enabled and self.exporter is not None:
            try:
                path = await self.exporter.save(
                    item.result,
                    self.session.auto_save_format,
                    self._auto_save_directory(item),
                    Path(item.source.display_name).stem or item.id,
                )
                logger.info(f"Auto-saved transcript for item {item.id} to {path}")
            except ExportError as e:
                logger.error(f"Auto-save failed for item {item.id}: {e.message}")
            except Exception as e:
                logger.error(f"Auto-save failed for item {item.id}: {e}")

        if self.history is not None:
            try:
                await self.history.record(item)
            except Exception as e:
                logger.error(f"Failed to save history for item {item.id}: {e}")

    def _auto_save_directory(self, item: QueuedItem) -> Path:
        if self.session.auto_save_directory:
            return Path(self.session.auto_save_directory)
        if not item.is_remote:
            return Path(item.source.location).parent
        return Path(settings.export_dir)

    def _cancel(self, item_id: str, started: float) -> Optional[QueuedItem]:
        # Errors raised after cancellation still end the item as cancelled
        logger.warning(f"Item cancelled: id={item_id}")
        return self.store.release(item_id, Cancelled(), time.perf_counter() - started)

    def _fail(self, item_id: str, message: str, error_cls: type, started: float) -> Optional[QueuedItem]:
        return self.store.release(
            item_id,
            Failed(error=message, error_type=error_cls.__name__),
            time.perf_counter() - started,
        )
