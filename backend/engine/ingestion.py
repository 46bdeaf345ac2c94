"""
Ingestion: validate proposed sources and add them to the queue as pending items.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlparse, unquote

from config import settings
from engine.queue_store import QueueStore
from models.queue_item import QueuedItem, SourceKind, SourceRef
from utils.exceptions import ValidationError, ConflictError

logger = logging.getLogger(__name__)


@dataclass
class SubmissionReport:
    """Outcome of submitting several sources at once."""
    added: List[QueuedItem] = field(default_factory=list)
    rejected: List[Tuple[str, str]] = field(default_factory=list)  # (source, reason)

    @property
    def skipped_count(self) -> int:
        return len(self.rejected)


class Ingestion:
    """Validates local paths and remote URLs before they enter the queue."""

    URL_REGEX = re.compile(r'^https?://', re.IGNORECASE)

    # Playlist/channel pages expand to many videos; only single media URLs are accepted
    PLAYLIST_PATTERNS = [
        r'[?&]list=',
        r'/playlist\?',
        r'youtube\.com/c/',
        r'youtube\.com/channel/',
        r'youtube\.com/@',
    ]

    def __init__(
        self,
        store: QueueStore,
        allowed_extensions: Optional[Iterable[str]] = None,
        supported_platforms: Optional[Iterable[str]] = None,
    ):
        self.store = store
        exts = allowed_extensions if allowed_extensions is not None else settings.allowed_extensions
        self.allowed_extensions = {e.lower() if e.startswith(".") else f".{e.lower()}" for e in exts}
        hosts = supported_platforms if supported_platforms is not None else settings.supported_platforms
        self.supported_platforms = [h.lower().lstrip(".") for h in hosts]

    # --- Public API ---

    def submit(self, source: str) -> QueuedItem:
        """
        Validate a path or URL and queue it.

        Raises:
            ValidationError: unsupported type, malformed URL or unsupported host
            ConflictError: the same source is already waiting or running
        """
        source = (source or "").strip()
        if not source:
            raise ValidationError("Source is empty")

        if self.URL_REGEX.match(source):
            item = self._build_remote(source)
        else:
            item = self._build_local(source)

        self._ensure_not_queued(item.source.location)
        stored = self.store.add(item)
        logger.info(
            f"Item queued: id={stored.id}, kind={stored.source_kind.value}, "
            f"position={stored.queue_position}, source={stored.source.display_name}"
        )
        return stored

    def submit_many(self, sources: Iterable[str]) -> SubmissionReport:
        """Queue every valid source; invalid ones are reported, not raised."""
        report = SubmissionReport()
        for source in sources:
            try:
                report.added.append(self.submit(source))
            except (ValidationError, ConflictError) as e:
                logger.warning(f"Skipped source {source!r}: {e.message}")
                report.rejected.append((source, e.message))
        return report

    def is_supported_host(self, host: str) -> bool:
        host = host.lower().split(":")[0]
        return any(host == p or host.endswith(f".{p}") for p in self.supported_platforms)

    # --- Validation ---

    def _build_local(self, source: str) -> QueuedItem:
        path = Path(source).expanduser()
        ext = path.suffix.lower()

        if ext not in self.allowed_extensions:
            raise ValidationError(
                f"File type '{ext or path.name}' not allowed. "
                f"Allowed types: {', '.join(sorted(self.allowed_extensions))}"
            )
        if not path.is_file():
            raise ValidationError(f"File not found: {source}")

        resolved = path.resolve()
        return QueuedItem(
            source_kind=SourceKind.LOCAL_FILE,
            source=SourceRef(
                location=str(resolved),
                display_name=resolved.name,
                size_bytes=resolved.stat().st_size,
            ),
        )

    def _build_remote(self, url: str) -> QueuedItem:
        parsed = urlparse(url)
        if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
            raise ValidationError(f"Invalid URL: {url}")

        if not self.is_supported_host(parsed.hostname):
            raise ValidationError(f"Unsupported platform: {parsed.hostname}")

        for pattern in self.PLAYLIST_PATTERNS:
            if re.search(pattern, url):
                raise ValidationError(
                    "Playlist URLs are not supported. Please paste a single video URL "
                    "(remove '&list=...' from the URL if present)"
                )

        name = unquote(parsed.path.rstrip("/").rsplit("/", 1)[-1]) or parsed.hostname
        return QueuedItem(
            source_kind=SourceKind.REMOTE_URL,
            source=SourceRef(
                location=url,
                display_name=f"{parsed.hostname}/{name}" if name != parsed.hostname else name,
            ),
        )

    def _ensure_not_queued(self, location: str) -> None:
        for item in self.store.snapshot():
            if item.source.location == location and not item.status.is_terminal:
                raise ConflictError(f"Already in the queue: {item.source.display_name}")
