"""
Session-scoped cooperative cancellation.
"""

import threading

from utils.exceptions import CancellationError


class CancellationToken:
    """
    Shared cancellation signal for one batch session.

    Backed by a threading.Event so collaborators running in executor threads
    (yt-dlp hooks, faster-whisper segment loops) can check it too.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Checkpoint: raise CancellationError once the session was cancelled."""
        if self._event.is_set():
            raise CancellationError()
