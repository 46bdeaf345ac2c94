import logging
import threading
import time
from datetime import datetime
from typing import Dict

logger = logging.getLogger(__name__)

class PerformanceLogger:
    """
    Logger for tracking the duration of worker phases (download, transcription, export).
    Phases are keyed by name, so concurrent workers must include the item id in the name.
    """

    def __init__(self):
        self._start_times: Dict[str, float] = {}
        self._lock = threading.Lock()

    def _timestamp(self) -> str:
        return datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    def start_phase(self, phase_name: str) -> None:
        """Start tracking a phase."""
        with self._lock:
            self._start_times[phase_name] = time.perf_counter()
        logger.info(f"[{self._timestamp()}] [START] {phase_name}")

    def end_phase(self, phase_name: str, extra_info: str = "") -> float:
        """
        End tracking a phase and log the duration.
        Returns the duration in seconds.
        """
        with self._lock:
            start_time = self._start_times.pop(phase_name, None)
        if start_time is None:
            logger.warning(f"Attempted to end phase '{phase_name}' without starting it.")
            return 0.0

        duration = time.perf_counter() - start_time
        info_str = f" - {extra_info}" if extra_info else ""

        logger.info(
            f"[{self._timestamp()}] [END]   {phase_name}{info_str} "
            f"(Duration: {duration:.3f}s)"
        )
        return duration

# Singleton instance
perf_logger = PerformanceLogger()
