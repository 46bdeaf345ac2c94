"""
Singleton TranscriptionManager using faster-whisper.
Handles model loading and transcription with accent/hallucination tuning.
"""

import asyncio
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional, Tuple

from config import settings
from engine.cancellation import CancellationToken
from models.transcription import TranscriptionResult, TranscriptSegment, TranscriptionConfig
from utils.exceptions import AppError, CancellationError, EngineError
from utils.perf_logger import perf_logger

logger = logging.getLogger(__name__)


class TranscriptionManager:
    """
    Singleton manager for faster-whisper transcription.

    Loads the model once and reuses it for all transcriptions.
    Configured for accent handling and hallucination prevention.
    """

    _instance: Optional["TranscriptionManager"] = None
    _model = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._model_name = settings.whisper_model
            cls._instance._lock = threading.Lock()
        return cls._instance

    @classmethod
    def get_instance(cls) -> "TranscriptionManager":
        """Get or create the singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def reload_model(self, new_model_name: str) -> None:
        """Unload current model and reload with new model name."""
        with self._lock:
            if self._model_name == new_model_name and self._model is not None:
                logger.info(f"Model {new_model_name} already loaded.")
                return

            logger.info(f"Switching model from {self._model_name} to {new_model_name}...")
            self._model = None  # Force unload
            self._model_name = new_model_name
            self._load_model()
        logger.info(f"Model switched to {new_model_name}")

    def _load_model(self) -> None:
        """Load the faster-whisper model (lazy loading). Caller holds the lock."""
        if self._model is not None:
            return

        try:
            from faster_whisper import WhisperModel
        except ImportError:
            raise EngineError("faster-whisper is not installed. Run: pip install faster-whisper")

        # Use ~70% of available cores (min 2, max 16)
        total_cores = os.cpu_count() or 4
        num_threads = max(2, min(16, int(total_cores * 0.70)))
        logger.info(f"Configured engine with {num_threads} threads (detected {total_cores} cores)")

        # Try CUDA first, fall back to CPU
        try:
            logger.info(f"Loading {self._model_name} model on CUDA...")
            perf_logger.start_phase("Model Loading")
            self._model = WhisperModel(
                self._model_name,
                device="cuda",
                compute_type="float16"
            )
            perf_logger.end_phase("Model Loading", f"Size: {self._model_name} (CUDA)")
            logger.info("Model loaded successfully on CUDA")
        except Exception as cuda_error:
            logger.warning(f"CUDA not available ({cuda_error}), falling back to CPU")
            self._model = WhisperModel(
                self._model_name,
                device="cpu",
                compute_type="int8",
                cpu_threads=num_threads
            )
            perf_logger.end_phase("Model Loading", f"Size: {self._model_name} (CPU)")
            logger.info(f"Model loaded successfully on CPU with {num_threads} threads")

    def ensure_model(self, model_name: Optional[str] = None) -> Tuple[Any, str]:
        """
        Load the model, switching first if a different one is requested.

        Returns the loaded model and its name, read under the lock so callers
        keep a consistent pair while another caller swaps models.
        """
        with self._lock:
            if model_name and model_name != self._model_name:
                logger.info(f"Switching model from {self._model_name} to {model_name}...")
                self._model = None
                self._model_name = model_name
            self._load_model()
            return self._model, self._model_name

    def transcribe(
        self,
        file_path: str,
        config: Optional[TranscriptionConfig] = None,
        progress_callback: Optional[Callable[[float], None]] = None,
    ) -> TranscriptionResult:
        """
        Transcribe an audio/video file.

        Args:
            file_path: Path to the media file
            config: Model, language and initial prompt
                    (e.g., "A technical lecture by a speaker with a heavy accent")
            progress_callback: Called with the fraction of media transcribed
                    after every segment. May raise to abort.

        Returns:
            TranscriptionResult with text, segments, language, and duration
        """
        config = config or TranscriptionConfig(model=self._model_name)
        model, model_name = self.ensure_model(config.model)

        if not Path(file_path).exists():
            raise FileNotFoundError(f"Media file not found: {file_path}")

        logger.info(f"Starting transcription: {file_path}")
        started = time.perf_counter()

        beam_size = 1 if "distil" in model_name.lower() else 5 # Distil models prefer greedy (1)

        transcribe_options = {
            "beam_size": beam_size,
            "best_of": 5 if beam_size > 1 else 1, # 'best_of' must be >= beam_size
            "vad_filter": True,  # Filter out silence/noise
            "vad_parameters": {
                "min_silence_duration_ms": 500,  # Prevent hallucinations in long pauses
            },
        }

        if config.initial_prompt:
            transcribe_options["initial_prompt"] = config.initial_prompt

        if config.language:
            transcribe_options["language"] = config.language

        segments_generator, info = model.transcribe(file_path, **transcribe_options)

        # Segments are decoded lazily while iterating
        segments = []
        full_text_parts = []

        for segment in segments_generator:
            text = segment.text.strip()
            segments.append(TranscriptSegment(
                start_time=segment.start,
                end_time=segment.end,
                text=text,
            ))
            full_text_parts.append(text)
            if progress_callback and info.duration:
                progress_callback(min(1.0, segment.end / info.duration))

        if progress_callback:
            progress_callback(1.0)

        logger.info(f"Transcription complete: {len(segments)} segments, language={info.language}")

        return TranscriptionResult(
            text=" ".join(full_text_parts),
            segments=segments,
            language=info.language,
            duration=info.duration,
            processing_time=time.perf_counter() - started,
            model_used=model_name,
        )

    def preload_model(self) -> None:
        """
        Preload the model during startup to avoid first-request delay.
        Call this in the FastAPI lifespan event.
        """
        logger.info("Preloading transcription model...")
        self.ensure_model()
        logger.info("Model preloaded and ready")


class WhisperEngine:
    """
    Async transcription engine over the TranscriptionManager.

    Inference runs in the default executor; the progress callback is invoked
    on that thread, after checking the cancellation token.
    """

    def __init__(self, manager: Optional[TranscriptionManager] = None):
        self.manager = manager or TranscriptionManager.get_instance()

    async def transcribe(
        self,
        file_path: str,
        config: TranscriptionConfig,
        on_progress: Callable[[float], None],
        token: CancellationToken,
    ) -> TranscriptionResult:
        def report(fraction: float) -> None:
            token.raise_if_cancelled()
            on_progress(fraction)

        def run() -> TranscriptionResult:
            token.raise_if_cancelled()
            return self.manager.transcribe(file_path, config, report)

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, run)
        except (CancellationError, EngineError):
            raise
        except AppError as e:
            raise EngineError(e.message)
        except FileNotFoundError as e:
            raise EngineError(str(e))
        except Exception as e:
            logger.error(f"Engine error for {file_path}: {e}")
            raise EngineError(f"Transcription failed: {e}")
