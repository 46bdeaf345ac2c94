from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from engine.cancellation import CancellationToken
from engine.transcription_manager import TranscriptionManager, WhisperEngine
from models.transcription import TranscriptionConfig
from utils.exceptions import CancellationError, EngineError


def fake_model():
    model = MagicMock()
    segments = [
        SimpleNamespace(start=0.0, end=4.0, text=" Hello world."),
        SimpleNamespace(start=4.0, end=10.0, text=" Second line. "),
    ]
    model.transcribe.side_effect = lambda *args, **kwargs: (
        iter(segments),
        SimpleNamespace(language="en", duration=10.0),
    )
    return model


@pytest.fixture
def whisper_model():
    TranscriptionManager._instance = None
    with patch("faster_whisper.WhisperModel") as mock_cls:
        mock_cls.side_effect = lambda *args, **kwargs: fake_model()
        yield mock_cls
    TranscriptionManager._instance = None


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "speech.wav"
    path.write_bytes(b"RIFF")
    return path


def test_manager_is_singleton(whisper_model):
    assert TranscriptionManager() is TranscriptionManager.get_instance()


def test_transcribe_collects_segments_and_progress(whisper_model, audio_file):
    manager = TranscriptionManager.get_instance()
    progress = []

    result = manager.transcribe(str(audio_file), TranscriptionConfig(model=manager.model_name), progress.append)

    assert result.text == "Hello world. Second line."
    assert [s.text for s in result.segments] == ["Hello world.", "Second line."]
    assert result.language == "en"
    assert result.duration == 10.0
    assert result.model_used == manager.model_name
    assert progress == [0.4, 1.0, 1.0]


def test_language_and_prompt_forwarded(whisper_model, audio_file):
    manager = TranscriptionManager.get_instance()
    manager.transcribe(str(audio_file), TranscriptionConfig(
        model=manager.model_name,
        language="de",
        initial_prompt="A lecture on thermodynamics",
    ))

    kwargs = manager._model.transcribe.call_args.kwargs
    assert kwargs["language"] == "de"
    assert kwargs["initial_prompt"] == "A lecture on thermodynamics"
    assert kwargs["vad_filter"] is True


def test_model_hot_swap(whisper_model, audio_file):
    manager = TranscriptionManager.get_instance()
    manager.ensure_model()
    first = manager._model

    result = manager.transcribe(str(audio_file), TranscriptionConfig(model="small"))

    assert manager.model_name == "small"
    assert manager._model is not first
    assert result.model_used == "small"
    assert whisper_model.call_args.args[0] == "small"


def test_swap_during_transcription_keeps_model_in_use(whisper_model, audio_file):
    """A model switch by another caller mid-transcription does not affect the running one."""
    manager = TranscriptionManager.get_instance()
    model, original = manager.ensure_model()
    assert model is manager._model

    def swap_on_first_segment(fraction):
        if manager.model_name == original:
            manager.reload_model("small")

    result = manager.transcribe(str(audio_file), TranscriptionConfig(model=original), swap_on_first_segment)

    assert manager.model_name == "small"
    assert result.model_used == original
    assert result.text == "Hello world. Second line."
    model.transcribe.assert_called_once()


def test_reload_same_model_is_noop(whisper_model):
    manager = TranscriptionManager.get_instance()
    manager.ensure_model()
    manager.reload_model(manager.model_name)
    assert whisper_model.call_count == 1


def test_cpu_fallback_when_cuda_unavailable(whisper_model):
    calls = []

    def build(*args, **kwargs):
        calls.append(kwargs["device"])
        if kwargs["device"] == "cuda":
            raise RuntimeError("CUDA driver not found")
        return fake_model()

    whisper_model.side_effect = build
    manager = TranscriptionManager.get_instance()
    manager.preload_model()

    assert calls == ["cuda", "cpu"]
    assert manager.is_loaded
    assert whisper_model.call_args.kwargs["compute_type"] == "int8"


def test_missing_file_raises(whisper_model, tmp_path):
    with pytest.raises(FileNotFoundError):
        TranscriptionManager.get_instance().transcribe(str(tmp_path / "ghost.wav"))


@pytest.mark.asyncio
async def test_engine_reports_progress(whisper_model, audio_file):
    engine = WhisperEngine()
    progress = []

    result = await engine.transcribe(
        str(audio_file),
        TranscriptionConfig(model=engine.manager.model_name),
        progress.append,
        CancellationToken(),
    )

    assert result.segments
    assert progress[-1] == 1.0


@pytest.mark.asyncio
async def test_engine_stops_at_next_segment_after_cancel(whisper_model, audio_file):
    engine = WhisperEngine()
    token = CancellationToken()
    progress = []

    def on_progress(fraction):
        progress.append(fraction)
        token.cancel()

    with pytest.raises(CancellationError):
        await engine.transcribe(str(audio_file), TranscriptionConfig(model=engine.manager.model_name), on_progress, token)
    assert progress == [0.4]


@pytest.mark.asyncio
async def test_engine_wraps_failures(whisper_model, tmp_path):
    engine = WhisperEngine()
    with pytest.raises(EngineError, match="not found"):
        await engine.transcribe(
            str(tmp_path / "ghost.wav"),
            TranscriptionConfig(model=engine.manager.model_name),
            lambda p: None,
            CancellationToken(),
        )


@pytest.mark.asyncio
async def test_engine_wraps_model_crash(whisper_model, audio_file):
    engine = WhisperEngine()
    engine.manager.ensure_model()
    engine.manager._model.transcribe.side_effect = RuntimeError("out of memory")

    with pytest.raises(EngineError, match="out of memory"):
        await engine.transcribe(
            str(audio_file),
            TranscriptionConfig(model=engine.manager.model_name),
            lambda p: None,
            CancellationToken(),
        )


@pytest.mark.asyncio
@pytest.mark.parametrize("enabled", [True, False])
async def test_lifespan_preloads_model_when_enabled(monkeypatch, enabled):
    import main

    manager = MagicMock()
    controller = MagicMock(shutdown=AsyncMock())
    monkeypatch.setattr(main, "init_db", AsyncMock())
    monkeypatch.setattr(main.BatchController, "get_instance", lambda: controller)
    monkeypatch.setattr(main.TranscriptionManager, "get_instance", lambda: manager)
    monkeypatch.setattr(main.settings, "preload_model_on_startup", enabled)

    async with main.lifespan(main.app):
        assert manager.preload_model.called is enabled

    controller.shutdown.assert_awaited_once()
