import pytest
import pytest_asyncio
from typing import AsyncGenerator
from unittest.mock import patch

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from models.database import Base
from models.queue_item import BatchSession
from engine.batch_controller import BatchController
from routers.batch import get_controller
from routers.history import get_history_service
from services.history_service import HistoryService
from fakes import FakeEngine, FakeFetcher, FakeHistory

# --- Mock Services ---
@pytest.fixture
def mock_ytdl():
    with patch("yt_dlp.YoutubeDL") as mock_ytdl:
        mock_instance = mock_ytdl.return_value
        mock_instance.__enter__.return_value = mock_instance
        mock_instance.extract_info.return_value = {
            "id": "test_video_id",
            "title": "Test Video Title",
            "thumbnail": "http://example.com/thumb.jpg",
            "uploader": "Test Uploader",
            "duration": 120,
            "ext": "webm",
            "extractor_key": "Youtube",
        }
        yield mock_ytdl

# --- Database Setup ---
# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def session_factory():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(expire_on_commit=False, bind=engine)
    await engine.dispose()


@pytest.fixture
def history_service(session_factory) -> HistoryService:
    return HistoryService(session_factory=session_factory)

# --- Batch Engine ---
@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def fake_history() -> FakeHistory:
    return FakeHistory()


@pytest.fixture
def session() -> BatchSession:
    return BatchSession(auto_retry_failed=False)


@pytest_asyncio.fixture(scope="function")
async def controller(fake_fetcher, fake_engine, fake_history, session) -> AsyncGenerator[BatchController, None]:
    ctrl = BatchController(
        fetcher=fake_fetcher,
        engine=fake_engine,
        history=fake_history,
        session=session,
    )
    yield ctrl
    fake_engine.release_all()
    await ctrl.shutdown()


@pytest.fixture
def media_files(tmp_path):
    """Four small local media files: a.mp3, b.mp3, c.wav, d.mp4."""
    paths = []
    for name in ("a.mp3", "b.mp3", "c.wav", "d.mp4"):
        path = tmp_path / name
        path.write_bytes(b"dummy audio content")
        paths.append(path)
    return paths

# --- Client Setup ---
@pytest_asyncio.fixture(scope="function")
async def client(controller, history_service) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_controller] = lambda: controller
    app.dependency_overrides[get_history_service] = lambda: history_service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test/api") as c:
        yield c
    app.dependency_overrides.clear()
