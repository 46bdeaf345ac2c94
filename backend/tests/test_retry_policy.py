import pytest

from engine.queue_store import QueueStore
from engine.retry_policy import RetryPolicy
from models.queue_item import (
    BatchSession,
    QueuedItem,
    SourceRef,
    SourceKind,
    ItemStatus,
    RetryPosition,
    Failed,
)


def add_failed(store: QueueStore, name: str, error_type: str = "EngineError") -> QueuedItem:
    item = store.add(QueuedItem(
        source_kind=SourceKind.LOCAL_FILE,
        source=SourceRef(location=f"/media/{name}", display_name=name),
    ))
    store.claim(item.id)
    return store.release(item.id, Failed(error="model crashed", error_type=error_type))


@pytest.fixture
def store():
    return QueueStore()


def test_retries_until_budget_exhausted(store):
    session = BatchSession(auto_retry_failed=True, max_retry_attempts=2)
    policy = RetryPolicy(session)
    item = add_failed(store, "a.mp3")

    assert policy.apply(store, item)
    store.claim(item.id)
    item = store.release(item.id, Failed(error="again"))
    assert item.attempt_count == 2
    assert policy.apply(store, item)

    store.claim(item.id)
    item = store.release(item.id, Failed(error="and again"))
    assert item.attempt_count == 3
    assert policy.should_retry(item) is False
    assert policy.apply(store, item) is False
    assert store.get(item.id).status == ItemStatus.FAILED


def test_zero_attempts_never_retries(store):
    policy = RetryPolicy(BatchSession(auto_retry_failed=True, max_retry_attempts=0))
    assert policy.should_retry(add_failed(store, "a.mp3")) is False


def test_disabled_auto_retry(store):
    policy = RetryPolicy(BatchSession(auto_retry_failed=False, max_retry_attempts=3))
    assert policy.should_retry(add_failed(store, "a.mp3")) is False


def test_cancellation_never_retried(store):
    policy = RetryPolicy(BatchSession(auto_retry_failed=True, max_retry_attempts=3))
    item = add_failed(store, "a.mp3", error_type="CancellationError")
    assert policy.should_retry(item) is False


def test_retry_keeps_original_position(store):
    policy = RetryPolicy(BatchSession(auto_retry_failed=True, max_retry_attempts=1))
    failed = add_failed(store, "a.mp3")
    store.add(QueuedItem(source_kind=SourceKind.LOCAL_FILE, source=SourceRef("/media/b.mp3", "b.mp3")))

    policy.apply(store, failed)

    assert [i.source.display_name for i in store.pending_items()] == ["a.mp3", "b.mp3"]


def test_retry_to_end(store):
    policy = RetryPolicy(BatchSession(
        auto_retry_failed=True,
        max_retry_attempts=1,
        retry_position=RetryPosition.END,
    ))
    failed = add_failed(store, "a.mp3")
    store.add(QueuedItem(source_kind=SourceKind.LOCAL_FILE, source=SourceRef("/media/b.mp3", "b.mp3")))

    policy.apply(store, failed)

    assert [i.source.display_name for i in store.pending_items()] == ["b.mp3", "a.mp3"]


def test_settings_changes_apply_immediately(store):
    session = BatchSession(auto_retry_failed=True, max_retry_attempts=1)
    policy = RetryPolicy(session)
    item = add_failed(store, "a.mp3")
    session.max_retry_attempts = 0
    assert policy.should_retry(item) is False
