import pytest

from engine.queue_store import QueueStore, ReorderDirection
from models.queue_item import (
    QueuedItem,
    SourceRef,
    SourceKind,
    ItemStatus,
    Completed,
    Failed,
    Cancelled,
    Pending,
)
from fakes import make_result


def local_item(name: str) -> QueuedItem:
    return QueuedItem(
        source_kind=SourceKind.LOCAL_FILE,
        source=SourceRef(location=f"/media/{name}", display_name=name),
    )


def remote_item(video_id: str) -> QueuedItem:
    return QueuedItem(
        source_kind=SourceKind.REMOTE_URL,
        source=SourceRef(location=f"https://youtu.be/{video_id}", display_name=video_id),
    )


@pytest.fixture
def store():
    return QueueStore()


@pytest.fixture
def filled(store):
    items = [store.add(local_item(n)) for n in ("a.mp3", "b.mp3", "c.mp3", "d.mp3")]
    return store, items


def names(store):
    return [i.source.display_name for i in store.snapshot()]


def test_add_assigns_contiguous_positions(filled):
    store, items = filled
    assert [i.queue_position for i in store.snapshot()] == [0, 1, 2, 3]
    assert len({i.sequence for i in items}) == 4
    assert all(i.status == ItemStatus.PENDING for i in items)


def test_add_rejects_duplicate_id(store):
    item = store.add(local_item("a.mp3"))
    with pytest.raises(ValueError):
        store.add(item)


def test_remove_renumbers_positions(filled):
    store, items = filled
    assert store.remove(items[1].id) is True
    assert names(store) == ["a.mp3", "c.mp3", "d.mp3"]
    assert [i.queue_position for i in store.snapshot()] == [0, 1, 2]


def test_remove_refuses_active_item(filled):
    store, items = filled
    assert store.claim(items[0].id)
    assert store.remove(items[0].id) is False
    assert len(store) == 4


def test_remove_unknown_id_is_noop(store):
    assert store.remove("missing") is False


def test_move_up_and_down(filled):
    store, items = filled
    assert store.reorder(items[2].id, ReorderDirection.UP)
    assert names(store) == ["a.mp3", "c.mp3", "b.mp3", "d.mp3"]
    assert store.reorder(items[2].id, ReorderDirection.DOWN)
    assert names(store) == ["a.mp3", "b.mp3", "c.mp3", "d.mp3"]


def test_move_at_edges_is_noop(filled):
    store, items = filled
    version = store.version
    assert store.reorder(items[0].id, ReorderDirection.UP) is False
    assert store.reorder(items[3].id, ReorderDirection.DOWN) is False
    assert store.reorder(items[0].id, ReorderDirection.TOP) is False
    assert store.version == version


def test_move_to_top_and_bottom(filled):
    store, items = filled
    assert store.reorder(items[3].id, ReorderDirection.TOP)
    assert names(store) == ["d.mp3", "a.mp3", "b.mp3", "c.mp3"]
    assert store.reorder(items[3].id, ReorderDirection.BOTTOM)
    assert names(store) == ["a.mp3", "b.mp3", "c.mp3", "d.mp3"]


def test_move_skips_non_pending_neighbours(filled):
    store, items = filled
    store.claim(items[1].id)
    # c swaps with a, the nearest pending item above it
    assert store.reorder(items[2].id, ReorderDirection.UP)
    pending = [i.source.display_name for i in store.pending_items()]
    assert pending == ["c.mp3", "a.mp3", "d.mp3"]


def test_move_to_top_lands_before_first_pending(filled):
    store, items = filled
    store.claim(items[0].id)
    assert store.reorder(items[3].id, ReorderDirection.TOP)
    assert names(store) == ["a.mp3", "d.mp3", "b.mp3", "c.mp3"]


def test_reorder_non_pending_is_noop(filled):
    store, items = filled
    store.claim(items[1].id)
    assert store.reorder(items[1].id, ReorderDirection.TOP) is False
    assert names(store) == ["a.mp3", "b.mp3", "c.mp3", "d.mp3"]


def test_claim_local_goes_to_processing(filled):
    store, items = filled
    assert store.claim(items[0].id)
    claimed = store.get(items[0].id)
    assert claimed.status == ItemStatus.PROCESSING
    assert claimed.attempt_count == 1
    assert claimed.claimed_at is not None


def test_claim_remote_goes_to_downloading(store):
    item = store.add(remote_item("abc"))
    assert store.claim(item.id)
    assert store.get(item.id).status == ItemStatus.DOWNLOADING
    assert store.begin_processing(item.id)
    assert store.get(item.id).status == ItemStatus.PROCESSING


def test_claim_twice_fails(filled):
    store, items = filled
    assert store.claim(items[0].id)
    assert store.claim(items[0].id) is False
    assert store.get(items[0].id).attempt_count == 1


def test_progress_is_monotonic_and_clamped(filled):
    store, items = filled
    store.claim(items[0].id)
    store.update_progress(items[0].id, 0.4)
    store.update_progress(items[0].id, 0.2)
    assert store.get(items[0].id).progress == 0.4
    store.update_progress(items[0].id, 7)
    assert store.get(items[0].id).progress == 1.0


def test_progress_ignored_when_not_processing(filled):
    store, items = filled
    assert store.update_progress(items[0].id, 0.5) is False
    assert store.get(items[0].id).progress == 0.0


def test_release_sets_terminal_state(filled):
    store, items = filled
    store.claim(items[0].id)
    released = store.release(items[0].id, Completed(make_result()), 2.5)
    assert released.status == ItemStatus.COMPLETED
    assert released.progress == 1.0
    assert released.processing_duration == 2.5
    assert released.finished_at is not None


def test_release_requires_terminal_state(filled):
    store, items = filled
    store.claim(items[0].id)
    with pytest.raises(ValueError):
        store.release(items[0].id, Pending())


def test_release_of_unclaimed_item_returns_none(filled):
    store, items = filled
    assert store.release(items[0].id, Cancelled()) is None
    assert store.get(items[0].id).status == ItemStatus.PENDING


def test_requeue_keeps_position_and_counts_retry(filled):
    store, items = filled
    store.claim(items[1].id)
    store.release(items[1].id, Failed(error="boom"))
    assert store.requeue(items[1].id)
    item = store.get(items[1].id)
    assert item.status == ItemStatus.PENDING
    assert item.error is None
    assert item.retry_count == 1
    assert item.attempt_count == 1
    assert item.queue_position == 1


def test_requeue_to_end_and_reset_attempts(filled):
    store, items = filled
    store.claim(items[0].id)
    store.release(items[0].id, Failed(error="boom"))
    assert store.requeue(items[0].id, to_end=True, reset_attempts=True)
    assert names(store)[-1] == "a.mp3"
    assert store.get(items[0].id).attempt_count == 0


def test_requeue_pending_or_completed_is_noop(filled):
    store, items = filled
    assert store.requeue(items[0].id) is False
    store.claim(items[1].id)
    store.release(items[1].id, Completed(make_result()))
    assert store.requeue(items[1].id) is False


def test_cancelled_item_is_not_requeued(filled):
    store, items = filled
    store.claim(items[0].id)
    store.release(items[0].id, Cancelled())
    assert store.requeue(items[0].id) is False
    item = store.get(items[0].id)
    assert item.status == ItemStatus.CANCELLED
    assert item.retry_count == 0


def test_remove_where_and_count(filled):
    store, items = filled
    store.claim(items[0].id)
    store.release(items[0].id, Completed(make_result()))
    store.claim(items[1].id)
    store.release(items[1].id, Failed(error="x"))

    counts = store.count_by_status()
    assert counts[ItemStatus.COMPLETED] == 1
    assert counts[ItemStatus.FAILED] == 1
    assert counts[ItemStatus.PENDING] == 2

    assert store.remove_where([ItemStatus.COMPLETED]) == 1
    assert names(store) == ["b.mp3", "c.mp3", "d.mp3"]
    assert store.remove_where([ItemStatus.COMPLETED]) == 0


def test_subscribers_receive_every_snapshot(store):
    snapshots = []
    unsubscribe = store.subscribe(snapshots.append)
    item = store.add(local_item("a.mp3"))
    store.claim(item.id)
    unsubscribe()
    store.remove(item.id)

    assert len(snapshots) == 2
    assert snapshots[0][0].status == ItemStatus.PENDING
    assert snapshots[1][0].status == ItemStatus.PROCESSING


def test_failing_listener_does_not_break_mutation(store):
    def broken(_snapshot):
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    item = store.add(local_item("a.mp3"))
    assert store.get(item.id) is not None


def test_snapshots_are_immutable(filled):
    store, items = filled
    snapshot = store.snapshot()
    store.remove(items[0].id)
    assert len(snapshot) == 4
    with pytest.raises(Exception):
        snapshot[0].attempt_count = 5
