"""Tests for device storage: key/value map, local queue and log history."""

from doorlog.storage import KeyValueStore, LocalQueueStore, LogHistory
from doorlog.storage.queue import QUEUE_KEY, REJECTED_KEY
from doorlog.types import QueueEntry, QueueOp


def create_entry(event) -> QueueEntry:
    return QueueEntry(op=QueueOp.CREATE, timestamp=event.timestamp, event=event)


def delete_entry(timestamp) -> QueueEntry:
    return QueueEntry(op=QueueOp.DELETE, timestamp=timestamp)


class TestKeyValueStore:
    def test_get_default(self, kv):
        assert kv.get("missing") is None
        assert kv.get("missing", []) == []

    def test_json_values_survive_reopen(self, kv, tmp_path):
        kv.set("streetName", "Maple Avenue")
        kv.set("logs", [{"a": 1}])

        reopened = KeyValueStore(tmp_path / "doorlog.db")
        assert reopened.get("streetName") == "Maple Avenue"
        assert reopened.get("logs") == [{"a": 1}]

    def test_overwrite_and_delete(self, kv):
        kv.set("doorNumber", "1")
        kv.set("doorNumber", "2")
        assert kv.get("doorNumber") == "2"
        assert kv.delete("doorNumber") is True
        assert kv.delete("doorNumber") is False

    def test_keys_prefix_is_literal(self, kv):
        kv.set("checkIn:2024-03-01", {})
        kv.set("checkIn:2024-03-02", {})
        kv.set("check_x", {})
        kv.set("checkXIn", {})
        assert kv.keys("checkIn:") == ["checkIn:2024-03-01", "checkIn:2024-03-02"]
        assert kv.keys("check_") == ["check_x"]


class TestLocalQueueStore:
    def test_fifo_order(self, queue, make_event):
        first, second = make_event(), make_event(door="13")
        queue.enqueue(create_entry(first))
        queue.enqueue(create_entry(second))

        assert [e.timestamp for e in queue.entries()] == [first.timestamp, second.timestamp]
        assert queue.head().timestamp == first.timestamp
        assert queue.count() == 2

    def test_enqueue_sets_queued_at(self, queue, make_event):
        entry = queue.enqueue(create_entry(make_event()))
        assert entry.queued_at is not None

    def test_durable_across_restart(self, kv, queue, make_event):
        event = make_event()
        queue.enqueue(create_entry(event))
        queue.enqueue(delete_entry(event.timestamp))

        reloaded = LocalQueueStore(kv)

        assert [(e.op, e.timestamp) for e in reloaded.entries()] == [
            (QueueOp.CREATE, event.timestamp),
            (QueueOp.DELETE, event.timestamp),
        ]
        assert reloaded.head().event == event

    def test_remove_matches_op_and_timestamp(self, queue, make_event):
        event = make_event()
        queue.enqueue(create_entry(event))
        queue.enqueue(delete_entry(event.timestamp))

        assert queue.remove(delete_entry(event.timestamp)) is True
        assert [e.op for e in queue.entries()] == [QueueOp.CREATE]

    def test_record_failure(self, kv, queue, make_event):
        entry = queue.enqueue(create_entry(make_event()))

        assert queue.record_failure(entry, "timeout") == 1
        assert queue.record_failure(entry, "x" * 2000) == 2

        stored = LocalQueueStore(kv).head()
        assert stored.retry_count == 2
        assert len(stored.last_error) == 500
        assert stored.last_attempt_at is not None

    def test_cancel_create(self, queue, make_event):
        event, other = make_event(), make_event(door="13")
        queue.enqueue(create_entry(event))
        queue.enqueue(create_entry(other))

        assert queue.cancel_create(event.timestamp) is True
        assert queue.cancel_create(event.timestamp) is False
        assert [e.timestamp for e in queue.entries()] == [other.timestamp]

    def test_purge_removes_every_op(self, queue, make_event):
        event = make_event()
        queue.enqueue(create_entry(event))
        queue.enqueue(delete_entry(event.timestamp))
        assert queue.purge(event.timestamp) == 2
        assert queue.count() == 0

    def test_reject_keeps_entry_and_requeue(self, kv, queue, make_event):
        entry = queue.enqueue(create_entry(make_event()))

        queue.reject(entry, "Invalid request body")

        assert queue.count() == 0
        rejected = queue.rejected()
        assert len(rejected) == 1
        assert rejected[0].last_error == "Invalid request body"
        assert kv.get(REJECTED_KEY)

        assert queue.requeue_rejected() == 1
        assert queue.count() == 1
        assert queue.head().retry_count == 0
        assert queue.rejected() == []

    def test_corrupt_entry_moved_aside(self, kv, make_event):
        good = create_entry(make_event()).to_dict()
        kv.set(QUEUE_KEY, [{"op": "bogus", "timestamp": "x"}, good])

        queue = LocalQueueStore(kv)

        assert queue.count() == 1
        assert len(kv.keys("corruptQueue:")) == 1

    def test_corrupt_entry_moved_aside_once(self, kv, make_event):
        good = create_entry(make_event()).to_dict()
        kv.set(REJECTED_KEY, [good, {"timestamp": "x"}])
        queue = LocalQueueStore(kv)

        for _ in range(3):
            assert len(queue.rejected()) == 1

        assert len(kv.keys("corruptQueue:")) == 1
        assert [raw["timestamp"] for raw in kv.get(REJECTED_KEY)] == [good["timestamp"]]

    def test_drop_rejected_create(self, queue, make_event):
        event = make_event()
        queue.reject(queue.enqueue(create_entry(event)), "Invalid request body")

        assert queue.drop_rejected(event.timestamp) is True
        assert queue.drop_rejected(event.timestamp) is False
        assert queue.rejected() == []
        assert queue.requeue_rejected() == 0


class TestLogHistory:
    def test_newest_first(self, history, make_event):
        first, second = make_event(), make_event(door="13")
        history.add(first)
        history.add(second)

        assert [e.timestamp for e in history.items()] == [second.timestamp, first.timestamp]
        assert history.date == "2024-03-01"

    def test_remove_and_find(self, history, make_event):
        event = make_event()
        history.add(event)

        assert history.find(event.timestamp) == event
        assert history.remove(event.timestamp) == event
        assert history.remove(event.timestamp) is None
        assert history.items() == []

    def test_last_real_entry_skips_first_entry(self, history, make_event):
        real = make_event(door="7")
        history.add(real)
        history.add(make_event(door="8", is_first_entry=True))

        assert history.last_real_entry() == real

    def test_rollover(self, history, make_event):
        event = make_event()
        history.add(event)

        assert history.rollover("2024-03-01") is None
        assert len(history.items()) == 1

        assert history.rollover("2024-03-02") == event
        assert history.items() == []
        assert history.date == "2024-03-02"

    def test_history_survives_restart(self, kv, history, make_event):
        event = make_event()
        history.add(event)
        assert LogHistory(kv).items() == [event]
