"""
Receipt queue store and lease manager.
"""
from datetime import timedelta

from app.models import QueueStatus, ReceiptQueueModel
from app.pipeline.queue import ReceiptQueue


def _ids(items):
    return [i.receipt_id for i in items]


# =====================================================================
# Registration
# =====================================================================
class TestRegister:
    def test_new_item_is_unprocessed_and_due_now(self, queue, register, clock):
        register("r1")
        item = queue.get("r1")
        assert item.status == QueueStatus.UNPROCESSED.value
        assert item.error_count == 0
        assert item.last_error_message is None
        assert item.next_retry_at == clock.now
        assert item.uploaded_at == clock.now

    def test_reregister_updates_metadata_only(self, db, queue, register, clock):
        register("r1")
        queue.reserve(1)
        queue.mark_error("r1", "boom", 600)
        before = queue.get("r1")
        retry_at = before.next_retry_at
        uploaded_at = before.uploaded_at

        clock.advance(30)
        register(
            "r1",
            blob_url="https://blob.example.com/r1-v2.pdf",
            file_name="r1.pdf",
            mime_type="application/pdf",
            size_bytes=4096,
        )

        assert db.query(ReceiptQueueModel).count() == 1
        item = queue.get("r1")
        assert item.blob_url == "https://blob.example.com/r1-v2.pdf"
        assert item.file_name == "r1.pdf"
        assert item.mime_type == "application/pdf"
        assert item.size_bytes == 4096
        assert item.status == QueueStatus.ERROR.value
        assert item.error_count == 1
        assert item.last_error_message == "boom"
        assert item.next_retry_at == retry_at
        assert item.uploaded_at == uploaded_at

    def test_reregister_never_reopens_processed_item(self, queue, register):
        register("r1")
        queue.reserve(1)
        queue.mark_processed("r1", 7, {"store_name": "Cafe X"})
        register("r1")
        item = queue.get("r1")
        assert item.status == QueueStatus.PROCESSED.value
        assert item.ledger_journal_id == 7


# =====================================================================
# Reservation
# =====================================================================
class TestReserve:
    def test_claims_oldest_first(self, queue, register, clock):
        for rid in ("r1", "r2", "r3", "r4"):
            register(rid)
            clock.advance(1)

        claimed = queue.reserve(2)

        assert _ids(claimed) == ["r1", "r2"]
        for item in claimed:
            assert item.status == QueueStatus.PROCESSING.value
            assert item.processing_started_at == clock.now
        assert queue.get("r3").status == QueueStatus.UNPROCESSED.value

    def test_returns_fewer_when_fewer_eligible(self, queue, register):
        register("r1")
        assert _ids(queue.reserve(10)) == ["r1"]

    def test_empty_when_nothing_eligible(self, queue, register):
        assert queue.reserve(5) == []
        register("r1")
        queue.reserve(5)
        assert queue.reserve(5) == []

    def test_non_positive_limit(self, queue, register):
        register("r1")
        assert queue.reserve(0) == []
        assert queue.get("r1").status == QueueStatus.UNPROCESSED.value

    def test_processed_items_are_not_claimable(self, queue, register):
        register("r1")
        queue.reserve(1)
        queue.mark_processed("r1", 1, None)
        assert queue.reserve(1) == []

    def test_error_item_waits_for_backoff(self, queue, register, clock):
        register("r2")
        queue.reserve(1)
        queue.mark_error("r2", "extraction failed", 600)

        item = queue.get("r2")
        assert item.status == QueueStatus.ERROR.value
        assert item.error_count == 1
        assert item.next_retry_at == clock.now + timedelta(seconds=600)

        assert queue.reserve(1) == []
        clock.advance(599)
        assert queue.reserve(1) == []
        clock.advance(1)
        assert _ids(queue.reserve(1)) == ["r2"]

    def test_backoff_does_not_grow_with_error_count(self, queue, register, clock):
        register("r1")
        for _ in range(3):
            queue.reserve(1)
            queue.mark_error("r1", "still failing", 600)
            assert queue.get("r1").next_retry_at == clock.now + timedelta(seconds=600)
            clock.advance(600)
        assert queue.get("r1").error_count == 3

    def test_concurrent_reservations_never_overlap(self, db, make_session, register, clock, monkeypatch):
        for i in range(6):
            register(f"r{i}")
            clock.advance(1)

        mine = ReceiptQueue(db, clock=clock)
        other = ReceiptQueue(make_session(), clock=clock)
        original_select = mine._select_candidate_ids
        stolen = []

        def racing_select(limit, now):
            candidates = original_select(limit, now)
            if not stolen:
                # another worker claims part of our candidate set before we update
                stolen.extend(_ids(other.reserve(2)))
            return candidates

        monkeypatch.setattr(mine, "_select_candidate_ids", racing_select)
        got = _ids(mine.reserve(4))

        assert stolen == ["r0", "r1"]
        assert got == ["r2", "r3", "r4", "r5"]
        assert set(got).isdisjoint(stolen)

    def test_lost_race_with_bounded_attempts(self, db, make_session, register, clock, monkeypatch):
        for i in range(3):
            register(f"r{i}")
            clock.advance(1)

        mine = ReceiptQueue(db, clock=clock, max_attempts=1)
        other = ReceiptQueue(make_session(), clock=clock)
        original_select = mine._select_candidate_ids

        def racing_select(limit, now):
            candidates = original_select(limit, now)
            other.reserve(1)
            return candidates

        monkeypatch.setattr(mine, "_select_candidate_ids", racing_select)
        assert _ids(mine.reserve(3)) == ["r1", "r2"]


# =====================================================================
# Operator views
# =====================================================================
class TestOperatorViews:
    def test_status_counts(self, queue, register, clock):
        for rid in ("r1", "r2", "r3"):
            register(rid)
            clock.advance(1)
        queue.reserve(2)
        queue.mark_error("r1", "boom", 60)

        counts = queue.status_counts()
        assert counts == {"UNPROCESSED": 1, "PROCESSING": 1, "PROCESSED": 0, "ERROR": 1}

    def test_recent_is_newest_first(self, queue, register, clock):
        for rid in ("r1", "r2", "r3"):
            register(rid)
            clock.advance(1)
        assert _ids(queue.recent(2)) == ["r3", "r2"]

    def test_reset_errors(self, queue, register, clock):
        register("r1")
        clock.advance(1)
        register("r2")
        queue.reserve(2)
        queue.mark_error("r1", "boom", 600)
        queue.mark_processed("r2", 3, None)

        reset = queue.reset_errors()

        assert _ids(reset) == ["r1"]
        item = queue.get("r1")
        assert item.status == QueueStatus.UNPROCESSED.value
        assert item.last_error_message is None
        assert item.error_count == 1
        assert item.next_retry_at == clock.now
        assert queue.get("r2").status == QueueStatus.PROCESSED.value
        assert _ids(queue.reserve(5)) == ["r1"]
