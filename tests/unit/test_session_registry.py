"""Unit tests for the session registry."""

import threading
import pytest

from chunked_upload.domain.entities.artifact import MergedArtifact
from chunked_upload.domain.exceptions import (
    AlreadyMergedError,
    ClientInputError,
    SessionConflictError,
    SessionNotFoundError,
)
from chunked_upload.domain.services.resume_query import ResumeQueryService
from chunked_upload.domain.services.session_registry import SessionRegistry


def make_artifact(session_id: str = "s1") -> MergedArtifact:
    """Create a test artifact."""
    return MergedArtifact(
        session_id=session_id,
        name="1-abcd1234-file.bin",
        url="/uploads/1-abcd1234-file.bin",
        size=3,
        checksum="0" * 64,
    )


@pytest.fixture
def registry(memory_store, fake_clock) -> SessionRegistry:
    """Provide a registry over an in-memory store."""
    return SessionRegistry(memory_store, shards=4, clock=fake_clock)


@pytest.mark.unit
class TestSessionLifecycle:
    """Test opening and recording chunks."""

    def test_open_is_idempotent(self, registry):
        """Test re-opening with the same count keeps state."""
        registry.open("s1", 3, "a.bin")
        registry.mark_received("s1", 1)
        session = registry.open("s1", 3, "a.bin")
        assert session.received_chunks == {1}

    def test_open_conflict(self, registry):
        """Test a different chunk count is a conflict."""
        registry.open("s1", 3)
        with pytest.raises(SessionConflictError) as exc_info:
            registry.open("s1", 4)
        assert exc_info.value.details["expectedTotalChunks"] == 3
        assert registry.get("s1").total_chunks == 3

    def test_open_invalid_total(self, registry):
        """Test total_chunks must be positive."""
        with pytest.raises(ClientInputError):
            registry.open("s1", 0)

    def test_open_or_create_reports_creation(self, registry):
        """Test creation flag."""
        _, created = registry.open_or_create("s1", 2)
        _, created_again = registry.open_or_create("s1", 2)
        assert created
        assert not created_again

    def test_first_declared_metadata_kept(self, registry):
        """Test later opens fill in but never replace metadata."""
        registry.open("s1", 2, "", "")
        registry.open("s1", 2, "a.bin", "text/plain")
        registry.open("s1", 2, "b.bin", "image/png")
        session = registry.get("s1")
        assert session.file_name == "a.bin"
        assert session.file_type == "text/plain"

    def test_mark_received(self, registry):
        """Test recording chunks out of order."""
        registry.open("s1", 3)
        assert registry.mark_received("s1", 2) == [2]
        assert registry.mark_received("s1", 0) == [0, 2]
        assert registry.mark_received("s1", 0) == [0, 2]
        assert not registry.is_complete("s1")
        registry.mark_received("s1", 1)
        assert registry.is_complete("s1")

    def test_mark_received_unknown_session(self, registry):
        """Test recording into an unknown session."""
        with pytest.raises(SessionNotFoundError):
            registry.mark_received("nope", 0)

    def test_mark_received_out_of_range(self, registry):
        """Test indices outside the session are rejected."""
        registry.open("s1", 2)
        with pytest.raises(ClientInputError):
            registry.mark_received("s1", 2)
        with pytest.raises(ClientInputError):
            registry.mark_received("s1", -1)
        assert registry.received("s1") == []

    def test_get_returns_snapshot(self, registry):
        """Test callers cannot mutate registry state through a snapshot."""
        registry.open("s1", 2)
        snapshot = registry.get("s1")
        snapshot.received_chunks.add(0)
        assert registry.received("s1") == []

    def test_unknown_queries(self, registry):
        """Test queries about unknown sessions."""
        assert registry.get("nope") is None
        assert registry.received("nope") == []
        assert not registry.is_complete("nope")

    def test_seeded_from_store(self, memory_store, fake_clock):
        """Test a new registry picks up chunks that survived a restart."""
        memory_store.put("s1", 0, b"a")
        memory_store.put("s1", 2, b"c")
        memory_store.put("s1", 9, b"stray")
        registry = SessionRegistry(memory_store, clock=fake_clock)
        session = registry.open("s1", 3)
        assert session.uploaded_chunks() == [0, 2]

    def test_forget_chunk(self, registry):
        """Test dropping an index that is no longer durable."""
        registry.open("s1", 2)
        registry.mark_received("s1", 0)
        registry.forget_chunk("s1", 0)
        assert registry.received("s1") == []
        registry.forget_chunk("unknown", 0)


@pytest.mark.unit
class TestConcurrentWrites:
    """Test thread safety of chunk recording."""

    def test_concurrent_mark_received_loses_nothing(self, registry):
        """Test many threads recording chunks of one session."""
        total = 200
        registry.open("s1", total)
        barrier = threading.Barrier(8)

        def worker(offset: int) -> None:
            barrier.wait()
            for index in range(offset, total, 8):
                registry.mark_received("s1", index)

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert registry.received("s1") == list(range(total))
        assert registry.is_complete("s1")

    def test_concurrent_open_creates_once(self, registry):
        """Test racing opens of one session share a single entry."""
        barrier = threading.Barrier(10)
        created = []

        def worker() -> None:
            barrier.wait()
            _, was_created = registry.open_or_create("s1", 5)
            created.append(was_created)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert created.count(True) == 1
        assert registry.active_count() == 1


@pytest.mark.unit
class TestMergeGuard:
    """Test merge serialization support."""

    def test_guard_yields_snapshot(self, registry):
        """Test the guard exposes the session."""
        registry.open("s1", 1, "a.bin")
        registry.mark_received("s1", 0)
        with registry.merge_guard("s1") as session:
            assert session.is_complete()

    def test_guard_unknown_session(self, registry):
        """Test guarding an unknown session."""
        with pytest.raises(SessionNotFoundError):
            with registry.merge_guard("nope"):
                pass

    def test_mark_merged_leaves_tombstone(self, registry):
        """Test merged sessions answer with their artifact."""
        registry.open("s1", 1)
        registry.mark_received("s1", 0)
        artifact = make_artifact()
        with registry.merge_guard("s1"):
            registry.mark_merged("s1", artifact)

        assert registry.get("s1") is None
        assert registry.merged_artifact("s1") == artifact
        assert registry.merged_count() == 1
        with pytest.raises(AlreadyMergedError) as exc_info:
            with registry.merge_guard("s1"):
                pass
        assert exc_info.value.artifact_url == artifact.url

    def test_writes_after_merge_rejected(self, registry):
        """Test a merged session cannot be reopened."""
        registry.open("s1", 1)
        registry.mark_received("s1", 0)
        with registry.merge_guard("s1"):
            registry.mark_merged("s1", make_artifact())
        with pytest.raises(AlreadyMergedError):
            registry.open("s1", 1)
        with pytest.raises(AlreadyMergedError):
            registry.mark_received("s1", 0)

    def test_waiting_guard_sees_merge(self, registry):
        """Test a second guard blocks until the first merge finishes."""
        registry.open("s1", 1)
        registry.mark_received("s1", 0)
        entered = threading.Event()
        release = threading.Event()
        outcome = []

        def first() -> None:
            with registry.merge_guard("s1"):
                entered.set()
                release.wait(5)
                registry.mark_merged("s1", make_artifact())

        def second() -> None:
            try:
                with registry.merge_guard("s1"):
                    outcome.append("entered")
            except AlreadyMergedError:
                outcome.append("already_merged")

        t1 = threading.Thread(target=first)
        t1.start()
        assert entered.wait(5)
        t2 = threading.Thread(target=second)
        t2.start()
        release.set()
        t1.join()
        t2.join()
        assert outcome == ["already_merged"]


@pytest.mark.unit
class TestSweep:
    """Test expiry of idle sessions."""

    def test_sweep_removes_idle_sessions(self, registry, memory_store, fake_clock):
        """Test idle sessions are discarded with their chunks."""
        registry.open("old", 2)
        memory_store.put("old", 0, b"a")
        registry.mark_received("old", 0)
        fake_clock.advance(30)
        registry.open("fresh", 2)
        fake_clock.advance(31)

        assert registry.sweep_expired(60_000) == ["old"]
        assert registry.get("old") is None
        assert registry.get("fresh") is not None
        assert memory_store.list_chunks("old") == []

    def test_activity_refreshes_expiry(self, registry, fake_clock):
        """Test chunk writes keep a session alive."""
        registry.open("s1", 3)
        fake_clock.advance(50)
        registry.mark_received("s1", 0)
        fake_clock.advance(50)
        assert registry.sweep_expired(60_000) == []

    def test_sweep_skips_merging_session(self, registry, fake_clock):
        """Test a session under merge is never swept."""
        registry.open("s1", 1)
        fake_clock.advance(120)
        with registry.merge_guard("s1"):
            assert registry.sweep_expired(60_000) == []
        assert registry.sweep_expired(60_000) == ["s1"]

    def test_idle_session_merge_survives_concurrent_sweep(self, registry, fake_clock):
        """Test a sweep running mid-merge cannot retire the merging session."""
        registry.open("s1", 1)
        registry.mark_received("s1", 0)
        fake_clock.advance(120)
        swept = []

        with registry.merge_guard("s1"):
            sweeper = threading.Thread(target=lambda: swept.extend(registry.sweep_expired(60_000)))
            sweeper.start()
            sweeper.join(timeout=5)
            assert not sweeper.is_alive()
            registry.mark_merged("s1", make_artifact())

        assert swept == []
        assert registry.merged_artifact("s1") is not None

    def test_sweep_releases_merge_lock(self, registry, fake_clock):
        """Test sweeping a live session leaves it mergeable."""
        registry.open("s1", 1)
        registry.mark_received("s1", 0)
        fake_clock.advance(10)
        assert registry.sweep_expired(60_000) == []
        with registry.merge_guard("s1") as session:
            assert session.is_complete()

    def test_sweep_prunes_tombstones(self, registry, fake_clock):
        """Test old merge records are forgotten."""
        registry.open("s1", 1)
        registry.mark_received("s1", 0)
        with registry.merge_guard("s1"):
            registry.mark_merged("s1", make_artifact())
        fake_clock.advance(61)
        registry.sweep_expired(60_000)
        assert registry.merged_artifact("s1") is None


@pytest.mark.unit
class TestResumeQuery:
    """Test the resume query service."""

    def test_query_uploaded(self, registry):
        """Test sorted indices for a live session."""
        registry.open("s1", 4)
        for index in (3, 0, 2):
            registry.mark_received("s1", index)
        assert ResumeQueryService(registry).query_uploaded("s1") == [0, 2, 3]

    def test_query_unknown(self, registry):
        """Test a fresh upload has nothing uploaded."""
        assert ResumeQueryService(registry).query_uploaded("new") == []
