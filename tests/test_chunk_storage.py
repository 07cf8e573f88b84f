"""Tests for chunk scratch storage and the session store."""

import time

from filemanager.chunk_sessions import (
    ChunkSession,
    ChunkSessionState,
    ChunkSessionStore,
    count_chunks,
)


def _session(session_id="s1", total_size=2500, chunk_size=1000):
    return ChunkSession(
        id=session_id,
        tenant="acme",
        filename="big.bin",
        destination="/srv/acme",
        total_size=total_size,
        chunk_size=chunk_size,
        total_chunks=count_chunks(total_size, chunk_size),
        scratch_dir="/tmp/unused",
    )


class TestScratchStorage:
    def test_write_and_stream_back(self, scratch):
        scratch.create_session("s1")
        scratch.write_chunk("s1", 0, b"a" * 100_000)
        pieces = list(scratch.read_chunk_streaming("s1", 0, piece_size=65536))
        assert [len(p) for p in pieces] == [65536, 100_000 - 65536]

    def test_chunk_names_sort_by_index(self, scratch):
        scratch.create_session("s1")
        for index in (10, 2, 0):
            scratch.write_chunk("s1", index, b"x")
        assert scratch.list_chunks("s1") == [0, 2, 10]
        assert scratch.get_chunk_path("s1", 2).name == "00000002.part"

    def test_rewrite_overwrites(self, scratch):
        scratch.create_session("s1")
        scratch.write_chunk("s1", 0, b"first")
        scratch.write_chunk("s1", 0, b"second")
        assert b"".join(scratch.read_chunk_streaming("s1", 0)) == b"second"

    def test_remove_session(self, scratch):
        scratch.create_session("s1")
        scratch.write_chunk("s1", 0, b"x")
        assert scratch.list_sessions() == ["s1"]
        assert scratch.remove_session("s1") is True
        assert scratch.remove_session("s1") is False
        assert scratch.list_chunks("s1") == []


class TestSessionStore:
    def test_count_chunks_rounds_up(self):
        assert count_chunks(2500, 1000) == 3
        assert count_chunks(3000, 1000) == 3
        assert count_chunks(1, 1000) == 1

    def test_record_index_moves_to_receiving(self):
        store = ChunkSessionStore()
        store.add(_session())
        snapshot = store.record_index("s1", 1)
        assert snapshot.state == ChunkSessionState.RECEIVING
        assert snapshot.received == {1}

    def test_snapshot_is_independent(self):
        store = ChunkSessionStore()
        store.add(_session())
        snapshot = store.get("s1")
        snapshot.received.add(0)
        assert store.get("s1").received == set()

    def test_bytes_received_counts_short_last_chunk(self):
        session = _session()
        session.received.update({0, 1, 2})
        assert session.is_complete
        assert session.bytes_received() == 2500

    def test_chunk_length(self):
        session = _session()
        assert [session.chunk_length(i) for i in range(3)] == [1000, 1000, 500]
        session.received.add(2)
        assert session.bytes_received() == 500

    def test_pop_hands_out_session_once(self):
        store = ChunkSessionStore()
        store.add(_session())
        assert store.pop("s1") is not None
        assert store.pop("s1") is None
        assert store.record_index("s1", 0) is None

    def test_purge_abandoned(self):
        store = ChunkSessionStore()
        store.add(_session("old"))
        time.sleep(0.02)
        store.add(_session("new"))

        purged = store.purge_abandoned(0.01)

        assert [s.id for s in purged] == ["old"]
        assert len(store) == 1
