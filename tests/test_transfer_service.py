"""Tests for streaming and chunked uploads."""

import io
import random
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from filemanager.exceptions import (
    InvalidRequestError,
    IOFailureError,
    NotFoundError,
    TraversalRejectedError,
)
from filemanager.progress import ProgressStatus
from filemanager.services import TransferService


class FlakySource(io.RawIOBase):
    """Readable stream that breaks after handing out one buffer."""

    def __init__(self):
        self.calls = 0

    def readable(self):
        return True

    def read(self, size=-1):
        self.calls += 1
        if self.calls > 1:
            raise ConnectionResetError("client went away")
        return b"x" * size


class TestStreamUpload:
    def test_upload_completes(self, transfer_service, registry, tenant_root):
        op_id = transfer_service.stream_upload("notes.txt", "uploads", io.BytesIO(b"hello"), 5)

        record = registry.get(op_id)
        assert record.status == ProgressStatus.COMPLETED
        assert record.percentage == 100
        assert record.path == "uploads/notes.txt"
        assert (tenant_root / "uploads" / "notes.txt").read_bytes() == b"hello"

    def test_unknown_size_settles_on_bytes_copied(self, transfer_service, registry):
        op_id = transfer_service.stream_upload("a.bin", "", io.BytesIO(b"z" * 1000), 0)
        record = registry.get(op_id)
        assert record.total_bytes == 1000
        assert record.transferred_bytes == 1000

    def test_progress_updated_per_buffer(self, transfer_service, registry):
        payload = b"p" * (3 * 64 * 1024 + 10)
        with patch.object(registry, "update", wraps=registry.update) as spy:
            transfer_service.stream_upload("p.bin", "", io.BytesIO(payload), len(payload))
        assert spy.call_count == 4

    def test_name_collisions_get_suffixes(self, transfer_service, registry, tenant_root):
        (tenant_root / "report.pdf").write_bytes(b"original")

        first = transfer_service.stream_upload("report.pdf", "", io.BytesIO(b"1"), 1)
        second = transfer_service.stream_upload("report.pdf", "", io.BytesIO(b"2"), 1)

        assert registry.get(first).path == "report_1.pdf"
        assert registry.get(second).path == "report_2.pdf"
        assert (tenant_root / "report.pdf").read_bytes() == b"original"

    def test_client_directories_are_stripped(self, transfer_service, registry, tenant_root):
        op_id = transfer_service.stream_upload("../../etc/evil.txt", "", io.BytesIO(b"x"), 1)
        assert registry.get(op_id).path == "evil.txt"
        assert (tenant_root / "evil.txt").exists()

    def test_empty_filename_gets_default(self, transfer_service, registry):
        op_id = transfer_service.stream_upload("", "", io.BytesIO(b"x"), 1)
        assert registry.get(op_id).filename == "uploaded_file"

    def test_traversal_destination_raises_before_record(self, transfer_service, registry):
        with pytest.raises(TraversalRejectedError):
            transfer_service.stream_upload("a.txt", "../other", io.BytesIO(b"x"), 1)
        assert len(registry) == 0

    def test_copy_failure_marks_record_failed(self, transfer_service, registry):
        op_id = transfer_service.stream_upload("broken.bin", "", FlakySource(), 10 * 64 * 1024)

        record = registry.get(op_id)
        assert record.status == ProgressStatus.FAILED
        assert "client went away" in record.error
        assert record.transferred_bytes == 64 * 1024


class TestChunkSessions:
    """Test the init / put_chunk / finalize state machine."""

    def test_init_registers_pending_record(self, transfer_service, registry):
        session = transfer_service.init_session("big.bin", "incoming", 2500, 1000)

        assert session.total_chunks == 3
        record = registry.get(session.id)
        assert record.status == ProgressStatus.PENDING
        assert record.total_bytes == 2500

    @pytest.mark.parametrize("total_size,chunk_size", [(0, 10), (-5, 10), (10, -1)])
    def test_init_rejects_bad_sizes(self, transfer_service, total_size, chunk_size):
        with pytest.raises(InvalidRequestError):
            transfer_service.init_session("f", "", total_size, chunk_size)

    def test_init_rejects_traversal(self, transfer_service):
        with pytest.raises(TraversalRejectedError):
            transfer_service.init_session("f", "/etc", 10, 5)

    def test_shuffled_chunks_reassemble_in_order(self, transfer_service, registry, scratch, sessions, tenant_root):
        chunk_size = 1_000_000
        session = transfer_service.init_session("big.bin", "incoming", 10 * chunk_size, chunk_size)
        order = list(range(10))
        random.Random(7).shuffle(order)

        for index in order:
            transfer_service.put_chunk(session.id, index, bytes([index]) * chunk_size)

        data = (tenant_root / "incoming" / "big.bin").read_bytes()
        assert data == b"".join(bytes([i]) * chunk_size for i in range(10))

        record = registry.get(session.id)
        assert record.status == ProgressStatus.COMPLETED
        assert record.percentage == 100
        assert record.path == "incoming/big.bin"
        assert scratch.list_sessions() == []
        assert len(sessions) == 0

    def test_progress_tracks_received_chunks(self, transfer_service):
        session = transfer_service.init_session("f.bin", "", 2500, 1000)

        record = transfer_service.put_chunk(session.id, 2, b"c" * 500)
        assert record.status == ProgressStatus.UPLOADING
        assert record.transferred_bytes == 500

        record = transfer_service.put_chunk(session.id, 2, b"c" * 500)
        assert record.transferred_bytes == 500

        record = transfer_service.put_chunk(session.id, 0, b"a" * 1000)
        assert record.transferred_bytes == 1500
        assert record.percentage == 60

    def test_resent_chunk_overwrites(self, transfer_service, tenant_root):
        session = transfer_service.init_session("f.txt", "", 4, 2)
        transfer_service.put_chunk(session.id, 0, b"xx")
        transfer_service.put_chunk(session.id, 0, b"ab")
        transfer_service.put_chunk(session.id, 1, b"cd")
        assert (tenant_root / "f.txt").read_bytes() == b"abcd"

    def test_finalize_deduplicates_target(self, transfer_service, registry, tenant_root):
        (tenant_root / "f.txt").write_bytes(b"old")
        session = transfer_service.init_session("f.txt", "", 2, 2)
        transfer_service.put_chunk(session.id, 0, b"hi")

        assert (tenant_root / "f_1.txt").read_bytes() == b"hi"
        record = registry.get(session.id)
        assert record.path == "f_1.txt"
        assert record.filename == "f_1.txt"

    def test_out_of_range_index(self, transfer_service):
        session = transfer_service.init_session("f", "", 10, 5)
        with pytest.raises(InvalidRequestError):
            transfer_service.put_chunk(session.id, 2, b"x")
        with pytest.raises(InvalidRequestError):
            transfer_service.put_chunk(session.id, -1, b"x")

    @pytest.mark.parametrize("index,length", [(0, 1001), (0, 10), (1, 999), (2, 999), (2, 1001)])
    def test_wrong_size_chunk_is_rejected(self, transfer_service, registry, index, length):
        session = transfer_service.init_session("f", "", 3000, 1000)
        with pytest.raises(InvalidRequestError):
            transfer_service.put_chunk(session.id, index, b"x" * length)
        assert registry.get(session.id).transferred_bytes == 0

    def test_short_chunk_cannot_complete_upload(self, transfer_service, registry, tenant_root):
        session = transfer_service.init_session("f.bin", "", 3000, 1000)
        with pytest.raises(InvalidRequestError):
            transfer_service.put_chunk(session.id, 0, b"x" * 10)
        transfer_service.put_chunk(session.id, 1, b"b" * 1000)
        transfer_service.put_chunk(session.id, 2, b"c" * 1000)

        assert not (tenant_root / "f.bin").exists()
        assert registry.get(session.id).status == ProgressStatus.UPLOADING

        transfer_service.put_chunk(session.id, 0, b"a" * 1000)
        assert (tenant_root / "f.bin").stat().st_size == 3000

    def test_unknown_session(self, transfer_service):
        with pytest.raises(NotFoundError):
            transfer_service.put_chunk("no-such-session", 0, b"x")

    def test_finished_session_is_gone(self, transfer_service):
        session = transfer_service.init_session("f", "", 1, 1)
        transfer_service.put_chunk(session.id, 0, b"x")
        with pytest.raises(NotFoundError):
            transfer_service.put_chunk(session.id, 0, b"x")
        with pytest.raises(NotFoundError):
            transfer_service._finalize(session.id)

    def test_foreign_tenant_cannot_see_session(
        self, transfer_service, backend, sandbox, registry, sessions, scratch, ownership
    ):
        session = transfer_service.init_session("f", "", 10, 5)
        intruder = TransferService(backend, sandbox, registry, sessions, scratch, ownership, tenant="intruder")
        with pytest.raises(NotFoundError):
            intruder.put_chunk(session.id, 0, b"x")

    def test_finalize_incomplete_session_fails(self, transfer_service, registry, scratch):
        session = transfer_service.init_session("f", "", 10, 5)
        transfer_service.put_chunk(session.id, 0, b"12345")

        with pytest.raises(InvalidRequestError):
            transfer_service._finalize(session.id)

        assert registry.get(session.id).status == ProgressStatus.FAILED
        assert scratch.list_sessions() == []

    def test_assembly_failure_marks_failed_and_raises(self, transfer_service, backend, registry, scratch, monkeypatch):
        session = transfer_service.init_session("f", "", 2, 1)
        transfer_service.put_chunk(session.id, 0, b"a")

        def broken_create(path):
            raise IOFailureError(f"{path}: No space left on device")

        monkeypatch.setattr(backend, "create", broken_create)

        with pytest.raises(IOFailureError):
            transfer_service.put_chunk(session.id, 1, b"b")

        record = registry.get(session.id)
        assert record.status == ProgressStatus.FAILED
        assert "No space left" in record.error
        assert scratch.list_sessions() == []

    def test_vanished_scratch_chunk_fails_assembly(self, transfer_service, registry, scratch, tenant_root):
        session = transfer_service.init_session("f", "", 10, 5)
        transfer_service.put_chunk(session.id, 0, b"12345")
        scratch.get_chunk_path(session.id, 0).unlink()

        with pytest.raises(InvalidRequestError):
            transfer_service.put_chunk(session.id, 1, b"67890")

        assert registry.get(session.id).status == ProgressStatus.FAILED
        assert not (tenant_root / "f").exists()

    def test_concurrent_chunks_assemble_once(self, transfer_service, tenant_root):
        session = transfer_service.init_session("c.bin", "par", 16 * 1024, 1024)

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(
                lambda i: transfer_service.put_chunk(session.id, i, bytes([i]) * 1024),
                range(16),
            ))

        assert [p.name for p in (tenant_root / "par").iterdir()] == ["c.bin"]
        assert (tenant_root / "par" / "c.bin").read_bytes() == b"".join(bytes([i]) * 1024 for i in range(16))

    def test_abandon_session(self, transfer_service, registry, scratch):
        session = transfer_service.init_session("f", "", 10, 5)
        transfer_service.put_chunk(session.id, 0, b"12345")

        transfer_service.abandon_session(session.id)

        assert registry.get(session.id).status == ProgressStatus.FAILED
        assert scratch.list_sessions() == []
        with pytest.raises(NotFoundError):
            transfer_service.put_chunk(session.id, 1, b"12345")

    def test_get_progress_unknown(self, transfer_service):
        with pytest.raises(NotFoundError):
            transfer_service.get_progress("missing")
