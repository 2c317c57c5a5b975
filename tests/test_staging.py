import io

import pytest

from app.errors import AllocationFailed, CopyFailed, PayloadTooLarge
from app.services.staging import ScratchSpace, new_scratch_name


class BrokenStream:
    """Yields one chunk, then fails like a dropped connection."""

    def __init__(self):
        self.calls = 0

    def read(self, size=-1):
        self.calls += 1
        if self.calls == 1:
            return b"x" * 100
        raise OSError("connection reset")


def test_stage_copies_stream_and_leaves_handle_at_end(staging_dir):
    data = b"0123456789" * 1000
    with ScratchSpace(staging_dir) as scratch:
        staged = scratch.stage(io.BytesIO(data))
        assert staged.path.parent == staging_dir
        assert staged.handle.tell() == len(data)
        staged.handle.seek(0)
        assert staged.handle.read() == data
    assert not staged.path.exists()


def test_staging_twice_gives_distinct_paths(staging_dir):
    with ScratchSpace(staging_dir) as scratch:
        a = scratch.stage(io.BytesIO(b"same"))
        b = scratch.stage(io.BytesIO(b"same"))
        assert a.path != b.path
    assert list(staging_dir.iterdir()) == []


def test_scratch_names_do_not_collide():
    names = {new_scratch_name() for _ in range(10_000)}
    assert len(names) == 10_000
    name = next(iter(names))
    assert name.startswith("tubely-") and name.endswith(".mp4")
    assert len(name) == len("tubely-") + 64 + len(".mp4")


def test_cleanup_runs_when_block_raises(staging_dir):
    with pytest.raises(RuntimeError):
        with ScratchSpace(staging_dir) as scratch:
            staged = scratch.stage(io.BytesIO(b"data"))
            derived = scratch.track(staging_dir / "derived.mp4")
            derived.write_bytes(b"more")
            raise RuntimeError("probe blew up")
    assert not staged.path.exists()
    assert not derived.exists()


def test_tracked_path_that_was_never_created_is_fine(staging_dir):
    with ScratchSpace(staging_dir) as scratch:
        scratch.track(staging_dir / "never-written.processing")
    assert list(staging_dir.iterdir()) == []


def test_partial_copy_is_removed(staging_dir):
    with pytest.raises(CopyFailed):
        with ScratchSpace(staging_dir) as scratch:
            scratch.stage(BrokenStream())
    assert list(staging_dir.iterdir()) == []


def test_oversized_upload_is_rejected_and_removed(staging_dir):
    with pytest.raises(PayloadTooLarge) as exc:
        with ScratchSpace(staging_dir) as scratch:
            scratch.stage(io.BytesIO(b"x" * 2048), max_bytes=1024)
    assert exc.value.status_code == 413
    assert list(staging_dir.iterdir()) == []


def test_missing_staging_directory_is_allocation_failure(tmp_path):
    with pytest.raises(AllocationFailed):
        with ScratchSpace(tmp_path / "does-not-exist") as scratch:
            scratch.stage(io.BytesIO(b"data"))


def test_cleanup_failure_is_logged_not_raised(staging_dir, monkeypatch, caplog):
    from pathlib import Path

    def refuse(self, missing_ok=False):
        raise PermissionError("read-only filesystem")

    with ScratchSpace(staging_dir) as scratch:
        scratch.stage(io.BytesIO(b"data"))
        monkeypatch.setattr(Path, "unlink", refuse)
    monkeypatch.undo()
    assert "Could not remove staging file" in caplog.text
