"""
Scratch files for one upload. Every file staged or tracked through a ScratchSpace
is removed when the `with` block exits, whichever stage raised.
"""
import logging
import secrets
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

from app.errors import AllocationFailed, CopyFailed, PayloadTooLarge

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1 MB
STAGED_PREFIX = "tubely-"


@dataclass
class StagedFile:
    path: Path
    handle: BinaryIO


def new_scratch_name(suffix: str = ".mp4") -> str:
    """256 random bits, hex encoded."""
    return f"{STAGED_PREFIX}{secrets.token_hex(32)}{suffix}"


class ScratchSpace:
    def __init__(self, directory: str | Path | None = None):
        self.directory = Path(directory) if directory else Path(tempfile.gettempdir())
        self._paths: list[Path] = []
        self._handles: list[BinaryIO] = []

    def __enter__(self) -> "ScratchSpace":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.cleanup()
        return False

    def track(self, path: Path) -> Path:
        """Register a file another stage is about to create so it gets removed too."""
        self._paths.append(Path(path))
        return path

    def stage(self, stream: BinaryIO, max_bytes: int | None = None, suffix: str = ".mp4") -> StagedFile:
        """
        Copy stream into a new scratch file. The returned handle is left at end of data;
        seek(0) before reading it back.
        """
        path = self.track(self.directory / new_scratch_name(suffix))
        try:
            handle = open(path, "xb+")
        except OSError as e:
            raise AllocationFailed(f"could not create staging file {path}: {e}", detail="Error creating temp file") from e
        self._handles.append(handle)

        size = 0
        try:
            while chunk := stream.read(CHUNK_SIZE):
                size += len(chunk)
                if max_bytes is not None and size > max_bytes:
                    raise PayloadTooLarge(
                        f"upload exceeds {max_bytes} bytes",
                        detail=f"File exceeds maximum size of {max_bytes // (1024 * 1024)} MB.",
                    )
                handle.write(chunk)
            handle.flush()
        except OSError as e:
            raise CopyFailed(f"could not copy upload into {path}: {e}", detail="Error copying video data") from e

        logger.info("Staged %d bytes at %s", size, path)
        return StagedFile(path=path, handle=handle)

    def cleanup(self) -> None:
        for handle in self._handles:
            try:
                handle.close()
            except OSError as e:
                logger.warning("Could not close staging file %s: %s", getattr(handle, "name", "?"), e)
        self._handles.clear()

        for path in self._paths:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Could not remove staging file %s: %s", path, e)
        self._paths.clear()
