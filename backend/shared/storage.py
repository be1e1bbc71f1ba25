"""Atomic file writes for persisted state.

State files are written with owner-only permissions (0o600) via
temp-file-then-rename, so readers never observe a partial file and a crash
mid-write leaves the previous version intact.
"""

import contextlib
import os
import tempfile
from pathlib import Path

import structlog

logger = structlog.get_logger()

# Owner-only file permissions for state files.
_STATE_FILE_MODE = 0o600


def write_atomic(path: str | Path, content: bytes, *, mode: int = _STATE_FILE_MODE) -> Path:
    """Atomically replace the file at path with content.

    Creates the parent directory on first write. The temp file lives in the
    same directory as the target so the final rename stays on one filesystem.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_path = tempfile.mkstemp(dir=str(target.parent), suffix=".tmp", prefix=f".{target.stem}_")
    fd_owned = True
    try:
        with os.fdopen(fd, "wb") as f:
            fd_owned = False  # os.fdopen took ownership; it will close fd
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_path, mode)  # noqa: PTH101
        Path(tmp_path).replace(target)
    except BaseException:
        if fd_owned:
            with contextlib.suppress(OSError):
                os.close(fd)
        with contextlib.suppress(OSError):
            Path(tmp_path).unlink()
        raise
    logger.debug("wrote state file", path=str(target), size=len(content))
    return target
