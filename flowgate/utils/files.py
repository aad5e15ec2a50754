"""File helpers shared by the task store and the config manager."""

import os
import tempfile
from pathlib import Path


def atomic_write_text(path: Path, content: str, mode: int | None = None) -> None:
    """Replace ``path`` with ``content`` in one rename.

    The temp file is created next to the target so the rename stays on one
    filesystem. Readers see either the old file or the new one, never a
    partial write. On failure the temp file is removed and the error
    propagates.

    Args:
        path: File to write
        content: Full new text of the file
        mode: Permission bits to set before the rename (e.g. 0o600)
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        if mode is not None:
            os.chmod(temp_path, mode)
        Path(temp_path).replace(path)
    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


__all__ = ["atomic_write_text"]
