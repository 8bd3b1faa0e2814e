"""Local file I/O utilities."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

logger = logging.getLogger(__name__)


class LockHeldError(RuntimeError):
    """Raised when a lock file is already held by another process."""


def read_json_local(path: str | Path) -> dict[str, Any] | None:
    """Read a JSON document from disk, returning None if it does not exist."""
    filepath = Path(path)
    if not filepath.exists():
        return None
    with filepath.open("r", encoding="utf-8") as f:
        return json.load(f)


def write_json_atomic(data: dict[str, Any], path: str | Path) -> Path:
    """
    Write a JSON document so readers see either the old or the new file.

    The document is written to a temp file in the same directory and then
    renamed over the target.
    """
    filepath = Path(path)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{filepath.name}.", dir=filepath.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, default=str, ensure_ascii=False, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, filepath)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise

    logger.debug("Wrote %s", filepath)
    return filepath


def read_jsonl_local(path: str | Path) -> Iterator[dict[str, Any]]:
    """Yield records from a local JSONL file, skipping blank lines."""
    with Path(path).open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if line:
                yield json.loads(line)


@contextmanager
def lock_file(path: str | Path) -> Iterator[Path]:
    """
    Hold an exclusive lock file for the duration of the block.

    Raises:
        LockHeldError: If the lock file already exists.
    """
    filepath = Path(path)
    filepath.parent.mkdir(parents=True, exist_ok=True)
    try:
        fd = os.open(filepath, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError as exc:
        raise LockHeldError(f"Lock already held: {filepath}") from exc

    try:
        os.write(fd, str(os.getpid()).encode())
        os.close(fd)
        yield filepath
    finally:
        try:
            filepath.unlink()
        except FileNotFoundError:
            logger.warning("Lock file %s vanished before release", filepath)
