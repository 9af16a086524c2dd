"""Ordered-statement writer for Octave script output.

Generators build a :class:`ScriptWriter` of statements in emission order and
either inspect it (tests) or write it to disk atomically. A failed write
leaves any previous file at the destination untouched.
"""
from __future__ import annotations

import logging
import os
import tempfile
from collections.abc import Iterable, Iterator
from pathlib import Path

logger = logging.getLogger(__name__)


class ScriptWriter:
    """Append-only sequence of script statements (one line each)."""

    def __init__(self, statements: Iterable[str] = ()) -> None:
        self._statements: list[str] = list(statements)

    def __iter__(self) -> Iterator[str]:
        return iter(self._statements)

    def __len__(self) -> int:
        return len(self._statements)

    @property
    def statements(self) -> list[str]:
        return list(self._statements)

    def emit(self, statement: str) -> None:
        self._statements.append(statement)

    def extend(self, statements: Iterable[str]) -> None:
        self._statements.extend(statements)

    def blank(self, count: int = 1) -> None:
        self._statements.extend([""] * count)

    def render(self) -> str:
        return "\n".join(self._statements) + "\n"

    def write(self, path: Path | str) -> Path:
        """Write the rendered script to ``path`` atomically.

        Raises:
            OSError: If the destination cannot be written.
        """
        path = Path(path)
        atomic_write_text(path, self.render())
        logger.info("Wrote %s (%d statements)", path, len(self._statements))
        return path


def atomic_write_text(path: Path, text: str) -> None:
    atomic_write_bytes(path, text.encode("utf-8"))


def atomic_write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(prefix=".tmp-", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, path)
    finally:
        if os.path.exists(temp_path):
            os.unlink(temp_path)
