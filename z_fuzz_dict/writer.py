"""Append-only dictionary file output.

Several compiler processes may append to the same dictionary concurrently,
so each entry is written with a single ``write`` on an ``O_APPEND`` handle
and synced right away.
"""

from __future__ import annotations

import os

import structlog

from z_fuzz_dict.core.logging import ensure_logging
from z_fuzz_dict.exceptions import ConfigurationError, DictionaryWriteError

log = structlog.get_logger("z_fuzz_dict.writer")

_OPEN_FLAGS = os.O_WRONLY | os.O_APPEND | os.O_CREAT
_FILE_MODE = 0o644


class DictionaryWriter:
    """One open dictionary file, one entry per ``append``."""

    def __init__(self) -> None:
        self._fd: int | None = None
        self._path: str | None = None
        self.found = 0

    @property
    def path(self) -> str | None:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._fd is not None

    def open(self, path: str | os.PathLike[str]) -> None:
        ensure_logging()
        path = os.fspath(path)
        if not os.path.isabs(path):
            raise ConfigurationError(f"dictionary file path must be absolute: {path!r}")
        if self._fd is not None:
            raise DictionaryWriteError(path, f"already open on '{self._path}'")
        try:
            self._fd = os.open(path, _OPEN_FLAGS, _FILE_MODE)
        except OSError as e:
            raise DictionaryWriteError(path, e.strerror or str(e), e.errno) from e
        self._path = path
        self.found = 0
        log.debug("writer.opened", path=path)

    def append(self, line: str | bytes) -> None:
        """Write one complete entry and sync it to disk."""
        if self._fd is None:
            raise DictionaryWriteError(self._path or "<unopened>", "file is not open")
        data = line.encode("latin-1") if isinstance(line, str) else bytes(line)
        try:
            written = os.write(self._fd, data)
            if written != len(data):
                raise DictionaryWriteError(
                    self._path, f"short write ({written} of {len(data)} bytes)"
                )
            os.fsync(self._fd)
        except OSError as e:
            raise DictionaryWriteError(self._path, e.strerror or str(e), e.errno) from e
        self.found += 1

    def close(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            os.close(fd)
        except OSError as e:
            raise DictionaryWriteError(self._path, e.strerror or str(e), e.errno) from e
        log.debug("writer.closed", path=self._path, entries=self.found)

    def __enter__(self) -> DictionaryWriter:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
