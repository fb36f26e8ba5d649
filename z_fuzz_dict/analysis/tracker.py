"""Remember which constant string a local buffer was initialised with."""

from __future__ import annotations

from z_fuzz_dict.ir.models import Value


class LocalBufferTracker:
    """Buffer handle -> bytes, filled from ``memcpy(buf, "const", n)`` sites.

    One tracker lives for one module scan. Entries are never dropped: a later
    write to the buffer that is not a recognised copy goes unnoticed.
    """

    def __init__(self) -> None:
        self._buffers: dict[Value, bytes] = {}

    def record(self, handle: Value, data: bytes) -> None:
        self._buffers[handle] = bytes(data)

    def record_copy(self, destination: Value, source: bytes, copy_length: int | None) -> bytes:
        """Record a whole-buffer copy of a constant string.

        When the copy is exactly one byte longer than the literal, the copy
        included the terminator the literal lookup trimmed, so it is put back.
        """
        data = bytes(source)
        if copy_length is not None and len(data) + 1 == copy_length:
            data += b"\0"
        self.record(destination, data)
        return data

    def lookup(self, handle: Value) -> bytes | None:
        data = self._buffers.get(handle)
        return data or None

    def __contains__(self, handle: Value) -> bool:
        return handle in self._buffers

    def __len__(self) -> int:
        return len(self._buffers)
