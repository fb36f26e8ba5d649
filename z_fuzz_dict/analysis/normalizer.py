"""Turn a recovered comparison operand into one dictionary line.

The length handling mirrors how the comparison functions read their
operands: ``str*cmp`` stop at a terminator, ``strn*cmp``/``memcmp`` read an
explicit count. The count heuristics are approximations and may be off when
the optimiser rewrote the comparison.
"""

from __future__ import annotations

from dataclasses import dataclass

from z_fuzz_dict.analysis.classifier import CallKind

# Bounds on dictionary token length (afl++ MIN_AUTO_EXTRA / MAX_AUTO_EXTRA)
MIN_AUTO_EXTRA = 3
MAX_AUTO_EXTRA = 32

_QUOTE = 0x22
_BACKSLASH = 0x5C


@dataclass(frozen=True)
class DictionaryToken:
    data: bytes  # bytes written, after clamping
    logical_length: int  # length after reconciliation, before clamping
    line: str  # escaped, quoted, newline-terminated


def reconcile_length(candidate: bytes, kind: CallKind, declared_length: int | None) -> bytes:
    """Apply the terminator and explicit-count rules; return the compared bytes.

    *declared_length* is the constant count argument of ``strncmp``,
    ``strncasecmp`` or ``memcmp``; None when there is none or it is only
    known at run time, in which case no count-based adjustment happens.
    """
    if not kind.is_compare:
        raise ValueError(f"{kind.value} is not a comparison")

    data = bytes(candidate)
    length = len(data)
    added_null = False

    if kind.has_length_argument and declared_length is not None:
        literal_length = length
        length = declared_length
        if literal_length + 1 == declared_length:
            data += b"\0"
            added_null = True

    if kind.is_string_compare:
        if not added_null:
            data += b"\0"
            length += 1
        # Nothing past the first terminator takes part in the comparison.
        offset = data.find(b"\0")
        if offset != -1 and offset + 1 < length:
            length = offset + 1

    return data[:length]


def clamp_length(data: bytes, min_length: int, max_length: int) -> bytes | None:
    """Cut to *max_length*; None when shorter than *min_length*."""
    if len(data) > max_length:
        data = data[:max_length]
    if len(data) < min_length:
        return None
    return data


def escape_token(data: bytes) -> str:
    """Quote *data* as a dictionary line.

    Bytes 33..126 are written as-is, everything else (and the quote and
    backslash characters) as ``\\xHH``. A NUL in the last position is the
    implied terminator and is not written.
    """
    out = ['"']
    last = len(data) - 1
    for i, byte in enumerate(data):
        if 32 < byte < 127 and byte not in (_QUOTE, _BACKSLASH):
            out.append(chr(byte))
        elif byte == 0 and i == last:
            continue
        else:
            out.append(f"\\x{byte:02x}")
    out.append('"\n')
    return "".join(out)


def normalize(
    candidate: bytes,
    kind: CallKind,
    declared_length: int | None = None,
    *,
    min_length: int = MIN_AUTO_EXTRA,
    max_length: int = MAX_AUTO_EXTRA,
) -> DictionaryToken | None:
    """Reconcile, clamp and escape one candidate; None if it is too short."""
    reconciled = reconcile_length(candidate, kind, declared_length)
    data = clamp_length(reconciled, min_length, max_length)
    if data is None:
        return None
    return DictionaryToken(data=data, logical_length=len(reconciled), line=escape_token(data))
