"""Resolve call operands to compile-time-known byte strings."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from z_fuzz_dict.ir.models import (
    I8,
    ArrayType,
    ConstantAggregateZero,
    ConstantCast,
    ConstantDataArray,
    ConstantGEP,
    ConstantInt,
    GlobalVariable,
    OtherValue,
    Value,
    is_byte_array,
)

if TYPE_CHECKING:
    from z_fuzz_dict.analysis.tracker import LocalBufferTracker


class Provenance(Enum):
    """How a byte string was established as compile-time-known."""

    LITERAL = "literal"
    GLOBAL_INITIALIZER = "global_initializer"
    TRACKED_LOCAL = "tracked_local"


@dataclass(frozen=True)
class ResolvedString:
    data: bytes
    provenance: Provenance


class ConstantStringResolver:
    """Try, in order: a constant string literal, a global's byte-array initializer
    reached through a constant GEP, and finally a tracked local buffer."""

    def resolve(
        self,
        value: Value,
        tracker: LocalBufferTracker | None = None,
    ) -> ResolvedString | None:
        data = constant_string_info(value)
        if data:
            return ResolvedString(data, Provenance.LITERAL)

        data = global_initializer_bytes(value)
        if data:
            return ResolvedString(data, Provenance.GLOBAL_INITIALIZER)

        if tracker is not None:
            data = tracker.lookup(value)
            if data:
                return ResolvedString(data, Provenance.TRACKED_LOCAL)
        return None


def constant_string_info(value: Value) -> bytes | None:
    """Content of a constant C string, trimmed at its first NUL.

    Accepts a constant global directly, through pointer casts, or through a
    constant GEP at a fixed offset into the array. Returns None when the
    operand is not such a string; an all-zero initializer yields ``b""``.
    """
    data = _string_slice(value, 0)
    if data is None:
        return None
    return data.split(b"\0", 1)[0]


def _strip_pointer_casts(value: Value) -> Value:
    while isinstance(value, ConstantCast) and value.opcode in ("bitcast", "addrspacecast"):
        value = value.operand
    return value


def _string_slice(value: Value, offset: int) -> bytes | None:
    value = _strip_pointer_casts(value)

    if isinstance(value, ConstantGEP):
        start = _gep_string_offset(value)
        if start is None:
            return None
        return _string_slice(value.base, offset + start)

    if not isinstance(value, GlobalVariable):
        return None
    if not value.is_constant or not value.has_definitive_initializer:
        return None

    init = value.initializer
    if isinstance(init, ConstantAggregateZero):
        return b"" if isinstance(value.value_type, ArrayType) else None
    if not isinstance(init, ConstantDataArray) or init.type.element != I8:
        return None
    if offset > len(init.data):
        return None
    return init.data[offset:]


def _gep_string_offset(gep: ConstantGEP) -> int | None:
    """Byte offset of a GEP that indexes into an ``i8`` array, else None.

    ``([N x i8], base, 0, k)`` and the byte-offset form ``(i8, base, k)``
    are understood; anything else is a variable or non-string access.
    """
    if is_byte_array(gep.source_type) and len(gep.indices) == 2:
        first, second = gep.indices
        if not isinstance(first, ConstantInt) or first.value != 0:
            return None
        if not isinstance(second, ConstantInt) or second.value < 0:
            return None
        return second.value
    if gep.source_type == I8 and len(gep.indices) == 1:
        (index,) = gep.indices
        if isinstance(index, ConstantInt) and index.value >= 0:
            return index.value
    return None


def global_initializer_bytes(value: Value) -> bytes | None:
    """Whole byte-array initializer of the global a constant GEP points into.

    Unlike :func:`constant_string_info` the global need not be constant, the
    GEP offset is ignored and embedded NULs are kept.
    """
    if not isinstance(value, ConstantGEP) or not is_gep_with_no_notional_over_indexing(value):
        return None
    base = value.base
    if not isinstance(base, GlobalVariable) or not base.has_initializer:
        return None
    init = base.initializer
    if not isinstance(init, ConstantDataArray):
        return None
    return init.data


def is_gep_with_no_notional_over_indexing(gep: ConstantGEP) -> bool:
    """All indices are constant and every array index stays inside its dimension."""
    current = gep.source_type
    for position, index in enumerate(gep.indices):
        undef = isinstance(index, OtherValue) and index.text in ("undef", "poison")
        if not undef and not isinstance(index, ConstantInt):
            return False
        if position == 0:
            # The first index steps over the pointer, not into the aggregate.
            continue
        if isinstance(current, ArrayType):
            if not undef and (index.value & ((1 << index.type.bits) - 1)) >= current.count:
                return False
            current = current.element
        else:
            current = None
    return True
