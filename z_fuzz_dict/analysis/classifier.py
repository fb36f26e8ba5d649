"""Recognise comparison calls (and the buffer-initialising memcpy) by callee and prototype."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from z_fuzz_dict.ir.models import (
    CallInstruction,
    ConstantInt,
    FunctionType,
    Instruction,
    Value,
    is_byte_pointer,
    is_integer,
    is_pointer,
)

C_CALLING_CONVENTION = "ccc"


class CallKind(Enum):
    """Call sites the dictionary pass cares about."""

    STRCMP = "strcmp"
    STRCASECMP = "strcasecmp"
    STRNCMP = "strncmp"
    STRNCASECMP = "strncasecmp"
    MEMCMP = "memcmp"
    MEMCPY = "memcpy"  # llvm.memcpy intrinsic initialising a local buffer

    @property
    def is_compare(self) -> bool:
        return self is not CallKind.MEMCPY

    @property
    def is_string_compare(self) -> bool:
        """Compares that stop at a NUL terminator (everything but memcmp)."""
        return self.is_compare and self is not CallKind.MEMCMP

    @property
    def has_length_argument(self) -> bool:
        return self in (CallKind.STRNCMP, CallKind.STRNCASECMP, CallKind.MEMCMP, CallKind.MEMCPY)


@dataclass(frozen=True)
class _Prototype:
    """Expected shape of a recognised callee's function type."""

    params: int
    exact_arity: bool = True
    byte_pointers: bool = True  # i8* / ptr, and both operands of the same type
    length_param: bool = False
    returns_i32: bool = True

    def accepts(self, fn_type: FunctionType) -> bool:
        params = fn_type.params
        if self.exact_arity and len(params) != self.params:
            return False
        if len(params) < self.params:
            return False
        if self.returns_i32 and not is_integer(fn_type.return_type, 32):
            return False
        if self.byte_pointers:
            if params[0] != params[1] or not is_byte_pointer(params[0]):
                return False
        elif not (is_pointer(params[0]) and is_pointer(params[1])):
            return False
        if self.length_param and not is_integer(params[2]):
            return False
        return True


_PROTOTYPES: dict[CallKind, _Prototype] = {
    CallKind.STRCMP: _Prototype(params=2),
    CallKind.STRCASECMP: _Prototype(params=2),
    CallKind.STRNCMP: _Prototype(params=3, length_param=True),
    CallKind.STRNCASECMP: _Prototype(params=3, length_param=True),
    CallKind.MEMCMP: _Prototype(params=3, byte_pointers=False, length_param=True),
    CallKind.MEMCPY: _Prototype(
        params=3, exact_arity=False, byte_pointers=False, length_param=True, returns_i32=False
    ),
}

_CALLEE_NAMES: dict[str, CallKind] = {
    "strcmp": CallKind.STRCMP,
    "strcasecmp": CallKind.STRCASECMP,
    "strncmp": CallKind.STRNCMP,
    "strncasecmp": CallKind.STRNCASECMP,
    "memcmp": CallKind.MEMCMP,
    "llvm.memcpy.p0i8.p0i8.i64": CallKind.MEMCPY,  # typed pointers
    "llvm.memcpy.p0.p0.i64": CallKind.MEMCPY,  # opaque pointers
}


def classify(instruction: Instruction) -> CallKind | None:
    """Return the kind of a relevant call site, or None.

    A site is relevant only for a direct, C-convention call to one of the
    known names whose declared prototype matches; a user function that
    happens to be called ``strcmp`` with another signature is ignored.
    """
    if not isinstance(instruction, CallInstruction):
        return None
    callee = instruction.called_function
    if callee is None:
        return None
    if instruction.calling_convention != C_CALLING_CONVENTION:
        return None
    kind = _CALLEE_NAMES.get(callee.name)
    if kind is None:
        return None
    prototype = _PROTOTYPES[kind]
    if not prototype.accepts(callee.function_type):
        return None
    if len(instruction.args) < prototype.params:
        return None
    return kind


def constant_length(call: CallInstruction, kind: CallKind) -> int | None:
    """The compared/copied byte count when it is a compile-time integer."""
    if not kind.has_length_argument:
        return None
    return zext_value(call.args[2])


def zext_value(value: Value) -> int | None:
    """Zero-extended value of an integer constant, None for anything else."""
    if not isinstance(value, ConstantInt):
        return None
    return value.value & ((1 << value.type.bits) - 1)
