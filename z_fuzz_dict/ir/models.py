"""In-memory model of an LLVM IR module, as read from textual ``.ll`` files.

Only what the dictionary pass needs is modelled precisely: types, globals with
their initializers, constant integers, byte arrays, constant GEP / cast
expressions, and call instructions. Everything else is kept as opaque text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

# ── Types ──


@dataclass(frozen=True)
class IntegerType:
    bits: int

    def __str__(self) -> str:
        return f"i{self.bits}"


@dataclass(frozen=True)
class PointerType:
    """``ptr`` (opaque, pointee is None) or ``T*`` (typed)."""

    pointee: "Type | None" = None
    addrspace: int = 0

    def __str__(self) -> str:
        space = f" addrspace({self.addrspace})" if self.addrspace else ""
        if self.pointee is None:
            return f"ptr{space}"
        return f"{self.pointee}{space}*"


@dataclass(frozen=True)
class ArrayType:
    count: int
    element: "Type"

    def __str__(self) -> str:
        return f"[{self.count} x {self.element}]"


@dataclass(frozen=True)
class FunctionType:
    return_type: "Type"
    params: tuple["Type", ...] = ()
    vararg: bool = False

    def __str__(self) -> str:
        params = [str(p) for p in self.params]
        if self.vararg:
            params.append("...")
        return f"{self.return_type} ({', '.join(params)})"


@dataclass(frozen=True)
class OpaqueType:
    """Any type the pass never looks inside (void, floats, structs, vectors...)."""

    text: str

    def __str__(self) -> str:
        return self.text


Type = Union[IntegerType, PointerType, ArrayType, FunctionType, OpaqueType]

I8 = IntegerType(8)
I32 = IntegerType(32)


def is_integer(ty: Type | None, bits: int | None = None) -> bool:
    if not isinstance(ty, IntegerType):
        return False
    return bits is None or ty.bits == bits


def is_pointer(ty: Type | None) -> bool:
    return isinstance(ty, PointerType)


def is_byte_pointer(ty: Type | None) -> bool:
    """True for ``i8*`` and for ``ptr``, both in the default address space."""
    if not isinstance(ty, PointerType) or ty.addrspace != 0:
        return False
    return ty.pointee is None or ty.pointee == I8


def is_byte_array(ty: Type | None) -> bool:
    return isinstance(ty, ArrayType) and ty.element == I8


# ── Values ──


@dataclass(eq=False)
class LocalValue:
    """An SSA register or argument (``%name``). Compared by identity."""

    name: str
    function: str
    type: Type | None = None

    def __repr__(self) -> str:
        return f"LocalValue(%{self.name} in @{self.function})"


@dataclass(eq=False)
class GlobalVariable:
    name: str
    value_type: Type
    is_constant: bool = False
    initializer: "Value | None" = None
    linkage: str = ""

    @property
    def has_initializer(self) -> bool:
        return self.initializer is not None

    @property
    def has_definitive_initializer(self) -> bool:
        """An initializer that cannot be replaced at link or load time."""
        if self.initializer is None:
            return False
        return not (set(self.linkage.split()) & _INTERPOSABLE)

    def __repr__(self) -> str:
        return f"GlobalVariable(@{self.name})"


_INTERPOSABLE = frozenset({"weak", "linkonce", "common", "extern_weak", "externally_initialized"})


@dataclass(frozen=True)
class ConstantInt:
    type: IntegerType
    value: int


@dataclass(frozen=True)
class ConstantDataArray:
    """A ``c"..."`` initializer."""

    type: ArrayType
    data: bytes


@dataclass(frozen=True)
class ConstantAggregateZero:
    type: Type


@dataclass(frozen=True)
class ConstantGEP:
    """``getelementptr (<source_type>, <ptr> <base>, <idx>...)`` constant expression."""

    source_type: Type
    base: "Value"
    indices: tuple["Value", ...]
    inbounds: bool = False


@dataclass(frozen=True)
class ConstantCast:
    """``bitcast`` / ``addrspacecast`` / ``ptrtoint`` / ``inttoptr`` constant expression."""

    opcode: str
    operand: "Value"
    type: Type


@dataclass(frozen=True)
class OtherValue:
    """Any operand the reader keeps only as text (null, undef, floats, aggregates...)."""

    text: str


Value = Union[
    LocalValue,
    GlobalVariable,
    "Function",
    ConstantInt,
    ConstantDataArray,
    ConstantAggregateZero,
    ConstantGEP,
    ConstantCast,
    OtherValue,
]


def describe(value: Value | None) -> str:
    """Short printable form of an operand, for log lines."""
    if value is None:
        return "<none>"
    if isinstance(value, LocalValue):
        return f"%{value.name}"
    if isinstance(value, (GlobalVariable, Function)):
        return f"@{value.name}"
    if isinstance(value, ConstantInt):
        return f"{value.type} {value.value}"
    if isinstance(value, ConstantGEP):
        return f"getelementptr({describe(value.base)}, ...)"
    if isinstance(value, ConstantCast):
        return f"{value.opcode}({describe(value.operand)})"
    if isinstance(value, OtherValue):
        return value.text
    return type(value).__name__


# ── Instructions / structure ──


@dataclass(eq=False)
class Instruction:
    opcode: str
    text: str
    result: LocalValue | None = None
    line: int = 0


@dataclass(eq=False)
class CallInstruction(Instruction):
    callee: Value | None = None
    args: list[Value] = field(default_factory=list)
    calling_convention: str = "ccc"
    call_type: FunctionType | None = None  # function type spelled at the call site, if any

    @property
    def called_function(self) -> "Function | None":
        """The directly-called function; None for indirect or cast callees."""
        return self.callee if isinstance(self.callee, Function) else None

    @property
    def callee_name(self) -> str:
        fn = self.called_function
        return fn.name if fn is not None else describe(self.callee)


@dataclass(eq=False)
class BasicBlock:
    name: str
    instructions: list[Instruction] = field(default_factory=list)


@dataclass(eq=False)
class Function:
    name: str
    function_type: FunctionType
    calling_convention: str = "ccc"
    params: list[LocalValue] = field(default_factory=list)
    blocks: list[BasicBlock] = field(default_factory=list)
    linkage: str = ""

    @property
    def is_declaration(self) -> bool:
        return not self.blocks

    def instructions(self):
        for block in self.blocks:
            yield from block.instructions

    def __repr__(self) -> str:
        return f"Function(@{self.name})"


@dataclass(eq=False)
class Module:
    """One translation unit."""

    name: str = ""
    source_filename: str = ""
    functions: dict[str, Function] = field(default_factory=dict)
    globals: dict[str, GlobalVariable] = field(default_factory=dict)

    def iter_functions(self):
        return iter(self.functions.values())

    def get_function(self, name: str) -> Function | None:
        return self.functions.get(name)

    def get_global(self, name: str) -> GlobalVariable | None:
        return self.globals.get(name)
