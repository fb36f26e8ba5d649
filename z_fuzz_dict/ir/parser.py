"""Read textual LLVM IR (``clang -S -emit-llvm`` output) into :mod:`z_fuzz_dict.ir.models`.

This is a deliberately small reader: it understands module-level globals,
function definitions / declarations, basic block labels and ``call``
instructions in full, and keeps every other instruction as text. Both the
typed-pointer (``i8*``) and opaque-pointer (``ptr``) dialects are accepted.
"""

from __future__ import annotations

import re
from pathlib import Path

import structlog

from z_fuzz_dict.core.logging import ensure_logging
from z_fuzz_dict.exceptions import IRParseError
from z_fuzz_dict.ir.models import (
    I8,
    ArrayType,
    BasicBlock,
    CallInstruction,
    ConstantAggregateZero,
    ConstantCast,
    ConstantDataArray,
    ConstantGEP,
    ConstantInt,
    Function,
    FunctionType,
    GlobalVariable,
    Instruction,
    IntegerType,
    LocalValue,
    Module,
    OpaqueType,
    OtherValue,
    PointerType,
    Type,
    Value,
)

log = structlog.get_logger("z_fuzz_dict.ir")

_NAME = r'"(?:[^"\\]|\\.)*"|[-a-zA-Z$._0-9]+'

_GLOBAL_DEF_RE = re.compile(rf"^@({_NAME})\s*=\s*(.*)$")
_GLOBAL_KIND_RE = re.compile(r"\b(global|constant)\b")
_ALIAS_RE = re.compile(r"^(?:[\w()]+\s+)*?(alias|ifunc)\b")
_FUNC_NAME_RE = re.compile(rf"@({_NAME})\s*\(")
_SOURCE_FILENAME_RE = re.compile(r'^source_filename\s*=\s*"((?:[^"\\]|\\.)*)"')
_LABEL_RE = re.compile(rf"^({_NAME}):(?:\s|$)")
_ASSIGN_RE = re.compile(rf"^%({_NAME})\s*=\s*")
_OPCODE_RE = re.compile(r"(?:(tail|musttail|notail)\s+)?([a-z_]+)\b")

_LOCAL_RE = re.compile(rf"%({_NAME})")
_GLOBAL_RE = re.compile(rf"@({_NAME})")
_WORD_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_.]*")
_INT_RE = re.compile(r"-?\d+(?![.\deE])")
_NUMBER_RE = re.compile(r"[-+]?(?:0x[KLMHR]?[0-9A-Fa-f]+|\d+(?:\.\d*)?(?:[eE][-+]?\d+)?)")
_INT_TYPE_RE = re.compile(r"i(\d+)\b")
_ARRAY_HEAD_RE = re.compile(r"(\d+)\s+x\b")

_PRIMITIVE_TYPES = frozenset(
    {
        "void",
        "half",
        "bfloat",
        "float",
        "double",
        "fp128",
        "x86_fp80",
        "ppc_fp128",
        "label",
        "metadata",
        "token",
        "x86_mmx",
        "x86_amx",
        "opaque",
    }
)
_VALUE_WORDS = frozenset(
    {
        "true",
        "false",
        "null",
        "undef",
        "poison",
        "none",
        "zeroinitializer",
        "blockaddress",
        "dso_local_equivalent",
        "no_cfi",
        "asm",
        "splat",
    }
)
_CAST_OPCODES = frozenset({"bitcast", "addrspacecast", "ptrtoint", "inttoptr"})
_CONST_EXPR_OPCODES = _CAST_OPCODES | frozenset(
    {
        "getelementptr",
        "trunc",
        "zext",
        "sext",
        "fptrunc",
        "fpext",
        "fptoui",
        "fptosi",
        "uitofp",
        "sitofp",
        "add",
        "sub",
        "mul",
        "shl",
        "lshr",
        "ashr",
        "and",
        "or",
        "xor",
        "icmp",
        "fcmp",
        "select",
        "extractelement",
        "insertelement",
        "shufflevector",
    }
)
_GEP_FLAGS = frozenset({"inbounds", "nuw", "nusw"})
_FAST_MATH_FLAGS = frozenset({"nnan", "ninf", "nsz", "arcp", "contract", "afn", "reassoc", "fast"})

_OPEN = "([{<"
_CLOSE = {"(": ")", "[": "]", "{": "}", "<": ">"}


def _unescape(text: str, line: int = 0) -> bytes:
    """Decode the body of an LLVM ``c"..."`` literal or quoted name."""
    out = bytearray()
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            if text[i + 1 : i + 2] == "\\":
                out.append(0x5C)
                i += 2
                continue
            hex_digits = text[i + 1 : i + 3]
            try:
                out.append(int(hex_digits, 16))
            except ValueError:
                raise IRParseError(f"bad escape sequence '\\{hex_digits}'", line) from None
            i += 3
            continue
        out.extend(ch.encode("latin-1", errors="replace"))
        i += 1
    return bytes(out)


def _symbol(token: str, line: int = 0) -> str:
    """Strip quoting from a ``@"..."`` / ``%"..."`` name."""
    if token.startswith('"'):
        return _unescape(token[1:-1], line).decode("latin-1")
    return token


def _strip_comment(line: str) -> str:
    in_quote = False
    for i, ch in enumerate(line):
        if ch == '"':
            in_quote = not in_quote
        elif ch == ";" and not in_quote:
            return line[:i]
    return line


def _bracket_depth(text: str) -> int:
    depth = 0
    in_quote = False
    for ch in text:
        if ch == '"':
            in_quote = not in_quote
        elif in_quote:
            continue
        elif ch in "([":
            depth += 1
        elif ch in ")]":
            depth -= 1
    return depth


def split_top_level(text: str) -> list[str]:
    """Split on commas that are not nested in brackets or quotes."""
    parts: list[str] = []
    depth = 0
    in_quote = False
    start = 0
    for i, ch in enumerate(text):
        if ch == '"':
            in_quote = not in_quote
        elif in_quote:
            continue
        elif ch in _OPEN:
            depth += 1
        elif ch in ")]}>":
            depth -= 1
        elif ch == "," and depth == 0:
            parts.append(text[start:i].strip())
            start = i + 1
    tail = text[start:].strip()
    if tail or parts:
        parts.append(tail)
    return parts


class _Cursor:
    """Position inside one line of IR text."""

    def __init__(self, text: str, line: int = 0) -> None:
        self.text = text
        self.pos = 0
        self.line = line

    def skip_ws(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def startswith(self, s: str) -> bool:
        self.skip_ws()
        return self.text.startswith(s, self.pos)

    def accept(self, s: str) -> bool:
        if self.startswith(s):
            self.pos += len(s)
            return True
        return False

    def match(self, pattern: re.Pattern) -> re.Match | None:
        self.skip_ws()
        m = pattern.match(self.text, self.pos)
        if m:
            self.pos = m.end()
        return m

    def peek_word(self) -> str | None:
        self.skip_ws()
        m = _WORD_RE.match(self.text, self.pos)
        return m.group(0) if m else None

    def accept_word(self, word: str) -> bool:
        if self.peek_word() == word:
            self.pos += len(word)
            return True
        return False

    def balanced(self) -> str:
        """Consume a bracketed group and return its inner text."""
        self.skip_ws()
        if self.pos >= len(self.text) or self.text[self.pos] not in _OPEN:
            raise IRParseError(f"expected bracket at: {self.rest()[:40]!r}", self.line)
        stack = [_CLOSE[self.text[self.pos]]]
        start = self.pos + 1
        i = start
        in_quote = False
        while i < len(self.text):
            ch = self.text[i]
            if ch == '"':
                in_quote = not in_quote
            elif in_quote:
                pass
            elif ch in _OPEN:
                stack.append(_CLOSE[ch])
            elif ch == stack[-1]:
                stack.pop()
                if not stack:
                    self.pos = i + 1
                    return self.text[start:i]
            i += 1
        raise IRParseError("unbalanced brackets", self.line)

    def rest(self) -> str:
        return self.text[self.pos :]


class _ModuleReader:
    """Two-pass reader: collect symbols first, then parse initializers and bodies."""

    def __init__(self, name: str = "") -> None:
        self.module = Module(name=name)
        self._locals: dict[str, LocalValue] = {}
        self._function: Function | None = None

    # ── entry point ──

    def read(self, text: str) -> Module:
        pending_globals: list[tuple[GlobalVariable, str, int]] = []
        pending_bodies: list[tuple[Function, list[tuple[int, str]]]] = []

        lines = text.splitlines()
        i = 0
        while i < len(lines):
            raw = _strip_comment(lines[i]).rstrip()
            line_no = i + 1
            i += 1
            if not raw.strip():
                continue
            stripped = raw.strip()

            m = _SOURCE_FILENAME_RE.match(stripped)
            if m:
                self.module.source_filename = _unescape(m.group(1), line_no).decode("latin-1")
                continue

            if stripped.startswith("@"):
                parsed = self._read_global_header(stripped, line_no)
                if parsed is not None:
                    pending_globals.append((parsed[0], parsed[1], line_no))
                continue

            if stripped.startswith("declare"):
                self._read_function_header(stripped, "declare", line_no)
                continue

            if stripped.startswith("define"):
                header = stripped
                while not header.endswith("{"):
                    if i >= len(lines):
                        raise IRParseError("function header without body", line_no)
                    header += " " + _strip_comment(lines[i]).strip()
                    i += 1
                fn = self._read_function_header(header[:-1], "define", line_no)
                body: list[tuple[int, str]] = []
                while True:
                    if i >= len(lines):
                        raise IRParseError(f"unterminated body of @{fn.name}", line_no)
                    body_line = _strip_comment(lines[i]).rstrip()
                    i += 1
                    if body_line.strip() == "}":
                        break
                    body.append((i, body_line))
                pending_bodies.append((fn, body))
                continue

            log.debug("ir.skip_line", line=line_no, text=stripped[:60])

        for gv, init_text, line_no in pending_globals:
            if init_text:
                gv.initializer = self._parse_constant(init_text, gv.value_type, line_no)

        for fn, body in pending_bodies:
            self._read_body(fn, body)

        return self.module

    # ── module-level entities ──

    def _read_global_header(self, line: str, line_no: int) -> tuple[GlobalVariable, str] | None:
        m = _GLOBAL_DEF_RE.match(line)
        if not m:
            raise IRParseError(f"malformed global: {line[:60]!r}", line_no)
        name = _symbol(m.group(1), line_no)
        rest = m.group(2)
        if _ALIAS_RE.match(rest):
            log.debug("ir.skip_alias", name=name, line=line_no)
            return None
        kind = _GLOBAL_KIND_RE.search(rest)
        if not kind:
            raise IRParseError(f"global @{name} has no 'global'/'constant' keyword", line_no)

        cur = _Cursor(rest[kind.end() :], line_no)
        value_type = self._parse_type(cur)
        pieces = split_top_level(cur.rest())
        init_text = pieces[0] if pieces else ""

        gv = GlobalVariable(
            name=name,
            value_type=value_type,
            is_constant=kind.group(1) == "constant",
            linkage=" ".join(rest[: kind.start()].split()),
        )
        self.module.globals[name] = gv
        return gv, init_text

    def _read_function_header(self, header: str, keyword: str, line_no: int) -> Function:
        m = _FUNC_NAME_RE.search(header)
        if not m:
            raise IRParseError(f"malformed {keyword}: {header[:60]!r}", line_no)
        name = _symbol(m.group(1), line_no)

        prefix = _Cursor(header[len(keyword) : m.start()], line_no)
        cconv, linkage = self._skip_keywords(prefix)
        return_type = self._parse_type(prefix)

        params_cur = _Cursor(header[m.end() - 1 :], line_no)
        param_types: list[Type] = []
        param_names: list[str] = []
        vararg = False
        for piece in split_top_level(params_cur.balanced()):
            if piece == "...":
                vararg = True
                continue
            cur = _Cursor(piece, line_no)
            param_types.append(self._parse_type(cur))
            self._skip_attributes(cur)
            local = cur.match(_LOCAL_RE)
            param_names.append(_symbol(local.group(1), line_no) if local else str(len(param_names)))

        fn = Function(
            name=name,
            function_type=FunctionType(return_type, tuple(param_types), vararg),
            calling_convention=cconv or "ccc",
            linkage=" ".join(linkage),
        )
        if keyword == "define":
            fn.params = [
                LocalValue(name=pname, function=name, type=ptype)
                for pname, ptype in zip(param_names, param_types)
            ]
        self.module.functions[name] = fn
        return fn

    # ── function bodies ──

    def _read_body(self, fn: Function, body: list[tuple[int, str]]) -> None:
        self._function = fn
        self._locals = {p.name: p for p in fn.params}
        block: BasicBlock | None = None

        pending = ""
        pending_line = 0
        for line_no, raw in body:
            if not raw.strip():
                continue
            label = _LABEL_RE.match(raw)
            if label and not pending:
                block = BasicBlock(name=_symbol(label.group(1), line_no))
                fn.blocks.append(block)
                continue
            if not pending:
                pending_line = line_no
            pending = f"{pending} {raw.strip()}" if pending else raw.strip()
            if _bracket_depth(pending) > 0:
                continue
            if block is None:
                block = BasicBlock(name="")
                fn.blocks.append(block)
            block.instructions.append(self._parse_instruction(pending, pending_line))
            pending = ""

        if pending:
            raise IRParseError(f"unterminated instruction in @{fn.name}", pending_line)
        self._function = None
        self._locals = {}

    def _parse_instruction(self, text: str, line_no: int) -> Instruction:
        result = None
        body = text
        assign = _ASSIGN_RE.match(text)
        if assign:
            result = self._local(_symbol(assign.group(1), line_no))
            body = text[assign.end() :]

        op = _OPCODE_RE.match(body)
        opcode = op.group(2) if op else body.split(" ", 1)[0]
        if opcode != "call":
            return Instruction(opcode=opcode, text=text, result=result, line=line_no)

        try:
            return self._parse_call(body[op.end() :], text, result, line_no)
        except IRParseError as exc:
            log.debug("ir.unparsed_call", line=line_no, error=str(exc))
            return Instruction(opcode=opcode, text=text, result=result, line=line_no)

    def _parse_call(
        self,
        call_text: str,
        text: str,
        result: LocalValue | None,
        line_no: int,
    ) -> CallInstruction:
        cur = _Cursor(call_text, line_no)
        while cur.peek_word() in _FAST_MATH_FLAGS:
            cur.accept_word(cur.peek_word())
        cconv, _ = self._skip_keywords(cur)
        if cur.accept_word("addrspace"):
            cur.balanced()
        ty = self._parse_type(cur)

        if cur.peek_word() == "asm":
            return CallInstruction(
                opcode="call",
                text=text,
                result=result,
                line=line_no,
                callee=OtherValue("asm"),
                calling_convention=cconv or "ccc",
            )

        callee = self._parse_value(cur, None)
        if not cur.startswith("("):
            raise IRParseError("call without argument list", line_no)

        args: list[Value] = []
        arg_types: list[Type] = []
        for piece in split_top_level(cur.balanced()):
            arg_type, value = self._parse_argument(piece, line_no)
            arg_types.append(arg_type)
            args.append(value)

        if isinstance(ty, FunctionType):
            call_type = ty
        else:
            call_type = FunctionType(ty, tuple(arg_types))

        return CallInstruction(
            opcode="call",
            text=text,
            result=result,
            line=line_no,
            callee=callee,
            args=args,
            calling_convention=cconv or "ccc",
            call_type=call_type,
        )

    def _parse_argument(self, piece: str, line_no: int) -> tuple[Type, Value]:
        cur = _Cursor(piece, line_no)
        ty = self._parse_type(cur)
        self._skip_attributes(cur)
        try:
            value = self._parse_value(cur, ty)
        except IRParseError:
            value = OtherValue(cur.rest().strip())
        return ty, value

    def _local(self, name: str, ty: Type | None = None) -> LocalValue:
        local = self._locals.get(name)
        if local is None:
            fn_name = self._function.name if self._function else ""
            local = LocalValue(name=name, function=fn_name, type=ty)
            self._locals[name] = local
        return local

    # ── keywords / attributes ──

    def _skip_keywords(self, cur: _Cursor) -> tuple[str | None, list[str]]:
        """Skip linkage, visibility, calling convention and attributes before a type.

        Returns the calling convention (if one was written) and the skipped words.
        """
        cconv = None
        skipped: list[str] = []
        while True:
            word = cur.peek_word()
            if word is None or _is_type_word(word):
                return cconv, skipped
            cur.accept_word(word)
            if word == "cc":
                number = cur.match(_INT_RE)
                cconv = f"cc {number.group(0)}" if number else "cc"
            elif word.endswith("cc"):
                cconv = word
            elif word in ("align", "alignstack") and cur.match(_INT_RE):
                pass
            elif cur.startswith("("):
                cur.balanced()
            skipped.append(word)

    def _skip_attributes(self, cur: _Cursor) -> None:
        """Skip parameter attributes between an operand's type and its value."""
        while True:
            if cur.startswith('c"'):
                return
            word = cur.peek_word()
            if word is None or word in _VALUE_WORDS or word in _CONST_EXPR_OPCODES:
                return
            cur.accept_word(word)
            if word == "align":
                cur.match(_INT_RE)
            elif cur.startswith("("):
                cur.balanced()

    # ── types ──

    def _parse_type(self, cur: _Cursor) -> Type:
        ty = self._parse_base_type(cur)
        while True:
            if cur.startswith("*"):
                cur.pos += 1
                ty = PointerType(ty)
            elif cur.peek_word() == "addrspace" and ty is not None:
                save = cur.pos
                cur.accept_word("addrspace")
                space = int(cur.balanced())
                if not cur.accept("*"):
                    cur.pos = save
                    return ty
                ty = PointerType(ty, space)
            elif cur.startswith("("):
                params: list[Type] = []
                vararg = False
                for piece in split_top_level(cur.balanced()):
                    if piece == "...":
                        vararg = True
                    elif piece:
                        params.append(self._parse_type(_Cursor(piece, cur.line)))
                ty = FunctionType(ty, tuple(params), vararg)
            else:
                return ty

    def _parse_base_type(self, cur: _Cursor) -> Type:
        cur.skip_ws()
        if cur.startswith("["):
            inner = _Cursor(cur.balanced(), cur.line)
            head = inner.match(_ARRAY_HEAD_RE)
            if not head:
                raise IRParseError(f"bad array type [{inner.text}]", cur.line)
            return ArrayType(int(head.group(1)), self._parse_type(inner))
        if cur.startswith("{") or cur.startswith("<"):
            start = cur.pos
            cur.balanced()
            return OpaqueType(cur.text[start : cur.pos])
        if cur.startswith("%"):
            named = cur.match(_LOCAL_RE)
            return OpaqueType(named.group(0))
        int_type = cur.match(_INT_TYPE_RE)
        if int_type:
            return IntegerType(int(int_type.group(1)))
        word = cur.peek_word()
        if word == "ptr":
            cur.accept_word("ptr")
            space = 0
            if cur.accept_word("addrspace"):
                space = int(cur.balanced())
            return PointerType(None, space)
        if word in _PRIMITIVE_TYPES:
            cur.accept_word(word)
            return OpaqueType(word)
        if word == "target":
            start = cur.pos
            cur.accept_word("target")
            cur.balanced()
            return OpaqueType(cur.text[start : cur.pos])
        raise IRParseError(f"expected type at: {cur.rest()[:40]!r}", cur.line)

    # ── values ──

    def _parse_constant(self, text: str, ty: Type, line_no: int) -> Value:
        try:
            return self._parse_value(_Cursor(text, line_no), ty)
        except IRParseError:
            log.debug("ir.opaque_initializer", line=line_no, text=text[:60])
            return OtherValue(text)

    def _parse_value(self, cur: _Cursor, ty: Type | None) -> Value:
        cur.skip_ws()
        start = cur.pos

        if cur.startswith('c"'):
            cur.pos += 1
            end = cur.text.index('"', cur.pos + 1)
            data = _unescape(cur.text[cur.pos + 1 : end], cur.line)
            cur.pos = end + 1
            array_type = ty if isinstance(ty, ArrayType) else ArrayType(len(data), I8)
            return ConstantDataArray(array_type, data)

        if cur.startswith("%"):
            m = cur.match(_LOCAL_RE)
            if self._function is None:
                return OtherValue(m.group(0))
            return self._local(_symbol(m.group(1), cur.line), ty)

        if cur.startswith("@"):
            m = cur.match(_GLOBAL_RE)
            name = _symbol(m.group(1), cur.line)
            target = self.module.globals.get(name) or self.module.functions.get(name)
            return target if target is not None else OtherValue(m.group(0))

        if cur.startswith("[") or cur.startswith("{") or cur.startswith("<"):
            cur.balanced()
            return OtherValue(cur.text[start : cur.pos])

        if cur.startswith("!"):
            cur.pos += 1
            if cur.startswith("{") or cur.startswith("("):
                cur.balanced()
            else:
                cur.match(re.compile(r'[-\w.$"]+'))
            return OtherValue(cur.text[start : cur.pos])

        integer = cur.match(_INT_RE)
        if integer:
            if isinstance(ty, IntegerType):
                return ConstantInt(ty, int(integer.group(0)))
            return OtherValue(integer.group(0))
        if cur.match(_NUMBER_RE):
            return OtherValue(cur.text[start : cur.pos])

        word = cur.peek_word()
        if word is None:
            raise IRParseError(f"expected value at: {cur.rest()[:40]!r}", cur.line)
        cur.accept_word(word)

        if word in ("true", "false"):
            bool_type = ty if isinstance(ty, IntegerType) else IntegerType(1)
            return ConstantInt(bool_type, 1 if word == "true" else 0)
        if word == "zeroinitializer":
            return ConstantAggregateZero(ty if ty is not None else OpaqueType("?"))
        if word == "getelementptr":
            return self._parse_gep(cur)
        if word in _CAST_OPCODES:
            inner = _Cursor(cur.balanced(), cur.line)
            src_type = self._parse_type(inner)
            operand = self._parse_value(inner, src_type)
            inner.accept_word("to")
            return ConstantCast(word, operand, self._parse_type(inner))

        # Other constant expressions and keywords are kept verbatim.
        while cur.peek_word() in _GEP_FLAGS or cur.peek_word() in ("eq", "ne", "sideeffect"):
            cur.accept_word(cur.peek_word())
        if cur.startswith("("):
            cur.balanced()
        elif word in ("dso_local_equivalent", "no_cfi"):
            cur.match(_GLOBAL_RE)
        return OtherValue(cur.text[start : cur.pos])

    def _parse_gep(self, cur: _Cursor) -> ConstantGEP:
        inbounds = False
        while True:
            word = cur.peek_word()
            if word in _GEP_FLAGS:
                inbounds = inbounds or word == "inbounds"
                cur.accept_word(word)
            elif word == "inrange":
                cur.accept_word(word)
                cur.balanced()
            else:
                break

        pieces = split_top_level(cur.balanced())
        if len(pieces) < 2:
            raise IRParseError("getelementptr needs a type and a base pointer", cur.line)
        source_type = self._parse_type(_Cursor(pieces[0], cur.line))

        base_cur = _Cursor(pieces[1], cur.line)
        base = self._parse_value(base_cur, self._parse_type(base_cur))

        indices: list[Value] = []
        for piece in pieces[2:]:
            idx_cur = _Cursor(piece, cur.line)
            idx_cur.accept_word("inrange")
            indices.append(self._parse_value(idx_cur, self._parse_type(idx_cur)))
        return ConstantGEP(source_type, base, tuple(indices), inbounds)


def _is_type_word(word: str) -> bool:
    return (
        word == "ptr"
        or word == "target"
        or word in _PRIMITIVE_TYPES
        or _INT_TYPE_RE.fullmatch(word) is not None
    )


def parse_module(text: str, name: str = "") -> Module:
    """Parse LLVM IR text into a :class:`Module`.

    Raises:
        IRParseError: the text is not well-formed enough to read.
    """
    ensure_logging()
    return _ModuleReader(name).read(text)


def read_module(path: str | Path) -> Module:
    """Read a ``.ll`` file from disk."""
    ll_path = Path(path)
    try:
        content = ll_path.read_text(errors="replace")
    except OSError as exc:
        raise IRParseError(f"cannot read {ll_path}: {exc.strerror}") from exc
    module = parse_module(content, name=ll_path.name)
    log.debug(
        "ir.module_read",
        path=str(ll_path),
        functions=len(module.functions),
        globals=len(module.globals),
    )
    return module
