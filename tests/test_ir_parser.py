"""Tests for the textual LLVM IR reader: typed and opaque pointer dialects."""

from __future__ import annotations

from pathlib import Path

import pytest

from z_fuzz_dict.exceptions import IRParseError
from z_fuzz_dict.ir.models import (
    I8,
    I32,
    ArrayType,
    CallInstruction,
    ConstantAggregateZero,
    ConstantCast,
    ConstantDataArray,
    ConstantGEP,
    ConstantInt,
    GlobalVariable,
    IntegerType,
    LocalValue,
    OtherValue,
    PointerType,
)
from z_fuzz_dict.ir.parser import parse_module, read_module, split_top_level

# clang -O0 output, LLVM 14 (typed pointers)
TYPED_LL = """
; ModuleID = 'check.c'
source_filename = "check.c"
target datalayout = "e-m:e-p270:32:32-p271:32:32-p272:64:64-i64:64-f80:128-n8:16:32:64-S128"
target triple = "x86_64-pc-linux-gnu"

@.str = private unnamed_addr constant [6 x i8] c"magic\\00", align 1
@key = dso_local global [5 x i8] c"ab\\00cd", align 1
@scratch = common dso_local global [16 x i8] zeroinitializer, align 16

; Function Attrs: noinline nounwind optnone uwtable
define dso_local i32 @check(i8* noundef %input) #0 {
entry:
  %input.addr = alloca i8*, align 8
  store i8* %input, i8** %input.addr, align 8
  %0 = load i8*, i8** %input.addr, align 8
  %call = call i32 @strcmp(i8* noundef %0, i8* noundef getelementptr inbounds ([6 x i8], [6 x i8]* @.str, i64 0, i64 0)) #2
  %tobool = icmp ne i32 %call, 0
  br i1 %tobool, label %if.then, label %if.end

if.then:                                          ; preds = %entry
  ret i32 1

if.end:                                           ; preds = %entry
  ret i32 0
}

declare i32 @strcmp(i8* noundef, i8* noundef) #1

attributes #0 = { noinline nounwind optnone uwtable }
!llvm.module.flags = !{!0}
!0 = !{i32 1, !"wchar_size", i32 4}
"""

# clang -O0 output, LLVM 17 (opaque pointers)
OPAQUE_LL = """
source_filename = "copy.c"

@.str = private unnamed_addr constant [4 x i8] c"bar\\00", align 1

define dso_local i32 @copy(ptr noundef %input) {
entry:
  %buf = alloca [8 x i8], align 1
  call void @llvm.memcpy.p0.p0.i64(ptr align 1 %buf, ptr align 1 @.str, i64 4, i1 false)
  %call = call i32 @strncmp(ptr noundef %input, ptr noundef %buf,
                            i64 noundef 3)
  ret i32 %call
}

declare void @llvm.memcpy.p0.p0.i64(ptr noalias nocapture writeonly, ptr noalias nocapture readonly, i64, i1 immarg)

declare i32 @strncmp(ptr noundef, ptr noundef, i64 noundef)
"""


class TestTypedPointers:
    def test_module_structure(self):
        module = parse_module(TYPED_LL, name="check.ll")
        assert module.name == "check.ll"
        assert module.source_filename == "check.c"
        assert set(module.functions) == {"check", "strcmp"}
        assert set(module.globals) == {".str", "key", "scratch"}

    def test_globals(self):
        module = parse_module(TYPED_LL)
        s = module.get_global(".str")
        assert s.is_constant
        assert s.value_type == ArrayType(6, I8)
        assert s.initializer == ConstantDataArray(ArrayType(6, I8), b"magic\0")
        assert s.has_definitive_initializer

        key = module.get_global("key")
        assert not key.is_constant
        assert key.initializer.data == b"ab\0cd"

        scratch = module.get_global("scratch")
        assert isinstance(scratch.initializer, ConstantAggregateZero)
        assert scratch.has_initializer
        assert not scratch.has_definitive_initializer  # common linkage

    def test_function_signature(self):
        module = parse_module(TYPED_LL)
        check = module.get_function("check")
        assert not check.is_declaration
        assert check.function_type.return_type == I32
        assert check.function_type.params == (PointerType(I8),)
        assert [p.name for p in check.params] == ["input"]

        strcmp = module.get_function("strcmp")
        assert strcmp.is_declaration
        assert strcmp.function_type.params == (PointerType(I8), PointerType(I8))

    def test_blocks_in_order(self):
        check = parse_module(TYPED_LL).get_function("check")
        assert [b.name for b in check.blocks] == ["entry", "if.then", "if.end"]
        assert [i.opcode for i in check.blocks[0].instructions] == [
            "alloca",
            "store",
            "load",
            "call",
            "icmp",
            "br",
        ]

    def test_call_with_constant_gep(self):
        module = parse_module(TYPED_LL)
        check = module.get_function("check")
        call = check.blocks[0].instructions[3]
        assert isinstance(call, CallInstruction)
        assert call.called_function is module.get_function("strcmp")
        assert call.callee_name == "strcmp"
        assert call.calling_convention == "ccc"
        assert len(call.args) == 2

        loaded = check.blocks[0].instructions[2].result
        assert call.args[0] is loaded

        gep = call.args[1]
        assert isinstance(gep, ConstantGEP)
        assert gep.inbounds
        assert gep.source_type == ArrayType(6, I8)
        assert gep.base is module.get_global(".str")
        assert gep.indices == (ConstantInt(IntegerType(64), 0), ConstantInt(IntegerType(64), 0))


class TestOpaquePointers:
    def test_signatures(self):
        module = parse_module(OPAQUE_LL)
        strncmp = module.get_function("strncmp")
        assert strncmp.function_type.params == (PointerType(), PointerType(), IntegerType(64))
        memcpy = module.get_function("llvm.memcpy.p0.p0.i64")
        assert memcpy.function_type.return_type.text == "void"
        assert len(memcpy.function_type.params) == 4

    def test_local_values_are_shared(self):
        copy = parse_module(OPAQUE_LL).get_function("copy")
        alloca, memcpy, strncmp, _ = copy.blocks[0].instructions
        buf = alloca.result
        assert isinstance(buf, LocalValue)
        assert memcpy.args[0] is buf
        assert strncmp.args[1] is buf
        assert strncmp.args[0] is copy.params[0]

    def test_global_operand_and_constants(self):
        module = parse_module(OPAQUE_LL)
        memcpy = module.get_function("copy").blocks[0].instructions[1]
        assert memcpy.args[1] is module.get_global(".str")
        assert memcpy.args[2] == ConstantInt(IntegerType(64), 4)
        assert memcpy.args[3] == ConstantInt(IntegerType(1), 0)

    def test_instruction_continued_on_next_line(self):
        strncmp = parse_module(OPAQUE_LL).get_function("copy").blocks[0].instructions[2]
        assert strncmp.callee_name == "strncmp"
        assert strncmp.args[2] == ConstantInt(IntegerType(64), 3)

    def test_byte_offset_gep(self):
        module = parse_module(
            """
@s = private constant [7 x i8] c"foobar\\00"
define void @f(ptr %p) {
  %r = call i32 @strcmp(ptr %p, ptr getelementptr inbounds (i8, ptr @s, i64 3))
  ret void
}
declare i32 @strcmp(ptr, ptr)
"""
        )
        call = module.get_function("f").blocks[0].instructions[0]
        gep = call.args[1]
        assert gep.source_type == I8
        assert gep.indices == (ConstantInt(IntegerType(64), 3),)

    def test_implicit_entry_block(self):
        module = parse_module(OPAQUE_LL.replace("entry:\n", ""))
        copy = module.get_function("copy")
        assert [b.name for b in copy.blocks] == [""]


class TestCallForms:
    def _call(self, text):
        module = parse_module(
            "declare i32 @strcmp(ptr, ptr)\n"
            "define void @f(ptr %a, ptr %b) {\n"
            f"  {text}\n"
            "  ret void\n"
            "}\n"
        )
        return module.get_function("f").blocks[0].instructions[0]

    def test_tail_call(self):
        call = self._call("%r = tail call i32 @strcmp(ptr %a, ptr %b)")
        assert isinstance(call, CallInstruction)
        assert call.callee_name == "strcmp"

    def test_calling_convention(self):
        call = self._call("%r = call fastcc i32 @strcmp(ptr %a, ptr %b)")
        assert call.calling_convention == "fastcc"

    def test_numbered_calling_convention(self):
        call = self._call("%r = call cc 10 i32 @strcmp(ptr %a, ptr %b)")
        assert call.calling_convention == "cc 10"

    def test_indirect_call(self):
        call = self._call("%r = call i32 %a(ptr %b)")
        assert call.called_function is None

    def test_explicit_function_type(self):
        call = self._call("%r = call i32 (ptr, ...) @printf(ptr %a)")
        assert call.call_type.vararg
        assert isinstance(call.callee, OtherValue)  # @printf is not declared

    def test_bitcast_callee(self):
        call = self._call("%r = call i32 bitcast (i32 (ptr, ptr)* @strcmp to i32 (ptr)*)(ptr %a)")
        assert isinstance(call.callee, ConstantCast)
        assert call.called_function is None

    def test_inline_asm(self):
        call = self._call('call void asm sideeffect "nop", ""()')
        assert call.called_function is None


class TestErrors:
    def test_unterminated_body(self):
        with pytest.raises(IRParseError, match="unterminated"):
            parse_module("define void @f() {\n  ret void\n")

    def test_malformed_global(self):
        with pytest.raises(IRParseError, match="line 1"):
            parse_module("@x = external thing\n")

    def test_bad_escape_carries_line(self):
        with pytest.raises(IRParseError, match=r"line 2: bad escape sequence") as exc_info:
            parse_module('; ModuleID = "x"\nsource_filename = "a\\zz"\n')
        assert exc_info.value.line == 2
        assert exc_info.value.__cause__ is None
        assert exc_info.value.__suppress_context__

    def test_read_missing_file(self, tmp_path: Path):
        with pytest.raises(IRParseError, match="cannot read"):
            read_module(tmp_path / "missing.ll")

    def test_read_from_disk(self, tmp_path: Path):
        ll_file = tmp_path / "check.ll"
        ll_file.write_text(TYPED_LL)
        module = read_module(ll_file)
        assert module.name == "check.ll"
        assert isinstance(module.get_global("key"), GlobalVariable)


class TestSplitTopLevel:
    def test_nested_and_quoted(self):
        text = 'i8* getelementptr ([4 x i8], [4 x i8]* @s, i64 0, i64 0), i8* c"a,b"'
        assert split_top_level(text) == [
            "i8* getelementptr ([4 x i8], [4 x i8]* @s, i64 0, i64 0)",
            'i8* c"a,b"',
        ]

    def test_empty(self):
        assert split_top_level("") == []
