"""Textual LLVM IR reader and the module model it produces."""

from z_fuzz_dict.ir.models import CallInstruction, Function, GlobalVariable, Module
from z_fuzz_dict.ir.parser import parse_module, read_module

__all__ = ["CallInstruction", "Function", "GlobalVariable", "Module", "parse_module", "read_module"]
