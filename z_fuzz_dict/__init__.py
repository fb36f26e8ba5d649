"""z-fuzz-dict: fuzzing dictionary extraction from string comparisons in LLVM IR."""

__version__ = "0.1.0"

from z_fuzz_dict.analysis.classifier import CallKind, classify
from z_fuzz_dict.analysis.normalizer import DictionaryToken, normalize
from z_fuzz_dict.analysis.resolver import ConstantStringResolver, Provenance, ResolvedString
from z_fuzz_dict.analysis.tracker import LocalBufferTracker
from z_fuzz_dict.config import PassConfig
from z_fuzz_dict.denylist import FunctionDenylist
from z_fuzz_dict.driver import Dict2FilePass, PassResult, run_pass
from z_fuzz_dict.ir.parser import parse_module, read_module
from z_fuzz_dict.writer import DictionaryWriter

__all__ = [
    "CallKind",
    "ConstantStringResolver",
    "Dict2FilePass",
    "DictionaryToken",
    "DictionaryWriter",
    "FunctionDenylist",
    "LocalBufferTracker",
    "PassConfig",
    "PassResult",
    "Provenance",
    "ResolvedString",
    "classify",
    "normalize",
    "parse_module",
    "read_module",
    "run_pass",
]
