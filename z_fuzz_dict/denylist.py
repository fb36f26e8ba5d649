"""Functions the dictionary pass never looks into.

Sanitizer runtimes, instrumentation helpers, fuzzer driver glue and
compiler-generated constructors compare plenty of strings that are of no
use to a fuzzer.
"""

from __future__ import annotations

from collections.abc import Iterable

from z_fuzz_dict.ir.models import Function

DEFAULT_IGNORED_PREFIXES: tuple[str, ...] = (
    "asan.",
    "llvm.",
    "sancov.",
    "__ubsan",
    "ign.",
    "__afl",
    "_fini",
    "__libc_",
    "__asan",
    "__msan",
    "__cmplog",
    "__sancov",
    "__san",
    "__cxx_",
    "__decide_deferred",
    "_GLOBAL__",
    "_ZN6__asan",
    "_ZN6__lsan",
    "_ZN6__msan",
    "_ZN9__sanitizer",
    "_ZN11__sanitizer",
    "__sanitizer",
    "msan.",
    "LLVMFuzzerM",
    "LLVMFuzzerC",
    "LLVMFuzzerI",
    "maybe_duplicate_stderr",
    "discard_output",
    "close_stdout",
    "dup_and_close_stderr",
    "maybe_close_fd_mask",
    "ExecuteFilesOnyByOne",
)

DEFAULT_IGNORED_SUBSTRINGS: tuple[str, ...] = (
    "__asan",
    "__msan",
    "__ubsan",
    "__lsan",
    "__san",
    "__sanitize",
    "__cxx",
    "DebugCounter",
    "DwarfDebug",
    "DebugLoc",
)


class FunctionDenylist:
    def __init__(
        self,
        extra_prefixes: Iterable[str] = (),
        extra_substrings: Iterable[str] = (),
    ) -> None:
        self.prefixes = DEFAULT_IGNORED_PREFIXES + tuple(extra_prefixes)
        self.substrings = DEFAULT_IGNORED_SUBSTRINGS + tuple(extra_substrings)

    def is_ignored(self, function: Function | str) -> bool:
        name = function if isinstance(function, str) else function.name
        if name.startswith(self.prefixes):
            return True
        return any(s in name for s in self.substrings)
