"""Custom exceptions for z-fuzz-dict."""


class Dict2FileError(Exception):
    """Base exception for all dictionary pass errors."""


class ConfigurationError(Dict2FileError):
    """Raised when the pass configuration is missing or invalid (fatal)."""


class DictionaryWriteError(Dict2FileError):
    """Raised when the dictionary file cannot be opened, written or synced (fatal)."""

    def __init__(self, path: str, reason: str, errno: int | None = None):
        self.path = path
        self.reason = reason
        self.errno = errno
        super().__init__(f"Could not write to dictionary file '{path}': {reason}")


class IRParseError(Dict2FileError):
    """Raised when LLVM IR text cannot be read."""

    def __init__(self, message: str, line: int = 0):
        self.line = line
        if line:
            message = f"line {line}: {message}"
        super().__init__(message)
