"""Shared pytest fixtures for z-fuzz-dict tests."""

import os

import pytest

from z_fuzz_dict.config import PassConfig

_PASS_ENV = (
    "AFL_LLVM_DICT2FILE",
    "AFL_DEBUG",
    "AFL_QUIET",
    "Z_DICT2FILE_MIN_LEN",
    "Z_DICT2FILE_MAX_LEN",
)


@pytest.fixture
def clean_env(monkeypatch):
    """Run with none of the pass's environment variables set."""
    for name in _PASS_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def dict_file(tmp_path):
    return str(tmp_path / "fuzz.dict")


@pytest.fixture
def config(dict_file):
    return PassConfig(dict_file=dict_file)


@pytest.fixture
def read_dict(dict_file):
    """Return a reader for the dictionary's lines (without newlines)."""

    def _read(path=dict_file):
        if not os.path.exists(path):
            return []
        with open(path, "rb") as f:
            return f.read().decode("latin-1").splitlines()

    return _read
