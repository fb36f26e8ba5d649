"""Tests for PassConfig: environment, overrides and validation."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from z_fuzz_dict.config import PassConfig
from z_fuzz_dict.exceptions import ConfigurationError


class TestFromEnv:
    def test_defaults(self):
        config = PassConfig.from_env({"AFL_LLVM_DICT2FILE": "/tmp/fuzz.dict"})
        assert config.dict_file == "/tmp/fuzz.dict"
        assert not config.debug
        assert not config.quiet
        assert config.min_length == 3
        assert config.max_length == 32
        assert config.report

    def test_reads_os_environ(self, clean_env):
        with patch.dict(os.environ, {"AFL_LLVM_DICT2FILE": "/tmp/env.dict"}):
            assert PassConfig.from_env().dict_file == "/tmp/env.dict"

    def test_missing_dict_file(self):
        with pytest.raises(ConfigurationError, match="AFL_LLVM_DICT2FILE is not set to an absolute path"):
            PassConfig.from_env({})

    def test_relative_dict_file(self):
        with pytest.raises(ConfigurationError, match="absolute"):
            PassConfig.from_env({"AFL_LLVM_DICT2FILE": "fuzz.dict"})

    def test_flags_set_when_present(self):
        config = PassConfig.from_env(
            {"AFL_LLVM_DICT2FILE": "/tmp/fuzz.dict", "AFL_DEBUG": "", "AFL_QUIET": "0"}
        )
        assert config.debug
        assert config.quiet

    def test_quiet_suppresses_report(self):
        config = PassConfig.from_env({"AFL_LLVM_DICT2FILE": "/tmp/fuzz.dict", "AFL_QUIET": "1"})
        assert not config.report

    def test_debug_overrides_quiet(self):
        config = PassConfig.from_env(
            {"AFL_LLVM_DICT2FILE": "/tmp/fuzz.dict", "AFL_QUIET": "1", "AFL_DEBUG": "1"}
        )
        assert config.report

    def test_length_bounds_from_env(self):
        config = PassConfig.from_env(
            {
                "AFL_LLVM_DICT2FILE": "/tmp/fuzz.dict",
                "Z_DICT2FILE_MIN_LEN": "4",
                "Z_DICT2FILE_MAX_LEN": "16",
            }
        )
        assert (config.min_length, config.max_length) == (4, 16)

    def test_bad_length(self):
        with pytest.raises(ConfigurationError, match="min_length"):
            PassConfig.from_env(
                {"AFL_LLVM_DICT2FILE": "/tmp/fuzz.dict", "Z_DICT2FILE_MIN_LEN": "three"}
            )


class TestOverrides:
    def test_override_wins(self):
        config = PassConfig.from_env(
            {"AFL_LLVM_DICT2FILE": "/tmp/env.dict", "Z_DICT2FILE_MAX_LEN": "16"},
            dict_file="/tmp/cli.dict",
            max_length=8,
        )
        assert config.dict_file == "/tmp/cli.dict"
        assert config.max_length == 8

    def test_none_override_ignored(self):
        config = PassConfig.from_env({"AFL_LLVM_DICT2FILE": "/tmp/env.dict"}, dict_file=None)
        assert config.dict_file == "/tmp/env.dict"

    def test_override_supplies_missing_env(self):
        config = PassConfig.from_env({}, dict_file="/tmp/cli.dict", quiet=True)
        assert config.quiet


class TestValidation:
    def test_path_object(self, tmp_path: Path):
        config = PassConfig(dict_file=tmp_path / "fuzz.dict")
        assert config.dict_file == str(tmp_path / "fuzz.dict")

    def test_min_larger_than_max(self):
        with pytest.raises(ConfigurationError, match="larger than max_length"):
            PassConfig.from_env({}, dict_file="/tmp/fuzz.dict", min_length=10, max_length=5)

    def test_zero_length_rejected(self):
        with pytest.raises(ConfigurationError, match="max_length"):
            PassConfig.from_env({}, dict_file="/tmp/fuzz.dict", max_length=0)

    def test_errors_joined(self):
        with pytest.raises(ConfigurationError) as exc_info:
            PassConfig.from_env({}, dict_file="rel", min_length=0)
        message = str(exc_info.value)
        assert "dict_file" in message
        assert "min_length" in message
        assert "; " in message

    def test_frozen(self):
        config = PassConfig(dict_file="/tmp/fuzz.dict")
        with pytest.raises(Exception):
            config.debug = True
