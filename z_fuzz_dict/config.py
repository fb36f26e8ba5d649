"""Pass configuration, read from the environment of the compiler invocation."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from z_fuzz_dict.analysis.normalizer import MAX_AUTO_EXTRA, MIN_AUTO_EXTRA
from z_fuzz_dict.exceptions import ConfigurationError

ENV_DICT_FILE = "AFL_LLVM_DICT2FILE"
ENV_DEBUG = "AFL_DEBUG"
ENV_QUIET = "AFL_QUIET"
ENV_MIN_LENGTH = "Z_DICT2FILE_MIN_LEN"
ENV_MAX_LENGTH = "Z_DICT2FILE_MAX_LEN"


class PassConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    dict_file: str
    debug: bool = False
    quiet: bool = False
    min_length: int = Field(default=MIN_AUTO_EXTRA, ge=1)
    max_length: int = Field(default=MAX_AUTO_EXTRA, ge=1)

    @field_validator("dict_file", mode="before")
    @classmethod
    def _require_absolute(cls, v: Any) -> Any:
        if isinstance(v, os.PathLike):
            v = os.fspath(v)
        if isinstance(v, str) and not v.startswith("/"):
            raise ValueError(f"{ENV_DICT_FILE} is not set to an absolute path")
        return v

    @model_validator(mode="after")
    def _check_bounds(self) -> PassConfig:
        if self.min_length > self.max_length:
            raise ValueError(
                f"min_length ({self.min_length}) is larger than max_length ({self.max_length})"
            )
        return self

    @property
    def report(self) -> bool:
        """Whether per-token and summary lines are logged (debug overrides quiet)."""
        return self.debug or not self.quiet

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> PassConfig:
        """Build the configuration from *environ* (default ``os.environ``).

        Keyword overrides that are not None take precedence, so CLI options
        can be passed straight through.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {
            "dict_file": env.get(ENV_DICT_FILE, ""),
            "debug": ENV_DEBUG in env,
            "quiet": ENV_QUIET in env,
        }
        if env.get(ENV_MIN_LENGTH):
            values["min_length"] = env[ENV_MIN_LENGTH]
        if env.get(ENV_MAX_LENGTH):
            values["max_length"] = env[ENV_MAX_LENGTH]
        values.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return cls(**values)
        except ValidationError as e:
            messages = "; ".join(_format_error(err) for err in e.errors())
            raise ConfigurationError(messages) from e


def _format_error(err: Mapping[str, Any]) -> str:
    msg = str(err["msg"]).removeprefix("Value error, ")
    loc = ".".join(str(part) for part in err.get("loc", ()))
    return f"{loc}: {msg}" if loc else msg
