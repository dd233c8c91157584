"""Run configuration for tiny-qsim.

A small, typed config layer that:
  - reads defaults from an optional YAML file (``run:`` section)
  - lets ``TINY_QSIM_*`` environment variables override those defaults
  - lets explicit keyword overrides win over both
  - validates everything before a run starts
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

import yaml

from .statevector import StateVector

ENV_PREFIX = "TINY_QSIM_"


def _truthy(v: object) -> bool:
    return str(v or "").strip().lower() in ("1", "true", "yes", "on")


def _optional_int(v: object) -> Optional[int]:
    if v is None or str(v).strip().lower() in ("", "none", "null"):
        return None
    return int(v)  # type: ignore[arg-type]


@dataclass(frozen=True)
class RunOptions:
    seed: Optional[int] = None
    initial_state: Optional[tuple[complex, ...]] = None
    collect_probabilities: bool = False
    shots: int = 1024  # sample() only
    workers: int = 1  # sample() only
    check_norm: bool = True

    def __post_init__(self) -> None:
        values = self.initial_state
        if isinstance(values, StateVector):
            values = values.amplitudes
        if values is not None:
            object.__setattr__(self, "initial_state", tuple(complex(v) for v in values))

    def validate(self) -> None:
        if self.seed is not None and int(self.seed) < 0:
            raise ValueError(f"seed must be >= 0, got {self.seed}")
        if int(self.shots) < 1:
            raise ValueError("shots must be >= 1")
        if int(self.workers) < 1:
            raise ValueError("workers must be >= 1")
        if self.initial_state is not None:
            n = len(self.initial_state)
            if n < 2 or n & (n - 1):
                raise ValueError(
                    f"initial_state length must be a power of two >= 2, got {n}"
                )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> RunOptions:
        """Build options from a plain mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                continue
            if key == "seed":
                value = _optional_int(value)
            elif key in ("shots", "workers"):
                value = int(value)
            elif key in ("collect_probabilities", "check_norm"):
                value = value if isinstance(value, bool) else _truthy(value)
            kwargs[key] = value
        return cls(**kwargs)

    def merged(self, **overrides: Any) -> RunOptions:
        """Copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


def _env_overrides(env: Mapping[str, str], names: Iterable[str]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name in names:
        key = ENV_PREFIX + name.upper()
        if key in env and name != "initial_state":
            out[name] = env[key]
    return out


def load_options(
    path: str | os.PathLike[str] | None = None,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> RunOptions:
    """
    Resolve run options: YAML file < environment < keyword overrides.

    Parameters
    ----------
    path : path-like, optional
        YAML file; options are read from its ``run:`` section (or the top
        level if there is no such section).
    env : mapping, optional
        Environment to read ``TINY_QSIM_*`` variables from. Defaults to
        ``os.environ``.
    **overrides
        Explicit values; ``None`` means "not given".

    Raises
    ------
    ValueError
        If the resolved options are invalid.
    """
    env = os.environ if env is None else env
    data: dict[str, Any] = {}
    if path is not None:
        raw = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(raw, Mapping):
            raise ValueError(f"{path}: expected a mapping at the top level")
        section = raw.get("run", raw)
        if not isinstance(section, Mapping):
            raise ValueError(f"{path}: 'run' must be a mapping")
        data.update(section)
    data.update(_env_overrides(env, (f.name for f in fields(RunOptions))))
    data.update({k: v for k, v in overrides.items() if v is not None})
    options = RunOptions.from_mapping(data)
    options.validate()
    return options
