# snn_cluster/config.py
from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional, Sequence, Union

import numpy as np

from .errors import ConfigurationError


class Algorithm(IntEnum):
    """Modularity optimization algorithms, numbered by their classic codes."""
    LOUVAIN = 1
    LOUVAIN_REFINED = 2
    SLM = 3
    LEIDEN = 4

    @classmethod
    def coerce(cls, value) -> "Algorithm":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper().replace("-", "_").replace(" ", "_")
            aliases = {"MULTILEVEL": "LOUVAIN_REFINED", "REFINED": "LOUVAIN_REFINED",
                       "SMART_LOCAL_MOVING": "SLM"}
            key = aliases.get(key, key)
            if key.isdigit():
                value = int(key)
            elif key in cls.__members__:
                return cls[key]
            else:
                raise ConfigurationError(f"Unknown algorithm: {value!r}")
        if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
            try:
                return cls(int(value))
            except ValueError:
                pass
        raise ConfigurationError(
            f"Unknown algorithm: {value!r}. Use one of "
            f"{[f'{a.value}={a.name.lower()}' for a in cls]}"
        )


class ModularityFunction(IntEnum):
    """STANDARD uses the degree-based null model, ALTERNATIVE unit node weights."""
    STANDARD = 1
    ALTERNATIVE = 2

    @classmethod
    def coerce(cls, value) -> "ModularityFunction":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().upper()
            if key in cls.__members__:
                return cls[key]
            if key.isdigit():
                value = int(key)
        if isinstance(value, (int, np.integer)) and not isinstance(value, bool):
            try:
                return cls(int(value))
            except ValueError:
                pass
        raise ConfigurationError(f"Unknown modularity function: {value!r}")


ArrayLike = Union[np.ndarray, Sequence]


def _frozen_array(values, dtype, name):
    try:
        arr = np.array(values, dtype=dtype)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} could not be converted to {np.dtype(dtype).name}: {exc}")
    if arr.ndim != 1:
        raise ConfigurationError(f"{name} must be one-dimensional, got shape {arr.shape}")
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True)
class ClusteringConfig:
    """
    Immutable settings for one clustering invocation.

    Parameters:
    -----------
    resolution : float
        Multiplier on the null-model term; larger values give more, smaller clusters.
    algorithm : Algorithm, int or str
        1=louvain, 2=louvain_refined, 3=slm, 4=leiden.
    modularity_function : ModularityFunction, int or str
        1=standard (degree normalized), 2=alternative.
    n_start : int
        Number of independent randomized starts.
    n_iter : int
        Maximum optimization iterations per start.
    random_seed : int
        Base seed; every start derives its own sub-seed from it.
    group_singletons : bool
        Merge singletons into their best-connected cluster (True) or pool them
        into a single group (False).
    initial_membership, node_sizes : array-like, optional
        Starting assignment and per-node size weights.
    n_jobs : int
        Worker threads for the starts (-1 = all CPUs).
    timeout : float, optional
        Seconds allowed for the whole in-memory optimization.
    spill_threshold, working_dir, edge_file, keep_files, spill_command,
    spill_timeout, spill_fallback :
        Control the out-of-process optimizer path.
    """
    resolution: float = 0.8
    algorithm: Algorithm = Algorithm.LOUVAIN
    modularity_function: ModularityFunction = ModularityFunction.STANDARD
    n_start: int = 10
    n_iter: int = 10
    random_seed: int = 0
    group_singletons: bool = True
    initial_membership: Optional[np.ndarray] = field(default=None, compare=False)
    node_sizes: Optional[np.ndarray] = field(default=None, compare=False)
    n_jobs: int = 1
    timeout: Optional[float] = None
    spill_threshold: Optional[int] = None
    working_dir: Optional[str] = None
    edge_file: Optional[str] = None
    keep_files: bool = False
    spill_command: Optional[tuple] = None
    spill_timeout: Optional[float] = None
    spill_fallback: bool = False

    def __post_init__(self):
        set_ = lambda name, value: object.__setattr__(self, name, value)

        try:
            resolution = float(self.resolution)
        except (TypeError, ValueError):
            raise ConfigurationError(f"resolution must be a number, got {self.resolution!r}")
        if not np.isfinite(resolution) or resolution <= 0:
            raise ConfigurationError(f"resolution must be > 0, got {self.resolution!r}")
        set_("resolution", resolution)

        set_("algorithm", Algorithm.coerce(self.algorithm))
        set_("modularity_function", ModularityFunction.coerce(self.modularity_function))

        for name in ("n_start", "n_iter"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
            set_(name, int(value))

        if isinstance(self.random_seed, bool) or not isinstance(self.random_seed, (int, np.integer)) \
                or self.random_seed < 0:
            raise ConfigurationError(f"random_seed must be a non-negative integer, got {self.random_seed!r}")
        set_("random_seed", int(self.random_seed))
        set_("group_singletons", bool(self.group_singletons))

        if self.initial_membership is not None:
            membership = _frozen_array(self.initial_membership, np.int64, "initial_membership")
            if membership.size and membership.min() < 0:
                raise ConfigurationError("initial_membership must contain non-negative cluster ids")
            set_("initial_membership", membership)

        if self.node_sizes is not None:
            sizes = _frozen_array(self.node_sizes, np.float64, "node_sizes")
            if not np.all(np.isfinite(sizes)) or np.any(sizes <= 0):
                raise ConfigurationError("node_sizes must be finite and > 0")
            set_("node_sizes", sizes)

        if isinstance(self.n_jobs, bool) or not isinstance(self.n_jobs, (int, np.integer)) \
                or (self.n_jobs < 1 and self.n_jobs != -1):
            raise ConfigurationError(f"n_jobs must be >= 1 or -1, got {self.n_jobs!r}")
        set_("n_jobs", int(self.n_jobs))

        for name in ("timeout", "spill_timeout"):
            value = getattr(self, name)
            if value is not None:
                if not isinstance(value, (int, float, np.number)) or isinstance(value, bool) or value <= 0:
                    raise ConfigurationError(f"{name} must be a positive number of seconds, got {value!r}")
                set_(name, float(value))

        if self.spill_threshold is not None:
            if isinstance(self.spill_threshold, bool) or not isinstance(self.spill_threshold, (int, np.integer)) \
                    or self.spill_threshold < 0:
                raise ConfigurationError(
                    f"spill_threshold must be a non-negative edge count, got {self.spill_threshold!r}")
            set_("spill_threshold", int(self.spill_threshold))

        if self.spill_command is not None:
            if isinstance(self.spill_command, str):
                raise ConfigurationError("spill_command must be a sequence of arguments, not a string")
            command = tuple(str(part) for part in self.spill_command)
            if not command:
                raise ConfigurationError("spill_command must not be empty")
            set_("spill_command", command)

        for name in ("working_dir", "edge_file"):
            value = getattr(self, name)
            if value is not None:
                set_(name, os.fspath(value))

    def replace(self, **changes) -> "ClusteringConfig":
        """Return a validated copy with some fields changed."""
        try:
            return dataclasses.replace(self, **changes)
        except TypeError as exc:
            raise ConfigurationError(str(exc))

    @property
    def workers(self) -> int:
        if self.n_jobs == -1:
            return max(1, os.cpu_count() or 1)
        return self.n_jobs

    @property
    def uses_spill_path(self) -> bool:
        return self.edge_file is not None or self.spill_threshold is not None
