import dataclasses
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import faiss
import torch
import yaml

from hiobench.datasets.sisap import DEFAULT_BASE_URL
from hiobench.encoders import get_encoder_class
from hiobench.errors import ConfigurationError
from hiobench.ranges import logspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ThreadBudget:
    """
    Number of worker threads a run may use: available cores minus the cores left idle.
    """

    n_threads: int

    @classmethod
    def from_idle_cpus(cls, idle_cpus: int, n_cpus: Optional[int] = None) -> "ThreadBudget":
        n_cpus = n_cpus if n_cpus is not None else (os.cpu_count() or 1)
        if idle_cpus < 0 or idle_cpus >= n_cpus:
            raise ConfigurationError(f"Cannot leave {idle_cpus} of {n_cpus} cpus idle")
        return cls(n_cpus - idle_cpus)

    def apply_to_backends(self):
        """torch and faiss only offer process-wide thread settings."""
        torch.set_num_threads(self.n_threads)
        faiss.omp_set_num_threads(self.n_threads)
        logger.info(f"Limited torch and faiss to {self.n_threads} threads")


def parse_bits(bits: Union[str, List[int]]) -> List[int]:
    if isinstance(bits, str):
        try:
            return [int(v.strip()) for v in bits.split(",") if v.strip()]
        except ValueError as e:
            raise ConfigurationError(f"Invalid bit list {bits!r}") from e
    return [int(v) for v in bits]


@dataclass
class ExperimentConfig:
    in_path: str = "data"
    out_path: str = "result"
    kind: str = "clip768v2"
    key: str = "emb"
    size: str = "300K"
    k: int = 10
    bits: List[int] = field(default_factory=lambda: [1024])
    its: int = 3000
    samples: int = 10000
    batch_its: int = 10
    noise: float = 0.0
    scale: float = 0.1
    probe_min: int = 100
    probe_max: int = 2000
    probe_steps: int = 5
    tune: bool = False
    idle_cpus: int = 0
    batch_size: int = 300_000
    seed: int = 1738
    base_url: str = DEFAULT_BASE_URL
    encoder: str = "StochasticHIOB"

    def __post_init__(self):
        self.bits = parse_bits(self.bits)

    @classmethod
    def field_names(cls) -> List[str]:
        return [f.name for f in dataclasses.fields(cls)]

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "ExperimentConfig":
        unknown = sorted(set(values) - set(cls.field_names()))
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {unknown}")
        return cls(**values)

    @classmethod
    def from_yaml(cls, path: Union[str, Path], overrides: Optional[Dict[str, Any]] = None) -> "ExperimentConfig":
        """
        Read a YAML mapping of field values; overrides (e.g. explicit CLI flags) win over the file.
        """
        values = yaml.safe_load(Path(path).read_text()) or {}
        if not isinstance(values, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        values.update(overrides or {})
        return cls.from_dict(values)

    def widths(self) -> List[int]:
        """Code widths in cascade order; tuning mode only uses the first."""
        return self.bits[:1] if self.tune else list(self.bits)

    def probe_values(self) -> List[int]:
        """Log-spaced probe counts, ascending, without the duplicates rounding can produce."""
        return sorted(set(logspace(int(self.probe_min), int(self.probe_max), self.probe_steps)))

    def thread_budget(self) -> ThreadBudget:
        return ThreadBudget.from_idle_cpus(self.idle_cpus)

    def validate(self):
        """
        Check every parameter before any download, read or training starts.

        :raises ConfigurationError: on the first invalid parameter.
        """
        if not self.bits:
            raise ConfigurationError("At least one code width is required")
        for n_bits in self.bits:
            if n_bits <= 0 or n_bits % 8 != 0:
                raise ConfigurationError(f"Code widths must be positive multiples of 8, got {n_bits}")
        if self.k < 1:
            raise ConfigurationError(f"k must be at least 1, got {self.k}")
        for name in ["its", "samples", "batch_its", "batch_size"]:
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be at least 1, got {getattr(self, name)}")
        if self.noise < 0:
            raise ConfigurationError(f"noise must be non-negative, got {self.noise}")
        if self.scale <= 0:
            raise ConfigurationError(f"scale must be positive, got {self.scale}")
        if self.probe_steps < 2:
            raise ConfigurationError(f"A probe range needs at least 2 steps, got {self.probe_steps}")
        if not 1 <= self.probe_min <= self.probe_max:
            raise ConfigurationError(f"Invalid probe range [{self.probe_min}, {self.probe_max}]")
        n_stages = len(self.widths())
        n_values = len(self.probe_values())
        if n_stages > n_values:
            raise ConfigurationError(
                f"A cascade of {n_stages} stages needs at least {n_stages} distinct probe values, got {n_values}"
            )
        get_encoder_class(self.encoder)
        self.thread_budget()
