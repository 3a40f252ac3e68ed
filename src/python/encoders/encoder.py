import abc
from abc import abstractmethod
from typing import Optional, Union

import numpy as np
import torch

from hiobench.errors import ConfigurationError


def get_encoder_class(encoder_name):
    if encoder_name == "StochasticHIOB":
        from hiobench.encoders.hiob import StochasticHIOB as EncoderClass
    else:
        raise ConfigurationError(f"Unknown encoder type: {encoder_name}")
    return EncoderClass


class BinaryEncoder(abc.ABC):
    """
    Interface of learned binary encoders: float vectors in, bit-packed uint8 codes out.
    """

    name: str
    n_bits: int

    @classmethod
    @abstractmethod
    def train(
        cls,
        data: torch.Tensor,
        sample_size: int,
        its_per_sample: int,
        n_its: int,
        n_bits: int,
        noise_std: Optional[float] = None,
        scale: Optional[float] = None,
        seed: Optional[int] = None,
    ) -> "BinaryEncoder":
        """Train an encoder of n_bits bits over data"""
        raise NotImplementedError("Subclasses must implement train method")

    @abstractmethod
    def encode(self, vectors: Union[np.ndarray, torch.Tensor]) -> np.ndarray:
        """Return the (n, n_bits / 8) uint8 codes of vectors"""
        raise NotImplementedError("Subclasses must implement encode method")

    @abstractmethod
    def scale(self) -> float:
        """Return the effective scale parameter after training"""
        raise NotImplementedError("Subclasses must implement scale method")

    def n_bytes(self) -> int:
        return self.n_bits // 8
