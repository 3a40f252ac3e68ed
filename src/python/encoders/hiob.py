import logging
from typing import Optional, Union

import numpy as np
import torch

from hiobench.encoders.encoder import BinaryEncoder
from hiobench.utils import to_torch

logger = logging.getLogger(__name__)

MIN_SCALE = 1e-4


class StochasticHIOB(BinaryEncoder):
    """
    Hyperplane binarizer trained on random samples of the data.

    Each bit is the side of a hyperplane the vector falls on. Training repeatedly draws a sample of
    the data (optionally perturbed with Gaussian noise), pushes apart hyperplanes whose bits fire
    together and moves every threshold to the sample median so bits stay balanced. The step size
    (scale) is halved whenever a step increases the bit correlation.
    """

    name = "StochasticHIOB"

    def __init__(
        self,
        data: Union[np.ndarray, torch.Tensor],
        sample_size: int,
        its_per_sample: int,
        n_bits: int,
        scale: float = 0.1,
        noise_std: Optional[float] = None,
        seed: Optional[int] = None,
    ):
        data = to_torch(data)
        assert data.ndim == 2 and data.shape[0] > 0
        assert n_bits > 0 and n_bits % 8 == 0
        assert sample_size > 0 and its_per_sample > 0 and scale > 0

        self.n_bits = n_bits
        self.sample_size = min(sample_size, data.shape[0])
        self.its_per_sample = its_per_sample
        self.noise_std = noise_std if noise_std else None
        self._scale = float(scale)
        self.its_done = 0

        self.generator = torch.Generator()
        if seed is not None:
            self.generator.manual_seed(seed)
        else:
            self.generator.seed()

        self.data = data
        hyperplanes = torch.randn(data.shape[1], n_bits, generator=self.generator)
        self.hyperplanes = hyperplanes / hyperplanes.norm(dim=0, keepdim=True)
        self.biases = torch.zeros(n_bits)
        self.sample = None
        self.correlation = float("inf")
        self._resample()

    @classmethod
    def train(
        cls,
        data,
        sample_size,
        its_per_sample,
        n_its,
        n_bits,
        noise_std=None,
        scale=None,
        seed=None,
    ) -> "StochasticHIOB":
        h = cls(
            data,
            sample_size,
            its_per_sample,
            n_bits,
            scale=scale if scale is not None else 0.1,
            noise_std=noise_std,
            seed=seed,
        )
        h.run(n_its)
        h.release_training_data()
        return h

    def _resample(self):
        idx = torch.randperm(self.data.shape[0], generator=self.generator)[: self.sample_size]
        sample = self.data[idx].to(torch.float32)
        if self.noise_std is not None:
            sample = sample + torch.randn(sample.shape, generator=self.generator) * self.noise_std
        self.sample = sample
        self._center_biases()

    def _center_biases(self):
        self.biases = (self.sample @ self.hyperplanes).median(dim=0).values

    def _bit_correlation(self) -> torch.Tensor:
        signs = (self.sample @ self.hyperplanes > self.biases).to(torch.float32) * 2.0 - 1.0
        corr = signs.T @ signs / signs.shape[0]
        corr.fill_diagonal_(0.0)
        return corr

    def step(self):
        corr = self._bit_correlation()
        mean_corr = corr.abs().mean().item()
        if mean_corr > self.correlation:
            self._scale = max(self._scale * 0.5, MIN_SCALE)
        self.correlation = mean_corr

        # move each hyperplane away from the ones its bit agrees with
        hyperplanes = self.hyperplanes - self._scale * (self.hyperplanes @ corr)
        self.hyperplanes = hyperplanes / hyperplanes.norm(dim=0, keepdim=True).clamp_min(1e-12)
        self._center_biases()
        self.its_done += 1

    def run(self, n_its: int):
        for _ in range(n_its):
            if self.its_done > 0 and self.its_done % self.its_per_sample == 0:
                self._resample()
            self.step()
        logger.debug(f"{self.name} ran {self.its_done} iterations, mean |corr|={self.correlation:.4f}")

    def release_training_data(self):
        self.data = None
        self.sample = None

    def scale(self) -> float:
        return self._scale

    def encode(self, vectors, chunk_size: int = 100_000) -> np.ndarray:
        """
        Bit-pack the hyperplane sides of vectors.

        :param vectors: (n, d) float matrix.
        :param chunk_size: rows projected at a time.
        :return: (n, n_bits / 8) uint8 codes, most significant bit first.
        """
        vectors = to_torch(vectors)
        assert vectors.ndim == 2 and vectors.shape[1] == self.hyperplanes.shape[0]

        codes = np.empty((vectors.shape[0], self.n_bytes()), dtype=np.uint8)
        for start in range(0, vectors.shape[0], chunk_size):
            chunk = vectors[start : start + chunk_size].to(torch.float32)
            bits = (chunk @ self.hyperplanes > self.biases).numpy()
            codes[start : start + chunk.shape[0]] = np.packbits(bits, axis=1)
        return codes
