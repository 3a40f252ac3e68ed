import logging
from dataclasses import dataclass, field
from typing import List, Optional, Type

import numpy as np
import torch

from hiobench.encoders.encoder import BinaryEncoder
from hiobench.encoders.hiob import StochasticHIOB
from hiobench.errors import ConfigurationError
from hiobench.timer import Timer

logger = logging.getLogger(__name__)


@dataclass
class Cascade:
    """
    Trained encoders in stage order, with the codes each produced for the data matrix.
    Read-only once train_cascade returns.
    """

    encoders: List[BinaryEncoder] = field(default_factory=list)
    data_codes: List[np.ndarray] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.encoders)

    def widths(self) -> List[int]:
        return [h.n_bits for h in self.encoders]

    def encode_queries(self, queries: torch.Tensor) -> List[np.ndarray]:
        return [h.encode(queries) for h in self.encoders]


def train_cascade(
    data: torch.Tensor,
    widths: List[int],
    sample_size: int,
    its_per_sample: int,
    n_its: int,
    noise_std: Optional[float] = None,
    scale: Optional[float] = None,
    seed: Optional[int] = None,
    encoder_class: Type[BinaryEncoder] = StochasticHIOB,
) -> Cascade:
    """
    Train one encoder per width over the same data, one after the other, and encode the data
    with each.

    :param data: (n, d) training and indexing matrix.
    :param widths: code width of every stage, in cascade order.
    :param sample_size: rows drawn per training sample.
    :param its_per_sample: iterations before a new sample is drawn.
    :param n_its: total training iterations per encoder.
    :param noise_std: standard deviation of noise added to samples, None or 0 for none.
    :param scale: initial step size.
    :param seed: base seed, stage i uses seed + i.
    :param encoder_class: encoder implementation.
    :return: the trained cascade.
    """
    if not widths:
        raise ConfigurationError("A cascade needs at least one code width")

    cascade = Cascade()
    for i_stage, n_bits in enumerate(widths):
        train_timer = Timer()
        h = encoder_class.train(
            data,
            sample_size,
            its_per_sample,
            n_its,
            n_bits,
            noise_std=noise_std if noise_std and noise_std > 0 else None,
            scale=scale,
            seed=None if seed is None else seed + i_stage,
        )
        logger.info(f"{h.name} {i_stage + 1} ({n_bits} bits) trained in {train_timer.elapsed_str()}")

        encode_timer = Timer()
        cascade.data_codes.append(h.encode(data))
        cascade.encoders.append(h)
        logger.info(f"Data binarized with {h.name} {i_stage + 1} in {encode_timer.elapsed_str()}")

    return cascade
