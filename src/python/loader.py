import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Tuple

import numpy as np
import torch

from hiobench.datasets.sisap import DatasetSource
from hiobench.errors import ConfigurationError

logger = logging.getLogger(__name__)


def batch_bounds(n_rows: int, batch_size: int) -> List[Tuple[int, int]]:
    """
    Split [0, n_rows) into consecutive [start, end) ranges of at most batch_size rows.
    """
    if batch_size < 1:
        raise ConfigurationError(f"batch_size must be at least 1, got {batch_size}")
    return [(start, min(start + batch_size, n_rows)) for start in range(0, n_rows, batch_size)]


def load_matrix(source: DatasetSource, batch_size: int, n_threads: int = 1) -> torch.Tensor:
    """
    Read a whole source into a dense float32 matrix, batch by batch, on a thread pool.

    Every batch writes its own row range of the pre-allocated output, so the result does not
    depend on the order in which batches finish. A failed batch read aborts the load.

    :param source: the rows to read.
    :param batch_size: maximum rows per read.
    :param n_threads: maximum concurrent reads.
    :return: (n_rows, n_cols) float32 tensor.
    """
    n_rows, n_cols = source.n_rows(), source.n_cols()
    bounds = batch_bounds(n_rows, batch_size)
    data = np.empty((n_rows, n_cols), dtype=np.float32)

    def read_batch(start: int, end: int):
        batch = source.read_rows(start, end)
        if batch.shape != (end - start, n_cols):
            raise IOError(f"Read of rows [{start}, {end}) returned shape {batch.shape}")
        data[start:end] = batch

    with ThreadPoolExecutor(max_workers=max(n_threads, 1)) as executor:
        futures = [executor.submit(read_batch, start, end) for start, end in bounds]
        # result() re-raises the first failed read
        for future in futures:
            future.result()

    logger.debug(f"Loaded {n_rows}x{n_cols} matrix in {len(bounds)} batches")
    return torch.from_numpy(data)
