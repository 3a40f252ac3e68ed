import abc
import logging
from abc import abstractmethod
from pathlib import Path
from typing import List, Union

import h5py
import numpy as np
import torch

from hiobench.errors import DatasetUnavailableError
from hiobench.utils import download_url, to_numpy, to_path

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://sisap-23-challenge.s3.amazonaws.com/SISAP23-Challenge"
MIRROR_BASE_URL = "http://ingeotec.mx/~sadit/metric-datasets/LAION/SISAP23-Challenge"


class DatasetSource(abc.ABC):
    """
    Row-addressable matrix of float vectors.
    """

    @abstractmethod
    def n_rows(self) -> int:
        """Return the number of vectors"""
        raise NotImplementedError("Subclasses must implement n_rows method")

    @abstractmethod
    def n_cols(self) -> int:
        """Return the dimension of the vectors"""
        raise NotImplementedError("Subclasses must implement n_cols method")

    @abstractmethod
    def read_rows(self, start: int, end: int) -> np.ndarray:
        """Return rows [start, end) as a float32 array"""
        raise NotImplementedError("Subclasses must implement read_rows method")

    def shape(self) -> List[int]:
        return [self.n_rows(), self.n_cols()]


class H5Source(DatasetSource):
    """
    One 2D dataset inside an HDF5 file. Half precision files are widened to float32 on read.
    """

    def __init__(self, path: Union[str, Path], key: str):
        self.path = to_path(path)
        self.key = key
        if not self.path.is_file():
            raise DatasetUnavailableError(f"Missing dataset file: {self.path}")
        with h5py.File(self.path, "r") as f:
            if key not in f:
                raise DatasetUnavailableError(f"Dataset {key!r} not found in {self.path}")
            shape = f[key].shape
        if len(shape) != 2:
            raise DatasetUnavailableError(f"Dataset {key!r} in {self.path} is not a matrix: shape {shape}")
        self._shape = (int(shape[0]), int(shape[1]))

    def n_rows(self) -> int:
        return self._shape[0]

    def n_cols(self) -> int:
        return self._shape[1]

    def read_rows(self, start: int, end: int) -> np.ndarray:
        # each call opens its own handle so batches can be read from worker threads
        with h5py.File(self.path, "r") as f:
            return np.asarray(f[self.key][start:end], dtype=np.float32)


class ArraySource(DatasetSource):
    """
    In-memory matrix, used for synthetic runs and tests.
    """

    def __init__(self, array: Union[np.ndarray, torch.Tensor]):
        array = to_numpy(array)
        assert array.ndim == 2
        self.array = array

    def n_rows(self) -> int:
        return self.array.shape[0]

    def n_cols(self) -> int:
        return self.array.shape[1]

    def read_rows(self, start: int, end: int) -> np.ndarray:
        return np.asarray(self.array[start:end], dtype=np.float32)


class SisapLaion:
    """
    SISAP 2023 challenge files (LAION2B embeddings) for one kind and size.

    Layout below in_base_path:
        <kind>/<size>/dataset.h5
        <kind>/query.h5
    """

    def __init__(
        self,
        in_base_path: Union[str, Path],
        kind: str = "clip768v2",
        size: str = "300K",
        key: str = "emb",
        base_url: str = DEFAULT_BASE_URL,
    ):
        self.in_base_path = to_path(in_base_path)
        self.kind = kind
        self.size = size
        self.key = key
        self.base_url = base_url.rstrip("/")

    def dataset_path(self) -> Path:
        return self.in_base_path / self.kind / self.size / "dataset.h5"

    def queries_path(self) -> Path:
        return self.in_base_path / self.kind / "query.h5"

    def dataset_url(self) -> str:
        return f"{self.base_url}/laion2B-en-{self.kind}-n={self.size}.h5"

    def queries_url(self) -> str:
        return f"{self.base_url}/public-queries-10k-{self.kind}.h5"

    def is_downloaded(self) -> bool:
        return self.dataset_path().is_file() and self.queries_path().is_file()

    def ensure_files_available(self):
        """Download the query and dataset files that are missing locally."""
        for url, target in [
            (self.queries_url(), self.queries_path()),
            (self.dataset_url(), self.dataset_path()),
        ]:
            download_url(url, target)

    def data_source(self) -> H5Source:
        return H5Source(self.dataset_path(), self.key)

    def query_source(self) -> H5Source:
        return H5Source(self.queries_path(), self.key)
