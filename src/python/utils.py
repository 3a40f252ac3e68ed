import logging
from pathlib import Path
from typing import Union
from urllib.request import urlretrieve

import numpy as np
import torch

from hiobench.errors import DatasetUnavailableError

logger = logging.getLogger(__name__)


def to_path(path: Union[str, Path]) -> Path:
    """
    Convert a string to a Path object.
    :param path: input path. Can be a string or a Path object. If it is a Path object, it will be returned as is.
    :return: Path object.
    """
    if isinstance(path, str):
        return Path(path)
    elif isinstance(path, Path):
        return path
    else:
        raise ValueError("Input path must be a string or a Path object.")


def to_torch(tensor: Union[np.ndarray, torch.Tensor]) -> torch.Tensor:
    """
    Convert a numpy array to a torch tensor.
    :param tensor: input tensor. Can be a numpy array or a torch tensor. If a torch tensor, it will be returned as is.
    :return: torch tensor.
    """
    if isinstance(tensor, np.ndarray):
        return torch.from_numpy(tensor)
    elif isinstance(tensor, torch.Tensor):
        return tensor
    else:
        raise ValueError("Input tensor must be a numpy array or a torch tensor.")


def to_numpy(tensor: Union[np.ndarray, torch.Tensor]) -> np.ndarray:
    """
    Convert a torch tensor to a numpy array.
    :param tensor: input tensor. Can be a numpy array or a torch tensor. If a numpy array, it will be returned as is.
    :return: numpy array.
    """
    if isinstance(tensor, torch.Tensor):
        return tensor.numpy()
    elif isinstance(tensor, np.ndarray):
        return tensor
    else:
        raise ValueError("Input tensor must be a numpy array or a torch tensor.")


def download_url(url: str, filepath: Union[str, Path], overwrite: bool = False) -> Path:
    """
    Download url to filepath unless the file is already there.
    :param url: source url.
    :param filepath: local target file. Parent directories are created.
    :param overwrite: download even if the file exists.
    :return: the local path.
    """
    filepath = to_path(filepath)
    filepath.parent.mkdir(exist_ok=True, parents=True)

    if filepath.is_file() and not overwrite:
        logger.debug(f"File already exists: {filepath}")
        return filepath

    partial = filepath.with_name(filepath.name + ".part")
    try:
        logger.info(f"Downloading {url} to {filepath}")
        urlretrieve(url, str(partial))
    except OSError as e:
        partial.unlink(missing_ok=True)
        raise DatasetUnavailableError(f"Failed to download {url}: {e}") from e
    partial.replace(filepath)

    return filepath


def query_chunk_size(n_queries: int, n_threads: int) -> int:
    """
    Rows per query chunk so that every thread gets about two chunks.
    :param n_queries: number of queries.
    :param n_threads: thread budget.
    :return: chunk size, at least 1.
    """
    n_chunks = 2 * max(n_threads, 1)
    return max((n_queries + n_chunks - 1) // n_chunks, 1)
