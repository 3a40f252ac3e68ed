import logging
from pathlib import Path
from typing import Dict, Optional, Sequence, Tuple, Union

import h5py
import numpy as np
import pandas as pd
import torch

from hiobench.utils import to_numpy, to_path, to_torch

logger = logging.getLogger(__name__)


def to_euclidean(similarities: Union[np.ndarray, torch.Tensor]) -> torch.Tensor:
    """
    Dot products of unit vectors to euclidean distances, sqrt(max(0, 2 - 2s)).
    The clamp absorbs similarities that overshoot 1 by rounding.
    """
    similarities = to_torch(similarities)
    return (2.0 - 2.0 * similarities).clamp_min(0.0).sqrt()


def to_one_based(ids: Union[np.ndarray, torch.Tensor]) -> torch.Tensor:
    return to_torch(ids) + 1


def format_results(
    similarities: Union[np.ndarray, torch.Tensor], ids: Union[np.ndarray, torch.Tensor]
) -> Tuple[torch.Tensor, torch.Tensor]:
    """
    :return: euclidean distances and 1-based ids, as stored in result files.
    """
    return to_euclidean(similarities), to_one_based(ids)


def format_number(value: float) -> str:
    """Shortest exact rendering, without a trailing '.0' on whole numbers (0.0 -> 0, 0.25 -> 0.25)."""
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def index_identifier(
    widths: Sequence[int],
    n_its: int,
    sample_size: int,
    its_per_sample: int,
    noise_std: float,
    scale: Optional[float] = None,
    seed: Optional[int] = None,
    encoder_name: str = "StochasticHIOB",
) -> str:
    """
    Name of a trained index. Everything that changes the trained encoders is part of it.

    :param scale: initial training step size, omitted when None.
    :param seed: training seed, omitted when None.
    """
    fields = [
        f"n_bits={list(widths)}",
        f"n_its={n_its}",
        f"n_samples={sample_size}",
        f"batch_its={its_per_sample}",
        f"noise_std={format_number(noise_std)}",
    ]
    if scale is not None:
        fields.append(f"scale={format_number(scale)}")
    if seed is not None:
        fields.append(f"seed={seed}")
    return f"{encoder_name}({','.join(fields)})"


def param_string(scale: float, its_per_sample: int, probes: Sequence[int]) -> str:
    """
    Query-side identity of a result. Together with index_identifier it names the result file.
    """
    index_params = f"scale%={int(round(scale * 100))},its_per_sample={its_per_sample}"
    return f"index_params=({index_params}),query_params=(nprobe={list(probes)})"


def result_path(
    out_base_path: Union[str, Path], kind: str, size: str, index_identifier: str, param_string: str
) -> Path:
    return to_path(out_base_path) / kind / size / index_identifier / f"{param_string}.h5"


class H5ResultStore:
    """
    Writes one HDF5 result file per sweep point, replacing any previous file at that path.
    """

    def store(
        self,
        path: Union[str, Path],
        kind: str,
        size: str,
        algo: str,
        params: str,
        distances: Union[np.ndarray, torch.Tensor],
        ids: Union[np.ndarray, torch.Tensor],
        data_codes: np.ndarray,
        query_codes: np.ndarray,
        build_time: float,
        query_time: float,
    ) -> Path:
        path = to_path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with h5py.File(path, "w") as f:
            f.attrs["algo"] = algo
            f.attrs["data"] = kind
            f.attrs["size"] = size
            f.attrs["params"] = params
            f.attrs["buildtime"] = build_time
            f.attrs["querytime"] = query_time
            f.create_dataset("knns", data=to_numpy(ids))
            f.create_dataset("dists", data=to_numpy(distances))
            f.create_dataset("data_codes", data=data_codes)
            f.create_dataset("query_codes", data=query_codes)
        return path


class SweepSummary:
    """
    CSV index of the finished points of an index, rewritten after every point.
    One row per result file: a point written again to the same path replaces its row, and rows of
    an existing summary are kept.
    """

    def __init__(self, output_path: Union[str, Path]):
        self.output_path = to_path(output_path)
        self.records: Dict[str, Dict] = {}
        if self.output_path.is_file():
            previous = pd.read_csv(self.output_path, dtype={"nprobe": str})
            self.records = {record["path"]: record for record in previous.to_dict("records")}

    def add(self, param_string: str, nprobe: Sequence[int], build_time: float, query_time: float, path: Path):
        self.records[str(path)] = {
            "param_string": param_string,
            "nprobe": "-".join(str(p) for p in nprobe),
            "build_time_s": build_time,
            "query_time_s": query_time,
            "path": str(path),
        }
        self.save()

    def save(self):
        df = pd.DataFrame(list(self.records.values()))
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(self.output_path, index=False)
        logger.debug(f"Sweep summary saved to {self.output_path}")


class ResultWriter:
    """
    Formats raw search output of one sweep point, names it and hands it to the store.
    """

    def __init__(
        self,
        out_base_path: Union[str, Path],
        kind: str,
        size: str,
        index_identifier: str,
        scale: float,
        its_per_sample: int,
        store: H5ResultStore = None,
        write_summary: bool = True,
    ):
        self.out_base_path = to_path(out_base_path)
        self.kind = kind
        self.size = size
        self.index_identifier = index_identifier
        self.scale = scale
        self.its_per_sample = its_per_sample
        self.store = store if store is not None else H5ResultStore()
        self.summary = None
        if write_summary:
            self.summary = SweepSummary(self.out_base_path / kind / size / index_identifier / "summary.csv")

    def write(
        self,
        probes: Sequence[int],
        similarities: Union[np.ndarray, torch.Tensor],
        ids: Union[np.ndarray, torch.Tensor],
        data_codes: np.ndarray,
        query_codes: np.ndarray,
        build_time: float,
        query_time: float,
    ) -> Path:
        distances, ids = format_results(similarities, ids)
        params = param_string(self.scale, self.its_per_sample, probes)
        path = result_path(self.out_base_path, self.kind, self.size, self.index_identifier, params)
        self.store.store(
            path,
            self.kind,
            self.size,
            f"{self.index_identifier} + brute-force",
            params,
            distances,
            ids,
            data_codes,
            query_codes,
            build_time,
            query_time,
        )
        if self.summary is not None:
            self.summary.add(params, probes, build_time, query_time, path)
        return path
