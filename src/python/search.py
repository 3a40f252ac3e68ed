import abc
import logging
from abc import abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np
import torch

from hiobench.errors import InvariantViolation
from hiobench.primitives import SearchPrimitives
from hiobench.results import ResultWriter
from hiobench.sweep import probe_combinations
from hiobench.timer import Timer
from hiobench.training import Cascade
from hiobench.utils import query_chunk_size

logger = logging.getLogger(__name__)

ProbeCombination = Tuple[int, ...]


class SearchStrategy(abc.ABC):
    """
    Two-phase search over a trained cascade: hamming filtering, then exact refinement.

    prepare() does the query-side work shared by every sweep point; search() runs one point.
    Points share only read-only state and can be searched in any order.
    """

    # whether every point is also charged the query load and prepare() time
    charges_shared_time = True

    def __init__(
        self,
        cascade: Cascade,
        data: torch.Tensor,
        primitives: SearchPrimitives,
        k: int,
        probe_values: Sequence[int],
    ):
        assert len(cascade) >= 1
        self.cascade = cascade
        self.data = data
        self.primitives = primitives
        self.k = k
        self.probe_values = list(probe_values)
        self.queries = None
        self.query_codes: List[np.ndarray] = []
        self.chunk_size = None

    @abstractmethod
    def points(self) -> List[ProbeCombination]:
        """Return the probe combinations of the sweep"""
        raise NotImplementedError("Subclasses must implement points method")

    @abstractmethod
    def search(self, probes: ProbeCombination) -> Tuple[torch.Tensor, torch.Tensor]:
        """Return (similarities, 0-based ids) of the top-k neighbors for one point"""
        raise NotImplementedError("Subclasses must implement search method")

    def prepare(self, queries: torch.Tensor):
        self.queries = queries
        self.chunk_size = query_chunk_size(queries.shape[0], self.primitives.n_threads)
        encode_timer = Timer()
        self.query_codes = self.cascade.encode_queries(queries)
        logger.info(f"Queries binarized in {encode_timer.elapsed_str()}")

    def codes(self) -> Tuple[np.ndarray, np.ndarray]:
        """Codes of the last stage, stored with every result."""
        return self.cascade.data_codes[-1], self.query_codes[-1]

    def _check_point(self, probes: ProbeCombination):
        if self.queries is None:
            raise InvariantViolation("prepare() must run before search()")
        if len(probes) != len(self.cascade):
            raise InvariantViolation(f"Probe combination {list(probes)} does not match a cascade of {len(self.cascade)}")


class CascadeStrategy(SearchStrategy):
    """
    Every encoder narrows the candidates in turn with its own probe budget, then the survivors
    are refined. Runs the whole cascade for each combination.
    """

    def points(self) -> List[ProbeCombination]:
        return probe_combinations(self.probe_values, len(self.cascade))

    def search(self, probes: ProbeCombination) -> Tuple[torch.Tensor, torch.Tensor]:
        self._check_point(probes)
        return self.primitives.cascade_search(
            self.data,
            self.cascade.data_codes,
            self.queries,
            self.query_codes,
            self.k,
            probes,
            self.chunk_size,
        )


class ReuseStrategy(SearchStrategy):
    """
    Single encoder. The hamming candidates are computed once for the largest probe value and
    every point refines a prefix of them, so the full hamming scan runs once per sweep.
    The query time of a point is its refinement alone, so points compare by refinement cost.
    """

    charges_shared_time = False

    def __init__(self, cascade: Cascade, *args, **kwargs):
        if len(cascade) != 1:
            raise InvariantViolation(f"Candidate reuse needs exactly one encoder, got {len(cascade)}")
        super().__init__(cascade, *args, **kwargs)
        self.candidates: Optional[np.ndarray] = None

    def points(self) -> List[ProbeCombination]:
        return [(p,) for p in self.probe_values]

    def prepare(self, queries: torch.Tensor):
        super().prepare(queries)
        precompute_timer = Timer()
        _, self.candidates = self.primitives.brute_force_k_smallest_hamming(
            self.cascade.data_codes[0], self.query_codes[0], max(self.probe_values), self.chunk_size
        )
        logger.info(f"Candidates precomputed in {precompute_timer.elapsed_str()}")

    def candidates_for(self, nprobe: int) -> np.ndarray:
        """The nprobe best candidates of every query, a prefix of the precomputed ranking."""
        return self.candidates[:, :nprobe]

    def search(self, probes: ProbeCombination) -> Tuple[torch.Tensor, torch.Tensor]:
        self._check_point(probes)
        (nprobe,) = probes
        return self.primitives.refine(self.data, self.queries, self.candidates_for(nprobe), self.k, self.chunk_size)


class SearchOrchestrator:
    """
    Runs every point of a strategy's sweep and writes each result before starting the next.
    """

    def __init__(self, strategy: SearchStrategy, writer: ResultWriter):
        self.strategy = strategy
        self.writer = writer

    def run(self, queries: torch.Tensor, build_time: float, query_load_time: float = 0.0) -> List[Path]:
        """
        :param queries: (nq, d) query matrix.
        :param build_time: seconds spent loading data and training, stored with every result.
        :param query_load_time: seconds spent loading queries, counted in every query time of strategies
            that charge shared time.
        :return: paths of the written results, in sweep order.
        """
        overall_timer = Timer()
        prepare_timer = Timer()
        self.strategy.prepare(queries)
        shared_time = query_load_time + prepare_timer.elapsed_s()
        if not self.strategy.charges_shared_time:
            shared_time = 0.0

        paths = []
        for probes in self.strategy.points():
            logger.info(f"Starting search on {list(queries.shape)} with nprobe={list(probes)}")
            search_timer = Timer()
            similarities, ids = self.strategy.search(probes)
            search_time = search_timer.elapsed_s()
            logger.info(f"Queries executed in {search_timer.elapsed_str()}")

            storage_timer = Timer()
            data_codes, query_codes = self.strategy.codes()
            path = self.writer.write(
                probes,
                similarities,
                ids,
                data_codes,
                query_codes,
                build_time,
                shared_time + search_time,
            )
            logger.info(f"Wrote results to disk in {storage_timer.elapsed_str()}")
            paths.append(path)

        logger.info(f"Overall query time: {overall_timer.elapsed_str()}")
        return paths
