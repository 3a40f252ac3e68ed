import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple, Union

import faiss
import numpy as np
import torch

from hiobench.errors import InvariantViolation
from hiobench.utils import query_chunk_size, to_numpy, to_torch

logger = logging.getLogger(__name__)

# set bits per byte value
POPCOUNT = np.array([bin(i).count("1") for i in range(256)], dtype=np.uint8)


def _check_codes(data_codes: np.ndarray, query_codes: np.ndarray):
    assert data_codes.ndim == 2 and query_codes.ndim == 2
    assert data_codes.dtype == np.uint8 and query_codes.dtype == np.uint8
    assert data_codes.shape[1] == query_codes.shape[1], "data and query codes differ in width"


class SearchPrimitives:
    """
    Hamming filtering and exact dot-product refinement over in-memory matrices.

    Queries are processed in chunks; chunks of the numpy and torch phases run on a thread
    pool of n_threads workers and each writes only its own output rows.
    """

    def __init__(self, n_threads: int = 1):
        assert n_threads >= 1
        self.n_threads = n_threads

    def _run_chunks(self, n_queries: int, chunk_size: Optional[int], fn: Callable[[int, int], None]):
        chunk_size = chunk_size or query_chunk_size(n_queries, self.n_threads)
        bounds = [(start, min(start + chunk_size, n_queries)) for start in range(0, n_queries, chunk_size)]
        with ThreadPoolExecutor(max_workers=self.n_threads) as executor:
            futures = [executor.submit(fn, start, end) for start, end in bounds]
            for future in futures:
                future.result()

    def brute_force_k_smallest_hamming(
        self,
        data_codes: np.ndarray,
        query_codes: np.ndarray,
        m: int,
        chunk_size: Optional[int] = None,
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Exhaustive hamming search.

        :param data_codes: (n, b) uint8 codes.
        :param query_codes: (nq, b) uint8 codes.
        :param m: candidates per query, capped at n.
        :param chunk_size: queries per faiss call.
        :return: hamming distances (nq, m) int32 and candidate ids (nq, m) int64, nearest first.
        """
        _check_codes(data_codes, query_codes)
        n_queries = query_codes.shape[0]
        m = min(m, data_codes.shape[0])
        assert m >= 1, "at least one candidate per query is required"

        index = faiss.IndexBinaryFlat(data_codes.shape[1] * 8)
        index.add(np.ascontiguousarray(data_codes))

        dists = np.empty((n_queries, m), dtype=np.int32)
        ids = np.empty((n_queries, m), dtype=np.int64)
        # faiss parallelizes each call internally
        chunk_size = chunk_size or query_chunk_size(n_queries, self.n_threads)
        for start in range(0, n_queries, chunk_size):
            end = min(start + chunk_size, n_queries)
            chunk_dists, chunk_ids = index.search(np.ascontiguousarray(query_codes[start:end]), m)
            dists[start:end] = chunk_dists
            ids[start:end] = chunk_ids
        return dists, ids

    def k_smallest_hamming_among(
        self,
        data_codes: np.ndarray,
        query_codes: np.ndarray,
        candidates: np.ndarray,
        m: int,
        chunk_size: Optional[int] = None,
    ) -> np.ndarray:
        """
        Keep the m candidates of each query with the smallest hamming distance under these codes.
        Ties keep the incoming candidate order.

        :return: (nq, min(m, candidates per query)) candidate ids.
        """
        _check_codes(data_codes, query_codes)
        candidates = to_numpy(candidates)
        n_queries, n_candidates = candidates.shape
        assert n_queries == query_codes.shape[0]
        m = min(m, n_candidates)
        narrowed = np.empty((n_queries, m), dtype=np.int64)

        def narrow_chunk(start: int, end: int):
            chunk = candidates[start:end]
            xor = np.bitwise_xor(data_codes[chunk], query_codes[start:end, None, :])
            dists = POPCOUNT[xor].sum(axis=2, dtype=np.int32)
            order = np.argsort(dists, axis=1, kind="stable")[:, :m]
            narrowed[start:end] = np.take_along_axis(chunk, order, axis=1)

        self._run_chunks(n_queries, chunk_size, narrow_chunk)
        return narrowed

    def refine(
        self,
        data: torch.Tensor,
        queries: torch.Tensor,
        candidates: Union[np.ndarray, torch.Tensor],
        k: int,
        chunk_size: Optional[int] = None,
    ) -> Tuple[torch.Tensor, torch.Tensor]:
        """
        Re-rank candidates by exact dot product.

        When a query has fewer than k candidates its last neighbor is repeated to fill the k columns.

        :param data: (n, d) float32 vectors.
        :param queries: (nq, d) float32 vectors.
        :param candidates: (nq, c) candidate ids, c >= 1.
        :param k: neighbors per query.
        :return: similarities (nq, k) float32 and ids (nq, k) int64, most similar first.
        """
        data = to_torch(data)
        queries = to_torch(queries)
        candidates = to_torch(np.ascontiguousarray(to_numpy(candidates))).to(torch.int64)
        n_queries, n_candidates = candidates.shape
        assert n_queries == queries.shape[0]
        assert n_candidates >= 1, "at least one candidate per query is required"
        k_found = min(k, n_candidates)

        sims = torch.empty((n_queries, k), dtype=torch.float32)
        ids = torch.empty((n_queries, k), dtype=torch.int64)

        def refine_chunk(start: int, end: int):
            for i in range(start, end):
                cand = candidates[i]
                top = torch.topk(data[cand] @ queries[i], k_found)
                sims[i, :k_found] = top.values
                ids[i, :k_found] = cand[top.indices]
            if k_found < k:
                sims[start:end, k_found:] = sims[start:end, k_found - 1 : k_found]
                ids[start:end, k_found:] = ids[start:end, k_found - 1 : k_found]

        self._run_chunks(n_queries, chunk_size, refine_chunk)
        return sims, ids

    def cascade_search(
        self,
        data: torch.Tensor,
        data_codes: List[np.ndarray],
        queries: torch.Tensor,
        query_codes: List[np.ndarray],
        k: int,
        probes: Sequence[int],
        chunk_size: Optional[int] = None,
    ) -> Tuple[torch.Tensor, torch.Tensor]:
        """
        Stage 1 keeps probes[0] candidates from a full hamming scan, each later stage keeps
        probes[i] of the survivors under its own codes, and the survivors are refined to top-k.
        """
        if not len(data_codes) == len(query_codes) == len(probes):
            raise InvariantViolation(
                f"{len(probes)} probe budgets for {len(data_codes)} data and {len(query_codes)} query code sets"
            )
        _, candidates = self.brute_force_k_smallest_hamming(data_codes[0], query_codes[0], probes[0], chunk_size)
        for stage in range(1, len(probes)):
            candidates = self.k_smallest_hamming_among(
                data_codes[stage], query_codes[stage], candidates, probes[stage], chunk_size
            )
        return self.refine(data, queries, candidates, k, chunk_size)
