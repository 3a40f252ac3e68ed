import numpy as np
import pytest
import torch

from hiobench.errors import InvariantViolation
from hiobench.primitives import POPCOUNT, SearchPrimitives


def hamming(data_codes, query_code):
    return POPCOUNT[np.bitwise_xor(data_codes, query_code)].sum(axis=1)


@pytest.fixture
def codes():
    rng = np.random.default_rng(1738)
    data_codes = rng.integers(0, 256, size=(300, 4), dtype=np.uint8)
    query_codes = rng.integers(0, 256, size=(7, 4), dtype=np.uint8)
    return data_codes, query_codes


@pytest.fixture
def vectors():
    torch.manual_seed(1738)
    data = torch.nn.functional.normalize(torch.randn(300, 16), dim=1)
    queries = torch.nn.functional.normalize(torch.randn(7, 16), dim=1)
    return data, queries


def test_popcount_table():
    assert POPCOUNT[0] == 0 and POPCOUNT[255] == 8 and POPCOUNT[0b10110] == 3


def test_brute_force_hamming_is_sorted_and_exact(codes):
    data_codes, query_codes = codes
    dists, ids = SearchPrimitives(n_threads=2).brute_force_k_smallest_hamming(data_codes, query_codes, 25, 3)

    assert dists.shape == ids.shape == (7, 25)
    for i in range(7):
        full = hamming(data_codes, query_codes[i])
        assert np.all(np.diff(dists[i]) >= 0)
        np.testing.assert_array_equal(dists[i], full[ids[i]])
        # nothing outside the candidates is closer than the farthest candidate
        assert np.sort(full)[24] == dists[i, -1]


def test_brute_force_caps_at_data_size(codes):
    data_codes, query_codes = codes
    _, ids = SearchPrimitives().brute_force_k_smallest_hamming(data_codes[:10], query_codes, 50)
    assert ids.shape == (7, 10)
    assert np.all(np.sort(ids, axis=1) == np.arange(10))


def test_prefix_of_precomputed_candidates(codes):
    data_codes, query_codes = codes
    primitives = SearchPrimitives(n_threads=3)
    _, all_candidates = primitives.brute_force_k_smallest_hamming(data_codes, query_codes, 64)

    for p1, p2 in [(1, 2), (3, 17), (16, 64)]:
        small = all_candidates[:, :p1]
        large = all_candidates[:, :p2]
        np.testing.assert_array_equal(small, large[:, :p1])
        for i in range(7):
            full = hamming(data_codes, query_codes[i])
            assert full[small[i]].max() <= full[large[i][p1:]].min()


def test_narrowing_keeps_closest_in_stable_order(codes):
    data_codes, query_codes = codes
    candidates = np.tile(np.arange(40), (7, 1))
    narrowed = SearchPrimitives(n_threads=2).k_smallest_hamming_among(data_codes, query_codes, candidates, 10)

    assert narrowed.shape == (7, 10)
    for i in range(7):
        full = hamming(data_codes[:40], query_codes[i])
        expected = np.argsort(full, kind="stable")[:10]
        np.testing.assert_array_equal(narrowed[i], expected)


def test_refine_matches_exact_search(vectors):
    data, queries = vectors
    candidates = np.tile(np.arange(300), (7, 1))
    sims, ids = SearchPrimitives(n_threads=4).refine(data, queries, candidates, 5)

    exact = torch.topk(queries @ data.T, 5, dim=1)
    assert torch.equal(ids, exact.indices)
    assert torch.allclose(sims, exact.values, atol=1e-6)


def test_refine_pads_short_candidate_lists(vectors):
    data, queries = vectors
    candidates = np.tile(np.array([3, 42]), (7, 1))
    sims, ids = SearchPrimitives().refine(data, queries, candidates, 5)

    assert sims.shape == ids.shape == (7, 5)
    assert set(ids.flatten().tolist()) <= {3, 42}
    assert torch.equal(ids[:, 2:], ids[:, 1:2].expand(-1, 3))
    assert torch.all(sims[:, 0] >= sims[:, 1])


def test_cascade_with_full_budgets_is_exact(vectors, codes):
    data, queries = vectors
    data_codes, query_codes = codes
    primitives = SearchPrimitives(n_threads=2)

    sims, ids = primitives.cascade_search(
        data, [data_codes, data_codes[:, :2]], queries, [query_codes, query_codes[:, :2]], 5, (300, 300)
    )
    exact = torch.topk(queries @ data.T, 5, dim=1)
    assert torch.equal(ids, exact.indices)


def test_cascade_stages_narrow(vectors, codes):
    data, queries = vectors
    data_codes, query_codes = codes
    primitives = SearchPrimitives()

    _, stage_one = primitives.brute_force_k_smallest_hamming(data_codes, query_codes, 50)
    stage_two = primitives.k_smallest_hamming_among(data_codes[:, :2], query_codes[:, :2], stage_one, 8)
    expected = primitives.refine(data, queries, stage_two, 3)

    result = primitives.cascade_search(
        data, [data_codes, data_codes[:, :2]], queries, [query_codes, query_codes[:, :2]], 3, (50, 8)
    )
    assert torch.equal(result[1], expected[1])
    for i in range(7):
        assert set(result[1][i].tolist()) <= set(stage_two[i].tolist())


def test_cascade_rejects_mismatched_budgets(vectors, codes):
    data, queries = vectors
    data_codes, query_codes = codes
    with pytest.raises(InvariantViolation):
        SearchPrimitives().cascade_search(data, [data_codes], queries, [query_codes], 5, (10, 5))
