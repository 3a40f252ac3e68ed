import math
from itertools import product

import h5py
import numpy as np
import pandas as pd
import pytest
import torch

from hiobench.results import (
    H5ResultStore,
    ResultWriter,
    format_results,
    index_identifier,
    param_string,
    result_path,
    to_euclidean,
    to_one_based,
)


def test_distance_conversion():
    dists = to_euclidean(torch.tensor([1.0, 1.0000001, 0.0, -1.0], dtype=torch.float32))
    assert dists[0].item() == 0.0
    assert dists[1].item() == 0.0
    assert not torch.isnan(dists).any()
    assert math.isclose(dists[2].item(), math.sqrt(2), rel_tol=1e-6)
    assert math.isclose(dists[3].item(), 2.0, rel_tol=1e-6)


def test_distance_conversion_numpy_input():
    dists = to_euclidean(np.array([[1.0, 0.5]], dtype=np.float32))
    assert dists.shape == (1, 2)
    assert math.isclose(dists[0, 1].item(), 1.0, rel_tol=1e-6)


def test_index_shift():
    n = 1000
    ids = to_one_based(torch.tensor([0, 17, n - 1]))
    assert ids.tolist() == [1, 18, n]

    dists, ids = format_results(torch.ones(2, 3), torch.zeros(2, 3, dtype=torch.int64))
    assert torch.all(ids == 1)
    assert torch.all(dists == 0)


def test_identifier_format():
    assert (
        index_identifier([512, 1024], 3000, 10000, 10, 0.0)
        == "StochasticHIOB(n_bits=[512, 1024],n_its=3000,n_samples=10000,batch_its=10,noise_std=0)"
    )
    assert (
        index_identifier([16], 20, 200, 5, 0.05, scale=0.1, seed=1738)
        == "StochasticHIOB(n_bits=[16],n_its=20,n_samples=200,batch_its=5,noise_std=0.05,scale=0.1,seed=1738)"
    )
    assert (
        param_string(0.1, 10, (200, 20))
        == "index_params=(scale%=10,its_per_sample=10),query_params=(nprobe=[200, 20])"
    )
    assert param_string(0.29, 10, (5,)).startswith("index_params=(scale%=29,")


def test_identity_is_injective():
    widths = [[16], [16, 8], [8, 16], [168]]
    its = [10, 100]
    samples = [1000, 10000]
    batch_its = [1, 10]
    noises = [0.0, 0.01, 0.1]
    scales = [0.1, 0.104]
    seeds = [1, 2]
    probes = [(1,), (10,), (110,), (1, 10), (11, 0)]

    keys = set()
    n_configs = 0
    grid = product(widths, its, samples, batch_its, noises, scales, seeds, probes)
    for w, n_its, s, b, noise, scale, seed, p in grid:
        # the effective scale reported after training can coincide across initial scales
        identity = (index_identifier(w, n_its, s, b, noise, scale=scale, seed=seed), param_string(0.05, b, p))
        keys.add(identity)
        keys.add(result_path("out", "clip768v2", "300K", *identity))
        n_configs += 1

    assert len(keys) == 2 * n_configs


def test_store_writes_artifact(tmp_path):
    path = result_path(tmp_path, "clip768v2", "300K", "idx", "params")
    dists = np.random.rand(3, 2).astype(np.float32)
    ids = np.arange(1, 7).reshape(3, 2)
    data_codes = np.zeros((5, 2), dtype=np.uint8)
    query_codes = np.ones((3, 2), dtype=np.uint8)

    written = H5ResultStore().store(
        path, "clip768v2", "300K", "idx + brute-force", "params", dists, ids, data_codes, query_codes, 1.5, 0.25
    )
    assert written == path

    with h5py.File(path, "r") as f:
        assert f.attrs["algo"] == "idx + brute-force"
        assert f.attrs["data"] == "clip768v2"
        assert f.attrs["size"] == "300K"
        assert f.attrs["params"] == "params"
        assert f.attrs["buildtime"] == pytest.approx(1.5)
        assert f.attrs["querytime"] == pytest.approx(0.25)
        np.testing.assert_array_equal(f["knns"][()], ids)
        np.testing.assert_array_equal(f["dists"][()], dists)
        assert f["data_codes"].shape == (5, 2)
        assert f["query_codes"].shape == (3, 2)


def test_writer_overwrites_and_summarizes(tmp_path):
    writer = ResultWriter(tmp_path, "clip768v2", "300K", "idx", scale=0.1, its_per_sample=10)
    codes = np.zeros((4, 1), dtype=np.uint8)
    sims = torch.full((2, 3), 0.5)
    ids = torch.zeros(2, 3, dtype=torch.int64)

    first = writer.write((8,), sims, ids, codes, codes[:2], 1.0, 2.0)
    second = writer.write((8,), sims, ids + 1, codes, codes[:2], 1.0, 3.0)
    third = writer.write((16,), sims, ids, codes, codes[:2], 1.0, 2.0)

    assert first == second != third
    with h5py.File(second, "r") as f:
        assert np.all(f["knns"][()] == 2)
        assert f.attrs["querytime"] == pytest.approx(3.0)

    summary = pd.read_csv(tmp_path / "clip768v2" / "300K" / "idx" / "summary.csv")
    assert summary["nprobe"].astype(str).tolist() == ["8", "16"]
    assert summary["query_time_s"].tolist() == [3.0, 2.0]
    assert summary["path"].tolist() == [str(second), str(third)]


def test_summary_follows_files_across_writers(tmp_path):
    codes = np.zeros((4, 1), dtype=np.uint8)
    sims = torch.full((2, 3), 0.5)
    ids = torch.zeros(2, 3, dtype=torch.int64)

    first = ResultWriter(tmp_path, "clip768v2", "300K", "idx", scale=0.1, its_per_sample=10)
    first.write((8, 4), sims, ids, codes, codes[:2], 1.0, 2.0)
    first.write((16, 4), sims, ids, codes, codes[:2], 1.0, 2.0)

    second = ResultWriter(tmp_path, "clip768v2", "300K", "idx", scale=0.1, its_per_sample=10)
    second.write((16, 4), sims, ids, codes, codes[:2], 1.0, 5.0)

    summary = pd.read_csv(tmp_path / "clip768v2" / "300K" / "idx" / "summary.csv")
    assert summary["nprobe"].tolist() == ["8-4", "16-4"]
    assert summary["query_time_s"].tolist() == [2.0, 5.0]
    assert len(list((tmp_path / "clip768v2" / "300K" / "idx").glob("*.h5"))) == 2
