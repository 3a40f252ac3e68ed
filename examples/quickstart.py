#!/usr/bin/env python
"""
hiobench Basic Example
================

This example runs a small tuning sweep on random unit vectors:
- Training a single StochasticHIOB encoder.
- Precomputing hamming candidates once and refining prefixes of them.
- Writing one HDF5 result per nprobe value plus a summary.csv.

Usage:
    python examples/quickstart.py
"""

import pandas as pd
import torch

from hiobench.config import ExperimentConfig
from hiobench.datasets import ArraySource
from hiobench.experiment import run_experiment


def main():
    print("=== hiobench Basic Example ===")

    torch.manual_seed(0)
    vectors = torch.nn.functional.normalize(torch.randn(20_000, 64), dim=1)
    queries = torch.nn.functional.normalize(torch.randn(100, 64), dim=1)

    config = ExperimentConfig(
        out_path="quickstart_results",
        size="20K",
        bits=[64],
        its=200,
        samples=2000,
        probe_min=10,
        probe_max=1000,
        probe_steps=5,
        tune=True,
    )
    print("Probe values: %s" % config.probe_values())

    paths = run_experiment(config, ArraySource(vectors), ArraySource(queries))
    print("Wrote %d result files" % len(paths))

    summary = pd.read_csv(paths[0].parent / "summary.csv")
    print(summary[["nprobe", "build_time_s", "query_time_s"]])


if __name__ == "__main__":
    main()
