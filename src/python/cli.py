#!/usr/bin/env python
import argparse
import logging
import sys

import numpy as np
import torch

from hiobench.config import ExperimentConfig
from hiobench.datasets.sisap import MIRROR_BASE_URL
from hiobench.experiment import run

logger = logging.getLogger("hiobench")


def setup_logging(log_level=logging.INFO):
    logging.basicConfig(level=log_level, format="%(asctime)s | %(levelname)7s | %(message)s", datefmt="%H:%M:%S")


def build_parser() -> argparse.ArgumentParser:
    # every option defaults to None so only explicit flags override the config file
    parser = argparse.ArgumentParser(description="Train binary encoders and sweep nprobe on the SISAP23 LAION data")
    parser.add_argument("--config", type=str, default=None, help="YAML file with default parameter values")
    parser.add_argument("--size", type=str, default=None, help="Dataset size, e.g. 300K, 10M, 30M, 100M")
    parser.add_argument("-k", "--k", type=int, default=None, help="Neighbors per query")
    parser.add_argument("--bits", type=str, default=None, help="Comma separated code widths, in cascade order")
    parser.add_argument("--its", type=int, default=None, help="Training iterations per encoder")
    parser.add_argument("--samples", type=int, default=None, help="Rows per training sample")
    parser.add_argument("--batch-its", dest="batch_its", type=int, default=None, help="Iterations per sample")
    parser.add_argument("--noise", type=float, default=None, help="Std of the noise added to samples")
    parser.add_argument("--scale", type=float, default=None, help="Initial training step size")
    parser.add_argument("--probe-min", dest="probe_min", type=int, default=None, help="Smallest nprobe")
    parser.add_argument("--probe-max", dest="probe_max", type=int, default=None, help="Largest nprobe")
    parser.add_argument("--probe-steps", dest="probe_steps", type=int, default=None, help="Number of nprobe values")
    parser.add_argument("--tune", action="store_true", default=None, help="Single encoder, reuse candidates")
    parser.add_argument("--in-path", dest="in_path", type=str, default=None, help="Input base directory")
    parser.add_argument("--out-path", dest="out_path", type=str, default=None, help="Result base directory")
    parser.add_argument("--idle-cpus", dest="idle_cpus", type=int, default=None, help="Cores to leave unused")
    parser.add_argument("--batch-size", dest="batch_size", type=int, default=None, help="Rows per read batch")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--encoder", type=str, default=None, help="Binary encoder, e.g. StochasticHIOB")
    parser.add_argument("--mirror", action="store_true", help="Download from the ingeotec mirror")
    parser.add_argument("--log-level", dest="log_level", type=str, default="INFO", help="Logging level")
    return parser


def config_from_args(args: argparse.Namespace) -> ExperimentConfig:
    overrides = {
        name: getattr(args, name)
        for name in ExperimentConfig.field_names()
        if getattr(args, name, None) is not None
    }
    if args.mirror:
        overrides["base_url"] = MIRROR_BASE_URL
    if args.config is not None:
        return ExperimentConfig.from_yaml(args.config, overrides)
    return ExperimentConfig.from_dict(overrides)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(getattr(logging, args.log_level.upper(), logging.INFO))

    try:
        config = config_from_args(args)
        np.random.seed(config.seed)
        torch.manual_seed(config.seed)
        paths = run(config)
    except Exception:
        logger.exception("Run failed")
        return 1

    logger.info(f"Wrote {len(paths)} results")
    return 0


if __name__ == "__main__":
    sys.exit(main())
