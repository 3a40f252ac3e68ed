import logging
from pathlib import Path
from typing import List, Optional

from hiobench.config import ExperimentConfig
from hiobench.datasets.sisap import DatasetSource, SisapLaion
from hiobench.encoders import get_encoder_class
from hiobench.errors import ConfigurationError
from hiobench.loader import load_matrix
from hiobench.primitives import SearchPrimitives
from hiobench.results import H5ResultStore, ResultWriter, index_identifier
from hiobench.search import CascadeStrategy, ReuseStrategy, SearchOrchestrator
from hiobench.timer import Timer, time_format
from hiobench.training import train_cascade

logger = logging.getLogger(__name__)


def run_experiment(
    config: ExperimentConfig,
    data_source: DatasetSource,
    query_source: DatasetSource,
    store: Optional[H5ResultStore] = None,
    primitives: Optional[SearchPrimitives] = None,
) -> List[Path]:
    """
    Load, train and sweep over sources that are already available.

    Tuning mode (config.tune) trains a single encoder and refines prefixes of one shared candidate
    list; production mode trains the full cascade and runs it once per probe combination.

    :return: paths of the written results, in sweep order.
    """
    config.validate()
    budget = config.thread_budget()
    widths = config.widths()
    probe_values = config.probe_values()
    if data_source.n_cols() != query_source.n_cols():
        raise ConfigurationError(
            f"Queries have {query_source.n_cols()} dimensions but the data has {data_source.n_cols()}"
        )

    logger.info(f"Training index on {data_source.shape()} with {widths} bits")
    build_timer = Timer()
    encoder_class = get_encoder_class(config.encoder)
    identifier = index_identifier(
        widths,
        config.its,
        config.samples,
        config.batch_its,
        config.noise,
        scale=config.scale,
        seed=config.seed,
        encoder_name=config.encoder,
    )

    load_timer = Timer()
    data = load_matrix(data_source, config.batch_size, budget.n_threads)
    logger.info(f"Data loaded in {load_timer.elapsed_str()}")

    cascade = train_cascade(
        data,
        widths,
        sample_size=config.samples,
        its_per_sample=config.batch_its,
        n_its=config.its,
        noise_std=config.noise,
        scale=config.scale,
        seed=config.seed,
        encoder_class=encoder_class,
    )
    build_time = build_timer.elapsed_s()
    logger.info(f"Done training in {time_format(build_time)}.")

    load_timer = Timer()
    queries = load_matrix(query_source, config.batch_size, budget.n_threads)
    query_load_time = load_timer.elapsed_s()
    logger.info(f"Queries loaded in {time_format(query_load_time)}")

    primitives = primitives if primitives is not None else SearchPrimitives(budget.n_threads)
    strategy_class = ReuseStrategy if config.tune else CascadeStrategy
    strategy = strategy_class(cascade, data, primitives, config.k, probe_values)
    writer = ResultWriter(
        config.out_path,
        config.kind,
        config.size,
        identifier,
        scale=cascade.encoders[0].scale(),
        its_per_sample=config.batch_its,
        store=store,
    )
    return SearchOrchestrator(strategy, writer).run(queries, build_time, query_load_time)


def run(config: ExperimentConfig) -> List[Path]:
    """
    Full run on the SISAP files: validate, limit threads, fetch missing files, then experiment.
    """
    config.validate()
    config.thread_budget().apply_to_backends()

    if config.tune:
        logger.info(f"Running hyperparameter tuning mode with probes {config.probe_values()}")
    else:
        logger.info(f'Running "production" mode with probes {config.probe_values()}')

    dataset = SisapLaion(config.in_path, kind=config.kind, size=config.size, key=config.key, base_url=config.base_url)
    logger.info(f"Running {config.kind}")
    dataset.ensure_files_available()
    return run_experiment(config, dataset.data_source(), dataset.query_source())
