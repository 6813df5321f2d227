"""kNN classification commands.

Usage examples:

  python -m cli.classify evaluate 3 datasets/training_data.bin datasets/testing_data.bin 8
  python -m cli.classify evaluate 3 train.bin test.bin 4 --backend thread --log-level DEBUG
  python -m cli.classify describe datasets/testing_data.bin

Optional environment variables (loaded via .env):
  KNN_BACKEND, KNN_IMAGE_SIDE, KNN_LOG_FILE, KNN_LOG_LEVEL
"""

# Load environment variables from .env file early
from dotenv import load_dotenv
load_dotenv()

import logging
from collections import Counter

import click

from dataset.loader import DEFAULT_IMAGE_SIDE, DatasetLoadError, load_dataset
from knn.evaluation import KNNRun
from logging_setups import setup_logger
from pipeline.classify_pipeline import BACKENDS, WorkerPoolError, run_parallel_evaluation
from utils import get_hash

LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']


def _setup_loggers(log_file, log_level) -> logging.Logger:
    level = getattr(logging, log_level.upper())
    cli_logger = setup_logger(name='knn_cli', log_file=log_file, level=level, console=True)
    # also wire up the library loggers
    for name in ('pipeline.classify_pipeline', 'dataset.loader'):
        setup_logger(name=name, log_file=log_file, level=level, console=True)
    return cli_logger


def _load(path, image_side, cli_logger):
    try:
        return load_dataset(path, image_side=image_side)
    except DatasetLoadError as e:
        cli_logger.error(f"Dataset load failed: {e}")
        raise click.ClickException(str(e))
    except MemoryError:
        cli_logger.exception(f"Not enough memory to load {path}")
        raise click.ClickException(f"Not enough memory to load {path}")


@click.group()
def cli():
    """kNN image classification commands."""
    pass


@cli.command('evaluate')
@click.argument('k', type=int)
@click.argument('training_data', type=click.Path(dir_okay=False))
@click.argument('testing_data', type=click.Path(dir_okay=False))
@click.argument('num_workers', type=int)
@click.option('--backend', default='process', show_default=True, envvar='KNN_BACKEND',
              type=click.Choice(list(BACKENDS), case_sensitive=False),
              help='Run workers as processes or threads.')
@click.option('--image-side', default=DEFAULT_IMAGE_SIDE, show_default=True, envvar='KNN_IMAGE_SIDE',
              type=click.IntRange(min=1), help='Width and height of every image in the dataset files.')
@click.option('--log-file', default=None, envvar='KNN_LOG_FILE', help='Optional log file path.')
@click.option('--log-level', default='INFO', show_default=True, envvar='KNN_LOG_LEVEL',
              type=click.Choice(LOG_LEVELS, case_sensitive=False))
def evaluate_cmd(k, training_data, testing_data, num_workers, backend, image_side, log_file, log_level):
    """
    Classify every image in TESTING_DATA against TRAINING_DATA using K nearest
    neighbors across NUM_WORKERS workers, and print the number classified correctly.

    Example command:
        python -m cli.classify evaluate 3 datasets/training_data.bin datasets/testing_data.bin 8
    """
    # Argument checks come before any loading or spawning
    if k <= 0:
        raise click.BadParameter(f"K must be a positive integer, got {k}", param_hint="K")
    if num_workers <= 0:
        raise click.BadParameter(f"NUM_WORKERS must be a positive integer, got {num_workers}", param_hint="NUM_WORKERS")

    cli_logger = _setup_loggers(log_file, log_level)
    run = KNNRun(
        k=k,
        training_path=training_data,
        testing_path=testing_data,
        num_workers=num_workers,
        backend=backend.lower(),
        image_side=image_side,
    )
    cli_logger.info(f"Starting {run.to_description()}")

    training = _load(training_data, image_side, cli_logger)
    testing = _load(testing_data, image_side, cli_logger)

    if k > len(training):
        cli_logger.error(f"K={k} exceeds the training set size {len(training)}")
        raise click.ClickException(f"K ({k}) must not exceed the training set size ({len(training)})")

    try:
        total_correct = run_parallel_evaluation(
            training, testing, k, num_workers, backend=run.backend, labeling=run.labeling
        )
    except WorkerPoolError as e:
        cli_logger.exception("Worker pool failed")
        raise click.ClickException(str(e))
    except MemoryError:
        cli_logger.exception("Out of memory during evaluation")
        raise click.ClickException("Out of memory during evaluation")

    cli_logger.info(f"Completed: {total_correct}/{len(testing)} correct")
    click.echo(total_correct)  # the only stdout output


@cli.command('describe')
@click.argument('dataset_path', type=click.Path(dir_okay=False))
@click.option('--image-side', default=DEFAULT_IMAGE_SIDE, show_default=True, envvar='KNN_IMAGE_SIDE',
              type=click.IntRange(min=1), help='Width and height of every image in the dataset file.')
@click.option('--log-file', default=None, envvar='KNN_LOG_FILE', help='Optional log file path.')
@click.option('--log-level', default='INFO', show_default=True, envvar='KNN_LOG_LEVEL',
              type=click.Choice(LOG_LEVELS, case_sensitive=False))
def describe_cmd(dataset_path, image_side, log_file, log_level):
    """Print item count, image shape, per-label counts and SHA-1 of a dataset file."""
    cli_logger = _setup_loggers(log_file, log_level)
    dataset = _load(dataset_path, image_side, cli_logger)

    label_counts = Counter(dataset.labels.tolist())
    height, width = dataset.image_shape
    click.echo(f"items: {len(dataset)}")
    click.echo(f"image: {height}x{width}")
    click.echo(f"sha1: {get_hash(dataset_path)}")
    for label in sorted(label_counts):
        click.echo(f"label {label}: {label_counts[label]}")


if __name__ == '__main__':
    cli()
