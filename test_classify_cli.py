# test_classify_cli.py

import logging

import numpy as np
import pytest
from click.testing import CliRunner

from cli.classify import cli
from dataset.loader import write_dataset
from dataset.models import Dataset
from pipeline.classify_pipeline import evaluate_sequential

CLI_LOGGERS = ('knn_cli', 'pipeline.classify_pipeline', 'dataset.loader')


@pytest.fixture(autouse=True)
def reset_loggers():
    yield
    # handlers created during invoke point at the runner's captured streams
    for name in CLI_LOGGERS:
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True


def make_dataset(n, seed, side=4) -> Dataset:
    rng = np.random.default_rng(seed)
    labels = rng.integers(0, 3, size=n)
    noise = rng.integers(0, 40, size=(n, side, side))
    images = (labels[:, None, None] * 80 + noise).astype(np.uint8)
    return Dataset(images=images, labels=labels.astype(np.uint8))


@pytest.fixture
def dataset_files(tmp_path):
    training = make_dataset(30, seed=1)
    testing = make_dataset(10, seed=2)
    train_path = write_dataset(training, tmp_path / "training_data.bin")
    test_path = write_dataset(testing, tmp_path / "testing_data.bin")
    return training, testing, str(train_path), str(test_path)


@pytest.mark.parametrize("backend", ["thread", "process"])
def test_evaluate_prints_only_the_count(dataset_files, backend):
    training, testing, train_path, test_path = dataset_files
    expected = evaluate_sequential(training, testing, 3)

    result = CliRunner().invoke(
        cli, ['evaluate', '3', train_path, test_path, '4', '--image-side', '4', '--backend', backend]
    )
    assert result.exit_code == 0, result.output
    assert result.stdout == f"{expected}\n"


def test_evaluate_reads_image_side_from_environment(dataset_files):
    training, testing, train_path, test_path = dataset_files
    expected = evaluate_sequential(training, testing, 1)

    result = CliRunner().invoke(
        cli, ['evaluate', '1', train_path, test_path, '2'],
        env={'KNN_IMAGE_SIDE': '4', 'KNN_BACKEND': 'thread'},
    )
    assert result.exit_code == 0, result.output
    assert result.stdout == f"{expected}\n"


def test_evaluate_rejects_non_positive_k(dataset_files):
    _, _, train_path, test_path = dataset_files
    result = CliRunner().invoke(cli, ['evaluate', '0', train_path, test_path, '2', '--image-side', '4'])
    assert result.exit_code == 2
    assert result.stdout == ""
    assert "K must be a positive integer" in result.stderr


def test_evaluate_rejects_non_positive_worker_count(dataset_files):
    _, _, train_path, test_path = dataset_files
    result = CliRunner().invoke(cli, ['evaluate', '1', train_path, test_path, '0', '--image-side', '4'])
    assert result.exit_code == 2
    assert result.stdout == ""
    assert "NUM_WORKERS" in result.stderr


def test_evaluate_rejects_wrong_argument_count(dataset_files):
    _, _, train_path, _ = dataset_files
    result = CliRunner().invoke(cli, ['evaluate', '1', train_path])
    assert result.exit_code == 2
    assert result.stdout == ""


def test_evaluate_rejects_k_larger_than_training_set(dataset_files):
    _, _, train_path, test_path = dataset_files
    result = CliRunner().invoke(
        cli, ['evaluate', '31', train_path, test_path, '2', '--image-side', '4', '--backend', 'thread']
    )
    assert result.exit_code == 1
    assert result.stdout == ""
    assert "training set size" in result.stderr


def test_evaluate_missing_dataset(tmp_path, dataset_files):
    _, _, train_path, _ = dataset_files
    result = CliRunner().invoke(
        cli, ['evaluate', '1', train_path, str(tmp_path / 'missing.bin'), '2', '--image-side', '4']
    )
    assert result.exit_code == 1
    assert result.stdout == ""
    assert "Cannot read dataset" in result.stderr


def test_evaluate_truncated_dataset(tmp_path, dataset_files):
    _, _, train_path, test_path = dataset_files
    truncated = tmp_path / "truncated.bin"
    with open(test_path, "rb") as f:
        truncated.write_bytes(f.read()[:-3])
    result = CliRunner().invoke(cli, ['evaluate', '1', train_path, str(truncated), '2', '--image-side', '4'])
    assert result.exit_code == 1
    assert "Short read" in result.stderr


def test_evaluate_writes_log_file(tmp_path, dataset_files):
    _, _, train_path, test_path = dataset_files
    log_file = tmp_path / "run.log"
    result = CliRunner().invoke(
        cli, ['evaluate', '1', train_path, test_path, '2', '--image-side', '4', '--backend', 'thread',
              '--log-file', str(log_file)]
    )
    assert result.exit_code == 0, result.output
    assert "Dispatching 10 test images to 2 thread workers" in log_file.read_text()


def test_describe(dataset_files):
    training, _, train_path, _ = dataset_files
    result = CliRunner().invoke(cli, ['describe', train_path, '--image-side', '4'])
    assert result.exit_code == 0, result.output
    lines = result.stdout.splitlines()
    assert lines[0] == "items: 30"
    assert lines[1] == "image: 4x4"
    assert lines[2].startswith("sha1: ")
    counts = {int(label): int((training.labels == label).sum()) for label in set(training.labels.tolist())}
    for label, count in counts.items():
        assert f"label {label}: {count}" in lines
