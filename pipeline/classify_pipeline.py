# pipeline/classify_pipeline.py

import logging
import multiprocessing
import threading
from multiprocessing.connection import Connection
from typing import List, Optional

from dataset.models import Dataset
from knn.base import WorkRange
from knn.evaluation import LabelingStrategy
from knn.knn import predict
from utils import ceil_div

# Match the logger name with what's configured in the CLI
logger = logging.getLogger('pipeline.classify_pipeline')

BACKENDS = ('process', 'thread')

# forked workers share the parent's read-only dataset pages instead of unpickling a copy each
PROCESS_START_METHOD = 'fork' if 'fork' in multiprocessing.get_all_start_methods() else None


class WorkerPoolError(RuntimeError):
    """A worker could not be started, could not be reached, or did not report a result."""


def partition_work(test_set_size: int, num_workers: int) -> List[WorkRange]:
    """
    Split [0, test_set_size) into one contiguous range per worker.

    Each worker gets ceil(test_set_size / num_workers) items, the last non-empty
    range may be shorter, and workers past the end receive an empty range
    rather than being left out.

    Parameters
    ----------
    test_set_size : int
        Number of test items, >= 0.
    num_workers : int
        Number of workers, > 0.

    Returns
    -------
    List[WorkRange]
        Exactly num_workers ranges, ordered and disjoint, whose counts sum to test_set_size.
    """
    if num_workers <= 0:
        raise ValueError(f"num_workers must be positive, got {num_workers}")
    if test_set_size < 0:
        raise ValueError(f"test_set_size must not be negative, got {test_set_size}")

    chunk = ceil_div(test_set_size, num_workers)
    ranges = []
    for i in range(num_workers):
        start = i * chunk
        count = max(0, min(chunk, test_set_size - start))
        ranges.append(WorkRange(start, count))
    return ranges


def validate_k(k: int, training: Dataset):
    if not 1 <= k <= len(training):
        raise ValueError(f"K must be between 1 and the training set size ({len(training)}), got {k}")


def count_correct(training: Dataset, testing: Dataset, k: int, start: int, count: int,
                  labeling: Optional[LabelingStrategy] = None) -> int:
    """Number of test images in [start, start + count) whose predicted label matches ground truth."""
    correct = 0
    for i in range(start, start + count):
        if predict(training, testing.images[i], k, labeling=labeling) == int(testing.labels[i]):
            correct += 1
    return correct


def evaluate_sequential(training: Dataset, testing: Dataset, k: int,
                        labeling: Optional[LabelingStrategy] = None) -> int:
    """Single-threaded reference evaluation over the whole test set."""
    validate_k(k, training)
    return count_correct(training, testing, k, 0, len(testing), labeling=labeling)


def worker_main(worker_id: int, training: Dataset, testing: Dataset, k: int,
                range_conn: Connection, result_conn: Connection,
                labeling: Optional[LabelingStrategy] = None):
    """
    Body of one worker: receive a WorkRange, classify it, report the correct count.

    Exactly one message goes back on `result_conn`: ("ok", count) on success or
    ("error", description) if the range could not be processed.
    """
    try:
        work = WorkRange(*range_conn.recv())
        if work.start < 0 or work.count < 0 or (work.count and work.stop > len(testing)):
            raise ValueError(f"Range {tuple(work)} is outside the test set of {len(testing)} items")
        logger.debug(f"Worker {worker_id} processing range start={work.start} count={work.count}")
        correct = count_correct(training, testing, k, work.start, work.count, labeling=labeling)
    except Exception as e:
        logger.exception(f"Worker {worker_id} failed")
        result_conn.send(("error", f"{type(e).__name__}: {e}"))
    else:
        logger.debug(f"Worker {worker_id} done: {correct}/{work.count} correct")
        result_conn.send(("ok", correct))
    finally:
        range_conn.close()
        result_conn.close()


def _make_unit(backend: str, worker_id: int, args: tuple):
    if backend == 'process':
        context = multiprocessing.get_context(PROCESS_START_METHOD)
        return context.Process(target=worker_main, args=args, name=f"knn-worker-{worker_id}")
    return threading.Thread(target=worker_main, args=args, name=f"knn-worker-{worker_id}", daemon=True)


def run_parallel_evaluation(
    training: Dataset,
    testing: Dataset,
    k: int,
    num_workers: int,
    backend: str = 'process',
    labeling: Optional[LabelingStrategy] = None
) -> int:
    """
    Count correct kNN predictions over the test set using a fixed pool of workers.

    Every worker gets its own pair of one-way pipes (range in, count out) and a
    range from `partition_work`, including empty ones. The total is computed only
    after every worker has reported and been joined.

    Parameters
    ----------
    training : Dataset
        Labeled training images, shared read-only.
    testing : Dataset
        Labeled test images, shared read-only.
    k : int
        Number of neighbors, 1 <= k <= len(training).
    num_workers : int
        Pool size, > 0.
    backend : str, default='process'
        'process' for multiprocessing.Process units (forked where the platform allows),
        'thread' for threading.Thread units.
    labeling : LabelingStrategy, optional
        How each worker combines neighbors into a label; majority vote by default.

    Returns
    -------
    int
        Number of correctly classified test images.

    Raises
    ------
    ValueError
        If k, num_workers or backend is invalid; raised before any worker starts.
    WorkerPoolError
        If any worker fails to start, to receive its range, or to report a result.
    """
    if num_workers <= 0:
        raise ValueError(f"num_workers must be positive, got {num_workers}")
    validate_k(k, training)
    if backend not in BACKENDS:
        raise ValueError(f"Unknown backend {backend!r}, expected one of {BACKENDS}")

    ranges = partition_work(len(testing), num_workers)
    logger.info(f"Dispatching {len(testing)} test images to {num_workers} {backend} workers (K={k})")

    units = []
    range_senders = []
    result_receivers = []
    partials = []
    try:
        for worker_id in range(num_workers):
            range_recv, range_send = multiprocessing.Pipe(duplex=False)
            result_recv, result_send = multiprocessing.Pipe(duplex=False)
            range_senders.append(range_send)
            result_receivers.append(result_recv)

            unit = _make_unit(backend, worker_id, (worker_id, training, testing, k, range_recv, result_send, labeling))
            try:
                unit.start()
            except (OSError, RuntimeError) as e:
                range_recv.close()
                result_send.close()
                raise WorkerPoolError(f"Failed to start worker {worker_id}: {e}") from e
            units.append(unit)

            # the child holds its own copies; keeping ours open would hide its exit from recv()
            if backend == 'process':
                range_recv.close()
                result_send.close()

        for worker_id, (conn, work) in enumerate(zip(range_senders, ranges)):
            try:
                conn.send(tuple(work))
            except (OSError, ValueError) as e:
                raise WorkerPoolError(f"Failed to send range {tuple(work)} to worker {worker_id}: {e}") from e

        for worker_id, conn in enumerate(result_receivers):
            try:
                status, payload = conn.recv()
            except (EOFError, OSError) as e:
                raise WorkerPoolError(f"Worker {worker_id} exited without reporting a result") from e
            if status != 'ok':
                raise WorkerPoolError(f"Worker {worker_id} failed: {payload}")
            partials.append(payload)

        for worker_id, unit in enumerate(units):
            unit.join()
            if backend == 'process' and unit.exitcode != 0:
                raise WorkerPoolError(f"Worker {worker_id} exited with code {unit.exitcode}")
    finally:
        # workers still waiting for a range see EOF once the senders are closed
        for conn in range_senders:
            conn.close()
        for unit in units:
            if backend == 'process' and unit.is_alive():
                unit.terminate()
            unit.join()
        for conn in result_receivers:
            conn.close()

    total = sum(partials)
    logger.info(f"Collected {len(partials)} partial results: {total}/{len(testing)} correct")
    return total
