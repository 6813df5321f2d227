# pipeline/__init__.py

from .classify_pipeline import (
    WorkerPoolError,
    count_correct,
    evaluate_sequential,
    partition_work,
    run_parallel_evaluation,
    worker_main,
)

__all__ = [
    'WorkerPoolError',
    'count_correct',
    'evaluate_sequential',
    'partition_work',
    'run_parallel_evaluation',
    'worker_main',
]
