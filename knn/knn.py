# knn/knn.py

import heapq
from typing import List, Optional

import numpy as np

from dataset.models import Dataset
from .base import Candidate
from .evaluation import LabelingStrategy, MajorityVoteLabeling

DISTANCE_BLOCK_ROWS = 2048


def distance(a: np.ndarray, b: np.ndarray) -> float:
    """Euclidean distance between two same-shape images, pixels taken as one flat vector."""
    a = np.asarray(a)
    b = np.asarray(b)
    if a.shape != b.shape:
        raise ValueError(f"Image shapes differ: {a.shape} vs {b.shape}")
    # widen before subtracting, uint8 arithmetic wraps around
    diff = a.astype(np.int64).ravel() - b.astype(np.int64).ravel()
    return float(np.sqrt(np.dot(diff, diff)))


def distances_to(images: np.ndarray, query: np.ndarray, block_rows: int = DISTANCE_BLOCK_ROWS) -> np.ndarray:
    """
    Distance from `query` to every image in a stacked (n, height, width) array.

    Rows are processed in blocks to bound the size of the widened temporaries.
    Values are identical to calling `distance` on each row.
    """
    if tuple(images.shape[1:]) != tuple(np.shape(query)):
        raise ValueError(f"Query shape {np.shape(query)} does not match images {images.shape[1:]}")
    flat = images.reshape(images.shape[0], -1)
    q = np.asarray(query).astype(np.int64).ravel()
    out = np.empty(flat.shape[0], dtype=np.float64)
    for start in range(0, flat.shape[0], block_rows):
        diff = flat[start:start + block_rows].astype(np.int64) - q
        out[start:start + block_rows] = np.sqrt(np.einsum("ij,ij->i", diff, diff))
    return out


class CandidateSet:
    """
    Bounded set of the K nearest training entries seen so far.

    Backed by a max-heap keyed on (distance, index). An offered entry replaces
    the current farthest member only if its key is smaller, so with entries
    offered in index order an equally distant newcomer never displaces an
    earlier one.
    """

    def __init__(self, k: int):
        if k <= 0:
            raise ValueError(f"k must be positive, got {k}")
        self.k = k
        self._heap = []

    def __len__(self) -> int:
        return len(self._heap)

    @property
    def farthest(self) -> Optional[Candidate]:
        if not self._heap:
            return None
        neg_distance, neg_index, label = self._heap[0]
        return Candidate(-neg_distance, -neg_index, label)

    def offer(self, distance: float, index: int, label: int) -> bool:
        """Try to add an entry; return True if it is now a member."""
        entry = (-distance, -index, label)
        if len(self._heap) < self.k:
            heapq.heappush(self._heap, entry)
            return True
        if entry > self._heap[0]:
            heapq.heapreplace(self._heap, entry)
            return True
        return False

    def ranked(self) -> List[Candidate]:
        """Members ordered nearest first, equal distances by dataset index."""
        return sorted(Candidate(-d, -i, label) for d, i, label in self._heap)


def nearest_neighbors(training: Dataset, query: np.ndarray, k: int) -> List[Candidate]:
    """Return the K training entries closest to `query`, ranked nearest first."""
    if not 1 <= k <= len(training):
        raise ValueError(f"k must be between 1 and the training set size ({len(training)}), got {k}")

    distances = distances_to(training.images, query)
    # Entries farther than the K-th smallest distance can never end up in the set,
    # so only the rest are offered (still in index order).
    kth = np.partition(distances, k - 1)[k - 1]
    indices = np.flatnonzero(distances <= kth)

    candidates = CandidateSet(k)
    for index in indices.tolist():
        candidates.offer(float(distances[index]), index, int(training.labels[index]))
    return candidates.ranked()


def predict(training: Dataset, query: np.ndarray, k: int, labeling: Optional[LabelingStrategy] = None) -> int:
    """
    Predict the label of `query` by voting among its K nearest training images.

    Parameters
    ----------
    training : Dataset
        Labeled training images, same image shape as `query`.
    query : np.ndarray
        Image to classify.
    k : int
        Number of neighbors, 1 <= k <= len(training).
    labeling : LabelingStrategy, optional
        How to combine the neighbors; majority vote by default.

    Returns
    -------
    int
        Predicted label, always one of the K nearest entries' labels.
    """
    labeling = labeling or MajorityVoteLabeling()
    return labeling.infer_label(nearest_neighbors(training, query, k))
