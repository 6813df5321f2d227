# knn/base.py

from typing import NamedTuple


class Candidate(NamedTuple):
    """One training entry considered for a query: its distance, dataset index and label."""
    distance: float
    index: int
    label: int


class WorkRange(NamedTuple):
    """Contiguous slice [start, start + count) of the test set assigned to one worker."""
    start: int
    count: int

    @property
    def stop(self) -> int:
        return self.start + self.count

