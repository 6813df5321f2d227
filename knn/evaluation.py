# knn/evaluation.py

import datetime
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Sequence

from .base import Candidate


def majority_label(candidates: Sequence[Candidate]) -> int:
    """
    Return the most frequent label among the candidates.

    Candidates are expected in rank order (nearest first). When several labels
    share the highest count, the one attached to the best-ranked candidate wins,
    which is not necessarily the smallest label value.
    """
    if not candidates:
        raise ValueError("Cannot vote on an empty candidate set")
    counts = Counter(c.label for c in candidates)
    top = max(counts.values())
    for c in candidates:
        if counts[c.label] == top:
            return c.label


class LabelingStrategy(ABC):
    """
    Class which contains the logic and associated metadata for inferring a label from neighbors.
    ie Logic for deciding how to combine the K nearest candidates into a single predicted label.
    """
    
    @property
    def name(self) -> str:
        """Unique identifier for this labeling strategy."""
        raise NotImplementedError
    
    @property
    def description(self) -> str:
        """Human-readable description of what this strategy does."""
        raise NotImplementedError

    @abstractmethod
    def infer_label(self, candidates: Sequence[Candidate]) -> int:
        raise NotImplementedError


class MajorityVoteLabeling(LabelingStrategy):

    @property
    def name(self) -> str:
        return "majority_vote"

    @property
    def description(self) -> str:
        return "Most frequent label among the K nearest; ties go to the nearest tied candidate."

    def infer_label(self, candidates: Sequence[Candidate]) -> int:
        return majority_label(candidates)


@dataclass
class KNNRun:
    """
    Describes the setup of a single kNN evaluation run.
    Logged at the start of a run so results can be traced back to their inputs.
    """
    k: int
    training_path: str
    testing_path: str
    num_workers: int
    backend: str = "process"
    image_side: int = 28
    labeling: LabelingStrategy = field(default_factory=MajorityVoteLabeling)
    created_utc: str = field(default_factory=lambda: datetime.datetime.now(datetime.timezone.utc).isoformat())

    def to_description(self) -> str:
        return (
            f"kNN run (K={self.k}, workers={self.num_workers}, backend={self.backend}, "
            f"image {self.image_side}x{self.image_side}) "
            f"labeling={self.labeling.name} ({self.labeling.description}) "
            f"training={self.training_path} testing={self.testing_path} created={self.created_utc}"
        )
