# knn/__init__.py

from .base import Candidate, WorkRange
from .evaluation import KNNRun, LabelingStrategy, MajorityVoteLabeling, majority_label
from .knn import CandidateSet, distance, distances_to, nearest_neighbors, predict

__all__ = [
    'Candidate',
    'KNNRun',
    'WorkRange',
    'LabelingStrategy',
    'MajorityVoteLabeling',
    'majority_label',
    'CandidateSet',
    'distance',
    'distances_to',
    'nearest_neighbors',
    'predict',
]
