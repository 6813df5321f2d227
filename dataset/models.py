# dataset/models.py

from dataclasses import dataclass
from typing import NamedTuple

import numpy as np


class LabeledImage(NamedTuple):
    image: np.ndarray
    label: int


@dataclass(frozen=True)
class Dataset:
    """
    Ordered, immutable collection of labeled images.

    images : uint8 array of shape (n, height, width)
    labels : uint8 array of shape (n,)

    Both arrays are flagged read-only on construction. Indices are stable and are
    the unit of work partitioning, so the dataset is never reordered or mutated.
    """
    images: np.ndarray
    labels: np.ndarray

    def __post_init__(self):
        images = np.array(self.images, dtype=np.uint8, order="C")
        labels = np.array(self.labels, dtype=np.uint8, order="C")
        if images.ndim != 3:
            raise ValueError(f"images must have shape (n, height, width), got {images.shape}")
        if labels.ndim != 1 or labels.shape[0] != images.shape[0]:
            raise ValueError(
                f"labels must be a vector with one entry per image: {labels.shape} vs {images.shape[0]} images"
            )
        images.setflags(write=False)
        labels.setflags(write=False)
        object.__setattr__(self, "images", images)
        object.__setattr__(self, "labels", labels)

    @property
    def num_items(self) -> int:
        return int(self.images.shape[0])

    @property
    def image_shape(self) -> tuple:
        return tuple(self.images.shape[1:])

    def __len__(self) -> int:
        return self.num_items

    def __getitem__(self, index: int) -> LabeledImage:
        return LabeledImage(self.images[index], int(self.labels[index]))

    def __reduce__(self):
        # rebuild through __init__ so copies sent to worker processes are read-only too
        return (Dataset, (self.images, self.labels))

    @classmethod
    def from_items(cls, items) -> "Dataset":
        """Build a dataset from an iterable of (image, label) pairs of identical shape."""
        items = list(items)
        if not items:
            raise ValueError("Cannot infer image shape from an empty item list")
        images = np.stack([np.asarray(image, dtype=np.uint8) for image, _ in items])
        labels = np.array([label for _, label in items], dtype=np.uint8)
        return cls(images=images, labels=labels)
