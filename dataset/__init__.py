# dataset/__init__.py

from .models import Dataset, LabeledImage
from .loader import DatasetLoadError, load_dataset, write_dataset

__all__ = [
    'Dataset',
    'LabeledImage',
    'DatasetLoadError',
    'load_dataset',
    'write_dataset',
]
