# dataset/loader.py

"""
Reading and writing the binary image dataset format.

Layout (all items share one square image side, agreed out-of-band):

    int32 (little-endian)   number of items
    per item:
        uint8               label
        uint8[side * side]  pixel intensities, row-major
"""
import logging
import struct
from pathlib import Path

import numpy as np

from dataset.models import Dataset
from utils import bytes_in_mb

logger = logging.getLogger(__name__)

DEFAULT_IMAGE_SIDE = 28
HEADER = struct.Struct("<i")


class DatasetLoadError(Exception):
    """Raised when a dataset file cannot be read in full."""


def load_dataset(path: str | Path, image_side: int = DEFAULT_IMAGE_SIDE) -> Dataset:
    """
    Load a complete dataset from a binary file.

    Parameters
    ----------
    path : str or Path
        Dataset file.
    image_side : int, default=28
        Width and height of every image in the file.

    Returns
    -------
    Dataset
        Read-only dataset holding every item in file order.

    Raises
    ------
    DatasetLoadError
        If the file is missing or unreadable, the header is truncated, the item
        count is negative, or the file ends before the last item.
    """
    if image_side <= 0:
        raise ValueError(f"image_side must be positive, got {image_side}")

    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as e:
        raise DatasetLoadError(f"Cannot read dataset {path}: {e}") from e

    if len(raw) < HEADER.size:
        raise DatasetLoadError(f"Truncated header in {path}: {len(raw)} bytes")
    (num_items,) = HEADER.unpack_from(raw, 0)
    if num_items < 0:
        raise DatasetLoadError(f"Negative item count {num_items} in {path}")

    record_size = 1 + image_side * image_side
    expected = HEADER.size + num_items * record_size
    if len(raw) < expected:
        complete = (len(raw) - HEADER.size) // record_size
        raise DatasetLoadError(
            f"Short read in {path}: header declares {num_items} items, "
            f"file holds {complete} complete items ({len(raw)} of {expected} bytes)"
        )
    if len(raw) > expected:
        logger.debug(f"Ignoring {len(raw) - expected} trailing bytes in {path}")

    if num_items == 0:
        records = np.empty((0, record_size), dtype=np.uint8)
    else:
        records = np.frombuffer(raw, dtype=np.uint8, count=num_items * record_size, offset=HEADER.size)
    records = records.reshape(num_items, record_size)
    dataset = Dataset(
        images=records[:, 1:].reshape(num_items, image_side, image_side),
        labels=records[:, 0],
    )
    logger.info(f"Loaded {num_items} images ({image_side}x{image_side}, {bytes_in_mb(len(raw)):.1f} MB) from {path}")
    return dataset


def write_dataset(dataset: Dataset, path: str | Path) -> Path:
    """
    Write a dataset in the binary format read by `load_dataset`.

    Images must be square; the side is not stored in the file.
    """
    height, width = dataset.image_shape
    if height != width:
        raise ValueError(f"Only square images can be written, got {height}x{width}")

    path = Path(path)
    records = np.empty((dataset.num_items, 1 + height * width), dtype=np.uint8)
    records[:, 0] = dataset.labels
    records[:, 1:] = dataset.images.reshape(dataset.num_items, -1)
    with open(path, "wb") as f:
        f.write(HEADER.pack(dataset.num_items))
        f.write(records.tobytes())
    logger.debug(f"Wrote {dataset.num_items} images to {path}")
    return path
