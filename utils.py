import hashlib
from pathlib import Path


def ceil_div(numerator: int, denominator: int) -> int:
    """
    Integer ceiling of numerator / denominator for non-negative numerator and positive denominator.
    """
    return -(-numerator // denominator)

def get_hash(filepath: str | Path, hash_algo=hashlib.sha1) -> str:
    """
    Return the hex digest of a file, read in chunks so large datasets are never held twice in memory.
    """
    def chunk_reader(fobj, chunk_size=1024 * 64):
        """ Generator that reads a file in chunks of bytes """
        while True:
            chunk = fobj.read(chunk_size)
            if not chunk:
                return
            yield chunk

    hashobj = hash_algo()
    with open(filepath, "rb") as f:
        for chunk in chunk_reader(f):
            hashobj.update(chunk)

    return hashobj.hexdigest()

def bytes_in_mb(bytes_size: int) -> float:
    """
    Convert bytes to megabytes.
    
    Parameters
    ----------
    bytes_size : int
        Size in bytes.
    
    Returns
    -------
    float
        Size in megabytes.
    """
    return bytes_size / (1024 * 1024) if bytes_size else 0.0
