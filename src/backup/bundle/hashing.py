"""
Content hashing for asset deduplication and conflict detection.

Digests are 128-bit MD5 hex strings. The threat model is accidental
collision between user files, not an adversary.
"""

import hashlib
import logging
from pathlib import Path
from typing import Iterable, Set, Union

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def compute_file_hash(file_path: Union[str, Path]) -> str:
    """
    Compute the content digest of a file.

    Reads in chunks so large datasheets do not load into memory at once.

    Args:
        file_path: Path to the file

    Returns:
        Hex MD5 digest, or "" if the file is missing or unreadable.
        Callers treat "" as unknown content.
    """
    path = Path(file_path)
    if not path.is_file():
        return ""

    h = hashlib.md5()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                h.update(chunk)
    except OSError as e:
        logger.debug(f"Could not hash {path}: {e}")
        return ""
    return h.hexdigest()


def compute_hash_set(paths: Iterable[Union[str, Path]]) -> Set[str]:
    """
    Hash a collection of files into a set of digests.

    Unreadable files contribute "" to the set.
    """
    return {compute_file_hash(p) for p in paths}
