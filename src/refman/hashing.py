"""
Content hashing for downloaded reference files.

Files are streamed through MD5 in fixed-size chunks, so memory use stays
flat for multi-gigabyte genomes. The digest is a 32-character hex string.
"""

import hashlib
import logging
from pathlib import Path
from typing import Union

from .errors import InaccessibleFileError

logger = logging.getLogger(__name__)

HASH_CHUNK_SIZE = 64 * 1024


def hash_file(path: Union[str, Path], chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """
    Compute the MD5 hex digest of a file.

    Raises:
        InaccessibleFileError: The file cannot be opened or read
    """
    digest = hashlib.md5()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(chunk_size), b""):
                digest.update(chunk)
    except OSError as e:
        raise InaccessibleFileError(path, e) from e

    hexdigest = digest.hexdigest()
    logger.debug(f"Hashed {path}: {hexdigest}")
    return hexdigest
