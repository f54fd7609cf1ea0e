"""Content hashing for filesystem comparison."""

import hashlib
from pathlib import Path


def hash_file(path: Path | str, algorithm: str = "sha256", chunk_size: int = 65536) -> str:
    """Compute hash of a file.

    Args:
        path: Path to the file
        algorithm: Hash algorithm to use
        chunk_size: Size of chunks to read

    Returns:
        Hex digest of the file hash
    """
    hasher = hashlib.new(algorithm)
    with open(path, "rb") as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)
    return hasher.hexdigest()


def sanitize_name(identifier: str) -> str:
    """Turn an image identifier into something usable as a directory prefix."""
    for char in ":/@\\":
        identifier = identifier.replace(char, "")
    return identifier[:64] or "image"
