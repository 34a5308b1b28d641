"""Content hashing for the image and audio stores."""

import hashlib
from pathlib import Path


def hash_bytes(content: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(content).hexdigest()


def hash_file(file_path: Path | str, chunk_size: int = 65536) -> str:
    """
    Return the SHA-256 hex digest of a file's contents.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the path is not a regular file
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")
    if not file_path.is_file():
        raise ValueError(f"Not a file: {file_path}")

    digest = hashlib.sha256()
    with open(file_path, "rb") as f:
        while chunk := f.read(chunk_size):
            digest.update(chunk)
    return digest.hexdigest()
