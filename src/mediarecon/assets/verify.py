"""Content hash verification for asset files."""

import hashlib
from pathlib import Path

from ..core.utils import DEFAULT_HASH_ALGORITHM, split_hash
from ..errors import IntegrityError, TransportError


def compute_file_hash(file_path: Path, algorithm: str = DEFAULT_HASH_ALGORITHM) -> str:
    """
    Compute the hex digest of a file with the given algorithm.

    Raises:
        IntegrityError: If the algorithm is unknown
        TransportError: If the file cannot be read
    """
    try:
        digest = hashlib.new(algorithm)
    except ValueError as exc:
        raise IntegrityError(f"Unsupported hash algorithm: {algorithm}") from exc

    try:
        with file_path.open('rb') as f:
            # Read in chunks for large files
            while chunk := f.read(65536):
                digest.update(chunk)
    except OSError as exc:
        raise TransportError(f"Cannot read {file_path.name}: {exc}") from exc
    return digest.hexdigest()


def verify_file_hash(file_path: Path, expected: str) -> str:
    """
    Check a file against an ``algorithm:hexdigest`` expectation.

    Args:
        file_path: File to hash
        expected: Normalized expected hash; empty means "no expectation"

    Returns:
        The computed hash in ``algorithm:hexdigest`` form

    Raises:
        IntegrityError: If the digests differ or the algorithm is unknown
    """
    algorithm, expected_digest = split_hash(expected) if expected else (DEFAULT_HASH_ALGORITHM, "")
    actual_digest = compute_file_hash(file_path, algorithm)
    actual = f"{algorithm}:{actual_digest}"

    if expected_digest and actual_digest != expected_digest:
        raise IntegrityError(
            f"Hash mismatch for {file_path.name}",
            expected=expected,
            actual=actual,
        )
    return actual
