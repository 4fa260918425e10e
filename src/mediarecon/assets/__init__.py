"""Asset file utilities: content hashing and stored filenames."""

from .naming import choose_filename
from .verify import compute_file_hash, verify_file_hash

__all__ = [
    "choose_filename",
    "compute_file_hash",
    "verify_file_hash",
]
