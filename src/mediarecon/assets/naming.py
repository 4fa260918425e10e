"""Filename selection for materialized assets."""

import uuid
from pathlib import PurePosixPath
from urllib.parse import unquote, urlparse

from ..core.utils import sanitize_file_name, slugify


def filename_from_url(url: str) -> str:
    """Basename of a URL's path component, sanitized."""
    if not url:
        return ""
    path = unquote(urlparse(url).path or "")
    return sanitize_file_name(PurePosixPath(path).name)


def choose_filename(
    preferred: str,
    source_url: str = "",
    preserve: bool = True,
) -> str:
    """
    Pick the stored filename for an asset.

    Prefers the descriptor's filename, then the URL basename, then a
    generated unique name. With preserve=False the stem is slugified.

    Examples:
        >>> choose_filename("", "https://cdn.test/a/Hero%20Shot.JPG")
        'Hero-Shot.JPG'
        >>> choose_filename("Hero Shot.JPG", preserve=False)
        'hero-shot.jpg'
    """
    name = sanitize_file_name(preferred) or filename_from_url(source_url)
    if not name:
        return f"mediarecon-{uuid.uuid4()}"
    if preserve:
        return name

    path = PurePosixPath(name)
    stem = slugify(path.stem) or f"mediarecon-{uuid.uuid4().hex[:8]}"
    return f"{stem}{path.suffix.lower()}"
