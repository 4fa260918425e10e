"""Utility functions for mediarecon."""

import re
import unicodedata
from urllib.parse import urlparse

DEFAULT_HASH_ALGORITHM = "sha256"
BUNDLE_PREFIX = "media/"

_FILENAME_SPECIAL = re.compile(r'[?\[\]/\\=<>:;,\'"&$#*()|~`!{}%+\x00-\x1f\x7f]')
_ALLOWED_SCHEMES = ("http", "https")


def slugify(text: str) -> str:
    """
    Convert text to a URL-safe slug.

    - Lowercase
    - Unicode normalize (NFKD), drop combining marks
    - Remove punctuation except spaces and hyphens
    - Convert whitespace to single `-`
    - Collapse multiple `-` to single, strip leading/trailing `-`

    Examples:
        >>> slugify("Hero Image")
        'hero-image'
        >>> slugify("Café – menu")
        'cafe-menu'
    """
    text = text.lower()

    # Replace various dash-like characters with regular hyphen
    text = text.replace('–', '-').replace('—', '-').replace('−', '-')

    # Unicode normalize (NFKD) and drop combining marks
    text = unicodedata.normalize('NFKD', text)
    text = ''.join(c for c in text if not unicodedata.combining(c))

    text = re.sub(r'[^\w\s-]', '', text)
    text = re.sub(r'\s+', '-', text)
    text = re.sub(r'-+', '-', text)

    return text.strip('-')


def sanitize_file_name(name: str) -> str:
    """
    Strip path components and unsafe characters from a filename.

    Whitespace runs become a single `-`. Leading/trailing dots, dashes and
    underscores are removed so the result can never be `.` or `..`.

    Examples:
        >>> sanitize_file_name("../etc/My Photo (1).JPG")
        'My-Photo-1.JPG'
    """
    name = str(name or "").replace("\\", "/").rsplit("/", 1)[-1]
    name = _FILENAME_SPECIAL.sub("", name)
    name = re.sub(r'\s+', '-', name.strip())
    name = re.sub(r'-+', '-', name)
    return name.strip('.-_')


def sanitize_text(value: object) -> str:
    """Collapse whitespace and drop control characters from a text field."""
    text = "" if value is None else str(value)
    text = re.sub(r'[\x00-\x1f\x7f]', ' ', text)
    return re.sub(r'\s+', ' ', text).strip()


def clean_url(url: object) -> str:
    """
    Normalize a URL for comparison and lookup.

    Returns an empty string for anything that is not an http(s) URL, a
    protocol-relative URL, or a root-relative path.
    """
    if not isinstance(url, str):
        return ""
    url = url.strip()
    if not url:
        return ""
    url = url.replace(" ", "%20")
    if re.search(r'\s', url):
        return ""

    parsed = urlparse(url)
    if parsed.scheme:
        if parsed.scheme.lower() not in _ALLOWED_SCHEMES or not parsed.netloc:
            return ""
        return url
    if url.startswith("/"):
        return url
    return ""


def url_host(url: str) -> str:
    """Extract the lowercase hostname from a URL (empty when absent)."""
    if not url:
        return ""
    return (urlparse(url).hostname or "").lower()


def normalize_hash(raw: object, default_algorithm: str = DEFAULT_HASH_ALGORITHM) -> str:
    """
    Normalize a content hash to ``algorithm:hexdigest`` form.

    Examples:
        >>> normalize_hash("ABC123")
        'sha256:abc123'
        >>> normalize_hash("MD5: ff00")
        'md5:ff00'
    """
    if not isinstance(raw, str):
        return ""
    raw = raw.strip()
    if not raw:
        return ""
    if ":" in raw:
        algorithm, digest = raw.split(":", 1)
        algorithm = algorithm.strip().lower() or default_algorithm
    else:
        algorithm, digest = default_algorithm, raw
    digest = digest.strip().lower()
    if not digest or not re.fullmatch(r'[0-9a-f]+', digest):
        return ""
    return f"{algorithm}:{digest}"


def split_hash(value: str) -> tuple[str, str]:
    """Split a normalized hash into ``(algorithm, hexdigest)``."""
    if ":" not in value:
        return DEFAULT_HASH_ALGORITHM, value
    algorithm, digest = value.split(":", 1)
    return algorithm, digest


def sanitize_relative_reference(path: object) -> str:
    """
    Normalize a bundle-relative path and reject traversal.

    Backslashes become slashes, empty and `.` segments are dropped, and any
    `..` segment makes the whole reference unusable (empty string).
    """
    if not isinstance(path, str) or not path:
        return ""

    segments = []
    for segment in path.replace("\\", "/").split("/"):
        if segment in ("", "."):
            continue
        if segment == "..":
            return ""
        segments.append(segment)

    return "/".join(segments)


def strip_bundle_prefix(path: str) -> str:
    """Remove the leading `media/` directory exporters put in front of bundle paths."""
    if path.startswith(BUNDLE_PREFIX):
        return path[len(BUNDLE_PREFIX):]
    return path
