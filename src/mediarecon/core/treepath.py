"""
Typed paths into JSON-like metadata values.

A recorded path is a list of raw segments (ints or strings) captured at
export time. ``parse_path`` turns it into typed accessors: ``Index`` for
positional segments and ``Key`` for mapping keys. ``replace_in`` walks a
value along such a path and returns a *new* value with the terminal scalar
replaced; the input is never mutated. When the path no longer matches the
value's shape, ``MISSING`` is returned instead of raising.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Union


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


@dataclass(frozen=True)
class Key:
    """Mapping key accessor."""
    name: str


@dataclass(frozen=True)
class Index:
    """Positional accessor; also matches integer-like mapping keys."""
    position: int


Segment = Union[Key, Index]


def parse_path(raw: Iterable[Any]) -> list[Segment]:
    """
    Convert recorded path segments into typed accessors.

    Integers and all-digit strings become ``Index``; everything else
    becomes ``Key``.

    Examples:
        >>> parse_path(["rows", "0", 2, "image"])
        [Key(name='rows'), Index(position=0), Index(position=2), Key(name='image')]
    """
    segments: list[Segment] = []
    for segment in raw:
        if isinstance(segment, bool):
            segments.append(Key(str(segment).lower()))
        elif isinstance(segment, int):
            segments.append(Index(segment))
        elif isinstance(segment, str) and segment.isdigit():
            segments.append(Index(int(segment)))
        else:
            segments.append(Key(str(segment)))
    return segments


def _locate(container: Any, segment: Segment) -> tuple[bool, Any]:
    """Find the concrete key/index for a segment in a container."""
    if isinstance(container, list):
        if isinstance(segment, Index) and 0 <= segment.position < len(container):
            return True, segment.position
        return False, None

    if isinstance(container, dict):
        if isinstance(segment, Key):
            if segment.name in container:
                return True, segment.name
            return False, None
        if segment.position in container:
            return True, segment.position
        if str(segment.position) in container:
            return True, str(segment.position)

    return False, None


def coerce_like(old: Any, new_value: int) -> Any:
    """
    Shape new_value like the scalar it replaces.

    Strings stay strings and integers stay integers. Containers and booleans
    are not identifier slots, so they yield MISSING.
    """
    if isinstance(old, bool) or isinstance(old, (dict, list)):
        return MISSING
    if isinstance(old, str):
        return str(new_value)
    if isinstance(old, (int, float)):
        return int(new_value)
    return new_value


def replace_in(value: Any, path: list[Segment], new_value: int) -> Any:
    """
    Return a copy of value with the scalar at path replaced.

    Args:
        value: JSON-like value (dict / list / scalar)
        path: Typed accessors from ``parse_path``
        new_value: Replacement identifier

    Returns:
        The rewritten value, or MISSING if the path does not resolve
    """
    if not path:
        return coerce_like(value, new_value)

    found, key = _locate(value, path[0])
    if not found:
        return MISSING

    child = replace_in(value[key], path[1:], new_value)
    if child is MISSING:
        return MISSING

    copy = list(value) if isinstance(value, list) else dict(value)
    copy[key] = child
    return copy
