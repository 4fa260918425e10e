"""Manifest loading and decoding."""

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from ..core.model import (
    AssetDescriptor,
    ContentItem,
    ContentReference,
    Manifest,
    MetaReference,
    to_int,
)
from ..errors import ManifestError

logger = logging.getLogger(__name__)


def load_manifest(path: Path) -> Manifest:
    """
    Read and decode a manifest JSON file.

    Raises:
        ManifestError: If the file cannot be read or is not a JSON object
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"Cannot read manifest {path}: {exc}") from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Manifest {path} is not valid JSON: {exc}") from exc

    manifest = parse_manifest(data)
    manifest.source_path = path
    return manifest


def parse_manifest(data: Any) -> Manifest:
    """
    Build a Manifest from decoded JSON.

    Malformed items and references are dropped; malformed asset descriptors
    are kept with ``original_id == 0`` so the collector can count them.

    Raises:
        ManifestError: If data is not a mapping
    """
    if not isinstance(data, Mapping):
        raise ManifestError("Manifest must be a JSON object")

    items = [
        item for item in (_parse_item(raw) for raw in _list(data.get("items")))
        if item is not None
    ]
    media_index = [AssetDescriptor.from_mapping(raw) for raw in _list(data.get("media_index"))]

    media_bundle = data.get("media_bundle")
    resolver_decisions = data.get("resolver_decisions")

    logger.debug("Parsed manifest: %d items, %d assets", len(items), len(media_index))
    return Manifest(
        items=items,
        media_index=media_index,
        media_bundle=dict(media_bundle) if isinstance(media_bundle, Mapping) else {},
        resolver_decisions=dict(resolver_decisions) if isinstance(resolver_decisions, Mapping) else {},
    )


def _list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _parse_item(raw: Any) -> ContentItem | None:
    if not isinstance(raw, Mapping):
        return None

    refs = raw.get("media_refs")
    refs = refs if isinstance(refs, Mapping) else {}

    meta_refs = []
    for ref in _list(refs.get("meta")):
        parsed = _parse_meta_ref(ref)
        if parsed is not None:
            meta_refs.append(parsed)

    content_refs = []
    for ref in _list(refs.get("content")):
        if not isinstance(ref, Mapping) or not isinstance(ref.get("original_url"), str):
            continue
        content_refs.append(ContentReference(
            original_url=ref["original_url"],
            original_id=to_int(ref.get("original_id")) or None,
        ))

    # Older manifests carry the content id as post_id.
    content_ref = to_int(raw.get("content_ref")) or to_int(raw.get("post_id"))
    uid = raw.get("uid") or raw.get("entity_uid") or ""

    return ContentItem(
        item_type=str(raw.get("item_type", "") or ""),
        content_ref=content_ref,
        uid=str(uid),
        post_type=str(raw.get("post_type", "") or ""),
        meta_refs=meta_refs,
        content_refs=content_refs,
    )


def _parse_meta_ref(ref: Any) -> MetaReference | None:
    if not isinstance(ref, Mapping):
        return None
    meta_key = ref.get("meta_key")
    if not isinstance(meta_key, str) or not meta_key:
        return None

    path = ref.get("path")
    return MetaReference(
        original_id=to_int(ref.get("original_id")),
        meta_key=meta_key,
        value_index=to_int(ref.get("value_index")),
        path=[seg for seg in path if isinstance(seg, (str, int))] if isinstance(path, list) else [],
        primary=bool(ref.get("primary", False)),
    )
