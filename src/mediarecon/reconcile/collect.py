"""Collect phase: prime existing mappings and build the candidate queue."""

import logging

from ..core.model import AssetDescriptor, BlockedAsset, CandidateEntry, CollectorResult
from ..core.ports import AssetStore
from ..core.run import ReconciliationRun
from ..core.utils import (
    clean_url,
    normalize_hash,
    sanitize_file_name,
    sanitize_relative_reference,
    sanitize_text,
    url_host,
)
from ..logging_utils import log_media

logger = logging.getLogger(__name__)


def prime_existing_mappings(run: ReconciliationRun, assets: AssetStore) -> int:
    """
    Seed the identity map from assets materialized by earlier runs.

    A persisted mapping counts when its local asset still exists; otherwise
    it is dropped and the store is searched for a record stamped with the
    descriptor's original id.

    Args:
        run: Current run
        assets: Local asset store

    Returns:
        Number of descriptors resolved by priming
    """
    primed = 0
    seen: set[int] = set()

    for descriptor in run.manifest.media_index:
        original_id = descriptor.original_id
        if not original_id or original_id in seen:
            continue
        seen.add(original_id)

        if run.identity.is_assigned(original_id):
            continue

        local_id = run.identity.get_local_id(original_id)
        if local_id is not None and assets.get(local_id) is None:
            log_media(
                logger, "media:collect", "Dropping stale mapping",
                level=logging.DEBUG, original_id=original_id, local_id=local_id,
            )
            run.identity.forget(original_id)
            local_id = None

        if local_id is None:
            local_id = assets.find_by_original_id(original_id)
        if local_id is None:
            continue

        if not run.identity.set_mapping(original_id, local_id):
            continue
        run.identity.register_url(descriptor.source_url, local_id)
        primed += 1
        if run.track_stats:
            run.stats.reused += 1

    if primed:
        log_media(logger, "media:collect", "Primed existing mappings", primed=primed)
    return primed


def normalize_entry(descriptor: AssetDescriptor) -> CandidateEntry:
    """Build a queue entry with sanitized, normalized fields."""
    source_url = clean_url(descriptor.source_url)
    bundle_ref = descriptor.bundle_path or descriptor.relative_path
    return CandidateEntry(
        original_id=descriptor.original_id,
        asset_uid=sanitize_text(descriptor.asset_uid),
        source_url=source_url,
        source_host=url_host(source_url),
        relative_path=sanitize_relative_reference(bundle_ref),
        content_hash=normalize_hash(descriptor.hash),
        mime_type=sanitize_text(descriptor.mime_type),
        title=sanitize_text(descriptor.title),
        filename=sanitize_file_name(descriptor.filename),
        filesize=descriptor.filesize,
    )


def collect_candidates(run: ReconciliationRun) -> CollectorResult:
    """
    Classify every asset descriptor as resolved, blocked, or queued.

    Args:
        run: Current run (identity map already primed)

    Returns:
        CollectorResult; the same object is stored on ``run.collected``
    """
    result = CollectorResult()
    seen: set[int] = set()

    for descriptor in run.manifest.media_index:
        result.total_detected += 1

        original_id = descriptor.original_id
        if not original_id or original_id in seen:
            result.discarded += 1
            continue
        seen.add(original_id)

        entry = normalize_entry(descriptor)

        local_id = run.identity.get_local_id(original_id)
        if local_id is not None:
            entry.mark_handled("reused", local_id)
            result.resolved.append(entry)
            result.skipped_existing += 1
            continue

        if not entry.source_url and not entry.relative_path:
            result.discarded += 1
            log_media(
                logger, "media:collect", "Descriptor has no usable source",
                level=logging.DEBUG, original_id=original_id,
            )
            continue

        if entry.source_url and not run.policy.is_source_allowed(entry.source_url):
            result.blocked.append(BlockedAsset(
                original_id=original_id,
                source_url=entry.source_url,
                reason="host_not_allowed",
            ))
            log_media(
                logger, "media:collect", "Source host not allowed",
                level=logging.WARNING,
                original_id=original_id, source_url=entry.source_url,
            )
            continue

        result.queue.append(entry)

    if run.track_stats:
        run.stats.blocked = len(result.blocked)

    log_media(
        logger, "media:collect", "Collected media candidates",
        total_detected=result.total_detected,
        queued=len(result.queue),
        skipped_existing=result.skipped_existing,
        blocked=len(result.blocked),
        discarded=result.discarded,
    )

    run.collected = result
    return result
