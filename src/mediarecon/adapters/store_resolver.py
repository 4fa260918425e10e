"""Default resolver service backed by the local asset store's markers."""

import logging

from ..core.model import (
    AssetDescriptor,
    Manifest,
    Resolution,
    ResolverMetrics,
    ResolverPolicy,
    ResolverResult,
)
from ..core.utils import (
    DEFAULT_HASH_ALGORITHM,
    clean_url,
    normalize_hash,
    sanitize_file_name,
    sanitize_relative_reference,
    strip_bundle_prefix,
)
from ..reconcile.bundled import BundleLocator
from .sqlite_assets import SQLiteAssetStore

logger = logging.getLogger(__name__)


class StoreResolver:
    """
    Match manifest assets against existing local records.

    Priority: asset UID, then file hash, then stored path. A unique match is
    ``reused``; several matches are a ``conflict``. A filename-only match is
    always a conflict (``ambiguous_filename``). Unmatched assets become
    ``needs_download`` when they have a source URL, ``missing`` otherwise.
    """

    def __init__(self, assets: SQLiteAssetStore):
        self.assets = assets

    def resolve_manifest(self, manifest: Manifest, policy: ResolverPolicy) -> ResolverResult:
        result = ResolverResult()
        metrics = ResolverMetrics()
        locator = BundleLocator(
            storage_root=policy.storage_root,
            run_scope_id=policy.run_scope_id,
            bundle_meta=policy.bundle_meta,
            manifest_dir=policy.manifest_dir,
        )

        for descriptor in manifest.media_index:
            if not descriptor.original_id:
                continue
            metrics.detected += 1

            resolution = self.resolve_descriptor(descriptor, locator)
            if resolution.bundle_hit:
                metrics.bundle_hits += 1

            if resolution.status == "reused":
                metrics.reused += 1
                if resolution.target_id:
                    result.id_map[descriptor.original_id] = resolution.target_id
            elif resolution.status == "needs_download" and policy.allow_remote:
                metrics.downloaded += 1
            else:
                metrics.unresolved += 1
                if resolution.status == "conflict":
                    result.conflicts.append(resolution)

            result.attachments[str(descriptor.original_id)] = resolution

        result.metrics = metrics
        logger.debug("Store resolver metrics: %s", metrics)
        return result

    def resolve_descriptor(self, descriptor: AssetDescriptor, locator: BundleLocator) -> Resolution:
        asset_uid = descriptor.asset_uid.strip()
        file_hash = normalize_hash(descriptor.hash)
        path = sanitize_relative_reference(descriptor.bundle_path or descriptor.relative_path)
        filename = sanitize_file_name(descriptor.filename)
        source_url = clean_url(descriptor.source_url)

        info = descriptor.to_dict()

        def matched(candidates: list[int], via: str, conflict_reason: str) -> Resolution:
            if len(candidates) == 1:
                return Resolution(
                    status="reused",
                    target_id=candidates[0],
                    descriptor=info,
                    candidates=candidates,
                    resolved_via=via,
                    bundle_hit=bool(path) and locator.locate(path) is not None,
                )
            return Resolution(
                status="conflict", descriptor=info, reason=conflict_reason, candidates=candidates,
            )

        if asset_uid:
            candidates = self.assets.find_by_marker("asset_uid", asset_uid)
            if candidates:
                return matched(candidates, "asset_uid", "duplicate_asset_uid")

        if file_hash:
            candidates = self._find_by_hash(file_hash)
            if candidates:
                resolution = matched(candidates, "file_hash", "duplicate_hash")
                if resolution.target_id and asset_uid:
                    self._backfill(resolution.target_id, "asset_uid", asset_uid)
                return resolution

        if path:
            candidates = self._find_by_path(path)
            if candidates:
                resolution = matched(candidates, "relative_path", "duplicate_path")
                if resolution.target_id:
                    if asset_uid:
                        self.assets.set_marker(resolution.target_id, "asset_uid", asset_uid)
                    if file_hash:
                        self.assets.set_marker(resolution.target_id, "file_hash", file_hash)
                return resolution

        if filename:
            candidates = self.assets.find_by_filename(filename)
            if candidates:
                return Resolution(
                    status="conflict", descriptor=info, reason="ambiguous_filename", candidates=candidates,
                )

        if source_url:
            return Resolution(
                status="needs_download", descriptor=info, reason="not_found_locally", resolved_via="remote",
            )
        return Resolution(status="missing", descriptor=info, reason="no_match")

    def _find_by_hash(self, file_hash: str) -> list[int]:
        candidates = self.assets.find_by_marker("file_hash", file_hash)
        if candidates:
            return candidates
        # Records written without an algorithm prefix
        algorithm, _, digest = file_hash.partition(":")
        if algorithm == DEFAULT_HASH_ALGORITHM:
            return self.assets.find_by_marker("file_hash", digest)
        return []

    def _find_by_path(self, path: str) -> list[int]:
        candidates = self.assets.find_by_marker("attached_file", path)
        stripped = strip_bundle_prefix(path)
        if not candidates and stripped != path:
            candidates = self.assets.find_by_marker("attached_file", stripped)
        return candidates

    def _backfill(self, asset_id: int, key: str, value: str) -> None:
        existing = self.assets.get(asset_id)
        if existing is not None and not getattr(existing, key, ""):
            self.assets.set_marker(asset_id, key, value)
