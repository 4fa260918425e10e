"""
Pipeline orchestration for one reconciliation run.

Collector -> Resolver Adapter -> Bundled -> Remote -> Reference Rewriter,
then the identity map is persisted and the statistics returned.
"""

import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from ..core.model import BlockedAsset, Manifest, ResolverResult
from ..core.ports import AssetStore, ContentStore, DecisionStore, Fetcher, IdentityState, ResolverService
from ..core.run import MediaPolicy, ReconciliationRun, RunStats
from ..logging_utils import log_media
from .bundled import BundleLocator, run_bundled_stage
from .collect import collect_candidates, prime_existing_mappings
from .identity import IdentityMap
from .manifest import load_manifest
from .remote import run_remote_stage
from .resolve import LegacyGate, ResolverAdapter, should_run_legacy_sync
from .rewrite import ReferenceRewriter

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    """Outcome of one run: statistics plus the resolver's raw result."""

    stats: RunStats
    resolver: ResolverResult
    blocked: list[BlockedAsset] = field(default_factory=list)
    skipped_existing: int = 0
    total_detected: int = 0
    queued: int = 0
    transport_ran: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.stats.as_dict(),
            "resolver": self.resolver.to_dict(),
            "blocked_assets": [asdict(b) for b in self.blocked],
            "skipped_existing": self.skipped_existing,
            "total_detected": self.total_detected,
            "queued": self.queued,
        }


class MediaReconciler:
    """
    Reconcile a manifest's media into local stores.

    Collaborators are injected; each call to ``sync_manifest_media`` builds
    a fresh ReconciliationRun, so one reconciler can process many manifests
    sequentially.
    """

    def __init__(
        self,
        assets: AssetStore,
        content: ContentStore,
        policy: MediaPolicy,
        identity_state: IdentityState | None = None,
        decisions: DecisionStore | None = None,
        resolver: ResolverService | None = None,
        fetcher: Fetcher | None = None,
        legacy_gate: LegacyGate = should_run_legacy_sync,
    ):
        self.assets = assets
        self.content = content
        self.policy = policy
        self.identity_state = identity_state
        self.decisions = decisions
        self.resolver = resolver
        self.fetcher = fetcher
        self.legacy_gate = legacy_gate

    def _new_run(
        self,
        manifest: Manifest,
        run_scope_id: str,
        manifest_dir: Path | None,
        track_stats: bool = True,
    ) -> ReconciliationRun:
        if manifest_dir is None and manifest.source_path is not None:
            manifest_dir = manifest.source_path.parent
        return ReconciliationRun(
            manifest=manifest,
            policy=self.policy,
            identity=IdentityMap(self.identity_state),
            run_scope_id=run_scope_id,
            manifest_dir=manifest_dir,
            track_stats=track_stats,
        )

    def sync_manifest_media(
        self,
        manifest: Manifest,
        run_scope_id: str = "",
        manifest_dir: Path | None = None,
    ) -> ReconcileReport:
        """
        Run the full pipeline for one manifest.

        Args:
            manifest: Decoded manifest
            run_scope_id: Decision bucket for this run (e.g. a proposal id)
            manifest_dir: Directory bundle paths are relative to; defaults
                to the manifest file's directory

        Returns:
            ReconcileReport with statistics and the resolver result
        """
        run = self._new_run(manifest, run_scope_id, manifest_dir)

        prime_existing_mappings(run, self.assets)
        collected = collect_candidates(run)

        result = ResolverAdapter(self.resolver, self.decisions).run(run)

        transport_ran = self.legacy_gate(collected.queue, result)
        if transport_ran:
            run_bundled_stage(run, self.assets, BundleLocator.for_run(run))
            if self.fetcher is not None:
                run_remote_stage(run, self.assets, self.fetcher)
            elif run.transport_mode != "bundled" and run.pending_entries():
                log_media(
                    logger, "media:download", "No fetcher configured; remote transport skipped",
                    level=logging.WARNING, pending=len(run.pending_entries()),
                )
        else:
            log_media(
                logger, "media:resolve", "Resolver covered all assets; transport skipped",
                detected=result.metrics.detected,
            )

        ReferenceRewriter(self.assets, self.content, self.policy.primary_visual_key).apply(run)
        run.identity.persist()

        log_media(
            logger, "media:map", "Reconciliation run complete",
            run_scope_id=run_scope_id, **run.stats.as_dict(),
        )

        return ReconcileReport(
            stats=run.stats,
            resolver=result,
            blocked=list(collected.blocked),
            skipped_existing=collected.skipped_existing,
            total_detected=collected.total_detected,
            queued=len(collected.queue),
            transport_ran=transport_ran,
        )

    def sync_manifest_file(self, path: Path, run_scope_id: str = "") -> ReconcileReport:
        """Load a manifest JSON file and reconcile it; ManifestError propagates."""
        manifest = load_manifest(path)
        return self.sync_manifest_media(manifest, run_scope_id, path.parent)

    def preview_manifest_media(
        self,
        manifest: Manifest,
        limit: int | None = 20,
        run_scope_id: str = "",
    ) -> dict[str, Any]:
        """
        Show what a run would transport, without transporting or persisting.

        Args:
            manifest: Decoded manifest
            limit: Maximum number of queue entries returned (None or 0 for all)

        Returns:
            Dict with total_candidates, preview_items, blocked,
            skipped_existing and total_detected
        """
        run = self._new_run(manifest, run_scope_id, None, track_stats=False)
        prime_existing_mappings(run, self.assets)
        collected = collect_candidates(run)

        items = collected.queue
        if limit:
            items = items[:limit]

        return {
            "total_candidates": len(collected.queue),
            "preview_items": [asdict(entry) for entry in items],
            "blocked": [asdict(b) for b in collected.blocked],
            "skipped_existing": collected.skipped_existing,
            "total_detected": collected.total_detected,
        }

    def cleanup(self) -> None:
        """Forget all persisted identity mappings."""
        if self.identity_state is not None:
            self.identity_state.clear()
        log_media(logger, "media:map", "Persisted identity map cleared")
