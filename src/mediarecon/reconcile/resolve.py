"""
Resolver phase: fold operator decisions and external matcher output into
the identity map and the candidate queue.

Precedence is an ordered list of strategies. Each strategy either returns
an outcome for a queue entry or ``None`` to defer to the next one:

1. run-scope decision
2. global decision
3. resolver verdict (``reused`` adopts the match, ``conflict`` is recorded)
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from ..core.model import (
    CandidateEntry,
    DecisionRecord,
    Manifest,
    Resolution,
    ResolverMetrics,
    ResolverPolicy,
    ResolverResult,
    to_int,
)
from ..core.ports import DecisionStore, ResolverService
from ..core.run import ReconciliationRun
from ..logging_utils import log_media
from .decisions import DecisionReader

logger = logging.getLogger(__name__)

LegacyGate = Callable[[list[CandidateEntry], ResolverResult], bool]


def should_run_legacy_sync(queue: list[CandidateEntry], result: ResolverResult) -> bool:
    """
    Decide whether bundled/remote transport should run at all.

    Runs whenever a queue entry is pending, unless the resolver reports
    nothing unresolved and its confident matches cover every detected
    asset. Forced downloads always run.
    """
    pending = [entry for entry in queue if entry.pending]
    if not pending:
        return False
    if any(entry.force_download for entry in pending):
        return True

    metrics = result.metrics
    if metrics.detected > 0 and metrics.unresolved == 0 and len(result.id_map) >= metrics.detected:
        return False
    return True


def parse_resolver_payload(data: Mapping[str, Any]) -> ResolverResult:
    """Convert a mapping-shaped resolver response into a ResolverResult."""
    result = ResolverResult()

    attachments = data.get("attachments") or {}
    if isinstance(attachments, Mapping):
        for key, raw in attachments.items():
            if not isinstance(raw, Mapping):
                continue
            descriptor = raw.get("descriptor")
            candidates = raw.get("candidates")
            result.attachments[str(key)] = Resolution(
                status=str(raw.get("status", "unresolved")),
                target_id=to_int(raw.get("target_id")) or None,
                descriptor=dict(descriptor) if isinstance(descriptor, Mapping) else {},
                reason=raw.get("reason"),
                candidates=[to_int(c) for c in candidates] if isinstance(candidates, list) else [],
                resolved_via=raw.get("resolved_via"),
                bundle_hit=bool(raw.get("bundle_hit", False)),
            )

    metrics = data.get("metrics") or {}
    if isinstance(metrics, Mapping):
        result.metrics = ResolverMetrics(
            detected=to_int(metrics.get("detected")),
            reused=to_int(metrics.get("reused")),
            unresolved=to_int(metrics.get("unresolved")),
            downloaded=to_int(metrics.get("downloaded")),
            blocked=to_int(metrics.get("blocked")),
            bundle_hits=to_int(metrics.get("bundle_hits")),
        )

    id_map = data.get("id_map") or {}
    if isinstance(id_map, Mapping):
        for original_id, local_id in id_map.items():
            oid, lid = to_int(original_id), to_int(local_id)
            if oid and lid:
                result.id_map[oid] = lid

    result.conflicts = [
        res for res in result.attachments.values() if res.status == "conflict"
    ]
    return result


# ============================================================================
# STRATEGIES
# ============================================================================

class ResolutionStrategy(Protocol):
    name: str
    from_decision: bool

    def apply(
        self, run: ReconciliationRun, entry: CandidateEntry, resolution: Resolution | None
    ) -> str | None:
        pass


def _adopt(run: ReconciliationRun, entry: CandidateEntry, local_id: int, outcome: str) -> str:
    """Map an entry to an existing local asset."""
    if entry.handled and entry.local_id == local_id:
        return entry.outcome
    if not run.identity.set_mapping(entry.original_id, local_id):
        return "refused"
    run.identity.register_url(entry.source_url, local_id)
    entry.mark_handled(outcome, local_id)  # type: ignore[arg-type]
    run.stats.reused += 1
    return outcome


def _release(run: ReconciliationRun, entry: CandidateEntry) -> None:
    """Undo the mapping an entry holds, including one primed from an earlier run."""
    run.identity.release(entry.original_id)
    if entry.local_id is not None and entry.outcome in ("reused", "mapped") and run.stats.reused > 0:
        run.stats.reused -= 1
    entry.local_id = None


class DecisionStrategy:
    """Apply a decision record from one scope."""

    from_decision = True

    def __init__(self, name: str, lookup: Callable[[int], DecisionRecord | None]):
        self.name = name
        self.lookup = lookup

    def apply(
        self, run: ReconciliationRun, entry: CandidateEntry, resolution: Resolution | None
    ) -> str | None:
        decision = self.lookup(entry.original_id)
        if decision is None:
            return None

        log_media(
            logger, "media:resolve", "Applying resolver decision",
            original_id=entry.original_id, action=decision.action,
            target_id=decision.target_id, scope=decision.scope,
        )

        if decision.action in ("reuse", "map"):
            outcome = "reused" if decision.action == "reuse" else "mapped"
            target_id = decision.target_id or 0
            if entry.local_id is not None and entry.local_id != target_id:
                _release(run, entry)
            return _adopt(run, entry, target_id, outcome)

        if decision.action == "skip":
            _release(run, entry)
            entry.mark_handled("skipped")
            return "skipped"

        # download: reopen the entry so transport re-fetches it
        if entry.force_download:
            return "forced"
        _release(run, entry)
        entry.force()
        run.collected.requeue(entry)
        run.conflicts.pop(entry.original_id, None)
        return "forced"


class ResolverVerdictStrategy:
    """Adopt confident resolver matches; record conflicts without acting on them."""

    name = "resolver"
    from_decision = False

    def apply(
        self, run: ReconciliationRun, entry: CandidateEntry, resolution: Resolution | None
    ) -> str | None:
        if resolution is None or entry.handled:
            return None

        if resolution.status == "reused" and resolution.target_id:
            return _adopt(run, entry, resolution.target_id, "reused")

        if resolution.status == "conflict":
            run.conflicts[entry.original_id] = resolution
            run.stats.conflicts += 1
            log_media(
                logger, "media:resolve", "Resolver conflict requires a decision",
                level=logging.WARNING,
                original_id=entry.original_id,
                reason=resolution.reason,
                candidates=list(resolution.candidates),
            )
            return "conflict"

        return None


# ============================================================================
# ADAPTER
# ============================================================================

class ResolverAdapter:
    """
    Invoke the resolver service once and apply its output to a run.
    """

    def __init__(
        self,
        service: ResolverService | None,
        decisions: DecisionStore | None = None,
    ):
        self.service = service
        self.decisions = decisions

    def strategies(self, run: ReconciliationRun) -> list[ResolutionStrategy]:
        reader = DecisionReader(self.decisions, run.run_scope_id)
        return [
            DecisionStrategy("run-scope", reader.for_run),
            DecisionStrategy("global", reader.for_global),
            ResolverVerdictStrategy(),
        ]

    def invoke(self, manifest: Manifest, policy: ResolverPolicy) -> ResolverResult:
        """Call the service; any failure degrades to an empty result."""
        if self.service is None:
            return ResolverResult()
        try:
            raw = self.service.resolve_manifest(manifest, policy)
        except Exception as exc:
            log_media(
                logger, "media:resolve", "Resolver call failed; continuing with legacy transport",
                level=logging.ERROR, error=str(exc), error_type=type(exc).__name__,
            )
            return ResolverResult()

        if isinstance(raw, ResolverResult):
            return raw
        if isinstance(raw, Mapping):
            return parse_resolver_payload(raw)

        log_media(
            logger, "media:resolve", "Resolver returned an unexpected payload",
            level=logging.ERROR, payload_type=type(raw).__name__,
        )
        return ResolverResult()

    def run(self, run: ReconciliationRun) -> ResolverResult:
        """
        Apply decisions and resolver output to the run's queue.

        Args:
            run: Current run (collector already executed)

        Returns:
            The resolver result, also stored on ``run.resolver_result``
        """
        policy = ResolverPolicy(
            allow_remote=run.policy.allow_external,
            run_scope_id=run.run_scope_id,
            bundle_meta=dict(run.bundle_meta),
            storage_root=run.policy.storage_root,
            manifest_dir=run.manifest_dir,
        )
        result = self.invoke(run.manifest, policy)
        run.resolver_result = result

        strategies = self.strategies(run)
        decided: set[int] = set()
        visited: set[int] = set()

        for resolution in result.attachments.values():
            original_id = resolution.original_id
            entry = run.collected.entry_for(original_id) if original_id else None
            if entry is None or original_id in visited:
                continue
            visited.add(original_id)
            if self._evaluate(strategies, run, entry, resolution):
                decided.add(original_id)

        # Entries the resolver did not report on still honor decisions.
        for entry in list(run.collected.queue) + list(run.collected.resolved):
            if entry.original_id in visited:
                continue
            visited.add(entry.original_id)
            if self._evaluate(strategies, run, entry, None):
                decided.add(entry.original_id)

        applied = 0
        for original_id, local_id in result.id_map.items():
            oid = to_int(original_id)
            if not oid or oid in decided or oid in run.conflicts:
                continue
            entry = run.collected.entry_for(oid)
            if entry is None or entry.handled:
                continue
            if _adopt(run, entry, to_int(local_id), "reused") == "reused":
                applied += 1

        log_media(
            logger, "media:resolve", "Resolver output applied",
            attachments=len(result.attachments),
            decided=len(decided),
            id_map_applied=applied,
            conflicts=len(run.conflicts),
            metrics=vars(result.metrics),
        )
        return result

    @staticmethod
    def _evaluate(
        strategies: list[ResolutionStrategy],
        run: ReconciliationRun,
        entry: CandidateEntry,
        resolution: Resolution | None,
    ) -> bool:
        """Run strategies in priority order; True if a decision settled the entry."""
        for strategy in strategies:
            outcome = strategy.apply(run, entry, resolution)
            if outcome is not None:
                return strategy.from_decision
        return False
