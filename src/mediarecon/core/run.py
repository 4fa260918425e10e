"""Per-run context passed through every reconciliation stage."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from .model import CollectorResult, Manifest, Resolution, ResolverResult, TransportMode
from .utils import url_host

if TYPE_CHECKING:
    from ..config import ReconConfig
    from ..reconcile.identity import IdentityMap


@dataclass
class RunStats:
    """Counters accumulated over one run."""

    downloaded: int = 0
    reused: int = 0
    updated_posts: int = 0
    meta_updates: int = 0
    content_updates: int = 0
    errors: int = 0
    blocked: int = 0
    conflicts: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class MediaPolicy:
    """Host allow-list and transport policy for a reconciler."""

    site_origin: str = ""
    mirror_domain: str = ""
    allow_external: bool = False
    transport_mode: TransportMode = "auto"
    storage_root: Path | None = None
    preserve_filenames: bool = True
    primary_visual_key: str = "_thumbnail_id"

    @classmethod
    def from_config(cls, config: ReconConfig) -> MediaPolicy:
        return cls(
            site_origin=config.site.origin,
            mirror_domain=config.media.mirror_domain,
            allow_external=config.media.allow_external,
            transport_mode=config.media.transport_mode,  # type: ignore[arg-type]
            storage_root=config.media.storage_root,
            preserve_filenames=config.media.preserve_filenames,
            primary_visual_key=config.media.primary_visual_key,
        )

    @property
    def allowed_hosts(self) -> set[str]:
        hosts = set()
        for origin in (self.site_origin, self.mirror_domain):
            host = url_host(origin) if "//" in origin else origin.strip().lower()
            if host:
                hosts.add(host)
        return hosts

    def is_source_allowed(self, url: str) -> bool:
        """
        Check a source URL against the host allow-list.

        URLs without a host (root-relative) are always allowed.
        """
        if not url:
            return False
        host = url_host(url)
        if not host:
            return True
        if self.allow_external:
            return True
        return host in self.allowed_hosts


@dataclass
class ReconciliationRun:
    """
    Everything one run mutates: identity map, statistics, queue state.

    Created by the engine for each manifest and discarded afterwards.
    """

    manifest: Manifest
    policy: MediaPolicy
    identity: IdentityMap
    run_scope_id: str = ""
    manifest_dir: Path | None = None
    stats: RunStats = field(default_factory=RunStats)
    collected: CollectorResult = field(default_factory=CollectorResult)
    resolver_result: ResolverResult = field(default_factory=ResolverResult)
    conflicts: dict[int, Resolution] = field(default_factory=dict)
    track_stats: bool = True

    @property
    def bundle_meta(self) -> dict[str, Any]:
        return self.manifest.media_bundle

    @property
    def transport_mode(self) -> TransportMode:
        return self.policy.transport_mode

    def pending_entries(self) -> list:
        """Queue entries still awaiting transport, excluding open conflicts."""
        return [
            entry for entry in self.collected.queue
            if entry.pending and entry.original_id not in self.conflicts
        ]
