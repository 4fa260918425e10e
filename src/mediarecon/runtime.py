"""Runtime wiring helper for embedding applications."""

from dataclasses import dataclass
from pathlib import Path

from .adapters.fs_content import FsContentStore
from .adapters.http_fetch import RequestsFetcher
from .adapters.json_state import JsonIdentityState
from .adapters.sqlite_assets import SQLiteAssetStore
from .adapters.store_resolver import StoreResolver
from .adapters.yaml_decisions import YamlDecisionStore
from .config import ReconConfig, load_config
from .core.run import MediaPolicy
from .logging_utils import configure_logging
from .reconcile.engine import MediaReconciler, ReconcileReport
from .reconcile.manifest import load_manifest


@dataclass
class Runtime:
    """Container for all wired components."""
    reconciler: MediaReconciler
    assets: SQLiteAssetStore
    content: FsContentStore
    decisions: YamlDecisionStore
    identity_state: JsonIdentityState
    config: ReconConfig

    def sync_manifest_file(self, path: Path, run_scope_id: str = "") -> ReconcileReport:
        """Import the manifest's resolver decisions, then reconcile it."""
        manifest = load_manifest(path)
        self.decisions.import_from_manifest(manifest.resolver_decisions, run_scope_id)
        return self.reconciler.sync_manifest_media(manifest, run_scope_id, path.parent)


def build_runtime(
    config_path: Path | None = None,
    root_path: Path | None = None,
    configure_logs: bool = True,
) -> Runtime:
    """Build and wire all components for a site root."""
    config = load_config(config_path=config_path, root_path=root_path)

    if configure_logs:
        configure_logging(config.logging.level, json_output=config.logging.json)

    assets = SQLiteAssetStore(
        db_path=config.site.db,
        uploads_dir=config.site.uploads_dir,
        uploads_url=config.site.uploads_url,
    )
    content = FsContentStore(config.site.content_dir)
    decisions = YamlDecisionStore(config.state.decisions)
    identity_state = JsonIdentityState(config.state.identity)

    reconciler = MediaReconciler(
        assets=assets,
        content=content,
        policy=MediaPolicy.from_config(config),
        identity_state=identity_state,
        decisions=decisions,
        resolver=StoreResolver(assets),
        fetcher=RequestsFetcher(timeout=config.media.fetch_timeout),
    )

    return Runtime(
        reconciler=reconciler,
        assets=assets,
        content=content,
        decisions=decisions,
        identity_state=identity_state,
        config=config,
    )
