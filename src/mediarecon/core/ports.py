from pathlib import Path
from typing import Any, Protocol

from .model import (
    AssetId,
    CandidateEntry,
    ContentId,
    DecisionRecord,
    LocalAsset,
    Manifest,
    ResolverPolicy,
    ResolverResult,
)


class AssetStore(Protocol):
    """
    Local asset records plus the files they point at.

    Records carry string markers (original_id, source_url, asset_uid,
    file_hash, attached_file) used for idempotent lookup.
    """

    def get(self, asset_id: AssetId) -> LocalAsset | None:
        pass

    def find_by_original_id(self, original_id: int) -> AssetId | None:
        pass

    def find_by_marker(self, key: str, value: str) -> list[AssetId]:
        pass

    def set_marker(self, asset_id: AssetId, key: str, value: str) -> None:
        pass

    def materialize(
        self, source: Path, entry: CandidateEntry, filename: str | None = None
    ) -> LocalAsset:
        pass

    def url_for(self, asset_id: AssetId) -> str | None:
        pass


class ContentStore(Protocol):
    """
    Content records with multi-valued metadata and a rich-text body.
    """

    def resolve_local_id(
        self, uid: str, original_id: int, content_type: str = ""
    ) -> ContentId | None:
        pass

    def set_primary_visual(self, content_id: ContentId, key: str, asset_id: AssetId) -> bool:
        pass

    def get_meta_values(self, content_id: ContentId, key: str) -> list[Any]:
        pass

    def update_meta_value(
        self, content_id: ContentId, key: str, index: int, new_value: Any, prev_value: Any
    ) -> bool:
        """Compare-and-swap one value; False if the stored value changed."""
        pass

    def get_body(self, content_id: ContentId) -> str | None:
        pass

    def update_body(self, content_id: ContentId, body: str) -> None:
        pass


class ResolverService(Protocol):
    """
    External matcher. Invoked once per run.
    """

    def resolve_manifest(self, manifest: Manifest, policy: ResolverPolicy) -> ResolverResult:
        pass


class DecisionStore(Protocol):
    """
    Read-only view of operator decisions, keyed by scope then original id.
    """

    def get(self, scope_key: str, original_id: int) -> DecisionRecord | None:
        pass


class Fetcher(Protocol):
    def fetch(self, url: str) -> Path:
        """Download url into a temporary file and return its path."""
        pass


class IdentityState(Protocol):
    """
    Cross-run persistence for the identity map.
    """

    def load(self) -> tuple[dict[int, AssetId], dict[str, AssetId]]:
        pass

    def save(self, id_map: dict[int, AssetId], url_map: dict[str, AssetId]) -> None:
        pass

    def clear(self) -> None:
        pass
