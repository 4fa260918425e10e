from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Literal, Mapping

AssetId = int
ContentId = str

TransportMode = Literal["auto", "bundled", "remote"]
DecisionAction = Literal["reuse", "map", "skip", "download"]
DecisionScope = Literal["run", "global"]
Outcome = Literal["queued", "reused", "mapped", "skipped", "downloaded", "error"]

DECISION_ACTIONS = ("reuse", "map", "skip", "download")
GLOBAL_SCOPE = "__global"


def to_int(value: Any) -> int:
    """Lenient integer coercion; anything unusable becomes 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value if value > 0 else 0
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return 0


def _str(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    return value if isinstance(value, str) else ""


@dataclass
class AssetDescriptor:
    """One referenced binary asset as seen at export time."""

    original_id: int
    asset_uid: str = ""
    source_url: str = ""
    relative_path: str = ""
    bundle_path: str = ""
    hash: str = ""
    mime_type: str = ""
    filename: str = ""
    title: str = ""
    filesize: int | None = None

    @classmethod
    def from_mapping(cls, data: Any) -> AssetDescriptor:
        if not isinstance(data, Mapping):
            return cls(original_id=0)
        filesize = to_int(data.get("filesize"))
        return cls(
            original_id=to_int(data.get("original_id")),
            asset_uid=_str(data, "asset_uid"),
            source_url=_str(data, "source_url"),
            relative_path=_str(data, "relative_path"),
            bundle_path=_str(data, "bundle_path"),
            hash=_str(data, "hash") or _str(data, "file_hash"),
            mime_type=_str(data, "mime_type"),
            filename=_str(data, "filename"),
            title=_str(data, "title"),
            filesize=filesize or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class LocalAsset:
    """A materialized asset in the target store."""

    id: AssetId
    path: str  # relative to the uploads directory
    original_id: int | None = None
    asset_uid: str = ""
    source_url: str = ""
    content_hash: str = ""
    filesize: int | None = None
    mime_type: str = ""
    title: str = ""


@dataclass
class CandidateEntry:
    """Per-run processing unit for one asset."""

    original_id: int
    asset_uid: str = ""
    source_url: str = ""
    source_host: str = ""
    relative_path: str = ""  # sanitized bundle reference
    content_hash: str = ""  # "algorithm:hexdigest"
    mime_type: str = ""
    title: str = ""
    filename: str = ""
    filesize: int | None = None
    handled: bool = False
    force_download: bool = False
    local_id: AssetId | None = None
    outcome: Outcome = "queued"

    @property
    def pending(self) -> bool:
        return not self.handled

    def mark_handled(self, outcome: Outcome, local_id: AssetId | None = None) -> None:
        self.handled = True
        self.outcome = outcome
        if local_id is not None:
            self.local_id = local_id

    def force(self) -> bool:
        """
        Reopen the entry for download. Allowed once per run.

        Returns:
            True if the entry was reopened, False if it was already forced
        """
        if self.force_download:
            return False
        self.force_download = True
        self.handled = False
        self.local_id = None
        self.outcome = "queued"
        return True


@dataclass
class BlockedAsset:
    """An asset that failed host policy and is never transported."""

    original_id: int
    source_url: str
    reason: str = "host_not_allowed"


@dataclass
class CollectorResult:
    """Output of the candidate collector."""

    queue: list[CandidateEntry] = field(default_factory=list)
    blocked: list[BlockedAsset] = field(default_factory=list)
    skipped_existing: int = 0
    total_detected: int = 0
    resolved: list[CandidateEntry] = field(default_factory=list)  # skipped, already mapped
    discarded: int = 0

    def entry_for(self, original_id: int) -> CandidateEntry | None:
        for entry in self.queue:
            if entry.original_id == original_id:
                return entry
        for entry in self.resolved:
            if entry.original_id == original_id:
                return entry
        return None

    def requeue(self, entry: CandidateEntry) -> None:
        """Move a resolved entry back into the queue."""
        if entry in self.resolved:
            self.resolved.remove(entry)
            self.skipped_existing -= 1
        if entry not in self.queue:
            self.queue.append(entry)


@dataclass(frozen=True)
class DecisionRecord:
    """An explicit override for one original asset id."""

    original_id: int
    action: DecisionAction
    target_id: AssetId | None = None
    scope: DecisionScope = "run"
    note: str = ""

    @classmethod
    def from_mapping(
        cls, original_id: Any, data: Any, scope: DecisionScope
    ) -> DecisionRecord | None:
        """Build a record from stored data; returns None if it is unusable."""
        oid = to_int(original_id)
        if not oid or not isinstance(data, Mapping):
            return None
        action = str(data.get("action", "")).strip().lower()
        if action not in DECISION_ACTIONS:
            return None
        target_id = to_int(data.get("target_id")) or None
        if action in ("reuse", "map") and target_id is None:
            return None
        return cls(
            original_id=oid,
            action=action,  # type: ignore[arg-type]
            target_id=target_id,
            scope=scope,
            note=str(data.get("note", "") or ""),
        )


@dataclass
class MetaReference:
    """Asset pointer inside structured metadata."""

    original_id: int
    meta_key: str
    value_index: int = 0
    path: list[str | int] = field(default_factory=list)
    primary: bool = False


@dataclass
class ContentReference:
    """Literal asset URL inside a rich-text body."""

    original_url: str
    original_id: int | None = None


@dataclass
class ContentItem:
    """One exported content item with its media references."""

    item_type: str
    content_ref: int = 0
    uid: str = ""
    post_type: str = ""
    meta_refs: list[MetaReference] = field(default_factory=list)
    content_refs: list[ContentReference] = field(default_factory=list)

    @property
    def content_type(self) -> str:
        return self.post_type or self.item_type

    @property
    def has_media_refs(self) -> bool:
        return bool(self.meta_refs or self.content_refs)


@dataclass
class Manifest:
    """One exported snapshot."""

    items: list[ContentItem] = field(default_factory=list)
    media_index: list[AssetDescriptor] = field(default_factory=list)
    media_bundle: dict[str, Any] = field(default_factory=dict)
    resolver_decisions: dict[str, Any] = field(default_factory=dict)
    source_path: Path | None = None


# ============================================================================
# RESOLVER CONTRACT
# ============================================================================

@dataclass
class ResolverPolicy:
    allow_remote: bool = False
    run_scope_id: str = ""
    bundle_meta: dict[str, Any] = field(default_factory=dict)
    storage_root: Path | None = None
    manifest_dir: Path | None = None


@dataclass
class Resolution:
    status: str  # reused | conflict | needs_download | missing | unresolved
    target_id: AssetId | None = None
    descriptor: dict[str, Any] = field(default_factory=dict)
    reason: str | None = None
    candidates: list[AssetId] = field(default_factory=list)
    resolved_via: str | None = None
    bundle_hit: bool = False

    @property
    def original_id(self) -> int:
        return to_int(self.descriptor.get("original_id"))


@dataclass
class ResolverMetrics:
    detected: int = 0
    reused: int = 0
    unresolved: int = 0
    downloaded: int = 0
    blocked: int = 0
    bundle_hits: int = 0


@dataclass
class ResolverResult:
    attachments: dict[str, Resolution] = field(default_factory=dict)
    metrics: ResolverMetrics = field(default_factory=ResolverMetrics)
    id_map: dict[int, AssetId] = field(default_factory=dict)
    conflicts: list[Resolution] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attachments": {key: asdict(res) for key, res in self.attachments.items()},
            "metrics": asdict(self.metrics),
            "id_map": dict(self.id_map),
            "conflicts": [asdict(res) for res in self.conflicts],
        }
