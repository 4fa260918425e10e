"""Bundled transport: materialize assets from files shipped with the manifest."""

import logging
from pathlib import Path
from typing import Any

from ..assets.naming import choose_filename
from ..assets.verify import verify_file_hash
from ..core.model import CandidateEntry, LocalAsset
from ..core.ports import AssetStore
from ..core.run import ReconciliationRun
from ..core.utils import sanitize_relative_reference, strip_bundle_prefix
from ..errors import IntegrityError, MaterializeError, TransportError
from ..logging_utils import log_media

logger = logging.getLogger(__name__)

BACKUP_SUBDIRECTORY = "media-bundle"


class BundleLocator:
    """
    Resolve bundle-relative paths against the directories a bundle may live in.

    Search order: the run's own directory under the storage root, the storage
    root itself, the absolute storage path recorded in the bundle metadata,
    the backup-relative directory next to the manifest, the default
    ``media-bundle`` directory next to the manifest, and the manifest
    directory.
    """

    def __init__(
        self,
        storage_root: Path | None,
        run_scope_id: str = "",
        bundle_meta: dict[str, Any] | None = None,
        manifest_dir: Path | None = None,
    ):
        self.storage_root = storage_root
        self.run_scope_id = run_scope_id
        self.bundle_meta = bundle_meta or {}
        self.manifest_dir = manifest_dir

    @classmethod
    def for_run(cls, run: ReconciliationRun) -> "BundleLocator":
        return cls(
            storage_root=run.policy.storage_root,
            run_scope_id=run.run_scope_id,
            bundle_meta=run.bundle_meta,
            manifest_dir=run.manifest_dir,
        )

    def candidate_dirs(self) -> list[Path]:
        candidates: list[Path] = []

        if self.storage_root is not None:
            scope = sanitize_relative_reference(self.run_scope_id)
            if scope and "/" not in scope:
                candidates.append(self.storage_root / scope)
            candidates.append(self.storage_root)

        storage = self.bundle_meta.get("storage")
        if isinstance(storage, dict) and isinstance(storage.get("absolute"), str) and storage["absolute"]:
            candidates.append(Path(storage["absolute"]))

        if self.manifest_dir is not None:
            backup_relative = sanitize_relative_reference(self.bundle_meta.get("backup_relative", ""))
            if backup_relative:
                candidates.append(self.manifest_dir / backup_relative)
            candidates.append(self.manifest_dir / BACKUP_SUBDIRECTORY)
            candidates.append(self.manifest_dir)

        unique: list[Path] = []
        for directory in candidates:
            if directory not in unique and directory.is_dir():
                unique.append(directory)
        return unique

    def locate(self, relative_path: str) -> Path | None:
        """
        Find a bundled file.

        The path is tried as written and with a leading ``media/`` removed.
        Traversal (``..``) never resolves.
        """
        reference = sanitize_relative_reference(relative_path)
        if not reference:
            return None

        forms = [reference]
        stripped = strip_bundle_prefix(reference)
        if stripped and stripped != reference:
            forms.append(stripped)

        for directory in self.candidate_dirs():
            for form in forms:
                candidate = directory / form
                if candidate.is_file():
                    return candidate
        return None


def materialize_from_bundle(
    entry: CandidateEntry,
    locator: BundleLocator,
    assets: AssetStore,
    preserve_filenames: bool = True,
) -> LocalAsset:
    """
    Verify and materialize one bundled file.

    Raises:
        TransportError: If the file cannot be found
        IntegrityError: If its content hash differs from the descriptor's
        MaterializeError: If the local record cannot be created
    """
    located = locator.locate(entry.relative_path)
    if located is None:
        raise TransportError(f"Bundle file not found: {entry.relative_path}")

    actual_hash = verify_file_hash(located, entry.content_hash)
    if not entry.content_hash:
        entry.content_hash = actual_hash

    filename = choose_filename(entry.filename or located.name, entry.source_url, preserve_filenames)
    return assets.materialize(located, entry, filename=filename)


def run_bundled_stage(
    run: ReconciliationRun,
    assets: AssetStore,
    locator: BundleLocator | None = None,
) -> int:
    """
    Satisfy pending queue entries from bundled files.

    In ``bundled`` mode an unavailable (missing or unreadable) file, a hash
    mismatch, or an entry without a bundle path is an error that closes the
    entry. In ``auto`` mode the first two only log and leave the entry for
    remote transport. In ``remote`` mode the stage does nothing.

    Returns:
        Number of assets materialized
    """
    if run.transport_mode == "remote":
        return 0

    strict = run.transport_mode == "bundled"
    locator = locator or BundleLocator.for_run(run)
    materialized = 0

    for entry in run.pending_entries():
        if not entry.relative_path:
            if strict:
                _fail(run, entry, "Entry has no bundle path in bundled mode")
            continue

        try:
            asset = materialize_from_bundle(entry, locator, assets, run.policy.preserve_filenames)
        except TransportError as exc:
            if strict:
                _fail(run, entry, str(exc))
            else:
                log_media(
                    logger, "media:bundle", "Bundle file unavailable; deferring to remote",
                    level=logging.DEBUG,
                    original_id=entry.original_id, relative_path=entry.relative_path,
                )
            continue
        except IntegrityError as exc:
            log_media(
                logger, "media:bundle", "Bundle file hash mismatch",
                level=logging.WARNING,
                original_id=entry.original_id, relative_path=entry.relative_path,
                expected=exc.expected, actual=exc.actual, strict=strict,
            )
            if strict:
                _fail(run, entry, str(exc), already_logged=True)
            continue
        except MaterializeError as exc:
            _fail(run, entry, str(exc))
            continue

        if not run.identity.set_mapping(entry.original_id, asset.id):
            _fail(run, entry, f"Identity map refused local asset {asset.id}")
            continue
        run.identity.register_url(entry.source_url, asset.id)
        entry.mark_handled("downloaded", asset.id)
        run.stats.downloaded += 1
        materialized += 1

        log_media(
            logger, "media:bundle", "Attachment registered from bundle",
            original_id=entry.original_id, asset_uid=entry.asset_uid,
            attachment_id=asset.id, path=asset.path,
        )

    return materialized


def _fail(
    run: ReconciliationRun, entry: CandidateEntry, reason: str, already_logged: bool = False
) -> None:
    run.stats.errors += 1
    entry.mark_handled("error")
    if not already_logged:
        log_media(
            logger, "media:bundle", "Bundled transport failed",
            level=logging.ERROR,
            original_id=entry.original_id, relative_path=entry.relative_path, reason=reason,
        )
