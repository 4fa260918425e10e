"""Remote transport: fetch whatever the bundle could not satisfy."""

import logging

from ..assets.naming import choose_filename
from ..assets.verify import verify_file_hash
from ..core.model import CandidateEntry
from ..core.ports import AssetStore, Fetcher
from ..core.run import ReconciliationRun
from ..errors import IntegrityError, ReconcileError, TransportError
from ..logging_utils import log_media

logger = logging.getLogger(__name__)


def run_remote_stage(run: ReconciliationRun, assets: AssetStore, fetcher: Fetcher) -> int:
    """
    Download pending entries from their source URL.

    Skipped in ``bundled`` mode. Every failure is isolated to its entry:
    logged, counted in ``errors``, and the entry is closed.

    Returns:
        Number of assets materialized
    """
    if run.transport_mode == "bundled":
        return 0

    downloaded = 0
    for entry in run.pending_entries():
        try:
            local_id = download_entry(run, entry, assets, fetcher)
        except ReconcileError as exc:
            run.stats.errors += 1
            entry.mark_handled("error")
            log_media(
                logger, "media:download", "Failed to download media",
                level=logging.ERROR,
                original_id=entry.original_id, source_url=entry.source_url,
                error=str(exc), error_type=type(exc).__name__,
            )
            continue

        entry.mark_handled("downloaded", local_id)
        run.stats.downloaded += 1
        downloaded += 1

    return downloaded


def download_entry(
    run: ReconciliationRun, entry: CandidateEntry, assets: AssetStore, fetcher: Fetcher
) -> int:
    """
    Fetch, materialize and map one entry.

    Raises:
        TransportError: No source URL, or the fetch failed
        MaterializeError: The local record could not be created
    """
    if not entry.source_url:
        raise TransportError("No source URL left for remote transport")

    temp_path = fetcher.fetch(entry.source_url)
    try:
        try:
            actual = verify_file_hash(temp_path, entry.content_hash)
        except IntegrityError as exc:
            # The remote copy is authoritative once the bundle is out of play.
            log_media(
                logger, "media:download", "Downloaded file hash differs from descriptor",
                level=logging.WARNING,
                original_id=entry.original_id, expected=exc.expected, actual=exc.actual,
            )
            actual = exc.actual
        entry.content_hash = actual

        filename = choose_filename(entry.filename, entry.source_url, run.policy.preserve_filenames)
        asset = assets.materialize(temp_path, entry, filename=filename)
    finally:
        temp_path.unlink(missing_ok=True)

    if not run.identity.set_mapping(entry.original_id, asset.id):
        raise TransportError(f"Identity map refused local asset {asset.id}")
    run.identity.register_url(entry.source_url, asset.id)

    log_media(
        logger, "media:download", "Downloaded media asset",
        original_id=entry.original_id, attachment_id=asset.id,
        source_url=entry.source_url, path=asset.path,
    )
    return asset.id
