"""
Reference rewriter: point exported content at the reconciled local assets.

Runs after transport, against a finalized identity map. Lookups only; the
rewriter never creates a mapping.
"""

import logging

from ..core.model import ContentId, ContentItem, ContentReference, MetaReference
from ..core.ports import AssetStore, ContentStore
from ..core.run import ReconciliationRun
from ..core.treepath import MISSING, parse_path, replace_in
from ..core.utils import clean_url
from ..logging_utils import log_media

logger = logging.getLogger(__name__)


class ReferenceRewriter:
    """Rewrite metadata and body references for every content item in a manifest."""

    def __init__(
        self,
        assets: AssetStore,
        content: ContentStore,
        primary_visual_key: str = "_thumbnail_id",
    ):
        self.assets = assets
        self.content = content
        self.primary_visual_key = primary_visual_key

    def apply(self, run: ReconciliationRun) -> int:
        """
        Rewrite all items in the run's manifest.

        Returns:
            Number of content items that changed
        """
        updated = 0
        for item in run.manifest.items:
            if not item.has_media_refs:
                continue

            content_id = self.content.resolve_local_id(item.uid, item.content_ref, item.content_type)
            if content_id is None:
                log_media(
                    logger, "media:rewrite", "Content item not found locally",
                    level=logging.DEBUG,
                    uid=item.uid, content_ref=item.content_ref, content_type=item.content_type,
                )
                continue

            if self.rewrite_item(run, item, content_id):
                updated += 1
                run.stats.updated_posts += 1

        return updated

    def rewrite_item(self, run: ReconciliationRun, item: ContentItem, content_id: ContentId) -> bool:
        meta_changed = self.apply_meta_refs(run, content_id, item.meta_refs)
        body_changed = self.apply_content_refs(run, content_id, item.content_refs)
        return meta_changed or body_changed

    # ------------------------------------------------------------------
    # metadata
    # ------------------------------------------------------------------

    def apply_meta_refs(
        self, run: ReconciliationRun, content_id: ContentId, refs: list[MetaReference]
    ) -> bool:
        changed = False
        for ref in refs:
            if not ref.original_id or not ref.meta_key:
                continue

            new_id = run.identity.get_local_id(ref.original_id)
            if not new_id:
                continue

            if ref.primary or ref.meta_key == self.primary_visual_key:
                if self.content.set_primary_visual(content_id, self.primary_visual_key, new_id):
                    changed = True
                    run.stats.meta_updates += 1
                continue

            if self.apply_meta_ref(content_id, ref, new_id):
                changed = True
                run.stats.meta_updates += 1
                log_media(
                    logger, "media:rewrite", "Metadata reference rewritten",
                    content_id=content_id, meta_key=ref.meta_key,
                    original_id=ref.original_id, local_id=new_id,
                )
        return changed

    def apply_meta_ref(self, content_id: ContentId, ref: MetaReference, new_id: int) -> bool:
        """
        Replace the identifier at one recorded path, compare-and-swap style.

        A path that no longer matches the stored value is a no-op.
        """
        values = self.content.get_meta_values(content_id, ref.meta_key)
        if not 0 <= ref.value_index < len(values):
            return False

        previous = values[ref.value_index]
        modified = replace_in(previous, parse_path(ref.path), new_id)
        if modified is MISSING:
            log_media(
                logger, "media:rewrite", "Recorded path no longer matches metadata",
                level=logging.DEBUG,
                content_id=content_id, meta_key=ref.meta_key, path=list(ref.path),
            )
            return False
        if modified == previous and type(modified) is type(previous):
            return False

        return self.content.update_meta_value(
            content_id, ref.meta_key, ref.value_index, modified, previous
        )

    # ------------------------------------------------------------------
    # body
    # ------------------------------------------------------------------

    def apply_content_refs(
        self, run: ReconciliationRun, content_id: ContentId, refs: list[ContentReference]
    ) -> bool:
        if not refs:
            return False

        body = self.content.get_body(content_id)
        if body is None:
            return False

        updated = body
        replacements = 0
        for ref in refs:
            original_url = clean_url(ref.original_url)
            if not original_url:
                continue

            new_id = run.identity.get_local_id(ref.original_id) if ref.original_id else None
            if not new_id:
                new_id = run.identity.get_by_url(original_url)
            if not new_id:
                continue

            new_url = self.assets.url_for(new_id)
            if not new_url or original_url not in updated:
                continue

            replacements += updated.count(original_url)
            updated = updated.replace(original_url, new_url)

        if replacements == 0 or updated == body:
            return False

        self.content.update_body(content_id, updated)
        run.stats.content_updates += replacements
        log_media(
            logger, "media:rewrite", "Body references rewritten",
            content_id=content_id, replacements=replacements,
        )
        return True
