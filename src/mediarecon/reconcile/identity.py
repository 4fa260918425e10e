"""Identity map: original asset ids and source URLs to local asset ids."""

import logging

from ..core.model import AssetId
from ..core.ports import IdentityState
from ..core.utils import clean_url
from ..logging_utils import log_media

logger = logging.getLogger(__name__)


class IdentityMap:
    """
    Session-scoped mapping, lazily merged with persisted state.

    Mappings loaded from a previous run may be replaced during this run. A
    mapping assigned during this run is fixed: a second assignment to a
    different local id is refused unless the mapping was explicitly
    released first.
    """

    def __init__(self, state: IdentityState | None = None):
        self.state = state
        self._loaded = False
        self._map: dict[int, AssetId] = {}
        self._url_map: dict[str, AssetId] = {}
        self._assigned: set[int] = set()

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if self.state is None:
            return
        id_map, url_map = self.state.load()
        for original_id, local_id in id_map.items():
            self._map.setdefault(original_id, local_id)
        for url, local_id in url_map.items():
            self._url_map.setdefault(url, local_id)

    def get_local_id(self, original_id: int) -> AssetId | None:
        self._ensure_loaded()
        if not original_id:
            return None
        return self._map.get(original_id)

    def get_by_url(self, url: str) -> AssetId | None:
        self._ensure_loaded()
        url = clean_url(url)
        if not url:
            return None
        return self._url_map.get(url)

    def is_assigned(self, original_id: int) -> bool:
        """True if the mapping was set (not just loaded) during this run."""
        return original_id in self._assigned

    def set_mapping(self, original_id: int, local_id: AssetId) -> bool:
        """
        Register original_id -> local_id.

        Returns:
            False if the pair is invalid or conflicts with a mapping
            already assigned in this run
        """
        self._ensure_loaded()
        if not original_id or not local_id:
            return False

        current = self._map.get(original_id)
        if original_id in self._assigned and current != local_id:
            log_media(
                logger, "media:map", "Refusing to remap asset within run",
                level=logging.WARNING,
                original_id=original_id, current=current, requested=local_id,
            )
            return False

        self._map[original_id] = local_id
        self._assigned.add(original_id)
        return True

    def register_url(self, url: str, local_id: AssetId) -> None:
        self._ensure_loaded()
        url = clean_url(url)
        if not url or not local_id:
            return
        self._url_map[url] = local_id

    def release(self, original_id: int) -> AssetId | None:
        """
        Drop a mapping so the asset can be mapped again or left out.

        URL mappings to the released local id go with it unless another
        original id still maps there.
        """
        self._ensure_loaded()
        self._assigned.discard(original_id)
        local_id = self._map.pop(original_id, None)
        if local_id is not None and local_id not in self._map.values():
            for url in [u for u, lid in self._url_map.items() if lid == local_id]:
                del self._url_map[url]
        return local_id

    def forget(self, original_id: int) -> None:
        """Drop a stale persisted mapping (local asset no longer exists)."""
        self._ensure_loaded()
        if original_id not in self._assigned:
            self._map.pop(original_id, None)

    def snapshot(self) -> tuple[dict[int, AssetId], dict[str, AssetId]]:
        self._ensure_loaded()
        return dict(self._map), dict(self._url_map)

    def persist(self) -> None:
        """Write the merged mapping back to the state store."""
        if self.state is None:
            return
        id_map, url_map = self.snapshot()
        self.state.save(id_map, url_map)

    def __len__(self) -> int:
        self._ensure_loaded()
        return len(self._map)

    def __contains__(self, original_id: object) -> bool:
        self._ensure_loaded()
        return original_id in self._map
