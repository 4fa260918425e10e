"""Cross-run identity map persistence as a JSON document."""

import json
import logging
import time
from pathlib import Path

from ..core.model import AssetId, to_int

logger = logging.getLogger(__name__)


class JsonIdentityState:
    """
    Store ``{"map": {...}, "url_map": {...}, "updated_at": ...}`` in one file.

    Writes go through a temporary file and an atomic rename.
    """

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> tuple[dict[int, AssetId], dict[str, AssetId]]:
        if not self.path.exists():
            return {}, {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable identity state %s: %s", self.path, exc)
            return {}, {}
        if not isinstance(data, dict):
            return {}, {}

        id_map: dict[int, AssetId] = {}
        raw_map = data.get("map")
        if isinstance(raw_map, dict):
            for original_id, local_id in raw_map.items():
                oid, lid = to_int(original_id), to_int(local_id)
                if oid and lid:
                    id_map[oid] = lid

        url_map: dict[str, AssetId] = {}
        raw_urls = data.get("url_map")
        if isinstance(raw_urls, dict):
            for url, local_id in raw_urls.items():
                lid = to_int(local_id)
                if isinstance(url, str) and url and lid:
                    url_map[url] = lid

        return id_map, url_map

    def save(self, id_map: dict[int, AssetId], url_map: dict[str, AssetId]) -> None:
        payload = {
            "map": {str(k): v for k, v in sorted(id_map.items())},
            "url_map": dict(sorted(url_map.items())),
            "updated_at": int(time.time()),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(".tmp")
        try:
            tmp_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
            tmp_path.replace(self.path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
