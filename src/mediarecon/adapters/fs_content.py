"""Flat-file content store: one Markdown file with YAML frontmatter per record."""

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from ..core.model import AssetId, ContentId, to_int
from .yaml_codec import YamlFrontmatter


@dataclass
class ContentRecord:
    """
    One local content record.

    Frontmatter layout::

        uid: <stable cross-environment id>
        type: <content type>
        original_id: <id on the exporting site>
        meta:
          <key>: [<value>, ...]
    """
    id: ContentId
    uid: str = ""
    type: str = ""
    original_id: int = 0
    meta: dict[str, list[Any]] = field(default_factory=dict)
    body: str = ""


class FsContentStore:
    def __init__(self, root: Path, fm: YamlFrontmatter | None = None):
        self.root = root
        self.fm = fm or YamlFrontmatter()
        # lookup fields per record, with the (mtime_ns, size) they were read at
        self._index: dict[ContentId, tuple[str, str, int]] = {}
        self._index_stats: dict[ContentId, tuple[int, int]] = {}

    def _path(self, id: ContentId) -> Path:
        return self.root / f"{id}.md"

    def read(self, id: ContentId) -> ContentRecord | None:
        p = self._path(id)
        if not p.exists():
            return None
        meta, body = self.fm.decode(p.read_text(encoding="utf-8"))
        values = meta.get("meta")
        return ContentRecord(
            id=id,
            uid=str(meta.get("uid", "") or ""),
            type=str(meta.get("type", "") or ""),
            original_id=to_int(meta.get("original_id")),
            meta={
                str(k): v if isinstance(v, list) else [v]
                for k, v in (values.items() if isinstance(values, dict) else [])
            },
            body=body,
        )

    def write(self, record: ContentRecord) -> None:
        front: dict[str, Any] = {}
        if record.uid:
            front["uid"] = record.uid
        if record.type:
            front["type"] = record.type
        if record.original_id:
            front["original_id"] = record.original_id
        if record.meta:
            front["meta"] = record.meta

        self.root.mkdir(parents=True, exist_ok=True)
        target = self._path(record.id)
        tmp_path = target.with_suffix(".md.tmp")
        try:
            tmp_path.write_text(self.fm.encode(front) + record.body, encoding="utf-8")
            tmp_path.replace(target)
            stat = target.stat()
            self._index[record.id] = (record.uid, record.type, record.original_id)
            self._index_stats[record.id] = (stat.st_mtime_ns, stat.st_size)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    def list_ids(self) -> Iterable[ContentId]:
        if not self.root.exists():
            return []
        return sorted(p.stem for p in self.root.glob("*.md"))

    # ContentStore port

    def resolve_local_id(
        self, uid: str, original_id: int, content_type: str = ""
    ) -> ContentId | None:
        """Find a record by uid first, then by original id (and type when both are known)."""
        index = sorted(self._lookup_index().items())

        uid = (uid or "").strip()
        if uid:
            for content_id, (record_uid, _, _) in index:
                if record_uid == uid:
                    return content_id

        if not original_id:
            return None
        for content_id, (_, record_type, record_original_id) in index:
            if record_original_id != original_id:
                continue
            if content_type and record_type and record_type != content_type:
                continue
            return content_id
        return None

    def _lookup_index(self) -> dict[ContentId, tuple[str, str, int]]:
        """uid, type and original id per record; only changed files are re-read."""
        current: dict[ContentId, tuple[int, int]] = {}
        if self.root.exists():
            for p in self.root.glob("*.md"):
                stat = p.stat()
                current[p.stem] = (stat.st_mtime_ns, stat.st_size)

        for content_id in [i for i in self._index if i not in current]:
            del self._index[content_id]
            self._index_stats.pop(content_id, None)

        for content_id, signature in current.items():
            if self._index_stats.get(content_id) == signature:
                continue
            record = self.read(content_id)
            if record is None:
                continue
            self._index[content_id] = (record.uid, record.type, record.original_id)
            self._index_stats[content_id] = signature
        return self._index

    def set_primary_visual(self, content_id: ContentId, key: str, asset_id: AssetId) -> bool:
        record = self.read(content_id)
        if record is None:
            return False
        record.meta[key] = [asset_id]
        self.write(record)
        return True

    def get_meta_values(self, content_id: ContentId, key: str) -> list[Any]:
        record = self.read(content_id)
        if record is None:
            return []
        return copy.deepcopy(record.meta.get(key, []))

    def update_meta_value(
        self, content_id: ContentId, key: str, index: int, new_value: Any, prev_value: Any
    ) -> bool:
        record = self.read(content_id)
        if record is None:
            return False
        values = record.meta.get(key, [])
        if not 0 <= index < len(values) or values[index] != prev_value:
            return False
        values[index] = new_value
        self.write(record)
        return True

    def get_body(self, content_id: ContentId) -> str | None:
        record = self.read(content_id)
        return record.body if record is not None else None

    def update_body(self, content_id: ContentId, body: str) -> None:
        record = self.read(content_id)
        if record is None:
            return
        record.body = body
        self.write(record)
