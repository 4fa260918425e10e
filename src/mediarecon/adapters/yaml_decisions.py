"""Operator decisions stored as a YAML file of scope buckets."""

import copy
import io
from pathlib import Path
from typing import Any, Mapping

import yaml

from ..core.model import GLOBAL_SCOPE, DecisionRecord, to_int


class YamlDecisionStore:
    """
    Decision file layout::

        <run scope id>:
          "<original_id>": {action: reuse, target_id: 12, note: ...}
        __global:
          "<original_id>": {action: download}

    Records that fail validation (unknown action, reuse/map without a
    target) are ignored on read. The parsed file is kept until its mtime or
    size changes.
    """

    def __init__(self, path: Path):
        self.path = path
        self._cached: tuple[tuple[int, int], dict[str, Any]] | None = None

    def _load(self) -> dict[str, Any]:
        """Parsed file contents; shared, so callers that modify must copy."""
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            self._cached = None
            return {}
        signature = (stat.st_mtime_ns, stat.st_size)
        if self._cached is None or self._cached[0] != signature:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
            self._cached = (signature, data if isinstance(data, dict) else {})
        return self._cached[1]

    def _dump(self, data: dict[str, Any]) -> None:
        self._cached = None
        self.path.parent.mkdir(parents=True, exist_ok=True)
        buf = io.StringIO()
        yaml.safe_dump(data, buf, sort_keys=True, allow_unicode=True)
        tmp_path = self.path.with_suffix(".tmp")
        try:
            tmp_path.write_text(buf.getvalue(), encoding="utf-8")
            tmp_path.replace(self.path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    def get(self, scope_key: str, original_id: int) -> DecisionRecord | None:
        if not scope_key or not original_id:
            return None
        bucket = self._load().get(scope_key)
        if not isinstance(bucket, Mapping):
            return None
        raw = bucket.get(str(original_id), bucket.get(original_id))
        scope = "global" if scope_key == GLOBAL_SCOPE else "run"
        return DecisionRecord.from_mapping(original_id, raw, scope)

    def set(self, scope_key: str, record: DecisionRecord) -> None:
        data = copy.deepcopy(self._load())
        bucket = data.setdefault(scope_key, {})
        entry: dict[str, Any] = {"action": record.action}
        if record.target_id:
            entry["target_id"] = record.target_id
        if record.note:
            entry["note"] = record.note
        bucket[str(record.original_id)] = entry
        self._dump(data)

    def import_from_manifest(self, bundle: Mapping[str, Any], run_scope_id: str = "") -> int:
        """
        Merge a manifest's ``resolver_decisions`` into the file.

        The ``proposal`` bucket replaces the run scope's bucket; ``global``
        entries are merged into the global bucket one by one.

        Returns:
            Number of decisions written
        """
        if not isinstance(bundle, Mapping):
            return 0

        data = copy.deepcopy(self._load())
        written = 0

        proposal = bundle.get("proposal")
        if run_scope_id and run_scope_id != GLOBAL_SCOPE and isinstance(proposal, Mapping):
            data[run_scope_id] = _clean_bucket(proposal)
            written += len(data[run_scope_id])

        global_bucket = bundle.get("global")
        if isinstance(global_bucket, Mapping):
            target = data.get(GLOBAL_SCOPE)
            if not isinstance(target, dict):
                target = data[GLOBAL_SCOPE] = {}
            cleaned = _clean_bucket(global_bucket)
            target.update(cleaned)
            written += len(cleaned)

        if written:
            self._dump(data)
        return written


def _clean_bucket(bucket: Mapping[Any, Any]) -> dict[str, Any]:
    return {
        str(to_int(original_id)): dict(decision)
        for original_id, decision in bucket.items()
        if to_int(original_id) and isinstance(decision, Mapping)
    }
