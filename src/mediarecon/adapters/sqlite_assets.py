"""SQLite-backed local asset store with files under an uploads directory."""

import shutil
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from ..core.model import AssetId, CandidateEntry, LocalAsset
from ..core.utils import sanitize_file_name
from ..errors import MaterializeError


@dataclass
class SQLiteAssetStore:
    """
    Asset records in SQLite, files copied under ``uploads_dir``.

    Each record carries key/value markers used for idempotent lookup by
    later runs and by the store resolver.
    """

    db_path: Path
    uploads_dir: Path
    uploads_url: str

    def __post_init__(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _conn(self) -> sqlite3.Connection:
        """Get a connection to the SQLite database."""
        conn = sqlite3.connect(str(self.db_path))
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _init_schema(self) -> None:
        """Create tables if they don't exist."""
        conn = self._conn()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS assets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    path TEXT NOT NULL UNIQUE,
                    title TEXT,
                    mime_type TEXT,
                    filesize INTEGER,
                    created_at REAL NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS asset_markers (
                    asset_id INTEGER NOT NULL,
                    key TEXT NOT NULL,
                    value TEXT NOT NULL,
                    PRIMARY KEY (asset_id, key),
                    FOREIGN KEY (asset_id) REFERENCES assets(id) ON DELETE CASCADE
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS asset_markers_key_value_idx
                ON asset_markers(key, value)
            """)
            conn.commit()
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------------

    def get(self, asset_id: AssetId) -> LocalAsset | None:
        conn = self._conn()
        try:
            row = conn.execute(
                "SELECT id, path, title, mime_type, filesize FROM assets WHERE id = ?",
                (asset_id,),
            ).fetchone()
            if row is None:
                return None
            markers = dict(conn.execute(
                "SELECT key, value FROM asset_markers WHERE asset_id = ?", (asset_id,)
            ).fetchall())
        finally:
            conn.close()

        original_id = markers.get("original_id", "")
        return LocalAsset(
            id=row[0],
            path=row[1],
            original_id=int(original_id) if original_id.isdigit() else None,
            asset_uid=markers.get("asset_uid", ""),
            source_url=markers.get("source_url", ""),
            content_hash=markers.get("file_hash", ""),
            filesize=row[4],
            mime_type=row[3] or "",
            title=row[2] or "",
        )

    def find_by_marker(self, key: str, value: str) -> list[AssetId]:
        if not value:
            return []
        conn = self._conn()
        try:
            rows = conn.execute(
                "SELECT asset_id FROM asset_markers WHERE key = ? AND value = ? ORDER BY asset_id",
                (key, value),
            ).fetchall()
        finally:
            conn.close()
        return [row[0] for row in rows]

    def find_by_original_id(self, original_id: int) -> AssetId | None:
        if not original_id:
            return None
        matches = self.find_by_marker("original_id", str(original_id))
        return matches[0] if matches else None

    def find_by_filename(self, filename: str) -> list[AssetId]:
        """Assets whose stored file has this basename."""
        if not filename:
            return []
        conn = self._conn()
        try:
            rows = conn.execute(
                "SELECT id, path FROM assets ORDER BY id"
            ).fetchall()
        finally:
            conn.close()
        return [row[0] for row in rows if PurePosixPath(row[1]).name == filename]

    def set_marker(self, asset_id: AssetId, key: str, value: str) -> None:
        conn = self._conn()
        try:
            conn.execute(
                "INSERT OR REPLACE INTO asset_markers (asset_id, key, value) VALUES (?, ?, ?)",
                (asset_id, key, value),
            )
            conn.commit()
        finally:
            conn.close()

    def url_for(self, asset_id: AssetId) -> str | None:
        asset = self.get(asset_id)
        if asset is None:
            return None
        return f"{self.uploads_url.rstrip('/')}/{asset.path}"

    def file_path(self, asset_id: AssetId) -> Path | None:
        asset = self.get(asset_id)
        return self.uploads_dir / asset.path if asset is not None else None

    # ------------------------------------------------------------------
    # materialization
    # ------------------------------------------------------------------

    def _target_path(self, entry: CandidateEntry, filename: str) -> str:
        """
        Relative storage path for a new file.

        Mirrors the exported relative directory when there is one, otherwise
        uses a ``YYYY/MM`` directory. Existing names get a ``-N`` suffix.
        """
        reference = PurePosixPath(entry.relative_path) if entry.relative_path else None
        if reference is not None and reference.parent.parts:
            parts = reference.parent.parts
            if parts[0] == "media":
                parts = parts[1:]
            directory = PurePosixPath(*parts) if parts else PurePosixPath(time.strftime("%Y/%m"))
        else:
            directory = PurePosixPath(time.strftime("%Y/%m"))

        name = PurePosixPath(sanitize_file_name(filename) or "asset")
        candidate = directory / name
        counter = 1
        while (self.uploads_dir / candidate).exists():
            candidate = directory / f"{name.stem}-{counter}{name.suffix}"
            counter += 1
        return candidate.as_posix()

    def materialize(
        self, source: Path, entry: CandidateEntry, filename: str | None = None
    ) -> LocalAsset:
        """
        Copy source into the uploads directory and create its record.

        Raises:
            MaterializeError: If the copy or the database write fails
        """
        relative = self._target_path(entry, filename or source.name)
        target = self.uploads_dir / relative

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
            filesize = target.stat().st_size
        except OSError as exc:
            raise MaterializeError(f"Cannot store {relative}: {exc}") from exc

        markers = {
            "original_id": str(entry.original_id) if entry.original_id else "",
            "source_url": entry.source_url,
            "asset_uid": entry.asset_uid,
            "file_hash": entry.content_hash,
            "attached_file": relative,
        }

        conn = self._conn()
        try:
            cursor = conn.execute(
                "INSERT INTO assets (path, title, mime_type, filesize, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (relative, entry.title or PurePosixPath(relative).stem, entry.mime_type, filesize, time.time()),
            )
            asset_id = cursor.lastrowid
            conn.executemany(
                "INSERT INTO asset_markers (asset_id, key, value) VALUES (?, ?, ?)",
                [(asset_id, key, value) for key, value in markers.items() if value],
            )
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            target.unlink(missing_ok=True)
            raise MaterializeError(f"Cannot record {relative}: {exc}") from exc
        finally:
            conn.close()

        return LocalAsset(
            id=asset_id,
            path=relative,
            original_id=entry.original_id or None,
            asset_uid=entry.asset_uid,
            source_url=entry.source_url,
            content_hash=entry.content_hash,
            filesize=filesize,
            mime_type=entry.mime_type,
            title=entry.title or PurePosixPath(relative).stem,
        )

    def delete(self, asset_id: AssetId) -> None:
        """Remove a record and its file."""
        path = self.file_path(asset_id)
        conn = self._conn()
        try:
            conn.execute("DELETE FROM asset_markers WHERE asset_id = ?", (asset_id,))
            conn.execute("DELETE FROM assets WHERE id = ?", (asset_id,))
            conn.commit()
        finally:
            conn.close()
        if path is not None:
            path.unlink(missing_ok=True)
