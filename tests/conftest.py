"""Shared fixtures: real flat-file stores under tmp_path plus fakes for network-facing ports."""

import hashlib
from pathlib import Path

import pytest

from mediarecon.adapters.fs_content import FsContentStore
from mediarecon.adapters.json_state import JsonIdentityState
from mediarecon.adapters.sqlite_assets import SQLiteAssetStore
from mediarecon.core.model import CandidateEntry, Manifest, ResolverResult
from mediarecon.core.run import MediaPolicy, ReconciliationRun
from mediarecon.errors import TransportError
from mediarecon.reconcile.identity import IdentityMap

ORIGIN = "https://site.test"


def sha256_of(data: bytes) -> str:
    return "sha256:" + hashlib.sha256(data).hexdigest()


class FakeFetcher:
    """Serves canned bytes per URL; unknown URLs fail like a 404."""

    def __init__(self, tmp_dir: Path, files: dict[str, bytes] | None = None):
        self.tmp_dir = tmp_dir
        self.files = files or {}
        self.calls: list[str] = []
        self.issued: list[Path] = []

    def fetch(self, url: str) -> Path:
        self.calls.append(url)
        if url not in self.files:
            raise TransportError(f"404 Not Found: {url}")
        path = self.tmp_dir / f"download-{len(self.calls)}.tmp"
        path.write_bytes(self.files[url])
        self.issued.append(path)
        return path


class FakeResolver:
    """Returns a fixed result (or raises) and records the policies it was called with."""

    def __init__(self, result=None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.calls = []

    def resolve_manifest(self, manifest, policy):
        self.calls.append(policy)
        if self.error is not None:
            raise self.error
        return self.result if self.result is not None else ResolverResult()


@pytest.fixture
def assets(tmp_path):
    return SQLiteAssetStore(
        db_path=tmp_path / "db" / "assets.sqlite",
        uploads_dir=tmp_path / "uploads",
        uploads_url=f"{ORIGIN}/uploads",
    )


@pytest.fixture
def content(tmp_path):
    return FsContentStore(tmp_path / "content")


@pytest.fixture
def identity_state(tmp_path):
    return JsonIdentityState(tmp_path / "state" / "identity.json")


@pytest.fixture
def manifest_dir(tmp_path):
    directory = tmp_path / "backup"
    directory.mkdir()
    return directory


@pytest.fixture
def policy():
    return MediaPolicy(site_origin=ORIGIN, transport_mode="auto")


@pytest.fixture
def fetcher(tmp_path):
    directory = tmp_path / "downloads"
    directory.mkdir()
    return FakeFetcher(directory)


@pytest.fixture
def make_run(policy, manifest_dir):
    """Factory for a ReconciliationRun over a manifest."""

    def _make(manifest: Manifest, identity: IdentityMap | None = None, **kwargs) -> ReconciliationRun:
        kwargs.setdefault("policy", policy)
        kwargs.setdefault("manifest_dir", manifest_dir)
        return ReconciliationRun(
            manifest=manifest,
            identity=identity or IdentityMap(),
            **kwargs,
        )

    return _make


@pytest.fixture
def stored_asset(tmp_path, assets):
    """Factory that materializes a local asset from bytes."""

    def _store(data: bytes = b"existing", filename: str = "existing.png", **entry_fields):
        src = tmp_path / f"src-{filename}"
        src.write_bytes(data)
        entry_fields.setdefault("original_id", 0)
        return assets.materialize(src, CandidateEntry(**entry_fields), filename=filename)

    return _store
