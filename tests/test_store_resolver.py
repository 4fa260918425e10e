"""Tests for the store-backed resolver service."""

import pytest

from mediarecon.adapters.store_resolver import StoreResolver
from mediarecon.core.model import AssetDescriptor, Manifest, ResolverPolicy


@pytest.fixture
def resolver(assets):
    return StoreResolver(assets)


def resolve(resolver, *descriptors, **policy):
    return resolver.resolve_manifest(Manifest(media_index=list(descriptors)), ResolverPolicy(**policy))


def test_match_by_asset_uid(resolver, stored_asset):
    """Test that a unique UID match is reused."""
    asset = stored_asset(asset_uid="uid-7")

    result = resolve(resolver, AssetDescriptor(original_id=7, asset_uid="uid-7"))

    resolution = result.attachments["7"]
    assert resolution.status == "reused"
    assert resolution.resolved_via == "asset_uid"
    assert resolution.target_id == asset.id
    assert resolution.original_id == 7
    assert result.id_map == {7: asset.id}
    assert result.metrics.detected == 1
    assert result.metrics.reused == 1


def test_duplicate_uid_is_conflict(resolver, stored_asset):
    """Test that several UID matches are a conflict."""
    first = stored_asset(asset_uid="uid-7", filename="a.png")
    second = stored_asset(asset_uid="uid-7", filename="b.png")

    result = resolve(resolver, AssetDescriptor(original_id=7, asset_uid="uid-7"))

    resolution = result.attachments["7"]
    assert resolution.status == "conflict"
    assert resolution.reason == "duplicate_asset_uid"
    assert resolution.candidates == [first.id, second.id]
    assert result.conflicts == [resolution]
    assert result.metrics.unresolved == 1
    assert result.id_map == {}


def test_match_by_hash_backfills_uid(resolver, stored_asset, assets):
    """Test hash matching and UID backfill."""
    asset = stored_asset(content_hash="sha256:abcd")

    result = resolve(resolver, AssetDescriptor(original_id=7, asset_uid="uid-7", hash="ABCD"))

    assert result.attachments["7"].resolved_via == "file_hash"
    assert result.attachments["7"].target_id == asset.id
    assert assets.get(asset.id).asset_uid == "uid-7"


def test_match_by_unprefixed_stored_hash(resolver, stored_asset, assets):
    """Test records whose hash marker has no algorithm prefix."""
    asset = stored_asset()
    assets.set_marker(asset.id, "file_hash", "abcd")

    result = resolve(resolver, AssetDescriptor(original_id=7, hash="sha256:abcd"))

    assert result.attachments["7"].target_id == asset.id


def test_match_by_path_backfills_markers(resolver, stored_asset, assets):
    """Test relative path matching with and without the media/ prefix."""
    asset = stored_asset(relative_path="media/2024/05/a.png", filename="a.png")

    result = resolve(resolver, AssetDescriptor(
        original_id=7, relative_path="media/2024/05/a.png", asset_uid="uid-7", hash="sha256:ff",
    ))

    assert result.attachments["7"].resolved_via == "relative_path"
    stored = assets.get(asset.id)
    assert stored.asset_uid == "uid-7"
    assert stored.content_hash == "sha256:ff"


def test_filename_only_match_is_ambiguous(resolver, stored_asset):
    """Test that a filename alone never resolves."""
    asset = stored_asset(filename="hero.png")

    result = resolve(resolver, AssetDescriptor(original_id=7, filename="hero.png"))

    assert result.attachments["7"].status == "conflict"
    assert result.attachments["7"].reason == "ambiguous_filename"
    assert result.attachments["7"].candidates == [asset.id]


def test_unmatched_assets(resolver):
    """Test needs_download versus missing, and remote metrics."""
    descriptors = (
        AssetDescriptor(original_id=7, source_url="https://site.test/a.png"),
        AssetDescriptor(original_id=8),
        AssetDescriptor(original_id=0, source_url="https://site.test/b.png"),
    )

    local_only = resolve(resolver, *descriptors)
    assert local_only.attachments["7"].status == "needs_download"
    assert local_only.attachments["8"].status == "missing"
    assert local_only.metrics.detected == 2
    assert local_only.metrics.unresolved == 2

    with_remote = resolve(resolver, *descriptors, allow_remote=True)
    assert with_remote.metrics.downloaded == 1
    assert with_remote.metrics.unresolved == 1


def test_bundle_hit(resolver, stored_asset, manifest_dir):
    """Test that a reused asset reports whether its bundle file exists."""
    stored_asset(asset_uid="uid-7")
    (manifest_dir / "media").mkdir()
    (manifest_dir / "media" / "a.png").write_bytes(b"x")

    result = resolve(
        resolver,
        AssetDescriptor(original_id=7, asset_uid="uid-7", bundle_path="media/a.png"),
        manifest_dir=manifest_dir,
    )

    assert result.attachments["7"].bundle_hit is True
    assert result.metrics.bundle_hits == 1
