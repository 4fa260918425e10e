"""End-to-end tests for the reconciliation pipeline."""

import json
from pathlib import Path

import pytest

from conftest import FakeResolver, sha256_of
from mediarecon.adapters.fs_content import ContentRecord
from mediarecon.adapters.store_resolver import StoreResolver
from mediarecon.adapters.yaml_decisions import YamlDecisionStore
from mediarecon.core.model import GLOBAL_SCOPE, DecisionRecord
from mediarecon.core.run import MediaPolicy
from mediarecon.errors import ManifestError
from mediarecon.reconcile import MediaReconciler, parse_manifest

PNG = b"\x89PNG bundled image"
JPG = b"\xff\xd8 remote image"
OLD_PNG_URL = "https://site.test/wp-content/uploads/a.png"
JPG_URL = "https://site.test/wp-content/uploads/b.jpg"


@pytest.fixture
def reconciler(assets, content, identity_state, fetcher, policy):
    def _build(**overrides):
        kwargs = dict(
            assets=assets,
            content=content,
            policy=policy,
            identity_state=identity_state,
            fetcher=fetcher,
        )
        kwargs.update(overrides)
        return MediaReconciler(**kwargs)

    return _build


@pytest.fixture
def bundle(manifest_dir):
    path = manifest_dir / "media" / "a.png"
    path.parent.mkdir(parents=True)
    path.write_bytes(PNG)
    return path


@pytest.fixture
def post(content):
    content.write(ContentRecord(
        id="hello-world",
        type="post",
        original_id=42,
        meta={"hero": [{"image": "7"}]},
        body=f'<p><img src="{OLD_PNG_URL}"></p>\n',
    ))
    return content


def manifest_data(*descriptors, items=()):
    return {"items": list(items), "media_index": list(descriptors)}


PNG_DESCRIPTOR = {"original_id": 7, "relative_path": "media/a.png", "hash": sha256_of(PNG)}
JPG_DESCRIPTOR = {"original_id": 8, "source_url": JPG_URL, "filename": "b.jpg"}
POST_ITEM = {
    "item_type": "post",
    "content_ref": 42,
    "post_type": "post",
    "media_refs": {
        "meta": [{"original_id": 7, "meta_key": "hero", "value_index": 0, "path": ["image"]}],
        "content": [{"original_url": OLD_PNG_URL, "original_id": 7}],
    },
}


def test_blocked_scenario(reconciler):
    """Test a single asset on a disallowed host."""
    manifest = parse_manifest(manifest_data(
        {"original_id": 5, "source_url": "https://blocked.example/x.jpg"},
    ))

    report = reconciler().sync_manifest_media(manifest)

    assert report.stats.blocked == 1
    assert report.stats.downloaded == 0
    assert report.stats.reused == 0
    assert [b.original_id for b in report.blocked] == [5]


def test_bundled_download_and_body_rewrite(reconciler, assets, identity_state, manifest_dir, bundle, post):
    """Test the bundled asset scenario followed by reference rewriting."""
    manifest = parse_manifest(manifest_data(PNG_DESCRIPTOR, items=[POST_ITEM]))

    report = reconciler().sync_manifest_media(manifest, manifest_dir=manifest_dir)

    assert report.stats.downloaded == 1
    local_id = assets.find_by_original_id(7)
    assert local_id is not None
    assert identity_state.load()[0] == {7: local_id}

    body = post.get_body("hello-world")
    assert OLD_PNG_URL not in body
    assert assets.url_for(local_id) in body
    assert report.stats.content_updates >= 1
    assert post.get_meta_values("hello-world", "hero") == [{"image": str(local_id)}]
    assert report.stats.meta_updates == 1
    assert report.stats.updated_posts == 1


def test_second_run_is_idempotent(reconciler, fetcher, manifest_dir, bundle, post):
    """Test that re-running an unchanged manifest reuses every asset."""
    fetcher.files[JPG_URL] = JPG
    manifest = parse_manifest(manifest_data(PNG_DESCRIPTOR, JPG_DESCRIPTOR, items=[POST_ITEM]))

    first = reconciler().sync_manifest_media(manifest, manifest_dir=manifest_dir)
    second = reconciler().sync_manifest_media(manifest, manifest_dir=manifest_dir)

    assert first.stats.downloaded == 2
    assert second.stats.downloaded == 0
    assert second.stats.reused == 2
    assert second.stats.errors == 0
    assert fetcher.calls == [JPG_URL]


def test_idempotent_without_persisted_state(reconciler, fetcher, manifest_dir, bundle):
    """Test that asset markers alone make a crashed run recoverable."""
    fetcher.files[JPG_URL] = JPG
    manifest = parse_manifest(manifest_data(PNG_DESCRIPTOR, JPG_DESCRIPTOR))

    reconciler(identity_state=None).sync_manifest_media(manifest, manifest_dir=manifest_dir)
    second = reconciler(identity_state=None).sync_manifest_media(manifest, manifest_dir=manifest_dir)

    assert second.stats.downloaded == 0
    assert second.stats.reused == 2


def test_idempotent_with_store_resolver(reconciler, assets, fetcher, manifest_dir, bundle):
    """Test repeated runs with the default resolver wired in."""
    fetcher.files[JPG_URL] = JPG
    hashed_jpg = dict(JPG_DESCRIPTOR, hash=sha256_of(JPG))
    manifest = parse_manifest(manifest_data(PNG_DESCRIPTOR, hashed_jpg))

    first = reconciler(resolver=StoreResolver(assets)).sync_manifest_media(manifest, manifest_dir=manifest_dir)
    second = reconciler(resolver=StoreResolver(assets)).sync_manifest_media(manifest, manifest_dir=manifest_dir)

    assert first.stats.downloaded == 2
    assert second.stats.downloaded == 0
    assert second.stats.reused == 2
    assert second.resolver.metrics.reused == 2
    assert second.transport_ran is False


def test_strict_bundled_mode_rejects_tampered_file(reconciler, fetcher, manifest_dir):
    """Test hash verification under strict bundled transport."""
    tampered = manifest_dir / "media" / "a.png"
    tampered.parent.mkdir(parents=True)
    tampered.write_bytes(b"tampered")
    fetcher.files[JPG_URL] = JPG
    manifest = parse_manifest(manifest_data(dict(PNG_DESCRIPTOR, source_url=JPG_URL)))

    strict = MediaPolicy(site_origin="https://site.test", transport_mode="bundled")
    report = reconciler(policy=strict).sync_manifest_media(manifest, manifest_dir=manifest_dir)

    assert report.stats.errors == 1
    assert report.stats.downloaded == 0
    assert fetcher.calls == []


def test_auto_mode_falls_back_to_remote(reconciler, fetcher, manifest_dir):
    """Test that a tampered bundle is replaced by the remote copy in auto mode."""
    tampered = manifest_dir / "media" / "a.png"
    tampered.parent.mkdir(parents=True)
    tampered.write_bytes(b"tampered")
    fetcher.files[JPG_URL] = PNG
    manifest = parse_manifest(manifest_data(dict(PNG_DESCRIPTOR, source_url=JPG_URL)))

    report = reconciler().sync_manifest_media(manifest, manifest_dir=manifest_dir)

    assert report.stats.downloaded == 1
    assert report.stats.errors == 0
    assert fetcher.calls == [JPG_URL]


def test_decision_precedence_end_to_end(reconciler, tmp_path, fetcher):
    """Test that a run-scope skip beats a global reuse."""
    decisions = YamlDecisionStore(tmp_path / "decisions.yaml")
    decisions.set("proposal-1", DecisionRecord(original_id=8, action="skip"))
    decisions.set(GLOBAL_SCOPE, DecisionRecord(original_id=8, action="reuse", target_id=3))
    fetcher.files[JPG_URL] = JPG
    manifest = parse_manifest(manifest_data(JPG_DESCRIPTOR))

    report = reconciler(decisions=decisions).sync_manifest_media(manifest, run_scope_id="proposal-1")

    assert report.stats.reused == 0
    assert report.stats.downloaded == 0
    assert fetcher.calls == []

    other = reconciler(decisions=decisions, identity_state=None).sync_manifest_media(manifest, run_scope_id="proposal-2")
    assert other.stats.reused == 1


def test_download_decision_refetches(reconciler, assets, identity_state, tmp_path, fetcher):
    """Test that a download decision replaces an existing mapping."""
    fetcher.files[JPG_URL] = JPG
    manifest = parse_manifest(manifest_data(JPG_DESCRIPTOR))
    first = reconciler().sync_manifest_media(manifest)
    original_local = assets.find_by_original_id(8)

    decisions = YamlDecisionStore(tmp_path / "decisions.yaml")
    decisions.set("redo", DecisionRecord(original_id=8, action="download"))
    second = reconciler(decisions=decisions).sync_manifest_media(manifest, run_scope_id="redo")

    assert first.stats.downloaded == 1
    assert second.stats.downloaded == 1
    assert second.stats.reused == 0
    assert len(fetcher.calls) == 2
    replacement = identity_state.load()[0][8]
    assert replacement != original_local
    assert assets.get(replacement).source_url == JPG_URL


def test_map_decision_overrides_earlier_run(reconciler, assets, identity_state, stored_asset, tmp_path, manifest_dir, bundle, post):
    """Test remapping an asset that an earlier run already materialized."""
    manifest = parse_manifest(manifest_data(PNG_DESCRIPTOR))
    reconciler().sync_manifest_media(manifest, manifest_dir=manifest_dir)
    other = stored_asset(filename="replacement.png")

    decisions = YamlDecisionStore(tmp_path / "decisions.yaml")
    decisions.set("fix-7", DecisionRecord(original_id=7, action="map", target_id=other.id))
    rewrite = parse_manifest(manifest_data(PNG_DESCRIPTOR, items=[POST_ITEM]))
    report = reconciler(decisions=decisions).sync_manifest_media(
        rewrite, run_scope_id="fix-7", manifest_dir=manifest_dir,
    )

    assert report.stats.reused == 1
    assert report.stats.downloaded == 0
    assert identity_state.load()[0] == {7: other.id}
    assert assets.url_for(other.id) in post.get_body("hello-world")
    assert post.get_meta_values("hello-world", "hero") == [{"image": str(other.id)}]


def test_skip_decision_excludes_earlier_asset(reconciler, identity_state, tmp_path, manifest_dir, bundle, post):
    """Test that a skipped asset is neither counted nor rewritten."""
    manifest = parse_manifest(manifest_data(PNG_DESCRIPTOR))
    reconciler().sync_manifest_media(manifest, manifest_dir=manifest_dir)

    decisions = YamlDecisionStore(tmp_path / "decisions.yaml")
    decisions.set("drop-7", DecisionRecord(original_id=7, action="skip"))
    rewrite = parse_manifest(manifest_data(PNG_DESCRIPTOR, items=[POST_ITEM]))
    report = reconciler(decisions=decisions).sync_manifest_media(
        rewrite, run_scope_id="drop-7", manifest_dir=manifest_dir,
    )

    assert report.stats.reused == 0
    assert report.stats.downloaded == 0
    assert report.stats.content_updates == 0
    assert report.stats.meta_updates == 0
    assert OLD_PNG_URL in post.get_body("hello-world")
    assert identity_state.load()[0] == {}


def test_unreadable_bundle_file_is_counted(reconciler, identity_state, manifest_dir, bundle, monkeypatch):
    """Test that a file that cannot be read fails its entry, not the run."""
    manifest = parse_manifest(manifest_data(PNG_DESCRIPTOR, JPG_DESCRIPTOR))
    real_open = Path.open

    def denied_open(self, *args, **kwargs):
        if self == bundle:
            raise PermissionError(13, "Permission denied", str(self))
        return real_open(self, *args, **kwargs)

    monkeypatch.setattr(Path, "open", denied_open)

    strict = MediaPolicy(site_origin="https://site.test", transport_mode="bundled")
    report = reconciler(policy=strict).sync_manifest_media(manifest, manifest_dir=manifest_dir)

    assert report.stats.errors == 2
    assert report.stats.downloaded == 0
    assert identity_state.path.exists()


def test_resolver_failure_does_not_stop_run(reconciler, fetcher):
    """Test that transport still runs when the resolver crashes."""
    fetcher.files[JPG_URL] = JPG
    manifest = parse_manifest(manifest_data(JPG_DESCRIPTOR))

    report = reconciler(resolver=FakeResolver(error=RuntimeError("boom"))).sync_manifest_media(manifest)

    assert report.stats.downloaded == 1
    assert report.resolver.attachments == {}


def test_conflict_waits_for_decision(reconciler, assets, stored_asset, fetcher):
    """Test that an ambiguous resolver match is neither downloaded nor reused."""
    stored_asset(filename="b.jpg")
    fetcher.files[JPG_URL] = JPG
    manifest = parse_manifest(manifest_data(JPG_DESCRIPTOR))

    report = reconciler(resolver=StoreResolver(assets)).sync_manifest_media(manifest)

    assert report.stats.conflicts == 1
    assert report.stats.downloaded == 0
    assert report.stats.reused == 0
    assert report.resolver.attachments["8"].reason == "ambiguous_filename"
    assert fetcher.calls == []


def test_legacy_gate_is_injectable(reconciler, fetcher):
    """Test replacing the transport gate."""
    fetcher.files[JPG_URL] = JPG
    manifest = parse_manifest(manifest_data(JPG_DESCRIPTOR))

    report = reconciler(legacy_gate=lambda queue, result: False).sync_manifest_media(manifest)

    assert report.transport_ran is False
    assert report.stats.downloaded == 0
    assert fetcher.calls == []


def test_preview_does_not_transport_or_persist(reconciler, identity_state, stored_asset, fetcher):
    """Test the preview of a manifest's media queue."""
    stored_asset(original_id=7)
    manifest = parse_manifest(manifest_data(
        {"original_id": 7, "source_url": "https://site.test/a.png"},
        *[{"original_id": i, "source_url": f"https://site.test/{i}.png"} for i in range(10, 14)],
        {"original_id": 5, "source_url": "https://blocked.example/x.jpg"},
    ))

    preview = reconciler().preview_manifest_media(manifest, limit=2)

    assert preview["total_candidates"] == 4
    assert [item["original_id"] for item in preview["preview_items"]] == [10, 11]
    assert preview["skipped_existing"] == 1
    assert preview["total_detected"] == 6
    assert [b["original_id"] for b in preview["blocked"]] == [5]
    assert fetcher.calls == []
    assert not identity_state.path.exists()


def test_cleanup_clears_identity_state(reconciler, identity_state, fetcher):
    """Test flushing persisted mappings."""
    fetcher.files[JPG_URL] = JPG
    engine = reconciler()
    engine.sync_manifest_media(parse_manifest(manifest_data(JPG_DESCRIPTOR)))
    assert identity_state.path.exists()

    engine.cleanup()

    assert not identity_state.path.exists()


def test_sync_manifest_file(reconciler, manifest_dir, bundle):
    """Test reconciling from a manifest file next to its bundle."""
    path = manifest_dir / "manifest.json"
    path.write_text(json.dumps(manifest_data(PNG_DESCRIPTOR)), encoding="utf-8")

    report = reconciler().sync_manifest_file(path)

    assert report.stats.downloaded == 1
    summary = report.to_dict()
    for key in ("downloaded", "reused", "updated_posts", "meta_updates", "content_updates", "errors", "blocked"):
        assert key in summary
    assert summary["resolver"]["metrics"]["detected"] == 0


def test_sync_manifest_file_surfaces_structural_errors(reconciler, tmp_path):
    """Test that an undecodable manifest fails the run."""
    path = tmp_path / "manifest.json"
    path.write_text("not json", encoding="utf-8")

    with pytest.raises(ManifestError):
        reconciler().sync_manifest_file(path)
