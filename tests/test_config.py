"""Tests for configuration loading."""

from pathlib import Path

import pytest

from mediarecon.config import load_config
from mediarecon.core.run import MediaPolicy
from mediarecon.errors import ConfigError


def test_load_config_defaults(tmp_path, monkeypatch):
    """Test loading config with defaults when no file exists."""
    monkeypatch.chdir(tmp_path)

    config = load_config(root_path=tmp_path)

    assert config.site.origin == "http://localhost"
    assert config.site.uploads_dir == tmp_path / "uploads"
    assert config.site.uploads_url == "http://localhost/uploads"
    assert config.media.transport_mode == "auto"
    assert config.media.allow_external is False
    assert config.media.storage_root == tmp_path / "sync" / "media-bundles"
    assert config.state.identity == tmp_path / ".mediarecon" / "identity.json"
    assert config.logging.json is True


def test_load_config_from_file(tmp_path):
    """Test loading config from a file."""
    config_path = tmp_path / "mediarecon.toml"
    config_path.write_text("""
[site]
origin = "https://site.test/"
uploads_dir = "/srv/uploads"

[media]
transport_mode = "Bundled"
allow_external = true
mirror_domain = "cdn.site.test"
preserve_filenames = false
storage_root = "bundles"
fetch_timeout = 5

[state]
decisions = "state/decisions.yaml"

[logging]
level = "debug"
json = false
""")

    config = load_config(config_path=config_path, root_path=tmp_path)

    assert config.site.origin == "https://site.test"
    assert config.site.uploads_dir == Path("/srv/uploads")
    assert config.site.uploads_url == "https://site.test/uploads"
    assert config.media.transport_mode == "bundled"
    assert config.media.allow_external is True
    assert config.media.preserve_filenames is False
    assert config.media.storage_root == tmp_path / "bundles"
    assert config.media.fetch_timeout == 5.0
    assert config.state.decisions == tmp_path / "state" / "decisions.yaml"
    assert config.logging.level == "DEBUG"
    assert config.logging.json is False


def test_load_config_search_root(tmp_path, monkeypatch):
    """Test config search in the root directory."""
    monkeypatch.chdir(tmp_path)
    root = tmp_path / "site"
    root.mkdir()
    (root / "mediarecon.toml").write_text('[media]\nmirror_domain = "cdn.test"\n')

    config = load_config(root_path=root)

    assert config.media.mirror_domain == "cdn.test"


def test_unknown_transport_mode_raises(tmp_path):
    """Test that a bad transport mode is rejected."""
    config_path = tmp_path / "mediarecon.toml"
    config_path.write_text('[media]\ntransport_mode = "carrier-pigeon"\n')

    with pytest.raises(ConfigError, match="carrier-pigeon"):
        load_config(config_path=config_path, root_path=tmp_path)


def test_policy_from_config(tmp_path):
    """Test deriving the engine policy and its host allow-list."""
    config_path = tmp_path / "mediarecon.toml"
    config_path.write_text("""
[site]
origin = "https://site.test"

[media]
mirror_domain = "https://cdn.site.test"
""")
    config = load_config(config_path=config_path, root_path=tmp_path)

    policy = MediaPolicy.from_config(config)

    assert policy.allowed_hosts == {"site.test", "cdn.site.test"}
    assert policy.is_source_allowed("https://cdn.site.test/a.png")
    assert policy.is_source_allowed("/uploads/a.png")
    assert not policy.is_source_allowed("https://elsewhere.test/a.png")
    assert not policy.is_source_allowed("")
