"""Configuration loader for mediarecon.toml."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

from .errors import ConfigError

TRANSPORT_MODES = ("auto", "bundled", "remote")


@dataclass
class SiteConfig:
    """Local target store configuration."""
    origin: str
    uploads_dir: Path
    uploads_url: str
    content_dir: Path
    db: Path


@dataclass
class MediaConfig:
    """Transport and host policy configuration."""
    transport_mode: str = "auto"
    allow_external: bool = False
    mirror_domain: str = ""
    preserve_filenames: bool = True
    storage_root: Path | None = None
    fetch_timeout: float = 30.0
    primary_visual_key: str = "_thumbnail_id"


@dataclass
class StateConfig:
    """Persisted identity map and decision store locations."""
    identity: Path
    decisions: Path


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    json: bool = True


@dataclass
class ReconConfig:
    """Complete mediarecon configuration."""
    root: Path
    site: SiteConfig
    media: MediaConfig
    state: StateConfig
    logging: LoggingConfig


def load_config(config_path: Path | None = None, root_path: Path | None = None) -> ReconConfig:
    """
    Load configuration from mediarecon.toml.

    Search order:
    1. config_path (if provided)
    2. cwd/mediarecon.toml
    3. root_path/mediarecon.toml

    Relative paths in the file are resolved against the site root.

    Args:
        config_path: Explicit path to config file
        root_path: Site root used for fallback search and relative paths

    Returns:
        ReconConfig with resolved settings

    Raises:
        ConfigError: If a value is out of range
    """
    toml_data: dict[str, Any] = {}

    search_paths = []
    if config_path:
        search_paths.append(config_path)
    search_paths.append(Path.cwd() / "mediarecon.toml")
    if root_path:
        search_paths.append(root_path / "mediarecon.toml")

    for path in search_paths:
        if path.exists():
            with open(path, "rb") as f:
                toml_data = tomllib.load(f)
            break

    root = Path(toml_data.get("root", root_path or Path(".")))

    # Parse site config
    site_data = toml_data.get("site", {})
    origin = str(site_data.get("origin", "http://localhost")).rstrip("/")
    site_config = SiteConfig(
        origin=origin,
        uploads_dir=_under(root, site_data.get("uploads_dir", "uploads")),
        uploads_url=str(site_data.get("uploads_url", f"{origin}/uploads")).rstrip("/"),
        content_dir=_under(root, site_data.get("content_dir", "content")),
        db=_under(root, site_data.get("db", ".mediarecon/assets.sqlite")),
    )

    # Parse media config
    media_data = toml_data.get("media", {})
    transport_mode = str(media_data.get("transport_mode", "auto")).lower()
    if transport_mode not in TRANSPORT_MODES:
        raise ConfigError(
            f"Unknown transport_mode '{transport_mode}' "
            f"(expected one of: {', '.join(TRANSPORT_MODES)})"
        )

    storage_root = media_data.get("storage_root")
    media_config = MediaConfig(
        transport_mode=transport_mode,
        allow_external=bool(media_data.get("allow_external", False)),
        mirror_domain=str(media_data.get("mirror_domain", "")),
        preserve_filenames=bool(media_data.get("preserve_filenames", True)),
        storage_root=_under(root, storage_root) if storage_root else root / "sync" / "media-bundles",
        fetch_timeout=float(media_data.get("fetch_timeout", 30)),
        primary_visual_key=str(media_data.get("primary_visual_key", "_thumbnail_id")),
    )

    # Parse state config
    state_data = toml_data.get("state", {})
    state_config = StateConfig(
        identity=_under(root, state_data.get("identity", ".mediarecon/identity.json")),
        decisions=_under(root, state_data.get("decisions", ".mediarecon/decisions.yaml")),
    )

    # Parse logging config
    logging_data = toml_data.get("logging", {})
    logging_config = LoggingConfig(
        level=str(logging_data.get("level", "INFO")).upper(),
        json=bool(logging_data.get("json", True)),
    )

    return ReconConfig(
        root=root,
        site=site_config,
        media=media_config,
        state=state_config,
        logging=logging_config,
    )


def _under(root: Path, value: str | Path) -> Path:
    path = Path(value)
    return path if path.is_absolute() else root / path
