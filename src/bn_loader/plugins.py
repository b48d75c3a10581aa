"""Plugin inventory for a profile data directory."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from bn_loader.errors import ScanError

logger = logging.getLogger(__name__)

# Bit 1 (value 2) of pluginStatus marks a repository plugin as installed
INSTALLED_BIT = 2

PLUGINS_DIR = "plugins"
REPOSITORIES_DIR = "repositories"
PLUGIN_STATUS_FILE = "plugin_status.json"
PLUGIN_METADATA_FILE = "plugin.json"


class PluginSource(str, Enum):
    MANUAL = "manual"
    OFFICIAL = "official"
    COMMUNITY = "community"


@dataclass(frozen=True)
class PluginInfo:
    dir_name: str
    source: PluginSource
    name: str | None = None
    version: str | None = None
    author: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.dir_name


def _read_json(path: Path):
    try:
        return json.loads(path.read_text())
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.debug("Could not read %s: %s", path, e)
        return None


def _manual_plugins(plugins_dir: Path) -> list[PluginInfo]:
    try:
        entries = sorted(plugins_dir.iterdir())
    except OSError as e:
        raise ScanError(PLUGINS_DIR, f"Failed to read plugins directory: {e}") from e

    plugins = []
    for entry in entries:
        if not entry.is_dir():
            continue
        meta = _read_json(entry / PLUGIN_METADATA_FILE)
        if not isinstance(meta, dict):
            meta = {}
        plugins.append(
            PluginInfo(
                dir_name=entry.name,
                source=PluginSource.MANUAL,
                name=meta.get("name"),
                version=meta.get("version"),
                author=meta.get("author"),
            )
        )
    return plugins


def _repository_plugins(status_file: Path) -> list[PluginInfo]:
    try:
        repos = json.loads(status_file.read_text())
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ScanError(f"{REPOSITORIES_DIR}/{PLUGIN_STATUS_FILE}", f"Failed to parse: {e}") from e

    plugins = []
    for idx, repo in enumerate(repos if isinstance(repos, list) else []):
        # The first repository is the official one, the rest are community
        source = PluginSource.OFFICIAL if idx == 0 else PluginSource.COMMUNITY
        entries = repo.get("plugins") if isinstance(repo, dict) else None
        for plugin in entries if isinstance(entries, list) else []:
            if not isinstance(plugin, dict):
                logger.warning("Ignoring malformed entry in %s: %r", status_file, plugin)
                continue
            try:
                status = int(plugin.get("pluginStatus", 0))
            except (TypeError, ValueError):
                logger.warning(
                    "Ignoring plugin %r in %s: bad pluginStatus %r",
                    plugin.get("path"),
                    status_file,
                    plugin.get("pluginStatus"),
                )
                continue
            if status & INSTALLED_BIT:
                plugins.append(
                    PluginInfo(
                        dir_name=plugin.get("path") or "",
                        source=source,
                        name=plugin.get("name"),
                        version=plugin.get("version"),
                        author=plugin.get("author"),
                    )
                )
    return plugins


def list_plugins(data_dir: Path | str) -> list[PluginInfo]:
    """List manual and installed repository plugins, sorted by name.

    Raises ScanError if the plugins directory or the repository status
    file exists but cannot be read.
    """
    data_dir = Path(data_dir).expanduser()
    plugins: list[PluginInfo] = []

    plugins_dir = data_dir / PLUGINS_DIR
    if plugins_dir.is_dir():
        plugins.extend(_manual_plugins(plugins_dir))

    status_file = data_dir / REPOSITORIES_DIR / PLUGIN_STATUS_FILE
    if status_file.exists():
        plugins.extend(_repository_plugins(status_file))

    return sorted(plugins, key=lambda p: p.display_name.lower())


@dataclass
class PluginDiff:
    only_left: list[PluginInfo] = field(default_factory=list)
    only_right: list[PluginInfo] = field(default_factory=list)
    version_changes: list[tuple[PluginInfo, PluginInfo]] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not (self.only_left or self.only_right or self.version_changes)


def diff_plugins(left: list[PluginInfo], right: list[PluginInfo]) -> PluginDiff:
    """Compare two plugin lists by directory name."""
    right_by_dir = {p.dir_name: p for p in right}
    left_dirs = {p.dir_name for p in left}

    result = PluginDiff()
    for p in left:
        other = right_by_dir.get(p.dir_name)
        if other is None:
            result.only_left.append(p)
        elif p.version != other.version:
            result.version_changes.append((p, other))
    result.only_right = [p for p in right if p.dir_name not in left_dirs]
    return result
