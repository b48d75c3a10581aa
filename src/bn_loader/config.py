"""Configuration management for bn-loader."""

from __future__ import annotations

import json
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from bn_loader.errors import ConfigError
from bn_loader.patterns import DEFAULT_EXCLUSIONS, ExclusionSet

CONFIG_DIR = Path.home() / ".config" / "bn-loader"
CONFIG_FILE = CONFIG_DIR / "config.json"
BACKUP_DIR = CONFIG_DIR / "backups"
CONFIG_ENV_VAR = "BN_LOADER_CONFIG"

DEFAULT_EXECUTABLE = "binaryninja.exe" if sys.platform == "win32" else "binaryninja"
DEFAULT_BACKUP_RETENTION = 5

_PROFILE_NAME = re.compile(r"^[A-Za-z0-9_-]+$")


def is_valid_profile_name(name: str) -> bool:
    return bool(_PROFILE_NAME.match(name))


@dataclass(frozen=True)
class Profile:
    """One isolated Binary Ninja setup."""

    name: str
    install_dir: str
    config_dir: str
    executable: str = DEFAULT_EXECUTABLE
    debug: bool = False

    @property
    def install_path(self) -> Path:
        return Path(self.install_dir).expanduser()

    @property
    def data_path(self) -> Path:
        return Path(self.config_dir).expanduser()


@dataclass
class GlobalConfig:
    default_profile: str | None = None
    backup_retention: int = DEFAULT_BACKUP_RETENTION
    backup_dir: str | None = None
    debug: bool = False

    @property
    def backup_path(self) -> Path:
        if self.backup_dir:
            return Path(self.backup_dir).expanduser()
        return BACKUP_DIR


@dataclass
class SyncConfig:
    exclusions: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUSIONS))


@dataclass
class Config:
    """Root configuration object."""

    global_: GlobalConfig = field(default_factory=GlobalConfig)
    profiles: dict[str, Profile] = field(default_factory=dict)
    sync: SyncConfig = field(default_factory=SyncConfig)

    def get_profile(self, name: str) -> Profile | None:
        return self.profiles.get(name)

    def require_profile(self, name: str) -> Profile:
        profile = self.profiles.get(name)
        if profile is None:
            raise ConfigError(f"Profile '{name}' not found")
        return profile

    def other_profiles(self, name: str) -> list[Profile]:
        return [p for pname, p in self.profiles.items() if pname != name]

    def exclusion_set(self, extra: Iterable[str] = ()) -> ExclusionSet:
        """Defaults, then configured exclusions, then one-off patterns."""
        return ExclusionSet(self.sync.exclusions, list(extra))


def config_path(path: Path | None = None) -> Path:
    if path:
        return Path(path).expanduser()
    env = os.environ.get(CONFIG_ENV_VAR)
    if env:
        return Path(env).expanduser()
    return CONFIG_FILE


def _profile_from_dict(name: str, d: Any) -> Profile:
    if not is_valid_profile_name(name):
        raise ConfigError(
            f"Invalid profile name '{name}': use only letters, digits, hyphens and underscores"
        )
    if not isinstance(d, dict):
        raise ConfigError(f"Profile '{name}' must be a table of settings")
    missing = [key for key in ("install_dir", "config_dir") if not d.get(key)]
    if missing:
        raise ConfigError(f"Profile '{name}' is missing {', '.join(missing)}")
    return Profile(
        name=name,
        install_dir=str(d["install_dir"]),
        config_dir=str(d["config_dir"]),
        executable=d.get("executable") or DEFAULT_EXECUTABLE,
        debug=bool(d.get("debug", False)),
    )


def _global_from_dict(d: dict) -> GlobalConfig:
    retention = d.get("backup_retention", DEFAULT_BACKUP_RETENTION)
    if not isinstance(retention, int) or isinstance(retention, bool) or retention < 0:
        raise ConfigError(f"global.backup_retention must be a non-negative integer, got {retention!r}")
    return GlobalConfig(
        default_profile=d.get("default_profile"),
        backup_retention=retention,
        backup_dir=d.get("backup_dir"),
        debug=bool(d.get("debug", False)),
    )


def load_config(path: Path | None = None) -> Config:
    """Load config from disk. Returns empty Config if file doesn't exist."""
    path = config_path(path)
    if not path.exists():
        return Config()

    try:
        data = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    profiles = {}
    for name, pconf in data.get("profiles", {}).items():
        profiles[name] = _profile_from_dict(name, pconf)

    sync = SyncConfig()
    if "exclusions" in data.get("sync", {}):
        exclusions = data["sync"]["exclusions"]
        if not isinstance(exclusions, list):
            raise ConfigError("sync.exclusions must be a list of patterns")
        sync.exclusions = [str(p) for p in exclusions]

    return Config(
        global_=_global_from_dict(data.get("global", {})),
        profiles=profiles,
        sync=sync,
    )


def save_config(config: Config, path: Path | None = None) -> None:
    """Save config to disk."""
    path = config_path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    g = config.global_
    gd: dict[str, Any] = {"backup_retention": g.backup_retention}
    if g.default_profile:
        gd["default_profile"] = g.default_profile
    if g.backup_dir:
        gd["backup_dir"] = g.backup_dir
    if g.debug:
        gd["debug"] = True

    data: dict[str, Any] = {
        "global": gd,
        "profiles": {},
        "sync": {"exclusions": config.sync.exclusions},
    }
    for name, p in config.profiles.items():
        pd: dict[str, Any] = {"install_dir": p.install_dir, "config_dir": p.config_dir}
        if p.executable != DEFAULT_EXECUTABLE:
            pd["executable"] = p.executable
        if p.debug:
            pd["debug"] = True
        data["profiles"][name] = pd

    path.write_text(json.dumps(data, indent=2) + "\n")
