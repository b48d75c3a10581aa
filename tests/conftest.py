"""Shared test fixtures."""

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from bn_loader.config import Profile


def write_tree(root: Path, files: dict) -> Path:
    """Create files under root from a {relative_path: content} mapping."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content)
    return root


@pytest.fixture
def source_dir(tmp_path):
    """A source profile data directory with the usual artifacts."""
    return write_tree(
        tmp_path / "source",
        {
            "plugins/a.py": "X",
            "plugins/tools/helper.py": "helper\n",
            "plugins/tools/__pycache__/helper.cpython-312.pyc": b"\x00\x01",
            "themes/dark.bntheme": '{"name": "dark"}\n',
            "settings.json": '{"ui": {"font": "Mono"}}\n',
            "startup.py": "print('hi')\n",
            "license.dat": "SECRET-LICENSE",
            "keychain/token": "t0k3n",
        },
    )


@pytest.fixture
def dest_dir(tmp_path):
    """A destination data directory that partially overlaps the source."""
    return write_tree(
        tmp_path / "dest",
        {
            "plugins/a.py": "Y",
            "plugins/local_only.py": "mine\n",
            "startup.py": "print('hi')\n",
            "license.dat": "OTHER-LICENSE",
        },
    )


@pytest.fixture
def source_profile(source_dir, tmp_path):
    return Profile(name="main", install_dir=str(tmp_path / "bn"), config_dir=str(source_dir))


@pytest.fixture
def dest_profile(dest_dir, tmp_path):
    return Profile(name="scratch", install_dir=str(tmp_path / "bn"), config_dir=str(dest_dir))


@pytest.fixture
def backup_root(tmp_path):
    return tmp_path / "backups"


@pytest.fixture
def ticking_clock():
    """A deterministic UTC clock advancing one second per call."""
    state = {"now": datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)}

    def clock():
        state["now"] += timedelta(seconds=1)
        return state["now"]

    return clock


@pytest.fixture
def config_file(tmp_path, source_dir, dest_dir):
    """Write a config file with two profiles and a backup dir under tmp_path."""
    path = tmp_path / "config.json"
    data = {
        "global": {
            "default_profile": "main",
            "backup_retention": 3,
            "backup_dir": str(tmp_path / "backups"),
        },
        "profiles": {
            "main": {"install_dir": str(tmp_path / "bn"), "config_dir": str(source_dir)},
            "scratch": {"install_dir": str(tmp_path / "bn"), "config_dir": str(dest_dir)},
        },
        "sync": {"exclusions": ["snippets/private_*"]},
    }
    path.write_text(json.dumps(data, indent=2))
    return path
