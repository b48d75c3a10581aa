"""Read-only scanning of a profile data directory."""

from __future__ import annotations

import hashlib
import logging
import os
import stat
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from bn_loader.catalog import SYNC_ITEMS, SyncableItem
from bn_loader.errors import ScanError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 65536


class EntryState(str, Enum):
    ABSENT = "absent"
    FILE = "file"
    TREE = "tree"


@dataclass(frozen=True)
class FileState:
    """Fingerprint of one regular file."""

    size: int
    mtime: float
    digest: str


@dataclass
class ItemState:
    """On-disk state of one catalog item.

    ``files`` maps POSIX paths relative to the data directory to their
    fingerprints. A file item has a single entry keyed by its own name.
    """

    item: SyncableItem
    state: EntryState = EntryState.ABSENT
    files: dict[str, FileState] = field(default_factory=dict)
    errors: list[ScanError] = field(default_factory=list)
    circular: bool = False

    @property
    def name(self) -> str:
        return self.item.name

    @property
    def present(self) -> bool:
        return self.state is not EntryState.ABSENT


@dataclass
class ScanResult:
    data_dir: Path
    items: dict[str, ItemState]

    def __getitem__(self, name: str) -> ItemState:
        return self.items[name]

    def present_items(self) -> list[ItemState]:
        return [s for s in self.items.values() if s.present]

    @property
    def errors(self) -> list[ScanError]:
        return [e for s in self.items.values() for e in s.errors]


def fingerprint(path: Path) -> FileState:
    """Hash a file's content (SHA-256) and record its size and mtime."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    st = os.stat(path)
    return FileState(size=st.st_size, mtime=st.st_mtime, digest=digest.hexdigest())


def scan(data_dir: Path | str) -> ScanResult:
    """Scan the catalog items under data_dir. Never modifies anything."""
    data_dir = Path(data_dir).expanduser()
    if not data_dir.is_dir():
        logger.debug("Data directory %s does not exist; every item is absent", data_dir)

    items = {}
    for item in SYNC_ITEMS:
        items[item.name] = _scan_item(data_dir, item)
    return ScanResult(data_dir=data_dir, items=items)


def _scan_item(data_dir: Path, item: SyncableItem) -> ItemState:
    state = ItemState(item=item)
    path = data_dir / item.name

    try:
        st = os.stat(path)
    except FileNotFoundError:
        if os.path.islink(path):
            state.errors.append(ScanError(item.name, "broken symbolic link"))
        return state
    except OSError as e:
        state.errors.append(ScanError(item.name, e.strerror or str(e)))
        return state

    if stat.S_ISDIR(st.st_mode):
        state.state = EntryState.TREE
        _walk(path, item.name, state, set())
    elif stat.S_ISREG(st.st_mode):
        state.state = EntryState.FILE
        try:
            state.files[item.name] = fingerprint(path)
        except OSError as e:
            state.errors.append(ScanError(item.name, e.strerror or str(e)))
    else:
        state.errors.append(ScanError(item.name, "not a regular file or directory"))

    return state


def _walk(directory: Path, rel: str, state: ItemState, visited: set[tuple[int, int]]) -> None:
    """Recursively fingerprint files, following directory symlinks once."""
    try:
        st = os.stat(directory)
    except OSError as e:
        state.errors.append(ScanError(rel, e.strerror or str(e)))
        return

    key = (st.st_dev, st.st_ino)
    if key in visited:
        logger.warning("Skipping %s: directory already visited (symlink cycle)", rel)
        state.circular = True
        return
    visited.add(key)

    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        state.errors.append(ScanError(rel, e.strerror or str(e)))
        return

    for entry in entries:
        entry_rel = f"{rel}/{entry.name}"
        try:
            if entry.is_dir():
                _walk(Path(entry.path), entry_rel, state, visited)
            elif entry.is_file():
                state.files[entry_rel] = fingerprint(Path(entry.path))
            elif entry.is_symlink():
                state.errors.append(ScanError(entry_rel, "broken symbolic link"))
            else:
                logger.debug("Ignoring special file %s", entry_rel)
        except OSError as e:
            state.errors.append(ScanError(entry_rel, e.strerror or str(e)))
