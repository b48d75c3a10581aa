"""Catalog of the top-level entries synced between profile data directories."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ItemKind(str, Enum):
    """What a catalog entry is expected to be on disk."""

    FILE = "file"
    TREE = "tree"


@dataclass(frozen=True)
class SyncableItem:
    name: str
    kind: ItemKind


SYNC_ITEMS: tuple[SyncableItem, ...] = (
    SyncableItem("plugins", ItemKind.TREE),
    SyncableItem("repositories", ItemKind.TREE),
    SyncableItem("signatures", ItemKind.TREE),
    SyncableItem("themes", ItemKind.TREE),
    SyncableItem("snippets", ItemKind.TREE),
    SyncableItem("types", ItemKind.TREE),
    SyncableItem("settings.json", ItemKind.FILE),
    SyncableItem("startup.py", ItemKind.FILE),
    SyncableItem("keybindings.json", ItemKind.FILE),
    # Identity artifacts. Scanned and diffed, never copied (see DEFAULT_EXCLUSIONS).
    SyncableItem("license.dat", ItemKind.FILE),
    SyncableItem("license.txt", ItemKind.FILE),
    SyncableItem("user.id", ItemKind.FILE),
    SyncableItem("keychain", ItemKind.TREE),
)

LICENSE_FILES = ("license.dat", "license.txt")

