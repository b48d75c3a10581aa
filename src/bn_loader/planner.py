"""Sync planning: decide what to copy, overwrite or skip.

A SyncPlan is computed from two scans without touching the filesystem. The
same plan value is what a dry run reports and what a real run executes.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from bn_loader.catalog import SYNC_ITEMS
from bn_loader.patterns import ExclusionSet
from bn_loader.scanner import EntryState, ItemState, ScanResult


class ActionKind(str, Enum):
    COPY = "copy"
    OVERWRITE = "overwrite"
    SKIP = "skip"
    DELETE = "delete"


class Reason(str, Enum):
    EXCLUDED = "excluded"
    IDENTICAL = "identical"
    ABSENT_IN_SOURCE = "absent-in-source"
    UNREADABLE = "unreadable"
    CONTENT_DIFFERS = "content-differs"
    TYPE_DIFFERS = "type-differs"


@dataclass(frozen=True)
class SyncAction:
    kind: ActionKind
    item: str
    relative_path: str
    source: Path | None
    dest: Path
    reason: Reason | None = None

    @property
    def mutating(self) -> bool:
        return self.kind is not ActionKind.SKIP

    def key(self) -> tuple[str, str, str, str | None]:
        return (self.kind.value, self.item, self.relative_path, self.reason.value if self.reason else None)

    def describe(self) -> str:
        text = f"{self.kind.value} {self.relative_path}"
        if self.reason:
            text += f" ({self.reason.value})"
        return text


@dataclass(frozen=True)
class SyncPlan:
    source_name: str
    dest_name: str
    source_dir: Path
    dest_dir: Path
    actions: tuple[SyncAction, ...] = ()
    exclusions: tuple[str, ...] = ()
    mirror: bool = False

    @property
    def mutating(self) -> list[SyncAction]:
        return [a for a in self.actions if a.mutating]

    @property
    def has_changes(self) -> bool:
        return any(a.mutating for a in self.actions)

    def count(self, kind: ActionKind) -> int:
        return sum(1 for a in self.actions if a.kind is kind)

    def keys(self) -> list[tuple[str, str, str, str | None]]:
        """Structural identity of the plan, used to compare two plans."""
        return [a.key() for a in self.actions]


def default_name(data_dir: Path) -> str:
    """A profile-style name for an unnamed data directory.

    Used as the backup key, so it never contains a path separator.
    """
    stem = re.sub(r"[^A-Za-z0-9_-]+", "-", data_dir.name).strip("-") or "profile"
    digest = hashlib.sha256(str(data_dir.absolute()).encode()).hexdigest()[:12]
    return f"{stem}-{digest}"


def plan(
    source: ScanResult,
    dest: ScanResult,
    exclusions: ExclusionSet,
    *,
    mirror: bool = False,
    source_name: str | None = None,
    dest_name: str | None = None,
) -> SyncPlan:
    """Plan a one-way sync of every catalog item present in source."""
    actions: list[SyncAction] = []
    for item in SYNC_ITEMS:
        src = source.items[item.name]
        if not src.present:
            continue
        actions.extend(
            _plan_item(src, dest.items[item.name], source.data_dir, dest.data_dir, exclusions, mirror)
        )

    return SyncPlan(
        source_name=source_name or default_name(source.data_dir),
        dest_name=dest_name or default_name(dest.data_dir),
        source_dir=source.data_dir,
        dest_dir=dest.data_dir,
        actions=tuple(actions),
        exclusions=exclusions.patterns,
        mirror=mirror,
    )


def _plan_item(
    src: ItemState,
    dst: ItemState,
    source_dir: Path,
    dest_dir: Path,
    exclusions: ExclusionSet,
    mirror: bool,
) -> list[SyncAction]:
    name = src.name

    def action(kind: ActionKind, rel: str, reason: Reason | None = None) -> SyncAction:
        source = None if kind is ActionKind.DELETE else source_dir / rel
        return SyncAction(kind, name, rel, source, dest_dir / rel, reason)

    if exclusions.matches(name):
        return [action(ActionKind.SKIP, name, Reason.EXCLUDED)]
    if src.files and all(exclusions.matches(p) for p in src.files):
        return [action(ActionKind.SKIP, name, Reason.EXCLUDED)]

    head: list[SyncAction] = []
    dest_files = dst.files
    if dst.present and dst.state is not src.state:
        head.append(action(ActionKind.OVERWRITE, name, Reason.TYPE_DIFFERS))
        if src.state is EntryState.FILE:
            return head
        dest_files = {}
    elif src.state is EntryState.TREE and not src.files and not src.errors:
        if not dst.present:
            head.append(action(ActionKind.COPY, name))
        elif not dst.files:
            head.append(action(ActionKind.SKIP, name, Reason.IDENTICAL))

    included = [p for p in src.files if not exclusions.matches(p)]
    dest_dirs = _parent_dirs(dest_files)
    # A destination file sitting where the source has a directory
    conflicts = sorted(p for p in dest_files if p in _parent_dirs(included))

    body: list[SyncAction] = []
    for path in conflicts:
        body.append(action(ActionKind.OVERWRITE, path, Reason.TYPE_DIFFERS))

    for path, state in src.files.items():
        if exclusions.matches(path):
            body.append(action(ActionKind.SKIP, path, Reason.EXCLUDED))
        elif path in dest_dirs:
            body.append(action(ActionKind.OVERWRITE, path, Reason.TYPE_DIFFERS))
            conflicts.append(path)
        elif path not in dest_files:
            body.append(action(ActionKind.COPY, path))
        elif dest_files[path].digest != state.digest:
            body.append(action(ActionKind.OVERWRITE, path, Reason.CONTENT_DIFFERS))
        else:
            body.append(action(ActionKind.SKIP, path, Reason.IDENTICAL))

    unreadable = [err.path for err in src.errors]
    for path in unreadable:
        body.append(action(ActionKind.SKIP, path, Reason.UNREADABLE))

    for path in dest_files:
        if path in src.files or _under_any(path, unreadable) or _under_any(path, conflicts):
            continue
        if exclusions.matches(path):
            body.append(action(ActionKind.SKIP, path, Reason.EXCLUDED))
        elif mirror:
            body.append(action(ActionKind.DELETE, path, Reason.ABSENT_IN_SOURCE))
        else:
            body.append(action(ActionKind.SKIP, path, Reason.ABSENT_IN_SOURCE))

    body.sort(key=lambda a: a.relative_path)
    return head + body


def _parent_dirs(paths) -> set[str]:
    """Every proper ancestor directory of the given relative paths."""
    dirs = set()
    for path in paths:
        parts = path.split("/")
        for i in range(1, len(parts)):
            dirs.add("/".join(parts[:i]))
    return dirs


def _under_any(path: str, prefixes: list[str]) -> bool:
    return any(path == p or path.startswith(p + "/") for p in prefixes)
