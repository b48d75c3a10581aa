"""Structural comparison of two profile data directories."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from bn_loader.catalog import SYNC_ITEMS
from bn_loader.errors import ScanError
from bn_loader.scanner import FileState, ScanResult

logger = logging.getLogger(__name__)

SETTINGS_FILE = "settings.json"
MAX_VALUE_DISPLAY_LEN = 30
VALUE_PREVIEW_LEN = 27


class DiffStatus(str, Enum):
    ONLY_LEFT = "only-left"
    ONLY_RIGHT = "only-right"
    DIFFERENT = "different"


@dataclass(frozen=True)
class DiffEntry:
    item: str
    path: str
    status: DiffStatus
    reason: str = ""


@dataclass
class DiffReport:
    """Differences between two scans, in catalog then path order."""

    left_name: str
    right_name: str
    entries: list[DiffEntry] = field(default_factory=list)
    identical: list[str] = field(default_factory=list)
    errors: list[tuple[str, ScanError]] = field(default_factory=list)

    def _paths(self, status: DiffStatus) -> list[str]:
        return [e.path for e in self.entries if e.status is status]

    @property
    def only_in_left(self) -> list[str]:
        return self._paths(DiffStatus.ONLY_LEFT)

    @property
    def only_in_right(self) -> list[str]:
        return self._paths(DiffStatus.ONLY_RIGHT)

    @property
    def differing(self) -> list[str]:
        return self._paths(DiffStatus.DIFFERENT)

    def reason_for(self, path: str) -> str | None:
        for e in self.entries:
            if e.path == path and e.status is DiffStatus.DIFFERENT:
                return e.reason
        return None

    def entries_for(self, item: str) -> list[DiffEntry]:
        return [e for e in self.entries if e.item == item]

    @property
    def has_differences(self) -> bool:
        return bool(self.entries)


def _file_reason(left: FileState, right: FileState) -> str:
    if left.size != right.size:
        return f"size differs ({left.size} -> {right.size} bytes)"
    return "content differs"


def diff(
    left: ScanResult,
    right: ScanResult,
    left_name: str = "left",
    right_name: str = "right",
) -> DiffReport:
    """Compare two scans item by item, then file by file."""
    report = DiffReport(left_name=left_name, right_name=right_name)

    for side, result in ((left_name, left), (right_name, right)):
        for err in result.errors:
            report.errors.append((side, err))

    for item in SYNC_ITEMS:
        lstate = left.items[item.name]
        rstate = right.items[item.name]

        if not lstate.present and not rstate.present:
            continue
        if not rstate.present:
            report.entries.append(DiffEntry(item.name, item.name, DiffStatus.ONLY_LEFT))
            continue
        if not lstate.present:
            report.entries.append(DiffEntry(item.name, item.name, DiffStatus.ONLY_RIGHT))
            continue
        if lstate.state is not rstate.state:
            reason = f"type mismatch ({lstate.state.value} vs {rstate.state.value})"
            report.entries.append(
                DiffEntry(item.name, item.name, DiffStatus.DIFFERENT, reason)
            )
            continue

        for path in sorted(set(lstate.files) | set(rstate.files)):
            lfile = lstate.files.get(path)
            rfile = rstate.files.get(path)
            if rfile is None:
                report.entries.append(DiffEntry(item.name, path, DiffStatus.ONLY_LEFT))
            elif lfile is None:
                report.entries.append(DiffEntry(item.name, path, DiffStatus.ONLY_RIGHT))
            elif lfile.digest == rfile.digest:
                report.identical.append(path)
            else:
                report.entries.append(
                    DiffEntry(item.name, path, DiffStatus.DIFFERENT, _file_reason(lfile, rfile))
                )

    return report


# ------------------------------------------------------------------
# settings.json key-level comparison
# ------------------------------------------------------------------


class ChangeKind(str, Enum):
    ADDED = "+"
    REMOVED = "-"
    CHANGED = "~"


@dataclass(frozen=True)
class SettingChange:
    kind: ChangeKind
    key: str
    text: str


@dataclass
class SettingsDiff:
    left_present: bool
    right_present: bool
    changes: list[SettingChange] = field(default_factory=list)


def _load_settings(path: Path) -> Any | None:
    if not path.is_file():
        return None
    try:
        return json.loads(path.read_text())
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Could not read %s: %s", path, e)
        return None


def format_value(value: Any) -> str:
    """Short preview of a JSON value for diff output."""
    if isinstance(value, str):
        if len(value) > MAX_VALUE_DISPLAY_LEN:
            return f'"{value[:VALUE_PREVIEW_LEN]}..."'
        return json.dumps(value)
    if isinstance(value, list):
        return f"[{len(value)} items]"
    if isinstance(value, dict):
        return f"{{{len(value)} keys}}"
    return json.dumps(value)


def diff_json(left: Any, right: Any, prefix: str = "") -> list[SettingChange]:
    """Recursively compare two JSON values, keyed by dotted path."""
    changes: list[SettingChange] = []

    if isinstance(left, dict) and isinstance(right, dict):
        for key in sorted(set(left) | set(right)):
            path = f"{prefix}.{key}" if prefix else key
            if key not in right:
                changes.append(SettingChange(ChangeKind.REMOVED, path, f"- {path} (only in first)"))
            elif key not in left:
                changes.append(SettingChange(ChangeKind.ADDED, path, f"+ {path} (only in second)"))
            else:
                changes.extend(diff_json(left[key], right[key], path))
    elif type(left) is not type(right) or left != right:
        text = f"~ {prefix} : {format_value(left)} -> {format_value(right)}"
        changes.append(SettingChange(ChangeKind.CHANGED, prefix, text))

    return changes


def diff_settings(left_dir: Path, right_dir: Path) -> SettingsDiff:
    """Compare the settings.json of two data directories key by key."""
    left = _load_settings(Path(left_dir).expanduser() / SETTINGS_FILE)
    right = _load_settings(Path(right_dir).expanduser() / SETTINGS_FILE)

    result = SettingsDiff(left_present=left is not None, right_present=right is not None)
    if left is not None and right is not None:
        result.changes = diff_json(left, right)
    return result
