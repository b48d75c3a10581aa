"""Rotating pre-sync backups of destination profiles.

Layout::

    <root>/<profile>/<stamp>/manifest.json
    <root>/<profile>/<stamp>/files/<relative path>

Stamps are UTC timestamps that sort lexically and strictly increase per
profile, so the newest backup is always the last one listed.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from bn_loader.config import is_valid_profile_name
from bn_loader.errors import BackupError
from bn_loader.planner import SyncPlan
from bn_loader.scanner import fingerprint

logger = logging.getLogger(__name__)

STAMP_FORMAT = "%Y%m%dT%H%M%S.%fZ"
MANIFEST_FILE = "manifest.json"
FILES_DIR = "files"


def parse_stamp(name: str) -> datetime | None:
    try:
        return datetime.strptime(name, STAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        return None


@dataclass(frozen=True)
class BackupEntry:
    """One destination path captured by a backup.

    ``existed`` is False for paths the sync was about to create; restoring
    the backup removes them again.
    """

    path: str
    existed: bool


@dataclass(frozen=True)
class Backup:
    profile: str
    stamp: str
    path: Path
    data_dir: str = ""
    entries: tuple[BackupEntry, ...] = ()

    @property
    def files_dir(self) -> Path:
        return self.path / FILES_DIR

    @property
    def created(self) -> datetime | None:
        return parse_stamp(self.stamp)


def remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()


def _copy_entry(src: Path, dst: Path) -> None:
    dst.parent.mkdir(parents=True, exist_ok=True)
    if src.is_dir():
        shutil.copytree(src, dst)
    else:
        shutil.copy2(src, dst)


class BackupManager:
    """Creates, lists, prunes and restores backups under a root directory."""

    def __init__(self, root: Path | str, clock: Callable[[], datetime] | None = None):
        self.root = Path(root).expanduser()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def profile_dir(self, profile: str) -> Path:
        # Keys become one directory level under root
        if not is_valid_profile_name(profile):
            raise BackupError(f"Invalid backup profile name '{profile}'")
        return self.root / profile

    def list_backups(self, profile: str) -> list[Backup]:
        """Return the profile's backups, oldest first."""
        directory = self.profile_dir(profile)
        if not directory.is_dir():
            return []

        backups = []
        for child in directory.iterdir():
            if child.is_dir() and parse_stamp(child.name) is not None:
                backups.append(self._load(profile, child))
        return sorted(backups, key=lambda b: b.stamp)

    def get_backup(self, profile: str, stamp: str) -> Backup | None:
        for backup in self.list_backups(profile):
            if backup.stamp == stamp:
                return backup
        return None

    def _load(self, profile: str, path: Path) -> Backup:
        data: dict = {}
        manifest = path / MANIFEST_FILE
        if manifest.is_file():
            try:
                data = json.loads(manifest.read_text())
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Unreadable backup manifest %s: %s", manifest, e)
        entries = tuple(
            BackupEntry(path=e["path"], existed=bool(e.get("existed", True)))
            for e in data.get("entries", [])
        )
        return Backup(
            profile=profile,
            stamp=path.name,
            path=path,
            data_dir=data.get("data_dir", ""),
            entries=entries,
        )

    def _next_stamp(self, profile: str) -> str:
        now = self._clock()
        existing = self.list_backups(profile)
        if existing:
            latest = existing[-1].created
            if latest is not None and now <= latest:
                now = latest + timedelta(microseconds=1)
        return now.strftime(STAMP_FORMAT)

    def snapshot(self, plan: SyncPlan) -> Backup:
        """Copy every destination path the plan mutates, then verify the copy.

        Raises BackupError (leaving no partial backup behind) if anything
        could not be copied or does not match the destination afterwards.
        """
        profile = plan.dest_name
        stamp = self._next_stamp(profile)
        backup_dir = self.profile_dir(profile) / stamp
        files_dir = backup_dir / FILES_DIR

        entries: list[BackupEntry] = []
        try:
            files_dir.mkdir(parents=True)
            seen: set[str] = set()
            for action in plan.mutating:
                rel = action.relative_path
                if rel in seen:
                    continue
                seen.add(rel)

                target = plan.dest_dir / rel
                if target.exists():
                    _copy_entry(target, files_dir / rel)
                    entries.append(BackupEntry(rel, existed=True))
                else:
                    entries.append(BackupEntry(rel, existed=False))

            backup = Backup(
                profile=profile,
                stamp=stamp,
                path=backup_dir,
                data_dir=str(plan.dest_dir),
                entries=tuple(entries),
            )
            self._write_manifest(backup)
            self._verify(plan.dest_dir, backup)
        except OSError as e:
            shutil.rmtree(backup_dir, ignore_errors=True)
            raise BackupError(f"Failed to back up '{profile}': {e}") from e
        except BackupError:
            shutil.rmtree(backup_dir, ignore_errors=True)
            raise

        logger.info("Backup created: %s (%d paths)", backup_dir, len(entries))
        return backup

    def _write_manifest(self, backup: Backup) -> None:
        data = {
            "profile": backup.profile,
            "stamp": backup.stamp,
            "data_dir": backup.data_dir,
            "entries": [{"path": e.path, "existed": e.existed} for e in backup.entries],
        }
        (backup.path / MANIFEST_FILE).write_text(json.dumps(data, indent=2) + "\n")

    def _verify(self, dest_dir: Path, backup: Backup) -> None:
        for entry in backup.entries:
            if not entry.existed:
                continue
            original = dest_dir / entry.path
            copy = backup.files_dir / entry.path
            if original.is_dir():
                for root, _dirs, files in os.walk(original):
                    for name in files:
                        rel = Path(root, name).relative_to(original)
                        self._verify_file(original / rel, copy / rel, f"{entry.path}/{rel.as_posix()}")
            else:
                self._verify_file(original, copy, entry.path)

    @staticmethod
    def _verify_file(original: Path, copy: Path, label: str) -> None:
        if not copy.is_file():
            raise BackupError(f"Backup verification failed: {label} missing from backup")
        if fingerprint(original).digest != fingerprint(copy).digest:
            raise BackupError(f"Backup verification failed: {label} does not match")

    def prune(self, profile: str, retention_limit: int) -> list[Backup]:
        """Delete all but the newest retention_limit backups. 0 keeps everything."""
        if retention_limit <= 0:
            return []

        backups = self.list_backups(profile)
        removed = []
        for backup in backups[: max(len(backups) - retention_limit, 0)]:
            try:
                shutil.rmtree(backup.path)
            except OSError as e:
                logger.warning("Failed to remove old backup %s: %s", backup.path, e)
                continue
            logger.info("Removed old backup: %s", backup.path)
            removed.append(backup)
        return removed

    def restore(self, backup: Backup, data_dir: Path | str | None = None) -> list[str]:
        """Put the destination back the way it was when the backup was taken.

        Paths the sync created are removed, captured paths are copied back.
        Returns the restored relative paths.
        """
        if not (data_dir or backup.data_dir):
            raise BackupError(f"Backup {backup.stamp} does not record its data directory")
        target_dir = Path(data_dir or backup.data_dir).expanduser()

        restored = []
        try:
            for entry in sorted(backup.entries, key=lambda e: e.path, reverse=True):
                if not entry.existed:
                    remove_path(target_dir / entry.path)
                    restored.append(entry.path)
            for entry in sorted(backup.entries, key=lambda e: e.path):
                if entry.existed:
                    remove_path(target_dir / entry.path)
                    _copy_entry(backup.files_dir / entry.path, target_dir / entry.path)
                    restored.append(entry.path)
        except OSError as e:
            raise BackupError(f"Failed to restore backup {backup.stamp}: {e}") from e

        logger.info("Restored backup %s into %s", backup.stamp, target_dir)
        return restored
