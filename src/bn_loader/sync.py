"""Sync execution: apply (or preview) plans against destination profiles."""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

from bn_loader.backup import Backup, BackupManager, remove_path
from bn_loader.config import DEFAULT_BACKUP_RETENTION, Profile
from bn_loader.errors import BackupError, CopyError
from bn_loader.patterns import ExclusionSet
from bn_loader.planner import ActionKind, Reason, SyncAction, SyncPlan, plan
from bn_loader.scanner import scan

logger = logging.getLogger(__name__)


class ActionStatus(str, Enum):
    APPLIED = "applied"
    WOULD_APPLY = "would-apply"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class ActionResult:
    action: SyncAction
    status: ActionStatus
    error: CopyError | None = None


@dataclass
class ExecutionLog:
    """Per-action outcome of one plan, in plan order."""

    plan: SyncPlan
    dry_run: bool
    results: list[ActionResult] = field(default_factory=list)
    backup: Backup | None = None
    pruned: list[Backup] = field(default_factory=list)

    def _count(self, kind: ActionKind) -> int:
        done = (ActionStatus.APPLIED, ActionStatus.WOULD_APPLY)
        return sum(1 for r in self.results if r.action.kind is kind and r.status in done)

    @property
    def copied(self) -> int:
        return self._count(ActionKind.COPY)

    @property
    def overwritten(self) -> int:
        return self._count(ActionKind.OVERWRITE)

    @property
    def deleted(self) -> int:
        return self._count(ActionKind.DELETE)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status is ActionStatus.SKIPPED)

    @property
    def failures(self) -> list[ActionResult]:
        return [r for r in self.results if r.status is ActionStatus.FAILED]

    @property
    def ok(self) -> bool:
        return not self.failures


def _apply(action: SyncAction) -> None:
    dest = action.dest
    if action.kind is ActionKind.DELETE:
        dest.unlink()
        return

    source = action.source
    if source is None:
        raise CopyError(action.relative_path, f"no source for {action.kind.value}")
    if action.reason is Reason.TYPE_DIFFERS:
        remove_path(dest)

    if source.is_dir():
        dest.mkdir(parents=True, exist_ok=True)
    else:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(source, dest)


class SyncExecutor:
    """Runs a SyncPlan, taking a verified backup before the first write."""

    def __init__(self, backups: BackupManager | None, retention: int = DEFAULT_BACKUP_RETENTION):
        self.backups = backups
        self.retention = retention

    def execute(self, sync_plan: SyncPlan, dry_run: bool = False) -> ExecutionLog:
        log = ExecutionLog(plan=sync_plan, dry_run=dry_run)

        if dry_run:
            for action in sync_plan.actions:
                status = ActionStatus.WOULD_APPLY if action.mutating else ActionStatus.SKIPPED
                log.results.append(ActionResult(action, status))
            return log

        if sync_plan.has_changes:
            if self.backups is None:
                raise BackupError(
                    f"No backup location configured; refusing to modify '{sync_plan.dest_name}'"
                )
            log.backup = self.backups.snapshot(sync_plan)
            log.pruned = self.backups.prune(sync_plan.dest_name, self.retention)

        for action in sync_plan.actions:
            if not action.mutating:
                log.results.append(ActionResult(action, ActionStatus.SKIPPED))
                continue
            try:
                _apply(action)
            except OSError as e:
                err = CopyError(action.relative_path, e.strerror or str(e))
            except CopyError as e:
                err = e
            else:
                logger.debug("%s -> %s", action.describe(), action.dest)
                log.results.append(ActionResult(action, ActionStatus.APPLIED))
                continue
            logger.error("Failed to %s", err)
            log.results.append(ActionResult(action, ActionStatus.FAILED, err))

        return log


def plan_sync(
    source: Profile,
    targets: Iterable[Profile],
    exclusions: ExclusionSet,
    *,
    mirror: bool = False,
) -> list[SyncPlan]:
    """Scan the source once and plan a sync to every target."""
    source_scan = scan(source.data_path)
    for err in source_scan.errors:
        logger.warning("Could not read %s in '%s': %s", err.path, source.name, err.message)

    plans = []
    for target in targets:
        dest_scan = scan(target.data_path)
        plans.append(
            plan(
                source_scan,
                dest_scan,
                exclusions,
                mirror=mirror,
                source_name=source.name,
                dest_name=target.name,
            )
        )
    return plans


def sync_profiles(
    source: Profile,
    targets: Iterable[Profile],
    exclusions: ExclusionSet,
    executor: SyncExecutor,
    *,
    dry_run: bool = False,
    mirror: bool = False,
) -> list[ExecutionLog]:
    """Plan and execute a sync from source to each target in turn.

    A BackupError for any target propagates immediately; that target is
    left untouched and later targets are not attempted.
    """
    plans = plan_sync(source, targets, exclusions, mirror=mirror)
    return [executor.execute(p, dry_run=dry_run) for p in plans]
