"""CLI interface for bn-loader."""

from __future__ import annotations

import shutil
import sys
from pathlib import Path
from typing import NoReturn

import click

from bn_loader import __version__
from bn_loader.backup import BackupManager
from bn_loader.catalog import LICENSE_FILES
from bn_loader.config import (
    Config,
    Profile,
    config_path,
    is_valid_profile_name,
    load_config,
    save_config,
)
from bn_loader.diff import DiffStatus, diff, diff_settings
from bn_loader.errors import BackupError, BnLoaderError, ConfigError, ScanError
from bn_loader.log import setup_logging
from bn_loader.planner import ActionKind
from bn_loader.plugins import PluginSource, diff_plugins, list_plugins
from bn_loader.scanner import scan
from bn_loader.sync import ActionStatus, ExecutionLog, SyncExecutor, plan_sync

MAX_DIFF_DISPLAY = 20

ACTION_STYLE = {
    ActionKind.COPY: ("+", "green"),
    ActionKind.OVERWRITE: ("~", "yellow"),
    ActionKind.DELETE: ("-", "red"),
    ActionKind.SKIP: ("=", None),
}


def styled(text: str, **kwargs) -> str:
    return click.style(text, **kwargs)


def info(msg: str) -> None:
    click.echo(f"  {msg}")


def success(msg: str) -> None:
    click.echo(f"  {styled(msg, fg='green')}")


def warn(msg: str) -> None:
    click.echo(f"  {styled(msg, fg='yellow')}")


def error(msg: str) -> None:
    click.echo(f"  {styled(msg, fg='red')}", err=True)


def heading(msg: str) -> None:
    click.echo(f"\n  {styled(msg, bold=True)}")


def _fail(msg: str) -> NoReturn:
    error(msg)
    sys.exit(1)


def _load(ctx: click.Context) -> Config:
    try:
        return load_config(ctx.obj["config_path"])
    except ConfigError as e:
        _fail(f"Error: {e}")


def _profile(config: Config, name: str) -> Profile:
    try:
        return config.require_profile(name)
    except ConfigError as e:
        _fail(f"Error: {e}")


@click.group()
@click.version_option(version=__version__, prog_name="bn-loader")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output.")
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Use a specific config file.",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_file: Path | None) -> None:
    """Binary Ninja profile launcher: sync and compare profiles."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_file
    setup_logging(verbose)


@cli.command("list")
@click.pass_context
def list_cmd(ctx: click.Context) -> None:
    """List configured profiles."""
    config = _load(ctx)
    if not config.profiles:
        warn(f"No profiles configured. Add one to {config_path(ctx.obj['config_path'])}")
        return

    heading("Available profiles")
    for name, profile in config.profiles.items():
        marker = " (default)" if name == config.global_.default_profile else ""
        info(f"{styled(name, bold=True)}{marker} -> {profile.install_dir}")
        info(f"  Config dir: {profile.config_dir}")
    click.echo()


@cli.command()
@click.argument("name")
@click.option("--template", required=True, help="Profile to take the license and install dir from.")
@click.option(
    "--config-dir",
    required=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for the new profile's data.",
)
@click.pass_context
def init(ctx: click.Context, name: str, template: str, config_dir: Path) -> None:
    """Create a new profile from a template profile."""
    config = _load(ctx)
    template_profile = _profile(config, template)

    if not is_valid_profile_name(name):
        _fail(
            f"Error: Invalid profile name '{name}': use only letters, digits, hyphens and underscores"
        )
    if name in config.profiles:
        _fail(f"Error: Profile '{name}' already exists")

    config_dir = config_dir.expanduser().absolute()
    if config_dir.exists():
        _fail(f"Error: Config directory already exists: {config_dir}")

    heading(f"Initializing profile '{name}'...")
    info(f"Template:    {template}")
    info(f"Install dir: {template_profile.install_dir}")
    info(f"Config dir:  {config_dir}")

    config_dir.mkdir(parents=True)

    copied = []
    for license_file in LICENSE_FILES:
        src = template_profile.data_path / license_file
        if src.exists():
            shutil.copy2(src, config_dir / license_file)
            copied.append(license_file)

    if copied:
        info(f"Copied:      {', '.join(copied)}")
    else:
        warn(f"No license files found in template profile at {template_profile.config_dir}")

    config.profiles[name] = Profile(
        name=name,
        install_dir=template_profile.install_dir,
        config_dir=str(config_dir),
        executable=template_profile.executable,
    )
    save_config(config, ctx.obj["config_path"])

    click.echo()
    success(f"Profile '{name}' initialized.")
    click.echo()


def _render_log(log: ExecutionLog, verbose: bool) -> None:
    for result in log.results:
        action = result.action
        if not action.mutating and not verbose:
            continue
        symbol, color = ACTION_STYLE[action.kind]
        line = f"{symbol} {action.describe()}"
        if result.status is ActionStatus.FAILED:
            line += f"  FAILED: {result.error.message if result.error else 'unknown error'}"
            color = "red"
        info(f"  {styled(line, fg=color) if color else line}")


def _summary(log: ExecutionLog) -> str:
    parts = [
        f"{log.copied} copied",
        f"{log.overwritten} overwritten",
        f"{log.skipped} skipped",
        f"{len(log.failures)} failed",
    ]
    if log.plan.mirror:
        parts.insert(2, f"{log.deleted} deleted")
    return ", ".join(parts)


@cli.command()
@click.option("--from", "source_name", required=True, help="Source profile to sync from.")
@click.option(
    "--to",
    "target_names",
    multiple=True,
    help="Target profile (repeatable; default: all other profiles).",
)
@click.option("--exclude", multiple=True, help="Additional exclusion pattern (repeatable).")
@click.option("--dry-run", is_flag=True, help="Show what would be synced without changes.")
@click.option(
    "--mirror",
    is_flag=True,
    help="Also delete destination files that are not in the source.",
)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def sync(
    ctx: click.Context,
    source_name: str,
    target_names: tuple[str, ...],
    exclude: tuple[str, ...],
    dry_run: bool,
    mirror: bool,
    yes: bool,
) -> None:
    """Sync plugins, settings and themes between profiles."""
    verbose = ctx.obj["verbose"]
    config = _load(ctx)
    source = _profile(config, source_name)

    if source_name in target_names:
        _fail("Error: Cannot sync a profile to itself")
    if target_names:
        targets = [_profile(config, t) for t in dict.fromkeys(target_names)]
    else:
        targets = config.other_profiles(source_name)
    if not targets:
        _fail("Error: No target profiles to sync to")

    exclusions = config.exclusion_set(exclude)
    backups = BackupManager(config.global_.backup_path)
    executor = SyncExecutor(backups, retention=config.global_.backup_retention)

    heading("Sync plan")
    info(f"Source: {source.name} ({source.config_dir})")
    info("Targets:")
    for t in targets:
        info(f"  - {t.name} ({t.config_dir})")
    info(f"Exclusions: {', '.join(exclusions.patterns)}")

    plans = plan_sync(source, targets, exclusions, mirror=mirror)
    previews = [executor.execute(p, dry_run=True) for p in plans]

    for preview in previews:
        heading(f"{source.name} -> {preview.plan.dest_name}")
        _render_log(preview, verbose)
        info(_summary(preview))

    click.echo()
    if not any(p.has_changes for p in plans):
        success("Everything is already in sync.")
        click.echo()
        return

    if dry_run:
        info("(dry-run) No changes made.")
        click.echo()
        return

    if not yes and not click.confirm("  Proceed?", default=False):
        info("Aborted.")
        return

    failed = False
    for sync_plan in plans:
        if not sync_plan.has_changes:
            continue
        heading(f"Syncing to '{sync_plan.dest_name}'...")
        try:
            log = executor.execute(sync_plan)
        except BackupError as e:
            error(f"Error: {e}")
            _fail(f"Sync to '{sync_plan.dest_name}' aborted; no changes were made to it.")

        if log.backup:
            info(f"Backup created: {log.backup.path}")
        for old in log.pruned:
            info(f"Removed old backup: {old.path}")

        _render_log(log, verbose)
        for result in log.failures:
            failed = True
            error(f"  {result.action.relative_path}: {result.error.message if result.error else ''}")
        info(_summary(log))

    click.echo()
    if failed:
        _fail("Sync finished with errors.")
    success("Sync complete.")
    click.echo()


@cli.command("diff")
@click.argument("profile1")
@click.argument("profile2")
@click.pass_context
def diff_cmd(ctx: click.Context, profile1: str, profile2: str) -> None:
    """Compare two profiles."""
    config = _load(ctx)
    left = _profile(config, profile1)
    right = _profile(config, profile2)

    click.echo()
    info(f"Comparing profiles: '{profile1}' vs '{profile2}'")

    report = diff(scan(left.data_path), scan(right.data_path), profile1, profile2)

    heading("=== Files ===")
    if not report.has_differences:
        info("(no differences)")
    for entry in report.entries:
        if entry.status is DiffStatus.ONLY_LEFT:
            info(styled(f"+ {entry.path} (only in '{profile1}')", fg="green"))
        elif entry.status is DiffStatus.ONLY_RIGHT:
            info(styled(f"- {entry.path} (only in '{profile2}')", fg="red"))
        else:
            info(styled(f"~ {entry.path} : {entry.reason}", fg="yellow"))
    for side, err in report.errors:
        warn(f"! {side}: {err}")

    heading("=== Plugins ===")
    try:
        plugins1 = list_plugins(left.data_path)
        plugins2 = list_plugins(right.data_path)
    except ScanError as e:
        warn(f"Could not list plugins: {e}")
    else:
        info(f"{profile1} has {len(plugins1)} plugins, {profile2} has {len(plugins2)} plugins")
        pdiff = diff_plugins(plugins1, plugins2)
        for p in pdiff.only_left:
            info(styled(f"+ {p.display_name} (only in '{profile1}')", fg="green"))
        for p in pdiff.only_right:
            info(styled(f"- {p.display_name} (only in '{profile2}')", fg="red"))
        for p1, p2 in pdiff.version_changes:
            info(styled(f"~ {p1.display_name} : {p1.version or '?'} -> {p2.version or '?'}", fg="yellow"))
        if pdiff.empty:
            info("(no differences)")

    heading("=== Settings ===")
    settings = diff_settings(left.data_path, right.data_path)
    if not settings.left_present and not settings.right_present:
        info("Neither profile has settings.json")
    elif not settings.right_present:
        info(f"Only '{profile1}' has settings.json")
    elif not settings.left_present:
        info(f"Only '{profile2}' has settings.json")
    elif not settings.changes:
        info("(no differences)")
    else:
        info(f"{len(settings.changes)} differences found:")
        colors = {"+": "green", "-": "red", "~": "yellow"}
        for change in settings.changes[:MAX_DIFF_DISPLAY]:
            info(styled(change.text, fg=colors[change.kind.value]))
        if len(settings.changes) > MAX_DIFF_DISPLAY:
            info(f"... and {len(settings.changes) - MAX_DIFF_DISPLAY} more")
    click.echo()


@cli.command()
@click.argument("profile_name")
@click.pass_context
def plugins(ctx: click.Context, profile_name: str) -> None:
    """List plugins installed in a profile."""
    config = _load(ctx)
    profile = _profile(config, profile_name)

    try:
        found = list_plugins(profile.data_path)
    except ScanError as e:
        _fail(f"Error: {e}")

    if not found:
        info(f"No plugins installed for profile '{profile_name}'")
        return

    heading(f"Plugins for profile '{profile_name}' ({len(found)} total)")
    sections = (
        (PluginSource.OFFICIAL, "Official Repository"),
        (PluginSource.COMMUNITY, "Community Repository"),
        (PluginSource.MANUAL, "Manual"),
    )
    for source, title in sections:
        group = [p for p in found if p.source is source]
        if not group:
            continue
        click.echo()
        info(f"[{title}] ({len(group)}):")
        for p in group:
            author = f" by {p.author}" if p.author else ""
            info(f"  {p.display_name} v{p.version or '?'}{author}")
    click.echo()


@cli.command("backups")
@click.argument("profile_name")
@click.pass_context
def backups_cmd(ctx: click.Context, profile_name: str) -> None:
    """List sync backups taken of a profile."""
    config = _load(ctx)
    _profile(config, profile_name)
    manager = BackupManager(config.global_.backup_path)

    found = manager.list_backups(profile_name)
    if not found:
        info(f"No backups for profile '{profile_name}'")
        return

    heading(f"Backups of '{profile_name}' (newest last)")
    for backup in found:
        info(f"{backup.stamp}  {len(backup.entries)} path(s)  {backup.path}")
    click.echo()


@cli.command()
@click.argument("profile_name")
@click.argument("stamp", required=False)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def restore(ctx: click.Context, profile_name: str, stamp: str | None, yes: bool) -> None:
    """Restore a profile from a sync backup (default: the newest)."""
    config = _load(ctx)
    profile = _profile(config, profile_name)
    manager = BackupManager(config.global_.backup_path)

    if stamp:
        backup = manager.get_backup(profile_name, stamp)
    else:
        found = manager.list_backups(profile_name)
        backup = found[-1] if found else None
    if backup is None:
        _fail(f"Error: No backup {stamp + ' ' if stamp else ''}found for profile '{profile_name}'")

    info(f"Restoring '{profile_name}' from backup {backup.stamp}")
    if not yes and not click.confirm("  Proceed?", default=False):
        info("Aborted.")
        return

    try:
        restored = manager.restore(backup, profile.data_path)
    except BnLoaderError as e:
        _fail(f"Error: {e}")

    for path in restored:
        info(f"  Restored: {path}")
    success("Restore complete.")
