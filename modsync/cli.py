from __future__ import annotations

import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__, commands
from .config import HOOK_FILE, RunOptions, build_run_options, load_cli_defaults
from .errors import ConfigurationError, DomainError, ExternalCommandError
from .hook import Hook
from .sync import UpdateReport, update

app = typer.Typer(help="Keep shared files in sync across many git repositories.")
hook_app = typer.Typer(help="Manage the pre-push hook that runs `modsync update`.")
app.add_typer(hook_app, name="hook")
console = Console()
log_console = Console(stderr=True)

EXIT_OK = 0
EXIT_ERROR = 1

CONFIGS = typer.Option(None, "--configs", "-c", help="Directory holding the templates and config documents.")
MANAGED_MODULES_CONF = typer.Option(None, "--managed-modules-conf", help="Managed modules document.")
PROJECT_ROOT = typer.Option(None, "--project-root", help="Directory where modules are cloned.")
NAMESPACE = typer.Option(None, "--namespace", "-n", help="Default namespace of the managed modules.")
GIT_BASE = typer.Option(None, "--git-base", help="Prefix of the remote URLs, e.g. git@github.com:.")
FILTER = typer.Option(None, "--filter", "-f", help="Only process modules matching this regular expression.")
NEGATIVE_FILTER = typer.Option(None, "--negative-filter", "-x", help="Skip modules matching this regular expression.")
BRANCH = typer.Option(None, "--branch", "-b", help="Branch to work on.")
REMOTE_BRANCH = typer.Option(None, "--remote-branch", "-r", help="Remote branch to push to.")
OFFLINE = typer.Option(None, "--offline/--online", help="Skip every network operation.")


class OutputFormat(str, Enum):
    table = "table"
    json = "json"


def _json_print(payload: dict) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=True, sort_keys=True))


def _configure_logging(verbose: bool = False) -> None:
    logger = logging.getLogger("modsync")
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if not any(isinstance(handler, RichHandler) for handler in logger.handlers):
        logger.addHandler(RichHandler(console=log_console, show_time=False, show_path=False, markup=False))


def _emit_error(command: str, output_format: OutputFormat, code: str, message: str) -> None:
    if output_format == OutputFormat.json:
        _json_print(
            {
                "ok": False,
                "command": command,
                "exit_code": EXIT_ERROR,
                "error": {
                    "code": code,
                    "message": message,
                },
            }
        )
    else:
        console.print(f"[red]Error ({code}):[/red] {escape(message)}")

    raise typer.Exit(code=EXIT_ERROR)


def _run_options(command: str, output_format: OutputFormat = OutputFormat.table, **values: Any) -> RunOptions:
    try:
        return build_run_options(load_cli_defaults(), **values)
    except ConfigurationError as error:
        _emit_error(command, output_format, "configuration_error", str(error))
        raise


def _emit_update_report(report: UpdateReport, output_format: OutputFormat) -> None:
    rows = [
        {
            "module": result.module,
            "status": result.kind.value,
            "changed": result.changed,
            "pushed": result.pushed,
            "version": result.version or "",
            "error": str(result.error) if result.error else "",
        }
        for result in report.results
    ]
    if output_format == OutputFormat.json:
        _json_print(
            {
                "ok": report.exit_code == EXIT_OK,
                "command": "update",
                "exit_code": report.exit_code,
                "data": {"modules": rows, "skipped": list(report.skipped), "aborted": report.aborted},
            }
        )
        return

    table = Table(title="modsync update")
    table.add_column("Module")
    table.add_column("Status")
    table.add_column("Changed")
    table.add_column("Pushed")
    table.add_column("Version")
    for row in rows:
        table.add_row(row["module"], row["status"], str(row["changed"]), str(row["pushed"]), row["version"])
    console.print(table)
    if report.skipped:
        console.print(f"[yellow]Skipped modules:[/yellow] {', '.join(report.skipped)}")


@app.command("update")
def update_modules(
    configs: Optional[Path] = CONFIGS,
    managed_modules_conf: Optional[str] = MANAGED_MODULES_CONF,
    project_root: Optional[Path] = PROJECT_ROOT,
    namespace: Optional[str] = NAMESPACE,
    git_base: Optional[str] = GIT_BASE,
    filter: Optional[str] = FILTER,
    negative_filter: Optional[str] = NEGATIVE_FILTER,
    branch: Optional[str] = BRANCH,
    remote_branch: Optional[str] = REMOTE_BRANCH,
    message: Optional[str] = typer.Option(None, "--message", "-m", help="Commit message."),
    noop: Optional[bool] = typer.Option(None, "--noop/--no-noop", help="Show changes without committing."),
    offline: Optional[bool] = OFFLINE,
    skip_broken: Optional[bool] = typer.Option(None, "--skip-broken/--no-skip-broken", help="Skip failing modules."),
    fail_on_warnings: Optional[bool] = typer.Option(
        None, "--fail-on-warnings/--no-fail-on-warnings", help="Exit non-zero when a module was skipped."
    ),
    bump: Optional[bool] = typer.Option(None, "--bump/--no-bump", help="Bump the module version after pushing."),
    tag: Optional[bool] = typer.Option(None, "--tag/--no-tag", help="Tag the bumped version."),
    tag_pattern: Optional[str] = typer.Option(None, "--tag-pattern", help="Tag name pattern, e.g. v%s."),
    changelog: Optional[bool] = typer.Option(None, "--changelog/--no-changelog", help="Prepend a CHANGELOG.md entry."),
    amend: Optional[bool] = typer.Option(None, "--amend/--no-amend", help="Amend the previous commit."),
    force: Optional[bool] = typer.Option(None, "--force/--no-force", help="Force push."),
    pre_commit_script: Optional[str] = typer.Option(None, "--pre-commit-script", help="Script run before committing."),
    pr: Optional[bool] = typer.Option(None, "--pr/--no-pr", help="Open a pull/merge request after pushing."),
    pr_title: Optional[str] = typer.Option(None, "--pr-title", help="Pull request title."),
    pr_labels: Optional[str] = typer.Option(None, "--pr-labels", help="Comma separated pull request labels."),
    pr_target_branch: Optional[str] = typer.Option(None, "--pr-target-branch", help="Pull request target branch."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show git commands."),
    output_format: OutputFormat = typer.Option(OutputFormat.table, "--format", help="Output format."),
):
    """Render the templates into every managed module and push the result."""
    _configure_logging(verbose)
    options = _run_options(
        "update",
        output_format,
        configs=configs,
        managed_modules_conf=managed_modules_conf,
        project_root=project_root,
        namespace=namespace,
        git_base=git_base,
        filter=filter,
        negative_filter=negative_filter,
        branch=branch,
        remote_branch=remote_branch,
        message=message,
        noop=noop,
        offline=offline,
        skip_broken=skip_broken,
        fail_on_warnings=fail_on_warnings,
        bump=bump,
        tag=tag,
        tag_pattern=tag_pattern,
        changelog=changelog,
        amend=amend,
        force=force,
        pre_commit_script=pre_commit_script,
        pr=pr,
        pr_title=pr_title,
        pr_labels=pr_labels,
        pr_target_branch=pr_target_branch,
    )
    try:
        report = update(options)
    except ConfigurationError as error:
        _emit_error("update", output_format, "configuration_error", str(error))
        raise

    _emit_update_report(report, output_format)
    if report.exit_code != EXIT_OK:
        raise typer.Exit(code=report.exit_code)


@app.command("clone")
def clone_modules(
    configs: Optional[Path] = CONFIGS,
    managed_modules_conf: Optional[str] = MANAGED_MODULES_CONF,
    project_root: Optional[Path] = PROJECT_ROOT,
    namespace: Optional[str] = NAMESPACE,
    git_base: Optional[str] = GIT_BASE,
    filter: Optional[str] = FILTER,
    negative_filter: Optional[str] = NEGATIVE_FILTER,
):
    """Clone every managed module that is not available locally yet."""
    _configure_logging()
    options = _run_options(
        "clone",
        configs=configs,
        managed_modules_conf=managed_modules_conf,
        project_root=project_root,
        namespace=namespace,
        git_base=git_base,
        filter=filter,
        negative_filter=negative_filter,
    )
    try:
        cloned = commands.clone(options)
    except (ConfigurationError, DomainError) as error:
        _emit_error("clone", OutputFormat.table, "clone_error", str(error))
        raise
    console.print(f"[green]Cloned {len(cloned)} module(s).[/green]")


@app.command("execute", context_settings={"allow_interspersed_args": False})
def execute_command(
    command_args: List[str] = typer.Argument(..., help="Command and arguments run in each module."),
    configs: Optional[Path] = CONFIGS,
    managed_modules_conf: Optional[str] = MANAGED_MODULES_CONF,
    project_root: Optional[Path] = PROJECT_ROOT,
    namespace: Optional[str] = NAMESPACE,
    git_base: Optional[str] = GIT_BASE,
    filter: Optional[str] = FILTER,
    negative_filter: Optional[str] = NEGATIVE_FILTER,
    branch: Optional[str] = BRANCH,
    default_branch: Optional[bool] = typer.Option(
        None, "--default-branch/--no-default-branch", help="Work on the remote default branch."
    ),
    fail_fast: Optional[bool] = typer.Option(None, "--fail-fast/--no-fail-fast", help="Stop at the first failure."),
):
    """Run a command in the working copy of every managed module."""
    _configure_logging()
    options = _run_options(
        "execute",
        configs=configs,
        managed_modules_conf=managed_modules_conf,
        project_root=project_root,
        namespace=namespace,
        git_base=git_base,
        filter=filter,
        negative_filter=negative_filter,
        branch=branch,
        default_branch=default_branch,
        fail_fast=fail_fast,
    )
    try:
        commands.execute(options, command_args)
    except ExternalCommandError as error:
        _emit_error("execute", OutputFormat.table, "command_failed", str(error))
        raise
    except (ConfigurationError, DomainError) as error:
        _emit_error("execute", OutputFormat.table, "execute_error", str(error))
        raise


@app.command("reset")
def reset_modules(
    configs: Optional[Path] = CONFIGS,
    managed_modules_conf: Optional[str] = MANAGED_MODULES_CONF,
    project_root: Optional[Path] = PROJECT_ROOT,
    namespace: Optional[str] = NAMESPACE,
    git_base: Optional[str] = GIT_BASE,
    filter: Optional[str] = FILTER,
    negative_filter: Optional[str] = NEGATIVE_FILTER,
    branch: Optional[str] = BRANCH,
    source_branch: Optional[str] = typer.Option(None, "--source-branch", help="Reference to reset to."),
    offline: Optional[bool] = OFFLINE,
):
    """Reset every working copy to its remote branch and clean it."""
    _configure_logging()
    options = _run_options(
        "reset",
        configs=configs,
        managed_modules_conf=managed_modules_conf,
        project_root=project_root,
        namespace=namespace,
        git_base=git_base,
        filter=filter,
        negative_filter=negative_filter,
        branch=branch,
        source_branch=source_branch,
        offline=offline,
    )
    try:
        commands.reset(options)
    except (ConfigurationError, DomainError) as error:
        _emit_error("reset", OutputFormat.table, "reset_error", str(error))
        raise


@app.command("push")
def push_modules(
    configs: Optional[Path] = CONFIGS,
    managed_modules_conf: Optional[str] = MANAGED_MODULES_CONF,
    project_root: Optional[Path] = PROJECT_ROOT,
    namespace: Optional[str] = NAMESPACE,
    git_base: Optional[str] = GIT_BASE,
    filter: Optional[str] = FILTER,
    negative_filter: Optional[str] = NEGATIVE_FILTER,
    branch: Optional[str] = BRANCH,
    remote_branch: Optional[str] = REMOTE_BRANCH,
):
    """Force push the local branch of every managed module."""
    _configure_logging()
    options = _run_options(
        "push",
        configs=configs,
        managed_modules_conf=managed_modules_conf,
        project_root=project_root,
        namespace=namespace,
        git_base=git_base,
        filter=filter,
        negative_filter=negative_filter,
        branch=branch,
        remote_branch=remote_branch,
    )
    try:
        commands.push(options)
    except (ConfigurationError, DomainError) as error:
        _emit_error("push", OutputFormat.table, "push_error", str(error))
        raise


def _hook(namespace: Optional[str], branch: Optional[str], hook_args: Optional[str]) -> Hook:
    options = _run_options("hook", namespace=namespace, branch=branch, hook_args=hook_args)
    return Hook(hook_file=Path(HOOK_FILE), namespace=options.namespace, branch=options.branch, args=options.hook_args)


@hook_app.command("activate")
def activate_hook(
    namespace: Optional[str] = NAMESPACE,
    branch: Optional[str] = BRANCH,
    hook_args: Optional[str] = typer.Option(None, "--hook-args", "-a", help="Extra arguments passed to the hook."),
):
    """Install the pre-push hook in the current repository."""
    hook = _hook(namespace, branch, hook_args)
    try:
        path = hook.activate()
    except OSError as error:
        _emit_error("hook activate", OutputFormat.table, "hook_error", str(error))
        raise
    console.print(f"[green]Activated hook:[/green] {escape(str(path))}")


@hook_app.command("deactivate")
def deactivate_hook():
    """Remove the pre-push hook from the current repository."""
    removed = Hook(hook_file=Path(HOOK_FILE)).deactivate()
    console.print("[green]Hook removed.[/green]" if removed else "No hook installed.")


@app.command("version")
def version(
    output_format: OutputFormat = typer.Option(OutputFormat.table, "--format", help="Output format."),
) -> None:
    """Print version."""
    if output_format == OutputFormat.json:
        _json_print({"ok": True, "command": "version", "exit_code": EXIT_OK, "data": {"version": __version__}})
    else:
        console.print(f"modsync {__version__}")


if __name__ == "__main__":
    app()
