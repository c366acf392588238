"""Command line interface for dwm.

Commands that move the shell somewhere print a single path on stdout (or
write it to ``$DWM_OUTPUT_FILE``); everything meant for humans goes to
stderr.
"""

import logging
import os
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table
from rich.text import Text

from dwm import config, listing, services, workspace
from dwm.errors import DwmError
from dwm.hooks import handle_hook, parse_hook_event
from dwm.listing import SortMode
from dwm.models import RepoEntry, WorkspaceEntry
from dwm.registry import RepoRegistry
from dwm.tui import HEADERS, format_row, run_tui
from dwm.vcs import VcsBackend

logger = logging.getLogger(__name__)


class DwmGroup(click.Group):
    """Click group reporting dwm errors as ``dwm: <message>`` with exit code 1."""

    def invoke(self, ctx: click.Context):
        try:
            return super().invoke(ctx)
        except (DwmError, OSError) as exc:
            logger.debug("command failed", exc_info=True)
            click.echo(f"dwm: {exc}", err=True)
            raise SystemExit(1) from exc


def emit_path(path: Path) -> None:
    """Hand a directory to the shell wrapper."""
    output_file = os.environ.get(config.OUTPUT_FILE_ENV)
    if output_file:
        with open(output_file, "w", encoding="utf-8") as handle:
            handle.write(str(path))
    else:
        click.echo(str(path))


def _current_repo(create: bool = False) -> tuple[RepoEntry, VcsBackend]:
    return workspace.resolve_repo(config.default_root(), Path.cwd(), create=create)


def status_table(entries: list[WorkspaceEntry], multi_repo: bool = False) -> Table:
    """Render entries as a rich table for ``dwm status``."""
    table = Table(box=None, header_style="bold", pad_edge=False)
    if multi_repo:
        table.add_column("REPO")
    for header in HEADERS:
        table.add_column(header, no_wrap=header != "DESCRIPTION")
    for entry in entries:
        row = format_row(entry)
        if multi_repo:
            row.insert(0, Text(entry.repo_name or "", style="bold"))
        table.add_row(*row)
    return table


def _pick(all_repos: bool) -> None:
    """Run the interactive picker, or print every path when not on a tty."""
    if all_repos:
        registry = RepoRegistry(config.default_root())

        def reload() -> list[WorkspaceEntry]:
            return services.load_all_workspaces(registry)

        create = None
        delete = None
    else:
        repo, backend = _current_repo()

        def reload() -> list[WorkspaceEntry]:
            return services.load_workspaces(repo, backend)

        def create(name: str | None) -> Path:
            tracked = RepoRegistry(config.default_root()).ensure(repo.main_repo, repo.vcs_type)
            return workspace.new_workspace(tracked, backend, name)

        def delete(entry: WorkspaceEntry) -> None:
            workspace.delete_workspace(repo, backend, entry.name)

    entries = reload()
    if not sys.stdin.isatty() or not sys.stdout.isatty():
        for entry in listing.sort_entries(entries, SortMode.RECENCY):
            click.echo(str(entry.path))
        return
    if not entries:
        click.echo("no workspaces found", err=True)
        return

    selected_path = run_tui(entries, reload, create=create, delete=delete, multi_repo=all_repos)
    if selected_path:
        emit_path(selected_path)


@click.group(
    cls=DwmGroup,
    context_settings={"help_option_names": ["-h", "--help"]},
    invoke_without_command=True,
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """dwm: workspace manager for jj and git repositories."""
    config.setup_logging(verbose)
    if ctx.invoked_subcommand is not None:
        return
    _pick(all_repos=False)


@main.command("list")
@click.option("--all", "all_repos", is_flag=True, help="Show workspaces of every tracked repository.")
def list_command(all_repos: bool) -> None:
    """Pick a workspace interactively."""
    _pick(all_repos)


@main.command("new")
@click.argument("name", required=False)
@click.option("-r", "--at", "at", metavar="REV", help="Start from this revision.")
@click.option("--from", "from_workspace", metavar="WS", help="Start from another workspace's change.")
def new_command(name: str | None, at: str | None, from_workspace: str | None) -> None:
    """Create a workspace (random name when NAME is omitted)."""
    repo, backend = _current_repo(create=True)
    path = workspace.new_workspace(repo, backend, name, at=at, from_workspace=from_workspace)
    click.echo(f"workspace '{path.name}' created at {path}", err=True)
    emit_path(path)


@main.command("status")
@click.option("--all", "all_repos", is_flag=True, help="Show workspaces of every tracked repository.")
@click.option(
    "--sort",
    "sort_mode",
    type=click.Choice([mode.value for mode in SortMode]),
    default=SortMode.RECENCY.value,
    show_default=True,
)
@click.option("--filter", "query", default="", help="Fuzzy filter on name, description and bookmarks.")
def status_command(all_repos: bool, sort_mode: str, query: str) -> None:
    """Print a workspace summary table to stderr."""
    if all_repos:
        entries = services.load_all_workspaces(RepoRegistry(config.default_root()))
    else:
        repo, backend = _current_repo()
        entries = services.load_workspaces(repo, backend)

    entries = listing.apply(entries, SortMode(sort_mode), query)
    console = Console(stderr=True)
    if not entries:
        console.print("no workspaces found")
        return
    console.print(status_table(entries, multi_repo=all_repos))


@main.command("switch")
@click.argument("name")
def switch_command(name: str) -> None:
    """Print the directory of workspace NAME."""
    repo, backend = _current_repo()
    emit_path(workspace.workspace_path(repo, backend, name))


@main.command("rename")
@click.argument("name")
@click.argument("new_name", required=False)
def rename_command(name: str, new_name: str | None) -> None:
    """Rename workspace NAME to NEW_NAME, or the current workspace to NAME."""
    cwd = Path.cwd()
    repo, backend = _current_repo()
    if new_name is None:
        old_name, new_name = workspace.infer_workspace_name(repo, backend, cwd), name
    else:
        old_name = name

    redirect = workspace.redirect_after_move(
        cwd, repo.storage_dir / old_name, repo.storage_dir / new_name
    )
    click.echo(f"renaming workspace '{old_name}' -> '{new_name}'...", err=True)
    workspace.rename_workspace(repo, backend, old_name, new_name)
    click.echo(f"workspace '{old_name}' renamed to '{new_name}'", err=True)
    if redirect is not None:
        emit_path(redirect)


@main.command("delete")
@click.argument("name", required=False)
def delete_command(name: str | None) -> None:
    """Delete workspace NAME, or the current workspace."""
    cwd = Path.cwd()
    repo, backend = _current_repo()
    name = name or workspace.infer_workspace_name(repo, backend, cwd)

    inside = workspace.is_inside(cwd, repo.storage_dir / name)
    click.echo(f"deleting workspace '{name}'...", err=True)
    workspace.delete_workspace(repo, backend, name)
    click.echo(f"workspace '{name}' deleted", err=True)
    if inside:
        emit_path(repo.main_repo)


@main.command("hook-handler")
def hook_handler_command() -> None:
    """Record agent status from a hook event read on stdin."""
    event = parse_hook_event(click.get_text_stream("stdin").read())
    status = handle_hook(event, config.default_root())
    logger.debug("session %s -> %s", event.session_id, status.value if status else "none")


if __name__ == "__main__":
    main()
