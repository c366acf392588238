"""Textual TUI for dwm."""

import threading
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import DataTable, Footer, Input, Static

from dwm import listing
from dwm.errors import DwmError
from dwm.listing import SortMode
from dwm.models import AgentStatus, WorkspaceEntry

HEADERS = [
    "NAME",
    "CHANGE",
    "DESCRIPTION",
    "BOOKMARKS",
    "MODIFIED",
    "AGENTS",
    "CHANGES",
]
COMMAND_BAR = "Enter: open  |  /: filter  |  s: sort  |  n: new  |  d: delete  |  r: refresh  |  q/Esc: quit"
SPINNER = "|/-\\"

AGENT_STYLES = {
    AgentStatus.WAITING: "bold yellow",
    AgentStatus.WORKING: "green",
    AgentStatus.IDLE: "blue",
}


CSS = """
Screen {
    layout: vertical;
}

#command_bar {
    padding: 0 1;
    height: 1;
    color: $text-muted;
}

#status_line {
    padding: 0 1;
    height: 1;
}

#filter_input {
    display: none;
}

#filter_input.visible {
    display: block;
}

#table {
    height: 1fr;
}

.modal {
    align: center middle;
}

.modal-body {
    width: 72;
    max-width: 90;
    height: auto;
    border: thick $primary;
    background: $surface;
    padding: 1 2;
}

.modal-title {
    margin-bottom: 1;
    text-style: bold;
}

.modal-hint {
    margin-top: 1;
    color: $text-muted;
}

.modal-input {
    margin-top: 1;
}
"""


def relative_time(moment: datetime | None, now: datetime | None = None) -> str:
    """Format a timestamp as relative time."""
    if moment is None:
        return "unknown"
    now = now or datetime.now(timezone.utc)
    delta = int((now - moment).total_seconds())
    if delta < 60:
        return "just now"
    if delta < 3600:
        return f"{delta // 60}m ago"
    if delta < 86400:
        return f"{delta // 3600}h ago"
    if delta < 86400 * 30:
        return f"{delta // 86400}d ago"
    return f"{delta // (86400 * 30)}mo ago"


def format_name(entry: WorkspaceEntry) -> str:
    return f"{entry.name} (main)" if entry.is_main else entry.name


def format_changes(entry: WorkspaceEntry) -> Text:
    stat = entry.diff_stat
    if stat.is_clean:
        return Text("clean", style="dim")
    style = "red" if stat.deletions > stat.insertions else "green"
    return Text(f"+{stat.insertions} -{stat.deletions}", style=style)


def format_agents(entry: WorkspaceEntry) -> Text:
    summary = entry.agent_status
    if summary is None or summary.is_empty:
        return Text("")
    return Text(str(summary), style=AGENT_STYLES[summary.most_urgent()])


def format_row(entry: WorkspaceEntry, now: datetime | None = None) -> list[Text]:
    """Format a workspace as display cells; stale rows are dimmed."""
    if entry.error:
        description = Text(f"error: {entry.error}", style="red")
    else:
        description = Text(entry.info.summary)
    cells = [
        Text(format_name(entry), style="cyan"),
        Text(entry.info.change_id, style="magenta"),
        description,
        Text(", ".join(entry.info.bookmarks), style="blue"),
        Text(relative_time(entry.info.last_modified, now), style="yellow"),
        format_agents(entry),
        format_changes(entry),
    ]
    if entry.is_stale:
        for cell in cells:
            cell.stylize("dim")
    return cells


class ConfirmScreen(ModalScreen[bool]):
    """Simple yes/no modal."""

    BINDINGS = [
        Binding("y", "yes", "Yes"),
        Binding("n", "no", "No"),
        Binding("escape", "no", "No"),
    ]

    def __init__(self, prompt: str) -> None:
        super().__init__()
        self.prompt = prompt

    def compose(self) -> ComposeResult:
        with Vertical(classes="modal"):
            with Vertical(classes="modal-body"):
                yield Static(self.prompt, classes="modal-title")
                yield Static("Press y to confirm, n or Esc to cancel.", classes="modal-hint")

    def action_yes(self) -> None:
        self.dismiss(True)

    def action_no(self) -> None:
        self.dismiss(False)


class TextInputScreen(ModalScreen[str | None]):
    """Text input modal. An empty submission returns an empty string."""

    BINDINGS = [Binding("escape", "cancel", "Cancel")]

    def __init__(self, prompt: str, hint: str = "Esc to cancel.") -> None:
        super().__init__()
        self.prompt = prompt
        self.hint = hint

    def compose(self) -> ComposeResult:
        with Vertical(classes="modal"):
            with Vertical(classes="modal-body"):
                yield Static(self.prompt, classes="modal-title")
                yield Input(
                    placeholder="Type and press Enter", classes="modal-input", id="value_input"
                )
                yield Static(self.hint, classes="modal-hint")

    def on_mount(self) -> None:
        self.query_one("#value_input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value.strip())

    def action_cancel(self) -> None:
        self.dismiss(None)


class TuiApp(App[Path | None]):
    """Workspace picker. Exits with the chosen workspace path, or None."""

    CSS = CSS
    BINDINGS = [
        Binding("q", "quit_picker", "Quit"),
        Binding("escape", "quit_picker", "Quit"),
        Binding("enter", "choose", "Open"),
        Binding("slash", "start_filter", "Filter"),
        Binding("s", "cycle_sort", "Sort"),
        Binding("n", "new_workspace", "New"),
        Binding("d", "delete_workspace", "Delete"),
        Binding("r", "refresh", "Refresh"),
    ]

    def __init__(
        self,
        entries: list[WorkspaceEntry],
        reload: Callable[[], list[WorkspaceEntry]],
        create: Callable[[str | None], Path] | None = None,
        delete: Callable[[WorkspaceEntry], None] | None = None,
        sort_mode: SortMode = SortMode.RECENCY,
        multi_repo: bool = False,
    ) -> None:
        super().__init__()
        self.entries = entries
        self.loader = reload
        self.creator = create
        self.deleter = delete
        self.sort_mode = sort_mode
        self.multi_repo = multi_repo
        self.query_text = ""

        self._view: list[WorkspaceEntry] = []
        self._busy = False
        self._spinner_index = 0
        self._spinner_message: str | None = None
        self._status_message: str | None = None

    def compose(self) -> ComposeResult:
        yield Static(COMMAND_BAR, id="command_bar")
        yield Static("", id="status_line")
        yield Input(placeholder="filter", id="filter_input")
        yield DataTable(id="table", cursor_type="row")
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#table", DataTable)
        table.zebra_stripes = True
        table.cursor_type = "row"
        headers = ["REPO", *HEADERS] if self.multi_repo else HEADERS
        table.add_columns(*headers)
        self._populate_table()
        table.focus()
        self.set_interval(0.25, self._tick)

    def _tick(self) -> None:
        if self._spinner_message:
            spinner = SPINNER[self._spinner_index % len(SPINNER)]
            self._spinner_index += 1
            self._set_status(f"{self._spinner_message} {spinner}")

    def _set_status(self, message: str | None) -> None:
        self._status_message = message
        self._update_status_line()

    def _update_status_line(self) -> None:
        parts = [f"sort: {self.sort_mode.label}"]
        if self.query_text:
            parts.append(f"filter: {self.query_text}")
        parts.append(f"{len(self._view)}/{len(self.entries)} workspaces")
        if self._status_message:
            parts.append(self._status_message)
        self.query_one("#status_line", Static).update("  |  ".join(parts))

    def _populate_table(self, selected: WorkspaceEntry | None = None) -> None:
        table = self.query_one("#table", DataTable)
        selected = selected or self._current_item()

        self._view = listing.apply(self.entries, self.sort_mode, self.query_text)
        now = datetime.now(timezone.utc)
        table.clear(columns=False)
        for index, entry in enumerate(self._view):
            row = format_row(entry, now)
            if self.multi_repo:
                row.insert(0, Text(entry.repo_name or "", style="bold"))
            table.add_row(*row, key=str(index))
        self._update_status_line()

        if not self._view:
            return
        row_index = 0
        if selected is not None:
            for index, entry in enumerate(self._view):
                if entry.path == selected.path:
                    row_index = index
                    break
        table.move_cursor(row=row_index)

    def _current_item(self) -> WorkspaceEntry | None:
        if not self._view:
            return None
        row = self.query_one("#table", DataTable).cursor_row
        if row < 0 or row >= len(self._view):
            return None
        return self._view[row]

    def _run_action_with_spinner(
        self,
        spinner_message: str,
        action: Callable[[], Path | None],
        success_message: str,
        failure_prefix: str,
    ) -> None:
        if self._busy:
            self._set_status("Another operation is in progress.")
            return

        self._busy = True
        self._spinner_index = 0
        self._spinner_message = spinner_message

        def runner() -> None:
            try:
                result = action()
            except (DwmError, OSError) as exc:
                self.call_from_thread(self._finish_action, f"{failure_prefix}: {exc}", None)
                return
            self.call_from_thread(self._finish_action, success_message, result)

        threading.Thread(target=runner, daemon=True).start()

    def _finish_action(self, status: str, result: Path | None) -> None:
        self._spinner_message = None
        self._busy = False
        if result is not None:
            self.exit(result)
            return
        self._set_status(status)
        self._reload_items()

    def _reload_items(self) -> None:
        selected = self._current_item()
        try:
            self.entries = self.loader()
        except DwmError as exc:
            self._set_status(f"Refresh failed: {exc}")
            return
        self._populate_table(selected)

    def action_quit_picker(self) -> None:
        filter_input = self.query_one("#filter_input", Input)
        if filter_input.has_focus:
            filter_input.value = ""
            self._close_filter()
            return
        self.exit(None)

    def action_choose(self) -> None:
        current = self._current_item()
        if current is None:
            self.exit(None)
            return
        self.exit(current.path)

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        """Open selected workspace when DataTable handles Enter."""
        if event.data_table.id != "table":
            return
        self.action_choose()

    def action_start_filter(self) -> None:
        filter_input = self.query_one("#filter_input", Input)
        filter_input.add_class("visible")
        filter_input.focus()

    def _close_filter(self) -> None:
        filter_input = self.query_one("#filter_input", Input)
        if not filter_input.value:
            filter_input.remove_class("visible")
        self.query_one("#table", DataTable).focus()

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id != "filter_input":
            return
        self.query_text = event.value
        self._populate_table()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id != "filter_input":
            return
        self._close_filter()

    def action_cycle_sort(self) -> None:
        self.sort_mode = self.sort_mode.next()
        self._populate_table()

    def action_refresh(self) -> None:
        if self._busy:
            self._set_status("Another operation is in progress.")
            return
        self._set_status(None)
        self._reload_items()

    def action_new_workspace(self) -> None:
        if self.creator is None:
            self._set_status("Creating workspaces is not available here.")
            return
        create = self.creator

        def on_name(name: str | None) -> None:
            if name is None:
                self._set_status("Create cancelled.")
                return
            label = name or "workspace"
            self._run_action_with_spinner(
                f"Creating {label}",
                lambda: create(name or None),
                f"Created {label}.",
                "Create failed",
            )

        self.push_screen(
            TextInputScreen("New workspace name:", "Leave empty for a random name. Esc to cancel."),
            on_name,
        )

    def action_delete_workspace(self) -> None:
        if self.deleter is None:
            self._set_status("Deleting workspaces is not available here.")
            return
        delete = self.deleter
        current = self._current_item()
        if current is None:
            self._set_status("No workspaces available.")
            return
        if current.is_main:
            self._set_status("Cannot delete the main workspace.")
            return

        def do_delete() -> None:
            delete(current)

        def on_confirm(confirmed: bool | None) -> None:
            if not confirmed:
                self._set_status("Delete cancelled.")
                return
            self._run_action_with_spinner(
                f"Deleting {current.name}",
                do_delete,
                f"Deleted {current.name}.",
                "Delete failed",
            )

        prompt = f"Delete {current.name}?"
        if current.agent_status is not None and not current.agent_status.is_empty:
            prompt = f"Delete {current.name} (agents: {current.agent_status})?"
        self.push_screen(ConfirmScreen(prompt), on_confirm)


def run_tui(
    entries: list[WorkspaceEntry],
    reload: Callable[[], list[WorkspaceEntry]],
    create: Callable[[str | None], Path] | None = None,
    delete: Callable[[WorkspaceEntry], None] | None = None,
    multi_repo: bool = False,
) -> Path | None:
    """Run the textual TUI application."""
    app = TuiApp(entries, reload, create=create, delete=delete, multi_repo=multi_repo)
    return app.run()
