from __future__ import annotations

from collections import deque
from pathlib import Path
import argparse
import logging
import sys

from textual import events, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.screen import ModalScreen
from textual.widgets import Footer, Header, Input, Label, RichLog
from rich.console import Console
from rich.text import Text

from .core import InlineDecisionMap, ViewOptions, row_text
from .errors import SSANotFoundError, WorkspaceError
from .logs import setup_logging
from .session import Highlight, InlineHints, SessionLoader, SSAPanel, UpdateSSA
from .toolchain import GoToolchain

logger = logging.getLogger(__name__)


class SSAViewerApp(App):
    CSS = """
    Screen {
        layout: vertical;
    }

    #main {
        height: 1fr;
    }

    #source {
        width: 1fr;
        border: round $panel;
    }

    #ssa {
        width: 1fr;
        border: round $accent;
    }

    #output {
        height: 12;
        border: round $panel;
    }
    """

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("s", "show_ssa", "Show SSA"),
        Binding("i", "toggle_hints", "Toggle inline hints"),
        Binding("d", "toggle_decisions", "Toggle decisions"),
        Binding("o", "toggle_output", "Compiler output"),
        Binding("r", "refresh", "Refresh"),
        Binding("up", "move_up", "Up", show=False),
        Binding("down", "move_down", "Down", show=False),
        Binding("k", "move_up", "Up", show=False),
        Binding("j", "move_down", "Down", show=False),
        Binding("pageup", "page_up", "Page up", show=False),
        Binding("pagedown", "page_down", "Page down", show=False),
        Binding("g", "go_home", "Home", show=False),
        Binding("G", "go_end", "End", show=False),
        Binding("home", "go_home", "Home", show=False),
        Binding("end", "go_end", "End", show=False),
    ]

    def __init__(
        self,
        workdir: Path,
        options: ViewOptions | None = None,
        function_name: str | None = None,
        toolchain: GoToolchain | None = None,
    ) -> None:
        super().__init__()
        self.workdir = workdir
        self.options = options or ViewOptions()
        self._initial_function = function_name
        self._pending_output: deque[str] = deque()
        self.toolchain = toolchain or GoToolchain(
            self.options.go_binary,
            output=self._pending_output.append,
        )
        self.loader: SessionLoader | None = None
        self.panel: SSAPanel | None = None
        self.hints = InlineHints()
        # latest requested open; earlier opens still in flight are discarded
        self._opening: SessionLoader | None = None
        # files whose hints are being computed; a second toggle removes the entry
        self._hints_pending: set[str] = set()
        self._source_path: Path | None = None
        self._source_lines: list[str] = []
        self._source_mtime: float | None = None
        self._cursor = 0
        self._window_start = 0

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="main"):
            yield RichLog(id="source", auto_scroll=False, wrap=False)
            yield RichLog(id="ssa", auto_scroll=False, wrap=False)
        yield RichLog(id="output", auto_scroll=True, wrap=True)
        yield Footer()

    def on_mount(self) -> None:
        self.title = "Go SSA Viewer"
        self.sub_title = str(self.workdir)
        self.query_one("#output", RichLog).display = self.options.show_output
        self.query_one("#source", RichLog).border_title = "source"
        self._render_ssa()
        self.set_interval(self.options.poll_interval, self._check_saved)
        if self._initial_function:
            self._open_function(self._initial_function)
        else:
            self.action_show_ssa()

    @property
    def source_file_name(self) -> str | None:
        if self.panel is None:
            return None
        return self.panel.source_file_name

    def action_show_ssa(self) -> None:
        self.push_screen(FunctionPromptScreen(), self._open_function)

    def _open_function(self, function_name: str | None) -> None:
        if not function_name or not function_name.strip():
            return
        function_name = function_name.strip()
        self.notify(f"Building SSA for {function_name}")
        self._opening = SessionLoader(self.toolchain, str(self.workdir), function_name)
        self._load_function(self._opening)

    @work(thread=True, group="build")
    def _load_function(self, loader: SessionLoader) -> None:
        panel = loader.open()
        self.call_from_thread(self._panel_opened, loader, panel)

    def _panel_opened(self, loader: SessionLoader, panel: SSAPanel | None) -> None:
        self._drain_output()
        if loader is not self._opening:
            logger.info("Discarding superseded open of %s", loader.function_name)
            return
        self._opening = None
        if panel is None:
            self.notify(f"No SSA output found for: {loader.function_name}", severity="error")
            return
        panel.show_decisions = self.options.show_decisions
        self.loader = loader
        self.panel = panel
        self._load_source(self.workdir / panel.source_file_name.lstrip("/"))
        self._cursor = 0
        panel.handle(Highlight(line=self._cursor + 1, file_name=panel.source_file_name))
        self._render_source()
        self._render_ssa()

    def _load_source(self, path: Path) -> None:
        self._source_path = path
        try:
            self._source_lines = path.read_text(encoding="utf-8").splitlines()
            self._source_mtime = path.stat().st_mtime
        except OSError as exc:
            logger.warning("Could not read %s: %s", path, exc)
            self._source_lines = []
            self._source_mtime = None
        if self._cursor >= len(self._source_lines):
            self._cursor = max(0, len(self._source_lines) - 1)

    def _check_saved(self) -> None:
        if self._source_path is None:
            return
        try:
            mtime = self._source_path.stat().st_mtime
        except OSError:
            return
        if mtime == self._source_mtime:
            return
        self._load_source(self._source_path)
        self._render_source()
        self._refresh_session()

    def _refresh_session(self) -> None:
        if self.loader is None or self.panel is None:
            return
        self._refresh_worker(self.loader, self._cursor + 1, self.panel.source_file_name)

    @work(thread=True, group="build")
    def _refresh_worker(self, loader: SessionLoader, line: int, file_name: str) -> None:
        message = loader.update_message(line, file_name)
        self.call_from_thread(self._deliver, loader, message)

    def _deliver(self, loader: SessionLoader, message: UpdateSSA | None) -> None:
        self._drain_output()
        if loader is not self.loader:
            logger.info("Discarding refresh of %s, view now shows another function", loader.function_name)
            return
        if message is None:
            self.notify(f"Could not refresh SSA for: {loader.function_name}", severity="warning")
            return
        self.hints.refresh(message.file_name, message.inline_decisions)
        if self.panel is not None and self.panel.handle(message):
            self._render_ssa()
        self._render_source()

    def action_refresh(self) -> None:
        if self.panel is None:
            self.notify("No function selected", severity="warning")
            return
        self._refresh_session()

    def action_toggle_hints(self) -> None:
        file_name = self.source_file_name
        if file_name is None:
            self.notify("No Go file open", severity="warning")
            return
        if file_name in self._hints_pending:
            self._hints_pending.discard(file_name)
            return
        if self.hints.is_showing(file_name):
            self.hints.toggle(file_name, dict)
            self._render_source()
            return
        self._hints_pending.add(file_name)
        self._hints_worker(file_name)

    @work(thread=True, group="hints")
    def _hints_worker(self, file_name: str) -> None:
        decisions = self.toolchain.inline_decisions(str(self.workdir), file_name)
        self.call_from_thread(self._hints_ready, file_name, decisions)

    def _hints_ready(self, file_name: str, decisions: InlineDecisionMap) -> None:
        self._drain_output()
        if file_name not in self._hints_pending:
            return
        self._hints_pending.discard(file_name)
        if not self.hints.is_showing(file_name):
            self.hints.toggle(file_name, lambda: decisions)
        self._render_source()

    def action_toggle_decisions(self) -> None:
        if self.panel is None:
            return
        self.options.show_decisions = self.panel.toggle_decisions()
        self._render_ssa()

    def action_toggle_output(self) -> None:
        output = self.query_one("#output", RichLog)
        output.display = not output.display
        self.options.show_output = output.display

    def action_move_up(self) -> None:
        self._move_cursor(-1)

    def action_move_down(self) -> None:
        self._move_cursor(1)

    def action_page_up(self) -> None:
        self._move_cursor(-max(1, self._viewport_size() - 3))

    def action_page_down(self) -> None:
        self._move_cursor(max(1, self._viewport_size() - 3))

    def action_go_home(self) -> None:
        self._set_cursor(0)

    def action_go_end(self) -> None:
        self._set_cursor(len(self._source_lines) - 1)

    def action_quit(self) -> None:
        self.push_screen(ConfirmQuitScreen(), self._confirm_quit)

    def _confirm_quit(self, confirm: bool | None) -> None:
        if confirm:
            self.exit()

    def _move_cursor(self, delta: int) -> None:
        self._set_cursor(self._cursor + delta)

    def _set_cursor(self, index: int) -> None:
        if not self._source_lines:
            return
        self._cursor = max(0, min(index, len(self._source_lines) - 1))
        self._render_source()
        if self.panel is not None:
            self.panel.handle(Highlight(line=self._cursor + 1, file_name=self.panel.source_file_name))
            self._render_ssa()

    def _viewport_size(self) -> int:
        source = self.query_one("#source", RichLog)
        height = source.size.height if source.is_attached else 40
        return max(10, height - 2)

    def _render_source(self) -> None:
        source = self.query_one("#source", RichLog)
        source.clear()
        file_name = self.source_file_name
        if file_name is not None:
            source.border_title = file_name.lstrip("/")
        if not self._source_lines:
            return
        window_size = self._viewport_size()
        self._window_start = _clamp_window_start(self._cursor, len(self._source_lines), window_size)
        end = min(len(self._source_lines), self._window_start + window_size)
        for idx in range(self._window_start, end):
            line = Text(f"{idx + 1:5d} ", style="dim") + Text(self._source_lines[idx])
            if file_name is not None:
                hint = self.hints.hint_text(file_name, idx + 1)
                if hint:
                    line.append(f"  {hint}", style="italic grey62")
            if idx == self._cursor:
                line.stylize("reverse", 0, len(line))
            source.write(line)

    def _render_ssa(self) -> None:
        ssa = self.query_one("#ssa", RichLog)
        ssa.clear()
        if self.panel is None:
            ssa.border_title = "ssa"
            ssa.write(Text("Press s to choose a function", style="dim"))
            return
        ssa.border_title = self.panel.title
        rows = self.panel.visible_rows()
        highlighted = set(self.panel.highlighted_rows())
        for idx, row in enumerate(rows):
            ssa.write(row_text(row, highlighted=idx in highlighted, show_line_numbers=self.options.show_line_numbers))
        if highlighted:
            first = min(highlighted)
            self.call_after_refresh(ssa.scroll_to, y=max(0, first - self._viewport_size() // 2), animate=False)

    def _drain_output(self) -> None:
        output = self.query_one("#output", RichLog)
        while self._pending_output:
            output.write(self._pending_output.popleft())


class FunctionPromptScreen(ModalScreen[str | None]):
    CSS = """
    FunctionPromptScreen {
        align: center middle;
    }

    #prompt-panel {
        width: 70%;
        height: auto;
        border: round $accent;
        padding: 1 2;
        background: $surface;
    }
    """

    def compose(self) -> ComposeResult:
        with Vertical(id="prompt-panel"):
            yield Label("Enter the function or method name")
            yield Input(placeholder="package.FunctionName or (*Type).MethodName", id="func_input")
            yield Label("Enter = show SSA, Esc = cancel")

    def on_mount(self) -> None:
        self.query_one("#func_input", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        self.dismiss(event.value.strip() or None)
        event.stop()

    def on_key(self, event: events.Key) -> None:
        if event.key == "escape":
            self.dismiss(None)
            event.stop()


class ConfirmQuitScreen(ModalScreen[bool | None]):
    CSS = """
    ConfirmQuitScreen {
        align: center middle;
    }

    #quit-panel {
        width: auto;
        max-width: 40;
        height: auto;
        border: round $accent;
        padding: 1 2;
        background: $surface;
    }
    """

    def compose(self) -> ComposeResult:
        with Vertical(id="quit-panel"):
            yield Label("Quit SSA viewer?")
            yield Label("Y = quit, N/Esc = cancel")

    def on_key(self, event: events.Key) -> None:
        if event.key in {"y", "enter"}:
            self.dismiss(True)
            event.stop()
        elif event.key in {"n", "escape"}:
            self.dismiss(False)
            event.stop()


def _clamp_window_start(index: int, total: int, window_size: int) -> int:
    if total <= window_size:
        return 0
    half = window_size // 2
    return max(0, min(index - half, total - window_size))


def _resolve_workspace(path: str | None) -> Path:
    if not path:
        raise WorkspaceError("No workspace folder given")
    workdir = Path(path).resolve()
    if not workdir.is_dir():
        raise WorkspaceError(f"Workspace directory not found: {workdir}")
    return workdir


def _print_ssa(workdir: Path, function_name: str, options: ViewOptions) -> None:
    toolchain = GoToolchain(options.go_binary)
    loader = SessionLoader(toolchain, str(workdir), function_name)
    try:
        panel = loader.require_ssa()
    except SSANotFoundError as exc:
        raise SystemExit(str(exc)) from exc
    panel.show_decisions = options.show_decisions
    console = Console()
    console.rule(f"{panel.title} ({panel.source_file_name})")
    for row in panel.visible_rows():
        console.print(row_text(row, show_line_numbers=options.show_line_numbers), soft_wrap=True)


def build_options(parsed: argparse.Namespace) -> ViewOptions:
    options = ViewOptions()
    if parsed.print_only:
        options.show_decisions = True
    if parsed.show_decisions is not None:
        options.show_decisions = parsed.show_decisions
    if parsed.show_line_numbers is not None:
        options.show_line_numbers = parsed.show_line_numbers
    if parsed.show_output is not None:
        options.show_output = parsed.show_output
    if parsed.poll_interval is not None:
        options.poll_interval = parsed.poll_interval
    if parsed.go is not None:
        options.go_binary = parsed.go
    return options


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Go SSA and inlining viewer")
    parser.add_argument("workdir", nargs="?", default=".", help="Go module directory")
    parser.add_argument("--func", default=None, help="package.FunctionName or (*Type).MethodName")
    parser.add_argument("--go", default=None, help="Go binary to run (default: $GO_SSA_VIEWER_GO or go)")
    parser.add_argument("--print", dest="print_only", action="store_true", help="Print annotated SSA and exit")
    parser.add_argument("--poll-interval", type=float, default=None, help="Seconds between save checks")
    parser.add_argument("--show-decisions", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--show-line-numbers", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--show-output", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--log-file", default=None, help="Write logs to this file")
    parser.add_argument("--log-level", default=None, help="Log level (default: $GO_SSA_VIEWER_LOG_LEVEL or WARNING)")
    return parser


def main(argv: list[str] | None = None) -> None:
    parsed = build_parser().parse_args(argv)
    setup_logging(
        Path(parsed.log_file) if parsed.log_file else None,
        parsed.log_level,
        to_stderr=parsed.print_only,
    )
    try:
        workdir = _resolve_workspace(parsed.workdir)
    except WorkspaceError as exc:
        raise SystemExit(str(exc)) from exc
    options = build_options(parsed)
    if parsed.print_only:
        if not parsed.func:
            raise SystemExit("--print needs --func")
        _print_ssa(workdir, parsed.func, options)
        return
    app = SSAViewerApp(workdir, options=options, function_name=parsed.func)
    app.run()


if __name__ == "__main__":
    main(sys.argv[1:])
