"""
Textual TUI for the expertdeck tower.

The app owns no expert logic: it drives Tower.tick() from a timer,
refreshes pane snapshots on a worker thread and renders what the tower
reports. Nothing that can block on tmux, git or the agent runs on the
event loop.
"""

from typing import Dict, List, Optional, Tuple

from textual import work
from textual.app import App, ComposeResult
from textual.containers import VerticalScroll
from textual.css.query import NoMatches
from textual.widgets import Footer, Header, Static

from . import __version__
from .bootstrap import Services
from .tower import ExpertView, Tower
from .tui_actions import ExpertActionsMixin, NavigationActionsMixin
from .tui_helpers import build_message_line, build_summary_line
from .tui_widgets import BranchBar, ExpertPanel, PreviewPane, RoleBar, TaskBar

TICK_INTERVAL = 0.25
SNAPSHOT_INTERVAL = 1.0


class TowerApp(ExpertActionsMixin, NavigationActionsMixin, App):
    """expertdeck control tower"""

    AUTO_FOCUS = None

    CSS_PATH = "tui.tcss"

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("j", "focus_next_expert", "Next"),
        ("k", "focus_previous_expert", "Prev"),
        ("down", "focus_next_expert", "Next"),
        ("up", "focus_previous_expert", "Prev"),
        ("l", "launch_expert", "Launch"),
        ("L", "fresh_launch", "Fresh launch"),
        ("w", "open_worktree_bar", "Worktree"),
        ("r", "return_to_root", "Return to root"),
        ("t", "open_task_bar", "Task"),
        ("o", "open_role_bar", "Role"),
    ] + [(str(i), f"focus_expert({i})", f"Expert {i}") for i in range(10)]

    def __init__(
        self,
        tower: Tower,
        tick_interval: float = TICK_INTERVAL,
        snapshot_interval: float = SNAPSHOT_INTERVAL,
    ):
        super().__init__()
        self.tower = tower
        self.tick_interval = tick_interval
        self.snapshot_interval = snapshot_interval
        self.focused_expert = 0
        self.views: List[ExpertView] = []
        self._pending_confirmations: Dict[str, Tuple[int, float]] = {}

    @classmethod
    def from_services(cls, services: Services, **kwargs) -> "TowerApp":
        return cls(Tower(services), **kwargs)

    def compose(self) -> ComposeResult:
        yield Header(show_clock=True)
        yield Static(id="summary-bar")
        with VerticalScroll(id="experts-container"):
            for expert_id in self.tower.config.expert_ids:
                yield ExpertPanel(expert_id, id=f"expert-{expert_id}", classes="expert-panel")
        yield PreviewPane(id="preview-pane")
        yield BranchBar(id="branch-bar", classes="input-bar")
        yield RoleBar(id="role-bar", classes="input-bar")
        yield TaskBar(id="task-bar", classes="input-bar")
        yield Static(id="message-bar")
        yield Footer()

    def on_mount(self) -> None:
        self.title = f"expertdeck v{__version__}"
        self.sub_title = f"{self.tower.config.session_name} · {self.tower.config.project_path}"
        self.tower.start()
        self.run_tick()
        self.refresh_snapshots()
        self.set_interval(self.tick_interval, self.run_tick)
        self.set_interval(self.snapshot_interval, self.refresh_snapshots)

    # Loop ---------------------------------------------------------------

    def run_tick(self) -> None:
        """One control-loop iteration: tick the tower and render the result."""
        if not self.tower.running:
            return
        self.views = self.tower.tick()
        for message in self.tower.drain_messages():
            self.notify(message.text, severity=message.severity)
            self._show_message(message)
        self._render_views()

    @work(thread=True, exclusive=True, group="snapshots")
    def refresh_snapshots(self) -> None:
        """Capture all panes off the event loop, then update the preview."""
        self.tower.refresh_snapshots()
        self.call_from_thread(self._update_preview)

    # Rendering ----------------------------------------------------------

    def _view_for(self, expert_id: int) -> Optional[ExpertView]:
        for view in self.views:
            if view.expert_id == expert_id:
                return view
        return None

    def _render_views(self) -> None:
        for view in self.views:
            try:
                panel = self.query_one(f"#expert-{view.expert_id}", ExpertPanel)
            except NoMatches:
                continue
            panel.apply(view, view.expert_id == self.focused_expert)
        try:
            self.query_one("#summary-bar", Static).update(
                build_summary_line(self.tower.config.session_name, self.views)
            )
        except NoMatches:
            pass

    def _show_message(self, message) -> None:
        try:
            self.query_one("#message-bar", Static).update(build_message_line(message))
        except NoMatches:
            pass

    def _update_preview(self) -> None:
        snapshot = self.tower.services.snapshots.get(self.focused_expert)
        try:
            preview = self.query_one("#preview-pane", PreviewPane)
        except NoMatches:
            return
        preview.show(
            self.tower.config.get_expert_name(self.focused_expert),
            snapshot.content if snapshot else "",
        )

    # Shutdown -----------------------------------------------------------

    async def action_quit(self) -> None:
        self.tower.terminate()
        self.exit()

    def on_unmount(self) -> None:
        self.tower.terminate()


def run_tower(services: Services) -> None:
    """Run the TUI until the user quits."""
    app = TowerApp.from_services(services)
    app.run()
