"""
Dashboard Module

Interactive terminal dashboard: runner list with live service status,
start/stop/restart of the selected runner, a scrollable log pane and a
help overlay.
"""

import curses
import os
import time
from typing import Dict, List, Optional

from .exceptions import RunnerError
from .service import STATUS_ACTIVE, STATUS_FAILED, STATUS_INACTIVE

MODE_NORMAL = 'normal'
MODE_LOGS = 'logs'
MODE_HELP = 'help'

REFRESH_INTERVAL = 1.0
LOG_LINES = 100

KEY_QUIT = (ord('q'),)
KEY_UP = (curses.KEY_UP, ord('k'))
KEY_DOWN = (curses.KEY_DOWN, ord('j'))
KEY_HELP = (ord('?'), ord('h'))
KEY_LOGS = (ord('l'),)
KEY_ESCAPE = 27
ACTION_KEYS = {ord('s'): 'start', ord('x'): 'stop', ord('r'): 'restart'}
GERUNDS = {'start': 'Starting', 'stop': 'Stopping', 'restart': 'Restarting'}

HELP_TEXT = [
    "Navigation",
    "  Up/k      Move up",
    "  Down/j    Move down",
    "",
    "Actions",
    "  s         Start selected runner",
    "  x         Stop selected runner",
    "  r         Restart selected runner",
    "  l         Toggle logs view",
    "",
    "General",
    "  ?/h       Toggle this help",
    "  q         Quit",
    "",
    "In Logs View",
    "  Up/k      Scroll up",
    "  Down/j    Scroll down",
    "  l/Esc     Exit logs view",
]


class Dashboard:
    """State and key handling for the runner dashboard"""

    def __init__(self, manager, refresh_interval: float = REFRESH_INTERVAL, log_lines: int = LOG_LINES):
        """
        Initialize dashboard

        Args:
            manager: RunnerManager providing status, service control and logs
            refresh_interval: Seconds between status refreshes
            log_lines: Number of journal lines shown in the log pane
        """
        self.manager = manager
        self.refresh_interval = refresh_interval
        self.log_lines = log_lines

        self.runners: List[Dict] = []
        self.selected = 0
        self.mode = MODE_NORMAL
        self.status_message: Optional[str] = None
        self.logs: List[str] = []
        self.log_scroll = 0
        self.should_quit = False
        self.last_refresh: Optional[float] = None
        self.colors: Dict[str, int] = {}

    # State

    def refresh(self, now: Optional[float] = None):
        """Reload runner status (and the log pane when it is open)"""
        self.last_refresh = time.monotonic() if now is None else now
        try:
            status = self.manager.get_status()
        except RunnerError as e:
            self.status_message = f"Error: {e}"
            return

        self.set_runners([runner for runners in status['repositories'].values() for runner in runners])
        if self.mode == MODE_LOGS:
            self.refresh_logs()

    def due_for_refresh(self, now: float) -> bool:
        return self.last_refresh is None or now - self.last_refresh >= self.refresh_interval

    def set_runners(self, runners: List[Dict]):
        """Replace the runner list, keeping the same runner selected if it still exists"""
        current = self.selected_runner()
        self.runners = runners
        if current is not None:
            for position, runner in enumerate(runners):
                if runner['name'] == current['name']:
                    self.selected = position
                    return
        if self.selected >= len(runners):
            self.selected = max(len(runners) - 1, 0)

    def selected_runner(self) -> Optional[Dict]:
        if 0 <= self.selected < len(self.runners):
            return self.runners[self.selected]
        return None

    def counts(self) -> Dict[str, int]:
        """Count runners by service status"""
        counts = {'active': 0, 'inactive': 0, 'failed': 0, 'total': len(self.runners)}
        for runner in self.runners:
            if runner['status'] == STATUS_ACTIVE:
                counts['active'] += 1
            elif runner['status'] == STATUS_INACTIVE:
                counts['inactive'] += 1
            elif runner['status'] == STATUS_FAILED:
                counts['failed'] += 1
        return counts

    def select_next(self):
        if self.runners:
            self.selected = (self.selected + 1) % len(self.runners)
            self._reset_logs()

    def select_previous(self):
        if self.runners:
            self.selected = (self.selected - 1) % len(self.runners)
            self._reset_logs()

    def _reset_logs(self):
        if self.mode == MODE_LOGS:
            self.refresh_logs()
            self.log_scroll = max(len(self.logs) - 1, 0)

    def scroll_logs_up(self):
        self.log_scroll = max(self.log_scroll - 1, 0)

    def scroll_logs_down(self):
        if self.log_scroll < len(self.logs) - 1:
            self.log_scroll += 1

    def refresh_logs(self):
        runner = self.selected_runner()
        if runner is None:
            self.logs = []
        elif not runner['service']:
            self.logs = [f"No service installed for {runner['name']}"]
        else:
            try:
                self.logs = self.manager.services.recent_logs([runner['service']], self.log_lines)
            except RunnerError as e:
                self.logs = [f"Error: {e}"]
        self.log_scroll = min(self.log_scroll, max(len(self.logs) - 1, 0))

    def toggle_logs(self):
        if self.mode == MODE_LOGS:
            self.mode = MODE_NORMAL
            self.logs = []
            self.log_scroll = 0
        else:
            self.mode = MODE_LOGS
            self.refresh_logs()
            self.log_scroll = max(len(self.logs) - 1, 0)

    def toggle_help(self):
        self.mode = MODE_NORMAL if self.mode == MODE_HELP else MODE_HELP

    def control_selected(self, action: str):
        """Start, stop or restart the selected runner's service"""
        runner = self.selected_runner()
        if runner is None:
            self.status_message = "No runner selected"
            return
        if not runner['service']:
            self.status_message = f"No service installed for {runner['name']}"
            return

        try:
            ok = self.manager.services.control(runner['service'], action)
        except RunnerError as e:
            self.status_message = f"Error: {e}"
            return
        result = 'ok' if ok else 'failed'
        self.status_message = f"{GERUNDS[action]} {runner['name']}: {result}"
        self.refresh()

    def handle_key(self, key: int):
        """Apply a key press in the current mode"""
        self.status_message = None

        if self.mode == MODE_HELP:
            # any key closes help
            self.mode = MODE_NORMAL
        elif self.mode == MODE_LOGS:
            if key in KEY_QUIT:
                self.should_quit = True
            elif key in KEY_LOGS or key == KEY_ESCAPE:
                self.toggle_logs()
            elif key in KEY_UP:
                self.scroll_logs_up()
            elif key in KEY_DOWN:
                self.scroll_logs_down()
            elif key in KEY_HELP:
                self.toggle_help()
        else:
            if key in KEY_QUIT:
                self.should_quit = True
            elif key in KEY_UP:
                self.select_previous()
            elif key in KEY_DOWN:
                self.select_next()
            elif key in ACTION_KEYS:
                self.control_selected(ACTION_KEYS[key])
            elif key in KEY_LOGS:
                self.toggle_logs()
            elif key in KEY_HELP:
                self.toggle_help()

    # Drawing

    def _init_colors(self):
        if not curses.has_colors():
            return
        curses.start_color()
        curses.use_default_colors()
        for pair, (name, color) in enumerate(
                [('active', curses.COLOR_GREEN), ('inactive', curses.COLOR_YELLOW),
                 ('failed', curses.COLOR_RED), ('accent', curses.COLOR_CYAN)], start=1):
            curses.init_pair(pair, color, -1)
            self.colors[name] = curses.color_pair(pair)

    def _color(self, name: str) -> int:
        return self.colors.get(name, 0)

    @staticmethod
    def _put(win, y: int, x: int, text: str, attr: int = 0):
        height, width = win.getmaxyx()
        if y < 0 or y >= height or x >= width:
            return
        try:
            win.addnstr(y, x, text, width - x - 1, attr)
        except curses.error:
            # writing into the last cell of the window raises after drawing
            pass

    def header_text(self) -> str:
        counts = self.counts()
        return (f" Runner Dashboard | ● {counts['active']} active | ○ {counts['inactive']} inactive"
                f" | ✗ {counts['failed']} failed | {counts['total']} total")

    def footer_text(self) -> str:
        try:
            load = ' '.join(f"{value:.2f}" for value in os.getloadavg())
        except OSError:
            load = 'n/a'
        message = self.status_message or "Press ? for help"
        return f" {self.mode.upper()} | Load: {load} | {message}"

    def visible_logs(self, height: int) -> List[str]:
        """Log lines for a pane of the given height, ending at the scroll position"""
        if height <= 0 or not self.logs:
            return []
        end = min(self.log_scroll + 1, len(self.logs))
        start = max(end - height, 0)
        return self.logs[start:end]

    def draw(self, stdscr):
        stdscr.erase()
        height, width = stdscr.getmaxyx()
        list_width = max(min(width // 2, 48), 20)

        self._put(stdscr, 0, 0, self.header_text(), curses.A_BOLD)

        # Runner list
        self._put(stdscr, 1, 0, " Runners ", curses.A_UNDERLINE)
        if not self.runners:
            self._put(stdscr, 2, 1, "No runners found")
        for row, runner in enumerate(self.runners[:max(height - 4, 0)]):
            attr = self._color(runner['status'])
            if row == self.selected:
                attr |= curses.A_REVERSE
            self._put(stdscr, 2 + row, 0, f" {runner['symbol']} {runner['repo']}/{runner['name']}",
                      attr)

        pane_x = list_width + 1
        if self.mode == MODE_LOGS:
            runner = self.selected_runner()
            title = f" Logs: {runner['name']} " if runner else " Logs "
            self._put(stdscr, 1, pane_x, title, curses.A_UNDERLINE)
            for row, line in enumerate(self.visible_logs(height - 4)):
                lowered = line.lower()
                attr = self._color('failed') if 'error' in lowered else (
                    self._color('inactive') if 'warn' in lowered else 0)
                self._put(stdscr, 2 + row, pane_x, line, attr)
        else:
            self._draw_details(stdscr, pane_x)

        if self.mode == MODE_HELP:
            self._draw_help(stdscr, height, width)

        self._put(stdscr, height - 1, 0, self.footer_text(), curses.A_REVERSE)
        stdscr.refresh()

    def _draw_details(self, stdscr, x: int):
        self._put(stdscr, 1, x, " Details ", curses.A_UNDERLINE)
        runner = self.selected_runner()
        if runner is None:
            self._put(stdscr, 2, x, "No runner selected")
            return
        rows = [
            ('Name: ', runner['name'], 0),
            ('Repository: ', runner['repo'], 0),
            ('Status: ', f"{runner['symbol']} {runner['status']}", self._color(runner['status'])),
            ('Service: ', runner['service'] or '(not installed)', 0),
            ('Path: ', runner['runner_dir'], 0),
        ]
        for row, (label, value, attr) in enumerate(rows):
            self._put(stdscr, 2 + row, x, label, self._color('accent'))
            self._put(stdscr, 2 + row, x + len(label), value, attr)
        self._put(stdscr, 3 + len(rows), x, "Actions:", curses.A_BOLD)
        self._put(stdscr, 4 + len(rows), x, "  [s] Start  [x] Stop  [r] Restart  [l] Logs")

    def _draw_help(self, stdscr, height: int, width: int):
        box_height = len(HELP_TEXT) + 2
        box_width = max(len(line) for line in HELP_TEXT) + 4
        top = max((height - box_height) // 2, 0)
        left = max((width - box_width) // 2, 0)
        self._put(stdscr, top, left, " Help ".center(box_width, '-'), curses.A_BOLD)
        for row, line in enumerate(HELP_TEXT, start=1):
            attr = curses.A_BOLD if line and not line.startswith(' ') else 0
            self._put(stdscr, top + row, left, f"  {line}".ljust(box_width), attr)
        self._put(stdscr, top + box_height - 1, left, '-' * box_width, curses.A_BOLD)

    def run(self, stdscr):
        """Main loop; stdscr is provided by curses.wrapper"""
        try:
            curses.curs_set(0)
        except curses.error:
            # terminal cannot hide the cursor
            pass
        self._init_colors()
        stdscr.timeout(100)

        self.refresh()
        while not self.should_quit:
            self.draw(stdscr)
            key = stdscr.getch()
            if key != -1 and key != curses.KEY_RESIZE:
                self.handle_key(key)
            now = time.monotonic()
            if self.due_for_refresh(now):
                self.refresh(now)


def run_dashboard(manager, refresh_interval: float = REFRESH_INTERVAL) -> int:
    """
    Run the dashboard until the user quits

    Returns:
        Exit code
    """
    dashboard = Dashboard(manager, refresh_interval=refresh_interval)
    try:
        curses.wrapper(dashboard.run)
    except KeyboardInterrupt:
        # Ctrl+C quits like q
        pass
    return 0
