"""
Interactive text dashboard for Pi Manager.

Renders live readings, drives the logging/history panel and the process
views. It only calls into the core; it holds no state of its own beyond the
package update count taken at startup.
"""
import os
import time
from typing import Callable, List, Optional

from pi_manager.config import METRICS, MonitorConfig
from pi_manager.core import PiManager, confirm
from pi_manager.monitoring import MetricsSnapshot, ProcessMonitor
from pi_manager.monitoring.process_monitor import format_cpu_entries, format_memory_entries
from pi_manager.monitoring.system_monitor import UNAVAILABLE
from pi_manager.storage import SeriesStoreError, WindowPreset, preset_for_choice, summarize
from pi_manager.storage.aggregator import HISTORY_UNITS, render_history, render_history_table
from pi_manager.system.directory_utils import METRICS_SERIES
from pi_manager.ui.ui_console import (
    clear_screen,
    color_value,
    colored_text,
    page,
    pause,
    read_key
)
from pi_manager.utils import get_logger, CommandRunner
from pi_manager.version import __app_name__

logger = get_logger(__name__)

ROW_FORMAT = "%3s %-15s %-20s"
SUB_ROW_FORMAT = "%3s %-17s %-20s"
DETAIL_LIST_SIZE = 15

MAIN_MENU = """
  [R]efresh    [P]rocesses   [D]evices     [U]pdate List
  [S]napshot   [L]ogging     System Lo[G]s [I]nfo

                             [X]Reset      [Q]uit"""

HISTORY_CHOICES = {str(index): series for index, series in enumerate(METRICS, start=2)}
HISTORY_CHOICES[str(len(METRICS) + 2)] = "all"


def parse_number(text: str) -> Optional[int]:
    """Integer typed at a prompt, or None if the text is not one."""
    try:
        return int(text.strip())
    except ValueError:
        return None


class Dashboard:
    """
    The interactive display loop.
    """

    def __init__(self, manager: PiManager,
                 processes: Optional[ProcessMonitor] = None,
                 runner: Optional[CommandRunner] = None,
                 read: Callable[[str], str] = read_key,
                 ask: Callable[[str], str] = input,
                 color: Optional[bool] = None):
        """
        :param manager: Core operations
        :type manager: PiManager
        :param processes: Process listing helper
        :type processes: Optional[ProcessMonitor]
        :param runner: Runs the pass-through commands (ps, lsusb, apt, dmesg)
        :type runner: Optional[CommandRunner]
        :param read: Single-key reader
        :param ask: Line reader for confirmations and PIDs
        :param color: Force colour on or off, detected from the terminal when None
        :type color: Optional[bool]
        """
        self.manager = manager
        self.processes = processes or ProcessMonitor()
        self.runner = runner or CommandRunner(timeout=60.0)
        self.read = read
        self.ask = ask
        self.color = color
        self.update_count = 0

    def _ask(self, prompt: str) -> str:
        """Line input, stripped; end of input reads as an empty answer."""
        try:
            return self.ask(prompt).strip()
        except EOFError:
            return ""

    def _paint(self, text: str, color: str) -> str:
        return colored_text(text, color, self.color)

    def _metric(self, metric: str, value, unit: str) -> str:
        text = UNAVAILABLE if value is None else f"{value}{unit}"
        return color_value(metric, value, text, self.color)

    def _wifi(self, snapshot: MetricsSnapshot, ssid: str) -> str:
        if snapshot.wifi_dbm is None:
            return f"{ssid}: {self._paint(UNAVAILABLE, 'DIM')}"
        dbm = color_value("wifi", snapshot.wifi_dbm, f"{snapshot.wifi_dbm}dBm", self.color)
        return f"{ssid}: {dbm} ({snapshot.wifi_percent}%)"

    def render(self) -> str:
        """
        Builds the main screen from a fresh config load and a fresh sample.

        :return: The rendered dashboard
        :rtype: str
        """
        config = self.manager.load_config()
        monitor = self.manager.monitor(config)
        snapshot = monitor.sample()

        lines: List[str] = [self._paint(f"{__app_name__} - {time.strftime('%a %d %b %Y %H:%M:%S %Z')}", "DIM"), ""]

        if self.manager.reconciler.is_timer_active():
            log_status = self._paint("ACTIVE", "GREEN")
        else:
            log_status = self._paint("INACTIVE", "YELLOW")
        lines.append(f"Logging: {log_status} (every {config.interval_text}, kept for {config.retention_text})")
        lines.append("")

        if self.update_count > 0:
            lines.append(self._paint(f"System and Software Updates Available: {self.update_count}", "YELLOW"))
        else:
            lines.append(self._paint("System Up-to-date", "GREEN"))
        lines.append("")

        ram_display = None if snapshot.ram is None else int(snapshot.ram)
        swap_display = None if snapshot.swap is None else int(snapshot.swap)
        disk_display = None if snapshot.disk is None else int(snapshot.disk)
        rows = [
            ("Cores", str(monitor.get_num_cores())),
            ("CPU %", self._metric("cpu", snapshot.cpu, "%")),
            ("RAM %", self._metric("ram", ram_display, "%")),
            ("Disk %", self._metric("disk", disk_display, "%")),
            ("Wi-Fi", self._wifi(snapshot, monitor.get_ssid())),
            ("Temp (deg C)", self._metric("temp", snapshot.temp, "°C")),
            ("Load avg", f"{snapshot.load_text} (1/5/15 min)"),
            ("Uptime", monitor.get_uptime()),
            (f"IP ({monitor.sources.interface})", monitor.get_ip()),
            ("Swap %", self._metric("swap", swap_display, "%")),
            ("Process Count", str(self.processes.get_process_count())),
        ]
        lines.append(ROW_FORMAT % ("#", "Metric", "Value"))
        for index, (name, value) in enumerate(rows, start=1):
            lines.append(ROW_FORMAT % (index, name, value))

        top_mem = format_memory_entries(self.processes.get_top_memory_processes(1))
        top_cpu = format_cpu_entries(self.processes.get_top_cpu_processes(1))
        lines.append(SUB_ROW_FORMAT % ("", "├─ Top MEM", top_mem[0] if top_mem else UNAVAILABLE))
        lines.append(SUB_ROW_FORMAT % ("", "└─ Top CPU", top_cpu[0] if top_cpu else UNAVAILABLE))
        lines.append(ROW_FORMAT % ("", "", "[M] MEM details   [C] CPU details"))
        lines.append(MAIN_MENU)
        return "\n".join(lines)

    def run(self) -> int:
        """
        Main loop: render, wait for one key, dispatch. Returns the exit code.
        """
        self.update_count = self.processes.get_update_count()
        while True:
            clear_screen()
            print(self.render())
            try:
                key = self.read("")
            except KeyboardInterrupt:
                print()
                return 0
            if key == "" or not self.handle_key(key):
                print()
                return 0

    def handle_key(self, key: str) -> bool:
        """
        Dispatches one main-menu key. Returns False when the user quits.
        """
        actions = {
            "r": lambda: None,
            "p": lambda: self.show_command(["ps", "aux", "--sort=-%cpu"], head=20),
            "d": lambda: self.show_command(["lsusb"]),
            "u": lambda: self.show_command(["apt", "list", "--upgradable"]),
            "g": lambda: self.show_command(["dmesg"], tail=50),
            "s": self.show_snapshot,
            "l": self.show_logging_panel,
            "i": self.prompt_process_info,
            "m": lambda: self.show_top_processes("mem"),
            "c": lambda: self.show_top_processes("cpu"),
            "x": self.reset_settings,
        }
        key = key.lower()
        if key == "q":
            return False
        action = actions.get(key)
        if action is not None:
            try:
                action()
            except SeriesStoreError as e:
                logger.error(f"Storage error while handling key '{key}': {e}")
                print(f"Storage error: {e}")
                pause(self.read)
            except OSError as e:
                logger.error(f"Action for key '{key}' failed: {e}", exc_info=True)
                print(f"Error: {e}")
                pause(self.read)
        return True

    def show_command(self, args: List[str], head: Optional[int] = None, tail: Optional[int] = None) -> None:
        result = self.runner.run(args)
        if result.exit_code == 127:
            print(f"{args[0]} is not available on this system.")
            pause(self.read)
            return
        lines = result.stdout.splitlines()
        if head is not None:
            lines = lines[:head]
        if tail is not None:
            lines = lines[-tail:]
        page("\n".join(lines) or result.stderr)

    def show_snapshot(self) -> str:
        """
        Writes the rendered dashboard verbatim to a timestamped file.

        :return: Path of the snapshot
        :rtype: str
        """
        snapshot_dir = self.manager.paths.snapshot_dir
        os.makedirs(snapshot_dir, exist_ok=True)
        path = os.path.join(snapshot_dir, f"snapshot-{time.strftime('%Y%m%d-%H%M%S')}.txt")
        with open(path, 'w', encoding='utf-8') as f:
            f.write(self.render() + "\n")
        logger.info(f"Snapshot saved to {path}")
        print(f"Snapshot saved to {path}")
        pause(self.read)
        return path

    def _render_logging_panel(self, config: MonitorConfig) -> str:
        paths = self.manager.paths
        if self.manager.reconciler.is_timer_active():
            state = self._paint("Enabled", "GREEN")
        else:
            state = self._paint("Disabled", "YELLOW")
        lines = [
            self._paint(f"Config files:        {paths.config_dir}", "DIM"),
            self._paint(f"Logs files:          {paths.log_dir}", "DIM"),
            self._paint(f"Timer/service files: {paths.unit_dir}", "DIM"),
            "",
            "Logging and History Panel",
            f"(every {config.interval_text}, kept for {config.retention_text})",
            "",
            f"1) Toggle system logger state (currently: {state})",
        ]
        for choice, series in HISTORY_CHOICES.items():
            lines.append(f"{choice}) View {series.upper()} history")
        lines.extend(["X) Clear log files", "Q) Back"])
        return "\n".join(lines)

    def show_logging_panel(self) -> None:
        while True:
            config = self.manager.load_config()
            clear_screen()
            print(self._render_logging_panel(config))
            choice = self.read("Choice: ").lower()

            if choice == "1":
                self.manager.reconciler.toggle_enabled()
            elif choice in HISTORY_CHOICES:
                self.show_history(HISTORY_CHOICES[choice])
            elif choice == "x":
                if confirm("Are you sure you want to clear all log files? [y/N]: ", self.ask):
                    self.manager.clear_logs()
                    print("Logs cleared.")
                    pause(self.read)
            elif choice in ("q", ""):
                return

    def pick_history_window(self) -> Optional[WindowPreset]:
        print("Select history window:")
        for index, preset in enumerate(WindowPreset, start=1):
            print(f"  {index}) {preset.label}")
        preset = preset_for_choice(self.read(f"Choice [1-{len(WindowPreset)}]: "))
        if preset is None:
            print("Invalid choice.")
            pause(self.read)
        return preset

    def history_lines(self, series: str, preset: WindowPreset, now: Optional[int] = None) -> List[str]:
        """
        Bucketed history of one series, or of every series side by side for ``"all"``.
        """
        store = self.manager.store
        if series == "all":
            columns = {name: summarize(store, METRICS_SERIES, name, preset, now) for name in METRICS}
            return render_history_table(columns)
        return render_history(summarize(store, METRICS_SERIES, series, preset, now), HISTORY_UNITS[series])

    def show_history(self, series: str) -> None:
        preset = self.pick_history_window()
        if preset is None:
            return
        page("\n".join(self.history_lines(series, preset)))

    def show_top_processes(self, kind: str) -> None:
        while True:
            clear_screen()
            if kind == "mem":
                title = "Top 15 Memory-Hungry Processes:"
                processes = self.processes.get_top_memory_processes(DETAIL_LIST_SIZE)
                entries = format_memory_entries(processes)
            else:
                title = "Top 15 CPU-Hungry Processes:"
                processes = self.processes.get_top_cpu_processes(DETAIL_LIST_SIZE)
                entries = format_cpu_entries(processes)
            print(self._paint(title, "DIM"))
            print()
            print("\n".join(entries))
            print()
            rank = parse_number(self._ask(f"Enter [1-{DETAIL_LIST_SIZE}] to view process info or anything else to return: "))
            if rank is None or not 1 <= rank <= len(processes):
                return
            self.show_process_info(processes[rank - 1]['pid'])

    def prompt_process_info(self) -> None:
        answer = self._ask("PID: ")
        pid = parse_number(answer)
        if pid is None or pid <= 0:
            print(f"'{answer}' is not a valid PID.")
            pause(self.read)
            return
        self.show_process_info(pid)

    def show_process_info(self, pid: int) -> None:
        details = self.processes.get_process_by_pid(pid)
        if details is None:
            print(f"PID {pid} does not exist.")
            pause(self.read)
            return
        print()
        print(self._paint(f"Process details for PID {pid}:", "DIM"))
        print("  %-12s %s" % ("Name:", details['name']))
        print("  %-12s %s" % ("CmdLine:", details['cmdline']))
        print("  %-12s %s" % ("Script:", details['script']))
        print()
        pause(self.read)

    def reset_settings(self) -> None:
        reset_settings(self.manager, self.ask)
        pause(self.read)


def reset_settings(manager: PiManager, ask: Callable[[str], str] = input) -> bool:
    """
    Confirms with the user, then resets config, state and units to defaults.

    :return: True if the reset ran
    :rtype: bool
    """
    if not confirm("Are you sure you want to reset all settings and state? [y/N]: ", ask):
        print("Reset cancelled.")
        return False

    clear_logs = confirm("Do you also want to clear all logs? [y/N]: ", ask)
    if not clear_logs:
        print(f"Logs preserved in: {manager.paths.log_dir}")

    print("Removing config, state, and unit files...")
    manager.reset(clear_logs=clear_logs)
    print("Settings and systemd unit files have been reset.")
    print()
    print("Note: Logging timer is currently disabled.")
    print("You can re-enable it from the [L]ogging panel.")
    return True
