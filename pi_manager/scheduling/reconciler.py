"""
Keeps the systemd timer that drives periodic sampling in line with the configuration.

Unit files are rendered deterministically from the configuration and only
written when their on-disk text differs, and ``systemctl daemon-reload`` runs
only when a unit actually changed. The timer's enabled state is re-applied on
every full startup, which also undoes manual changes made behind our back.
"""
import os
import sys
from typing import List, Optional

from pi_manager.config import ConfigManager, MonitorConfig
from pi_manager.system import AppPaths
from pi_manager.utils import get_logger, CommandRunner, atomic_write_text, read_text

logger = get_logger(__name__)

UNIT_PREFIX = "nick_pi_manager-log"
TIMER_NAME = f"{UNIT_PREFIX}.timer"
SERVICE_NAME = f"{UNIT_PREFIX}.service"
LOGROTATE_NAME = "nick_pi_manager"
BOOT_DELAY = "30s"


def retention_days(retention_seconds: int) -> int:
    """Whole days of rotated logs to keep; partial days round up, minimum one."""
    return max(1, -(-retention_seconds // 86400))


def compute_desired_unit_definition(config: MonitorConfig) -> str:
    """
    Text of the ``.timer`` unit for a configuration. Identical input yields byte-identical output.

    :param config: Current configuration
    :type config: MonitorConfig
    :return: Unit file contents
    :rtype: str
    """
    interval = config.interval_text
    return (
        "[Unit]\n"
        "Description=Schedule nick_pi_manager logging\n"
        "\n"
        "[Timer]\n"
        "# fire once after system boots\n"
        f"OnBootSec={BOOT_DELAY}\n"
        "# fire once after the timer unit is started\n"
        f"OnActiveSec={interval}\n"
        "# and then every interval after the service last ran\n"
        f"OnUnitActiveSec={interval}\n"
        "\n"
        "AccuracySec=1s\n"
        f"Unit={SERVICE_NAME}\n"
        "\n"
        "[Install]\n"
        "WantedBy=timers.target\n"
    )


def render_service_unit(user: str, exec_start: str) -> str:
    return (
        "[Unit]\n"
        "Description=Append system metric samples to nick_pi_manager logs\n"
        "\n"
        "[Service]\n"
        "Type=oneshot\n"
        f"User={user}\n"
        f"ExecStart={exec_start}\n"
        "StandardOutput=journal\n"
        "StandardError=journal\n"
    )


def render_logrotate_config(metrics_file: str, config: MonitorConfig) -> str:
    """
    logrotate snippet that keeps one compressed copy of the metrics log per retained day.
    """
    return (
        f"{metrics_file} {{\n"
        "    daily\n"
        f"    rotate {retention_days(config.retention)}\n"
        "    compress\n"
        "    delaycompress\n"
        "    copytruncate\n"
        "    missingok\n"
        "    notifempty\n"
        "    dateext\n"
        "    dateformat -%Y%m%d\n"
        "}\n"
    )


def default_exec_start() -> str:
    return f"{sys.executable} -m pi_manager --log"


class ScheduleReconciler:
    """
    Converges the timer, service and logrotate files and the timer's
    enabled state onto what the configuration asks for.
    """

    def __init__(self, paths: AppPaths, config_manager: ConfigManager,
                 runner: Optional[CommandRunner] = None, exec_start: Optional[str] = None):
        """
        :param paths: Application paths, including the unit and logrotate directories
        :type paths: AppPaths
        :param config_manager: Source of the desired configuration
        :type config_manager: ConfigManager
        :param runner: Runs ``systemctl`` and privileged file operations
        :type runner: Optional[CommandRunner]
        :param exec_start: Command the service runs, defaults to this interpreter with ``--log``
        :type exec_start: Optional[str]
        """
        self.paths = paths
        self.config_manager = config_manager
        self.runner = runner or CommandRunner()
        self.exec_start = exec_start or default_exec_start()

    @property
    def timer_path(self) -> str:
        return os.path.join(self.paths.unit_dir, TIMER_NAME)

    @property
    def service_path(self) -> str:
        return os.path.join(self.paths.unit_dir, SERVICE_NAME)

    @property
    def logrotate_path(self) -> str:
        return os.path.join(self.paths.logrotate_dir, LOGROTATE_NAME)

    def _systemctl(self, *args: str) -> bool:
        result = self.runner.run(["systemctl"] + list(args), privileged=True)
        if not result.ok:
            logger.warning(f"systemctl {' '.join(args)} failed ({result.exit_code}): {result.stderr.strip()}")
        return result.ok

    def _write_if_changed(self, path: str, content: str) -> bool:
        """
        Writes ``content`` to ``path`` unless the file already holds exactly that text.

        Falls back to ``sudo tee`` when the directory is not writable.

        :return: True if the file was written
        :rtype: bool
        """
        if read_text(path) == content:
            return False

        logger.info(f"Updating {path}")
        try:
            atomic_write_text(path, content)
            return True
        except PermissionError:
            if not self.runner.use_sudo:
                raise
        result = self.runner.run(["tee", path], privileged=True, input_text=content)
        if not result.ok:
            raise PermissionError(f"Could not write {path}: {result.stderr.strip()}")
        return True

    def _remove_file(self, path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except PermissionError:
            self.runner.run(["rm", "-f", path], privileged=True)

    def reconcile(self, config: Optional[MonitorConfig] = None) -> bool:
        """
        Brings the timer and service units up to date, reloading systemd only if one changed.

        :param config: Configuration to apply, loaded from the config file when omitted
        :type config: Optional[MonitorConfig]
        :return: True if any unit file was rewritten
        :rtype: bool
        """
        config = config or self.config_manager.load_config()
        units = (
            (self.timer_path, compute_desired_unit_definition(config)),
            (self.service_path, render_service_unit(self.paths.user, self.exec_start)),
        )
        changed = False
        for path, content in units:
            try:
                changed |= self._write_if_changed(path, content)
            except OSError as e:
                logger.error(f"Failed to write systemd unit file {path}: {e}")

        if changed:
            logger.info("Reloading systemd daemon...")
            self._systemctl("daemon-reload")
        else:
            logger.debug("Systemd units already up to date.")
        return changed

    def reconcile_logrotate(self, config: Optional[MonitorConfig] = None) -> bool:
        """
        Keeps the logrotate snippet for the metrics file in line with the retention setting.
        """
        config = config or self.config_manager.load_config()
        try:
            return self._write_if_changed(self.logrotate_path, render_logrotate_config(self.paths.metrics_file, config))
        except OSError as e:
            logger.error(f"Failed to write logrotate config {self.logrotate_path}: {e}")
            return False

    def apply_enabled_state(self, config: Optional[MonitorConfig] = None) -> bool:
        """
        Enables and starts, or disables and stops, the timer to match the configuration.

        Always issues the command, so drift in the live state is corrected.

        :return: True if systemctl succeeded
        :rtype: bool
        """
        config = config or self.config_manager.load_config()
        action = "enable" if config.enabled else "disable"
        return self._systemctl(action, "--now", TIMER_NAME)

    def is_timer_active(self) -> bool:
        """Live timer state as reported by systemd."""
        return self.runner.run(["systemctl", "is-active", "--quiet", TIMER_NAME], privileged=True).ok

    def initial_setup(self) -> MonitorConfig:
        """
        Full reconciliation pass run when the dashboard starts.
        """
        config = self.config_manager.load_config()
        self.reconcile(config)
        self.reconcile_logrotate(config)
        self.apply_enabled_state(config)
        return config

    def toggle_enabled(self) -> bool:
        """
        Flips the timer relative to its live state and records the new state in the config file.

        Both halves are attempted even if one fails; the next render reads the
        live state again, so a mismatch shows up there.

        :return: The requested new state
        :rtype: bool
        """
        enable = not self.is_timer_active()
        logger.info(f"{'Enabling' if enable else 'Disabling'} logging timer...")
        self._systemctl("enable" if enable else "disable", "--now", TIMER_NAME)
        if not self.config_manager.set_enabled(enable):
            logger.error("Timer state changed but the configuration file could not be updated.")
        return enable

    def remove_units(self) -> None:
        """
        Stops and disables the units and deletes their files and the logrotate snippet.
        """
        for unit in (TIMER_NAME, SERVICE_NAME):
            self._systemctl("stop", unit)
            self._systemctl("disable", unit)
        paths: List[str] = [self.timer_path, self.service_path, self.logrotate_path]
        for path in paths:
            self._remove_file(path)
        self._systemctl("daemon-reload")
        logger.info("Removed systemd units and logrotate config.")
