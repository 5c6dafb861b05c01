"""
Core PiManager module tying sampling, storage and scheduling together.
"""
import os
import shutil
from typing import Callable, Optional

from pi_manager.config import ConfigManager, MonitorConfig
from pi_manager.monitoring import MetricsSnapshot, SystemMonitor, SystemSources
from pi_manager.scheduling import ScheduleReconciler
from pi_manager.storage import SeriesStore, SeriesStoreError
from pi_manager.system import AppPaths, setup_directory_structure
from pi_manager.system.directory_utils import METRICS_SERIES
from pi_manager.utils import get_logger

logger = get_logger(__name__)


class PiManager:
    """
    Owns the application's components and the operations that span them.

    The scheduled ``--log`` run and the interactive dashboard both go through
    this class: one sampling pass with append and prune, the full startup
    reconciliation, clearing the metrics log and resetting everything to
    defaults.
    """

    def __init__(self, paths: AppPaths,
                 config_manager: Optional[ConfigManager] = None,
                 store: Optional[SeriesStore] = None,
                 reconciler: Optional[ScheduleReconciler] = None,
                 sources: Optional[SystemSources] = None):
        """
        :param paths: Application paths
        :type paths: AppPaths
        :param config_manager: Configuration manager, created from ``paths`` when omitted
        :param store: Series store, created over the log directory when omitted
        :param reconciler: Schedule reconciler, created when omitted
        :param sources: OS sources for the sampler
        """
        self.paths = paths
        self.config_manager = config_manager or ConfigManager(paths.config_file)
        self.store = store or SeriesStore(paths.log_dir)
        self.reconciler = reconciler or ScheduleReconciler(paths, self.config_manager)
        self.sources = sources or SystemSources()

    def load_config(self) -> MonitorConfig:
        return self.config_manager.load_config()

    def monitor(self, config: Optional[MonitorConfig] = None) -> SystemMonitor:
        return SystemMonitor(self.sources, config or self.load_config())

    def initial_setup(self) -> MonitorConfig:
        """
        Creates directories and default config, then reconciles the schedule.
        """
        setup_directory_structure(self.paths)
        self.config_manager.ensure_exists()
        return self.reconciler.initial_setup()

    def run_logger(self, now: Optional[int] = None) -> int:
        """
        One scheduled sampling pass: sample, append a row, prune old rows.

        Only light initialisation happens here; units are left to the dashboard.

        :param now: Timestamp for the sample, defaults to the current time
        :type now: Optional[int]
        :return: Process exit code, 0 on success and 1 if the metrics file could not be written
        :rtype: int
        """
        try:
            os.makedirs(self.paths.log_dir, exist_ok=True)
        except OSError as e:
            logger.error(f"Cannot create log directory {self.paths.log_dir}: {e}")
            return 1

        config = self.load_config()
        snapshot: MetricsSnapshot = self.monitor(config).sample(timestamp=now)

        try:
            self.store.append(METRICS_SERIES, snapshot.timestamp, snapshot.to_row(config))
        except SeriesStoreError as e:
            logger.error(f"Failed to write to {self.store.path_for(METRICS_SERIES)}: {e}")
            return 1

        try:
            self.store.prune(METRICS_SERIES, config.retention, now=snapshot.timestamp)
        except SeriesStoreError as e:
            # the sample is stored; the next run prunes again
            logger.error(f"Pruning failed: {e}")
            return 1

        logger.info(f"Logged metrics sample at {snapshot.timestamp}")
        return 0

    def clear_logs(self) -> None:
        """
        Empties the metrics log.

        :raises SeriesStoreError: If the file cannot be truncated
        """
        self.store.clear(METRICS_SERIES)

    def reset(self, clear_logs: bool = False) -> MonitorConfig:
        """
        Removes config, state and unit files, then reinitialises defaults.

        :param clear_logs: Also delete the log directory
        :type clear_logs: bool
        :return: The fresh default configuration
        :rtype: MonitorConfig
        """
        if clear_logs:
            shutil.rmtree(self.paths.log_dir, ignore_errors=True)
            logger.info(f"Removed log directory {self.paths.log_dir}")

        self.reconciler.remove_units()
        self.config_manager.reset()
        try:
            os.remove(self.paths.state_file)
        except FileNotFoundError:
            pass

        config = self.initial_setup()
        logger.info("Settings and systemd unit files have been reset.")
        return config


def confirm(prompt: str, ask: Callable[[str], str] = input) -> bool:
    """Yes/no question defaulting to no."""
    try:
        return ask(prompt).strip().lower() in ("y", "yes")
    except EOFError:
        return False
