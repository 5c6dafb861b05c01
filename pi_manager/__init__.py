"""
Pi Manager - Source Package

A resource monitor for small Linux devices: samples system metrics, keeps a
rolling history on disk and shows it in an interactive text dashboard.

Main components:
- SystemMonitor: Samples CPU, memory, disk, temperature, load and Wi-Fi signal
- SeriesStore: Append-only CSV metric history with age-based pruning
- aggregate: Windowed max-hold downsampling of a series
- ScheduleReconciler: Keeps the systemd sampling timer in line with the configuration
- ConfigManager: Loads the key=value configuration into a typed MonitorConfig
- PiManager: Ties the components together for the CLI and the dashboard
"""

from .version import __version__, __app_name__

from .config import ConfigManager, MonitorConfig

from .monitoring import SystemMonitor, ProcessMonitor

from .storage import SeriesStore, aggregate

from .scheduling import ScheduleReconciler

from .core import PiManager

__all__ = [
    '__version__',
    '__app_name__',

    'ConfigManager',
    'MonitorConfig',

    'SystemMonitor',
    'ProcessMonitor',

    'SeriesStore',
    'aggregate',

    'ScheduleReconciler',

    'PiManager'
]
