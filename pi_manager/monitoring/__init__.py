"""
Monitoring components for Pi Manager.
"""
from pi_manager.monitoring.system_monitor import (
    MetricsSnapshot,
    SystemMonitor,
    SystemSources,
    dbm_to_percent,
    millidegrees_to_celsius
)
from pi_manager.monitoring.process_monitor import ProcessMonitor

__all__ = [
    'MetricsSnapshot',
    'SystemMonitor',
    'SystemSources',
    'ProcessMonitor',
    'dbm_to_percent',
    'millidegrees_to_celsius'
]
