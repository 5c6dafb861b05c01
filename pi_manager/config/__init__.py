"""
Configuration management modules for Pi Manager.
"""
from .config_manager import ConfigManager, ConfigError, MonitorConfig, METRICS

__all__ = [
    'ConfigManager',
    'ConfigError',
    'MonitorConfig',
    'METRICS'
]
