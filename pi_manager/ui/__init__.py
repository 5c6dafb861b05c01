"""
User interface components for Pi Manager.
"""
from pi_manager.ui.ui_console import display_error
from pi_manager.ui.dashboard import Dashboard, reset_settings

__all__ = [
    'display_error',
    'Dashboard',
    'reset_settings'
]
