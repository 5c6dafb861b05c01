"""
Core functionality for Pi Manager.
"""
from pi_manager.core.manager import PiManager, confirm

__all__ = [
    'PiManager',
    'confirm'
]
