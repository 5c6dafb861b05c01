"""
Utility functions for Pi Manager.
"""
from pi_manager.utils.logger import get_logger, setup_logger
from pi_manager.utils.utils import CommandResult, CommandRunner, atomic_write_text, read_text

__all__ = [
    'get_logger',
    'setup_logger',
    'CommandResult',
    'CommandRunner',
    'atomic_write_text',
    'read_text'
]
