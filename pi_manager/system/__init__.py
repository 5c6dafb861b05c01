"""
Filesystem layout helpers for Pi Manager.
"""
from pi_manager.system.directory_utils import (
    AppPaths,
    determine_storage_paths,
    setup_directory_structure
)

__all__ = [
    'AppPaths',
    'determine_storage_paths',
    'setup_directory_structure'
]
