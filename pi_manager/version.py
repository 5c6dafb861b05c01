"""
Version information for Pi Manager.

Version follows semantic versioning (https://semver.org/): MAJOR.MINOR.PATCH
"""

# Version components
MAJOR = 1
MINOR = 2
PATCH = 0

__version__ = f"{MAJOR}.{MINOR}.{PATCH}"
__app_name__ = "Pi Manager"
