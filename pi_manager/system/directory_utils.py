"""
Utilities for determining and creating Pi Manager's directory structure.
Follows the XDG base directory layout of the user the tool acts for.
"""
import os
import pwd
from typing import Mapping, NamedTuple, Optional, Tuple

from pi_manager.utils import get_logger

logger = get_logger(__name__)

APP_DIR_NAME = "nick_pi_manager"
CONFIG_FILENAME = "config"
STATE_FILENAME = "state.yaml"
METRICS_SERIES = "metrics"
LOG_FILENAME = "pi_manager.log"

SYSTEMD_SYSTEM_DIR = "/etc/systemd/system"
LOGROTATE_DIR = "/etc/logrotate.d"

DEFAULT_STATE_CONTENT = "last_backup: {}\nseen_items: []\n"


class AppPaths(NamedTuple):
    """Every filesystem location Pi Manager reads or writes."""
    user: str
    config_dir: str
    state_dir: str
    log_dir: str
    snapshot_dir: str
    unit_dir: str
    logrotate_dir: str

    @property
    def config_file(self) -> str:
        return os.path.join(self.config_dir, CONFIG_FILENAME)

    @property
    def state_file(self) -> str:
        return os.path.join(self.state_dir, STATE_FILENAME)

    @property
    def metrics_file(self) -> str:
        return os.path.join(self.log_dir, f"{METRICS_SERIES}.csv")

    @property
    def app_log_file(self) -> str:
        return os.path.join(self.state_dir, LOG_FILENAME)


def effective_user(environ: Optional[Mapping[str, str]] = None) -> Tuple[str, str]:
    """
    Work out which user the dashboard acts for.

    Under ``sudo`` the invoking user (``SUDO_USER``) owns the config and logs,
    not root.

    :return: Tuple (user name, home directory)
    :rtype: Tuple[str, str]
    """
    environ = os.environ if environ is None else environ
    sudo_user = environ.get("SUDO_USER")
    if hasattr(os, "geteuid") and os.geteuid() == 0 and sudo_user:
        try:
            return sudo_user, pwd.getpwnam(sudo_user).pw_dir
        except KeyError:
            logger.warning(f"SUDO_USER '{sudo_user}' has no passwd entry. Using current user.")

    user = environ.get("USER") or pwd.getpwuid(os.getuid()).pw_name
    return user, environ.get("HOME") or os.path.expanduser("~")


def determine_storage_paths(environ: Optional[Mapping[str, str]] = None,
                            unit_dir: str = SYSTEMD_SYSTEM_DIR,
                            logrotate_dir: str = LOGROTATE_DIR) -> AppPaths:
    """
    Resolve config, state, log and snapshot directories.

    ``XDG_CONFIG_HOME`` and ``XDG_STATE_HOME`` are honoured; otherwise the
    usual ``~/.config`` and ``~/.local/state`` are used.

    :param environ: Environment to read, defaults to ``os.environ``
    :type environ: Optional[Mapping[str, str]]
    :param unit_dir: Directory holding systemd unit files
    :type unit_dir: str
    :param logrotate_dir: Directory holding logrotate snippets
    :type logrotate_dir: str
    :return: Resolved application paths
    :rtype: AppPaths
    """
    environ = os.environ if environ is None else environ
    user, home = effective_user(environ)
    config_home = environ.get("XDG_CONFIG_HOME") or os.path.join(home, ".config")
    state_home = environ.get("XDG_STATE_HOME") or os.path.join(home, ".local", "state")

    state_dir = os.path.join(state_home, APP_DIR_NAME)
    return AppPaths(
        user=user,
        config_dir=os.path.join(config_home, APP_DIR_NAME),
        state_dir=state_dir,
        log_dir=os.path.join(state_dir, "logs"),
        snapshot_dir=os.path.join(state_dir, "snapshots"),
        unit_dir=unit_dir,
        logrotate_dir=logrotate_dir,
    )


def setup_directory_structure(paths: AppPaths) -> None:
    """
    Creates the config, state, log and snapshot directories and the empty
    metrics file and state file if they are missing.

    :param paths: Application paths
    :type paths: AppPaths
    :raises OSError: If a directory cannot be created
    """
    for directory in (paths.config_dir, paths.state_dir, paths.log_dir, paths.snapshot_dir):
        os.makedirs(directory, exist_ok=True)
        logger.debug(f"Created/verified directory: {directory}")

    if not os.path.exists(paths.metrics_file):
        open(paths.metrics_file, 'a').close()

    # reserved for backup bookkeeping
    if not os.path.exists(paths.state_file):
        with open(paths.state_file, 'w', encoding='utf-8') as f:
            f.write(DEFAULT_STATE_CONTENT)
