"""
Main entry point for Pi Manager.

Without arguments the dashboard starts; ``--log`` takes one sample for the
systemd timer and exits; ``--reset`` restores default settings.
"""
import argparse
import sys
from typing import List, Optional

from pi_manager.core import PiManager
from pi_manager.system import determine_storage_paths
from pi_manager.ui import Dashboard, display_error, reset_settings
from pi_manager.utils.logger import setup_logger, get_logger
from pi_manager.version import __version__, __app_name__

logger = get_logger("pi_manager.main")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pi_manager", description=f"{__app_name__}: system status dashboard and metrics logger.")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument('--log', action='store_true', help='Append one metrics sample to the log and exit.')
    mode.add_argument('--reset', action='store_true', help='Reset settings, state and systemd units to defaults.')
    parser.add_argument('--debug', action='store_true', help='Print debug logging to the console.')
    parser.add_argument('--version', action='version', version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Parses arguments and dispatches to the requested mode.

    :param argv: Arguments without the program name, defaults to ``sys.argv[1:]``
    :type argv: Optional[List[str]]
    :return: Exit code
    :rtype: int
    """
    args = _build_parser().parse_args(argv)
    paths = determine_storage_paths()

    if args.debug:
        console_level = 'DEBUG'
    elif args.log or args.reset:
        console_level = 'INFO'
    else:
        # keep the dashboard screen clean
        console_level = 'ERROR'
    setup_logger(console_level_name=console_level, log_file_path=paths.app_log_file)

    manager = PiManager(paths)

    if args.log:
        return manager.run_logger()

    if args.reset:
        try:
            reset_settings(manager)
        except OSError as e:
            logger.error(f"Reset failed: {e}", exc_info=True)
            display_error(f"Reset failed: {e}")
            return 1
        return 0

    try:
        manager.initial_setup()
    except OSError as e:
        logger.critical(f"Initial setup failed: {e}", exc_info=True)
        display_error(f"Could not initialise {paths.state_dir}: {e}")
        return 1
    return Dashboard(manager).run()


if __name__ == '__main__':
    sys.exit(main())
