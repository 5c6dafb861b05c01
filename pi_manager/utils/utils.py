"""
Utility functions for Pi Manager.
"""
import os
import stat
import subprocess
import tempfile
from typing import List, NamedTuple, Optional, Sequence

from pi_manager.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_COMMAND_TIMEOUT = 10.0
DEFAULT_FILE_MODE = 0o644


class CommandResult(NamedTuple):
    """Outcome of an external command."""
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandRunner:
    """
    Runs external commands with a timeout and captured output.

    Tests substitute a fake with the same ``run`` signature, which keeps every
    call to ``systemctl``, ``iw`` and friends out of the unit tests.
    """

    def __init__(self, timeout: float = DEFAULT_COMMAND_TIMEOUT, use_sudo: Optional[bool] = None):
        """
        :param timeout: Seconds before a command is abandoned
        :type timeout: float
        :param use_sudo: Prefix privileged commands with ``sudo``. Defaults to True when not root
        :type use_sudo: Optional[bool]
        """
        self.timeout = timeout
        if use_sudo is None:
            use_sudo = hasattr(os, "geteuid") and os.geteuid() != 0
        self.use_sudo = use_sudo

    def run(self, args: Sequence[str], privileged: bool = False, input_text: Optional[str] = None) -> CommandResult:
        """
        Execute a command and return its result. Never raises for command failures.

        :param args: Command and arguments
        :type args: Sequence[str]
        :param privileged: Whether the command needs root (adds ``sudo`` when configured)
        :type privileged: bool
        :param input_text: Optional text fed to the command's stdin
        :type input_text: Optional[str]
        :return: The command result; exit code 124 on timeout, 127 when not found
        :rtype: CommandResult
        """
        command: List[str] = list(args)
        if privileged and self.use_sudo:
            command = ["sudo"] + command

        try:
            process = subprocess.run(
                command,
                input=input_text,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors='replace',
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            logger.error(f"Command timed out after {self.timeout} seconds: {' '.join(command)}")
            return CommandResult(124, "", f"timed out after {self.timeout} seconds")
        except FileNotFoundError:
            logger.debug(f"Command not found: '{command[0]}'")
            return CommandResult(127, "", f"command not found: {command[0]}")
        except OSError as e:
            logger.error(f"Failed to execute {' '.join(command)}: {e}")
            return CommandResult(126, "", str(e))

        result = CommandResult(process.returncode, process.stdout or "", process.stderr or "")
        if not result.ok and result.stderr.strip():
            logger.debug(f"Command {' '.join(command)} exited {result.exit_code}: {result.stderr.strip()}")
        return result


def read_text(path: str) -> Optional[str]:
    """
    Read a whole text file.

    :param path: File to read
    :type path: str
    :return: File contents or None if the file does not exist or cannot be read
    :rtype: Optional[str]
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return f.read()
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning(f"Could not read {path}: {e}")
        return None


def atomic_write_text(path: str, content: str) -> None:
    """
    Replace a file's contents atomically.

    The data is written to a temporary file in the same directory and moved
    over the target with ``os.replace``, so readers see either the old or the
    new file and never a truncated one.

    The replacement keeps the permission bits of an existing file; a new
    file gets ``0644``.

    :param path: Destination file
    :type path: str
    :param content: Text to write
    :type content: str
    :raises OSError: If the temporary file cannot be written or moved
    """
    directory = os.path.dirname(path) or "."
    os.makedirs(directory, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, 'w', encoding='utf-8', newline='') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        try:
            mode = stat.S_IMODE(os.stat(path).st_mode)
        except FileNotFoundError:
            mode = DEFAULT_FILE_MODE
        os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except BaseException:
        try:
            os.remove(temp_path)
        except OSError:
            pass
        raise
