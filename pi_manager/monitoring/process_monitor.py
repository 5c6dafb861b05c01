"""
Process monitoring module for Pi Manager.
Lists the heaviest processes and looks up details for a single PID.
"""
import os
import time
from typing import Any, Dict, List, Optional

import psutil

from pi_manager.utils import get_logger, CommandRunner

logger = get_logger(__name__)

_ACCESS_ERRORS = (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess)


class ProcessMonitor:
    """Class responsible for monitoring system processes."""

    def __init__(self, exclude_pid: Optional[int] = None, runner: Optional[CommandRunner] = None):
        """
        :param exclude_pid: PID left out of CPU rankings, normally the dashboard itself
        :type exclude_pid: Optional[int]
        :param runner: Command runner used for the package update query
        :type runner: Optional[CommandRunner]
        """
        self.exclude_pid = os.getpid() if exclude_pid is None else exclude_pid
        self.num_cores = psutil.cpu_count() or 1
        self.runner = runner or CommandRunner(timeout=60.0)

    def _snapshot(self) -> List[Dict[str, Any]]:
        now = time.time()
        processes = []
        for proc in psutil.process_iter(['pid', 'name', 'memory_percent', 'cpu_times', 'create_time']):
            try:
                info = proc.info
                cpu_times = info['cpu_times']
                elapsed = max(now - (info['create_time'] or now), 1e-6)
                busy = (cpu_times.user + cpu_times.system) if cpu_times else 0.0
                processes.append({
                    'pid': info['pid'],
                    'name': info['name'] or '?',
                    'memory_percent': info['memory_percent'] or 0.0,
                    # lifetime average, the same figure `ps` reports as %CPU
                    'cpu_percent': busy * 100 / elapsed,
                })
            except _ACCESS_ERRORS:
                pass
        return processes

    def get_top_memory_processes(self, count: int = 1) -> List[Dict[str, Any]]:
        """
        Get the most memory-hungry processes.

        :param count: Number of processes to return
        :type count: int
        :return: Process dicts (pid, name, memory_percent, cpu_percent) sorted by memory use
        :rtype: List[Dict[str, Any]]
        """
        processes = sorted(self._snapshot(), key=lambda p: p['memory_percent'], reverse=True)
        return processes[:count]

    def get_top_cpu_processes(self, count: int = 1) -> List[Dict[str, Any]]:
        """
        Get the most CPU-hungry processes, leaving out the dashboard itself.

        Each entry also carries ``cpu_share``, the raw figure divided by the core count.
        """
        processes = [p for p in self._snapshot() if p['pid'] != self.exclude_pid and p['name'] != 'ps']
        processes.sort(key=lambda p: p['cpu_percent'], reverse=True)
        top = processes[:count]
        for proc in top:
            proc['cpu_share'] = proc['cpu_percent'] / self.num_cores
        return top

    def get_process_count(self) -> int:
        return len(psutil.pids())

    def get_process_by_pid(self, pid: int) -> Optional[Dict[str, str]]:
        """
        Get name, command line and script of a process.

        The script is the second token of the command line, which names the
        program an interpreter is running.

        :param pid: Process ID
        :type pid: int
        :return: Details, or None if the process does not exist
        :rtype: Optional[Dict[str, str]]
        """
        try:
            process = psutil.Process(pid)
            name = process.name()
            cmdline = process.cmdline()
        except psutil.NoSuchProcess:
            logger.info(f"PID {pid} does not exist.")
            return None
        except (psutil.AccessDenied, psutil.ZombieProcess) as e:
            logger.warning(f"Could not retrieve details for process {pid}: {e}")
            return {'name': '?', 'cmdline': '', 'script': '(none)'}

        return {
            'name': name,
            'cmdline': ' '.join(cmdline),
            'script': cmdline[1] if len(cmdline) > 1 else '(none)',
        }

    def get_update_count(self) -> int:
        """
        Counts upgradable packages reported by apt. Returns 0 when apt is unavailable.
        """
        result = self.runner.run(["apt", "list", "--upgradable"])
        if result.exit_code == 127:
            return 0
        return sum(1 for line in result.stdout.splitlines() if '[upgradable' in line)


def format_memory_entries(processes: List[Dict[str, Any]]) -> List[str]:
    return [
        "%3d. %s (pid %s, %.1f%% mem)" % (rank, p['name'], p['pid'], p['memory_percent'])
        for rank, p in enumerate(processes, start=1)
    ]


def format_cpu_entries(processes: List[Dict[str, Any]]) -> List[str]:
    return [
        "%3d. %s (pid %s, %.1f%% of total, %.1f%% raw)" % (
            rank, p['name'], p['pid'], p.get('cpu_share', p['cpu_percent']), p['cpu_percent'])
        for rank, p in enumerate(processes, start=1)
    ]
