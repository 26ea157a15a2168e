"""
Service Manager Module

Provides a unified interface over the host service manager (systemd on
Linux, launchd on macOS) for discovering and controlling runner services.
"""

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

from .exceptions import RunnerError, ValidationError
from .naming import is_runner_service, service_matches, validate_service_name

STATUS_ACTIVE = 'active'
STATUS_INACTIVE = 'inactive'
STATUS_FAILED = 'failed'
STATUS_NOT_FOUND = 'not-found'

STATUS_SYMBOLS = {
    STATUS_ACTIVE: '●',
    STATUS_INACTIVE: '○',
    STATUS_FAILED: '✗',
    STATUS_NOT_FOUND: '?',
}

ALLOWED_ACTIONS = ('start', 'stop', 'restart')
SVC_COMMANDS = ('install', 'start', 'stop', 'status', 'uninstall')


def normalize_status(state: str) -> str:
    """Collapse a raw service manager state into one of the four runner statuses"""
    state = (state or '').strip()
    if state in (STATUS_ACTIVE, STATUS_INACTIVE, STATUS_FAILED):
        return state
    return STATUS_NOT_FOUND


class ServiceManager(ABC):
    """Abstract base class for host service managers"""

    name = 'generic'
    # svc.sh needs root to write unit files on Linux
    svc_needs_sudo = False

    def __init__(self, config, logger: logging.Logger):
        """
        Initialize service manager

        Args:
            config: RunnerConfig instance
            logger: Logger instance
        """
        self.config = config
        self.logger = logger

    def _run(self, cmd: List[str], privileged: bool = False,
             cwd: Optional[Path] = None) -> subprocess.CompletedProcess:
        """
        Run a command, optionally through sudo

        Args:
            cmd: Command and arguments
            privileged: Prefix with sudo when configured and not root
            cwd: Working directory

        Returns:
            Completed process with captured text output

        Raises:
            RunnerError: If the executable cannot be found
        """
        if privileged and self._sudo_required():
            cmd = ['sudo'] + cmd
        self.logger.debug(f"Running: {' '.join(cmd)}")
        try:
            return subprocess.run(cmd, cwd=cwd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise RunnerError(f"Command not found: {cmd[0]}") from e

    def _sudo_required(self) -> bool:
        return self.config.use_sudo and os.geteuid() != 0

    @abstractmethod
    def list_services(self) -> List[str]:
        """List every runner service known to the service manager"""
        pass

    @abstractmethod
    def get_state(self, unit: str) -> str:
        """Get the raw state string of a service"""
        pass

    @abstractmethod
    def _control(self, unit: str, action: str) -> subprocess.CompletedProcess:
        pass

    @abstractmethod
    def disable(self, unit: str) -> bool:
        """Disable a service so it does not start at boot"""
        pass

    @abstractmethod
    def status_text(self, unit: str) -> str:
        """Get the human-readable status report of a service"""
        pass

    @abstractmethod
    def recent_logs(self, units: List[str], lines: int) -> List[str]:
        """Get the most recent log lines for services"""
        pass

    @abstractmethod
    def follow_logs(self, units: List[str]) -> int:
        """Stream logs for services until interrupted, returning the exit code"""
        pass

    def find_services(self, repo: Optional[str] = None, index: Optional[int] = None) -> List[str]:
        """
        Find runner services for a repository (and runner index)

        Args:
            repo: Repository short name, or None for every runner service
            index: Runner index to narrow the match

        Returns:
            Sorted list of matching service names
        """
        services = self.list_services()
        if repo is not None:
            services = [unit for unit in services if service_matches(unit, repo, index)]
        return sorted(services)

    def get_status(self, unit: str) -> str:
        return normalize_status(self.get_state(unit))

    def control(self, unit: str, action: str) -> bool:
        """
        Start, stop or restart a runner service

        Args:
            unit: Service name
            action: One of start, stop, restart

        Returns:
            True if successful, False otherwise
        """
        if action not in ALLOWED_ACTIONS:
            raise ValidationError(f"Invalid action: {action}")
        validate_service_name(unit)

        result = self._control(unit, action)
        if result.returncode != 0:
            self.logger.error(f"Failed to {action} {unit}: {result.stderr.strip()}")
            return False
        self.logger.info(f"{action} {unit}: ok")
        return True

    def run_svc_script(self, svc_script: Path, command: str) -> bool:
        """
        Run a runner's svc.sh helper (install/start/stop/status/uninstall)

        Args:
            svc_script: Path to svc.sh inside a runner directory
            command: svc.sh sub-command

        Returns:
            True if the script exited successfully

        Raises:
            RunnerError: If svc.sh does not exist
        """
        if command not in SVC_COMMANDS:
            raise ValidationError(f"Invalid svc.sh command: {command}")
        if not svc_script.is_file():
            raise RunnerError(f"svc.sh not found at {svc_script}")

        result = self._run(['./svc.sh', command], privileged=self.svc_needs_sudo,
                           cwd=svc_script.parent)
        if result.returncode != 0:
            self.logger.error(f"svc.sh {command} failed in {svc_script.parent}: "
                              f"{result.stderr.strip() or result.stdout.strip()}")
            return False
        return True


class SystemdServiceManager(ServiceManager):
    """systemd implementation (Linux)"""

    name = 'systemd'
    svc_needs_sudo = True

    def list_services(self) -> List[str]:
        result = self._run(['systemctl', 'list-units', '--all', '--type=service',
                            '--no-legend', '--plain', '--no-pager'])
        services = []
        for line in result.stdout.splitlines():
            fields = line.replace('●', ' ').split()
            if fields and is_runner_service(fields[0]):
                services.append(fields[0])
        return services

    def get_state(self, unit: str) -> str:
        # is-active exits non-zero for anything but active; stdout still has the state
        result = self._run(['systemctl', 'is-active', unit])
        return result.stdout.strip() or STATUS_NOT_FOUND

    def _control(self, unit: str, action: str) -> subprocess.CompletedProcess:
        return self._run(['systemctl', action, unit], privileged=True)

    def disable(self, unit: str) -> bool:
        validate_service_name(unit)
        result = self._run(['systemctl', 'disable', unit], privileged=True)
        if result.returncode != 0:
            self.logger.warning(f"Service disable failed for {unit}: {result.stderr.strip()}")
            return False
        return True

    def status_text(self, unit: str) -> str:
        result = self._run(['systemctl', 'status', unit, '--no-pager', '-l'], privileged=True)
        return (result.stdout + result.stderr).rstrip()

    def _journal_args(self, units: List[str]) -> List[str]:
        args = []
        for unit in units:
            args.extend(['-u', unit])
        return args

    def recent_logs(self, units: List[str], lines: int) -> List[str]:
        if not units:
            return []
        cmd = ['journalctl'] + self._journal_args(units) + ['-n', str(lines), '--no-pager', '-o', 'short-iso']
        result = self._run(cmd, privileged=True)
        return result.stdout.splitlines()

    def follow_logs(self, units: List[str]) -> int:
        cmd = ['journalctl', '-f'] + self._journal_args(units)
        if self._sudo_required():
            cmd = ['sudo'] + cmd
        return subprocess.run(cmd).returncode


class LaunchdServiceManager(ServiceManager):
    """launchd implementation (macOS)"""

    name = 'launchd'

    def __init__(self, config, logger: logging.Logger):
        super().__init__(config, logger)
        self.agents_dir = Path.home() / 'Library' / 'LaunchAgents'
        self.logs_dir = Path.home() / 'Library' / 'Logs'

    def _list_table(self) -> Dict[str, Dict[str, str]]:
        """Parse `launchctl list` into {label: {'pid': ..., 'status': ...}}"""
        result = self._run(['launchctl', 'list'])
        table = {}
        for line in result.stdout.splitlines()[1:]:
            fields = line.split(None, 2)
            if len(fields) == 3:
                pid, status, label = fields
                table[label.strip()] = {'pid': pid, 'status': status}
        return table

    def list_services(self) -> List[str]:
        return [label for label in self._list_table() if is_runner_service(label)]

    def get_state(self, unit: str) -> str:
        entry = self._list_table().get(unit)
        if entry is None:
            return STATUS_NOT_FOUND
        if entry['pid'] != '-':
            return STATUS_ACTIVE
        if entry['status'] not in ('0', '-'):
            return STATUS_FAILED
        return STATUS_INACTIVE

    def _control(self, unit: str, action: str) -> subprocess.CompletedProcess:
        if action == 'restart':
            self._run(['launchctl', 'stop', unit])
            action = 'start'
        return self._run(['launchctl', action, unit])

    def disable(self, unit: str) -> bool:
        validate_service_name(unit)
        plist = self.agents_dir / f"{unit}.plist"
        if not plist.exists():
            self.logger.warning(f"Launch agent not found: {plist}")
            return False
        result = self._run(['launchctl', 'unload', '-w', str(plist)])
        if result.returncode != 0:
            self.logger.warning(f"Service disable failed for {unit}: {result.stderr.strip()}")
            return False
        return True

    def status_text(self, unit: str) -> str:
        result = self._run(['launchctl', 'list', unit])
        return (result.stdout + result.stderr).rstrip()

    def _log_files(self, units: List[str]) -> List[Path]:
        files = []
        for unit in units:
            log_dir = self.logs_dir / unit
            if log_dir.is_dir():
                files.extend(sorted(log_dir.glob('*.log')))
        return files

    def recent_logs(self, units: List[str], lines: int) -> List[str]:
        output = []
        for log_file in self._log_files(units):
            with open(log_file, errors='replace') as f:
                tail = f.read().splitlines()[-lines:]
            output.extend(f"{log_file.parent.name}: {line}" for line in tail)
        return output

    def follow_logs(self, units: List[str]) -> int:
        files = self._log_files(units)
        if not files:
            self.logger.warning("No log files found for the selected services")
            return 1
        return subprocess.run(['tail', '-f'] + [str(f) for f in files]).returncode


class ServiceManagerFactory:
    """Factory for creating the service manager of the host OS"""

    @staticmethod
    def create(os_name: str, config, logger: logging.Logger) -> ServiceManager:
        """
        Create service manager instance

        Args:
            os_name: 'linux' or 'osx'
            config: RunnerConfig instance
            logger: Logger instance

        Returns:
            ServiceManager instance
        """
        if os_name == 'linux':
            return SystemdServiceManager(config, logger)
        elif os_name == 'osx':
            return LaunchdServiceManager(config, logger)
        else:
            raise RunnerError(f"Unsupported OS: {os_name}")
