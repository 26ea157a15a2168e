"""
Runner Module

Manages an individual runner directory: install, configure, service
install/uninstall, deregistration, update and removal.
"""

import json
import logging
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional

from .exceptions import RunnerError
from .installer import RunnerInstaller
from .naming import is_runner_service, runner_name, service_matches
from .service import STATUS_NOT_FOUND, STATUS_SYMBOLS, ServiceManager


class Runner:
    """Manage a single runner identified by (repository, index)"""

    def __init__(self, config, services: ServiceManager, logger: logging.Logger,
                 repo: str, index: int, runner_dir: Path):
        """
        Initialize runner

        Args:
            config: RunnerConfig instance
            services: ServiceManager for the host
            logger: Logger instance
            repo: Repository short name
            index: Runner index within the repository
            runner_dir: Directory holding this runner
        """
        self.config = config
        self.services = services
        self.logger = logger
        self.repo = repo
        self.index = int(index)
        self.name = runner_name(repo, self.index)
        self.runner_dir = Path(runner_dir)

    def __repr__(self):
        return f"Runner({self.name}, {self.runner_dir})"

    @property
    def svc_script(self) -> Path:
        return self.runner_dir / 'svc.sh'

    @property
    def config_script(self) -> Path:
        return self.runner_dir / 'config.sh'

    def exists(self) -> bool:
        return self.runner_dir.is_dir()

    def is_configured(self) -> bool:
        """Check for the registration state file written by config.sh"""
        return (self.runner_dir / '.runner').is_file()

    def registration(self) -> Dict:
        """
        Read the registration state file

        Returns:
            Parsed .runner contents, or an empty dict if missing or unreadable
        """
        state_file = self.runner_dir / '.runner'
        if not state_file.is_file():
            return {}
        try:
            # config.sh writes this file with a BOM
            with open(state_file, encoding='utf-8-sig') as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            self.logger.warning(f"Could not read {state_file}: {e}")
            return {}

    def github_repo(self) -> Optional[str]:
        """owner/repo this runner is registered against, if known"""
        url = self.registration().get('gitHubUrl', '')
        prefix = self.config.github_url + '/'
        if url.startswith(prefix):
            return url[len(prefix):].strip('/') or None
        return None

    def install(self, installer: RunnerInstaller) -> bool:
        """
        Download and extract the runner agent

        A directory created here is removed again if installation fails.

        Args:
            installer: RunnerInstaller instance

        Returns:
            True if files were installed, False if already present
        """
        created = not self.exists()
        try:
            return installer.install(self.runner_dir)
        except RunnerError:
            if created and self.exists():
                self.logger.info(f"Removing incomplete runner directory {self.runner_dir}")
                shutil.rmtree(self.runner_dir)
            raise

    def configure(self, token: str, github_repo: str, labels: List[str]) -> bool:
        """
        Register runner with GitHub

        Args:
            token: Registration token
            github_repo: Repository in owner/repo form
            labels: Runner labels

        Returns:
            True if configured now, False if it was already configured
        """
        if self.is_configured():
            self.logger.info(f"Runner {self.index} is already configured. Skipping configuration.")
            return False

        if not self.config_script.exists():
            raise RunnerError(f"config.sh not found at {self.config_script}")

        url = f"{self.config.github_url}/{github_repo}"
        cmd = [
            './config.sh',
            '--url', url,
            '--token', token,
            '--name', self.name,
            '--labels', ','.join(labels),
            '--work', self.config.work_dir,
            '--unattended',
            '--replace',
        ]

        self.logger.info(f"Configuring runner {self.index} ({self.name}) for {url}...")
        self.logger.debug(f"Labels: {','.join(labels)}")

        result = subprocess.run(cmd, cwd=self.runner_dir, capture_output=True, text=True)
        if result.returncode != 0:
            raise RunnerError(f"Registration failed for {self.name}: "
                              f"{result.stderr.strip() or result.stdout.strip()}")

        self.write_jitconfig()
        self.logger.info(f"Runner {self.name} registered successfully")
        return True

    def write_jitconfig(self):
        """Write the job concurrency settings next to the registration state"""
        jitconfig = self.runner_dir / '.runner.jitconfig'
        with open(jitconfig, 'w') as f:
            json.dump({'workJobConcurrency': str(self.config.job_concurrency)}, f)

    def install_service(self) -> bool:
        """
        Install and start the runner as an OS service

        Returns:
            True if both install and start succeeded
        """
        self.logger.info(f"Installing service for runner {self.index}...")
        if not self.services.run_svc_script(self.svc_script, 'install'):
            return False
        if not self.services.run_svc_script(self.svc_script, 'start'):
            return False
        self.logger.info(f"Runner {self.index} installed and started as a service")
        return True

    def uninstall_service(self) -> bool:
        if not self.svc_script.is_file():
            return True
        self.logger.info("Uninstalling service using svc.sh...")
        if not self.services.run_svc_script(self.svc_script, 'uninstall'):
            self.logger.warning("svc.sh uninstall failed")
            return False
        return True

    def service_name(self, available: Optional[List[str]] = None) -> Optional[str]:
        """
        Find the service unit for this runner

        Uses the .service file written by svc.sh install when present,
        otherwise matches the service manager listing.

        Args:
            available: Pre-fetched runner service listing to match against

        Returns:
            Service name, or None if no service is installed
        """
        service_file = self.runner_dir / '.service'
        if service_file.is_file():
            recorded = service_file.read_text().strip()
            # launchd records the plist path
            unit = Path(recorded).name
            if unit.endswith('.plist'):
                unit = unit[:-len('.plist')]
            if is_runner_service(unit):
                return unit
            self.logger.debug(f"Ignoring unexpected service name in {service_file}: {recorded}")

        if available is None:
            matches = self.services.find_services(self.repo, self.index)
        else:
            matches = sorted(unit for unit in available if service_matches(unit, self.repo, self.index))
        if len(matches) > 1:
            self.logger.warning(f"Multiple services match {self.name}: {', '.join(matches)}")
        return matches[0] if matches else None

    def deregister(self, token: Optional[str] = None) -> bool:
        """
        Remove runner registration from GitHub

        Without a token config.sh prompts for one on the terminal.

        Args:
            token: Removal token

        Returns:
            True if successful, False otherwise
        """
        if not self.config_script.exists():
            self.logger.warning("config.sh not found, skipping deregistration")
            return True

        self.logger.info("Removing runner from GitHub...")
        cmd = ['./config.sh', 'remove']
        if token:
            cmd.extend(['--token', token])
            result = subprocess.run(cmd, cwd=self.runner_dir, capture_output=True, text=True)
        else:
            self.logger.info("(You may be prompted for a removal token from GitHub)")
            result = subprocess.run(cmd, cwd=self.runner_dir)

        if result.returncode != 0:
            self.logger.warning("GitHub removal failed - you may need to remove manually")
            return False
        return True

    def delete(self):
        """Delete the runner directory"""
        if self.exists():
            shutil.rmtree(self.runner_dir)
            self.logger.info(f"Runner directory deleted: {self.runner_dir}")

    def update(self) -> bool:
        """
        Update the runner agent in place

        Stops the service, runs the listener's self-update and starts the
        service again. Failures are logged and the next step still runs.

        Returns:
            True if every step succeeded
        """
        if not self.config_script.exists():
            self.logger.warning(f"Runner {self.name} is not installed, skipping update")
            return False

        success = True
        has_service = self.svc_script.is_file()
        if has_service and not self.services.run_svc_script(self.svc_script, 'stop'):
            success = False

        listener = self.runner_dir / 'bin' / 'Runner.Listener'
        try:
            result = subprocess.run([str(listener), 'update'], cwd=self.runner_dir,
                                    capture_output=True, text=True)
            if result.returncode != 0:
                self.logger.warning(f"Update failed for {self.name}: {result.stderr.strip()}")
                success = False
        except OSError as e:
            self.logger.warning(f"Update failed for {self.name}: {e}")
            success = False

        if has_service and not self.services.run_svc_script(self.svc_script, 'start'):
            success = False

        return success

    def get_status(self, available: Optional[List[str]] = None) -> Dict:
        """
        Get runner status information

        Args:
            available: Pre-fetched runner service listing

        Returns:
            Dictionary with status information
        """
        service = self.service_name(available)
        status = self.services.get_status(service) if service else STATUS_NOT_FOUND
        return {
            'name': self.name,
            'repo': self.repo,
            'index': self.index,
            'runner_dir': str(self.runner_dir),
            'configured': self.is_configured(),
            'service': service,
            'status': status,
            'symbol': STATUS_SYMBOLS[status],
        }
