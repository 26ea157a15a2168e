"""
Runner Manager Module

Manages multiple runners across repositories: setup, service installation,
start/stop/restart, status, logs, removal, health checks and updates.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from . import prompts
from .exceptions import RunnerError
from .github_api import GitHubAPI
from .installer import RunnerInstaller
from .layout import RunnerLayout
from .naming import (ALL_RUNNERS, parse_service_name, repo_name_from_github, service_matches,
                     validate_github_repo, validate_repo_name, validate_runner_num)
from .runner import Runner
from .service import STATUS_ACTIVE, ServiceManager, ServiceManagerFactory

GERUNDS = {'start': 'Starting', 'stop': 'Stopping', 'restart': 'Restarting'}


class RunnerManager:
    """Manage all runners on the host"""

    def __init__(self, config, github_api: Optional[GitHubAPI] = None,
                 services: Optional[ServiceManager] = None,
                 token_prompt: Callable[[], str] = prompts.prompt_token,
                 confirm: Callable[..., bool] = prompts.confirm):
        """
        Initialize runner manager

        Args:
            config: RunnerConfig instance
            github_api: GitHubAPI instance (created from config if omitted)
            services: ServiceManager (chosen from the host OS if omitted)
            token_prompt: Callable returning a registration token
            confirm: Callable asking a yes/no question
        """
        self.config = config
        self.logger = self._setup_logger()
        self.github = github_api if github_api is not None else GitHubAPI(config, self.logger)
        self.services = services or ServiceManagerFactory.create(config.detect_os(), config, self.logger)
        self.layout = RunnerLayout(config.base_dir)
        self.token_prompt = token_prompt
        self.confirm = confirm

    def _setup_logger(self) -> logging.Logger:
        """
        Setup logging configuration

        Returns:
            Configured logger instance
        """
        logger = logging.getLogger('action_runners')
        logger.setLevel(getattr(logging, self.config.log_level, logging.INFO))

        if logger.handlers:
            return logger

        # Console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(getattr(logging, self.config.log_level, logging.INFO))
        console_formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(message)s')
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

        # File handler
        if self.config.log_file:
            self.config.log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(self.config.log_file)
            file_handler.setLevel(getattr(logging, self.config.log_level, logging.INFO))
            file_formatter = logging.Formatter('%(asctime)s [%(levelname)s] %(name)s - %(message)s')
            file_handler.setFormatter(file_formatter)
            logger.addHandler(file_handler)

        return logger

    def runner(self, repo: str, index: int) -> Runner:
        return Runner(self.config, self.services, self.logger, repo, index,
                      self.layout.runner_dir(repo, index))

    def runners_for(self, repo: str) -> List[Runner]:
        return [self.runner(repo, index) for index in self.layout.list_runner_indices(repo)]

    def orphaned_services(self, available: Optional[List[str]] = None) -> List[Dict]:
        """
        Find runner services whose runner directory no longer exists

        Each unit is mapped back to (repository, index), using the
        repositories on disk to resolve dotted repository names.

        Args:
            available: Pre-fetched runner service listing

        Returns:
            List of dicts with service, repo and index
        """
        if available is None:
            available = self.services.list_services()
        known_repos = self.layout.list_repositories()
        orphaned = []
        for unit in sorted(available):
            parsed = parse_service_name(unit, known_repos)
            if parsed is None:
                continue
            repo, index = parsed
            if repo in known_repos and index in self.layout.list_runner_indices(repo):
                continue
            orphaned.append({'service': unit, 'repo': repo, 'index': index})
        return orphaned

    def _registration_token(self, github_repo: str) -> str:
        if self.github.enabled:
            return self.github.get_registration_token(github_repo)
        token = self.token_prompt()
        if not token:
            raise RunnerError("A registration token is required")
        return token

    def setup(self, github_repo: str, count: Optional[int] = None, token: Optional[str] = None,
              install_service: Optional[bool] = None) -> bool:
        """
        Download, configure and optionally install runners for a repository

        Args:
            github_repo: Repository in owner/repo form
            count: Number of runners (defaults to config.runner_count)
            token: Registration token (fetched or prompted for when omitted)
            install_service: Install as services; None asks for each runner

        Returns:
            True if every runner was set up
        """
        validate_github_repo(github_repo)
        repo = repo_name_from_github(github_repo)
        count = count if count is not None else self.config.runner_count
        if count < 1:
            raise RunnerError(f"Number of runners must be at least 1: {count}")

        os_name = self.config.detect_os()
        arch = self.config.detect_architecture()
        labels = self.config.labels_for(repo)
        installer = RunnerInstaller(self.config, self.logger)

        print(f"Detected platform: {os_name}-{arch}")
        print(f"Setting up {count} runners for repository: {github_repo}")
        print(f"Using base directory: {self.layout.repo_dir(repo)}")

        repo_created = not self.layout.repo_dir(repo).exists()
        success = True
        for index in range(1, count + 1):
            runner = self.runner(repo, index)
            self.logger.info(f"Setting up runner {index} in {runner.runner_dir}...")

            created = not runner.exists()
            try:
                runner.install(installer)
                if runner.is_configured():
                    self.logger.info(f"Runner {index} is already configured. Skipping configuration.")
                    continue
                # Prompt once, on the first runner that needs it
                if not token:
                    token = self._registration_token(github_repo)
                runner.configure(token, github_repo, labels)
            except RunnerError as e:
                self.logger.error(str(e))
                if created and runner.exists():
                    self.logger.info(f"Removing incomplete runner directory {runner.runner_dir}")
                    runner.delete()
                success = False
                continue

            wants_service = install_service
            if wants_service is None:
                wants_service = self.confirm(f"Do you want to install runner {index} as a service?")
            if wants_service:
                if not runner.install_service():
                    success = False
            else:
                print(f"To start the runner manually, use: cd {runner.runner_dir} && ./run.sh")

        if repo_created and self.layout.is_empty_repo(repo):
            self.layout.repo_dir(repo).rmdir()

        if success:
            print(f"All {count} runners have been set up!")
        else:
            print(f"Setup finished with errors for {github_repo}")
        print("You can verify they are connected in your GitHub repository settings under Actions > Runners.")
        print("")
        print("To use these runners in your workflows, add this to your .github/workflows/*.yml files:")
        print("jobs:")
        print("  your_job_name:")
        print("    runs-on: self-hosted")
        print("    # Or specifically target your runners with:")
        print(f"    # runs-on: [self-hosted, {repo}]")
        return success

    def install_services(self, repo: str) -> bool:
        """
        Install and start services for every runner of a repository

        Args:
            repo: Repository short name

        Returns:
            True if every service was installed
        """
        repo_dir = self.layout.repo_dir(repo)
        if not repo_dir.is_dir():
            raise RunnerError(f"Cannot access directory {repo_dir}")

        print(f"Installing services for repository: {repo} (platform: {self.config.detect_os()})")

        success = True
        for runner in self.runners_for(repo):
            if not runner.svc_script.is_file():
                continue
            if runner.install_service():
                print(f"✅ Runner {runner.index} installed and started as service")
            else:
                success = False

        if success:
            print(f"All services installed for repository: {repo}")
        else:
            print(f"Some services could not be installed for repository: {repo}")
        return success

    def _services_or_raise(self, repo: Optional[str]) -> List[str]:
        if repo is not None:
            validate_repo_name(repo)
        units = self.services.find_services(repo)
        if not units:
            if repo is None:
                raise RunnerError("No GitHub runner services found")
            raise RunnerError(f"No services found for repository: {repo}\n"
                              f"Run 'action-runners debug {repo}' for more information")
        return units

    def control(self, action: str, repo: Optional[str] = None) -> bool:
        """
        Start, stop or restart all services of a repository (or every runner)

        Args:
            action: start, stop or restart
            repo: Repository short name, or None for all runners

        Returns:
            True if every service accepted the action
        """
        units = self._services_or_raise(repo)
        gerund = GERUNDS.get(action, action)
        if repo is None:
            print(f"{gerund} ALL GitHub runners...")
        else:
            print(f"{gerund} runners for repository: {repo}")

        success = True
        for unit in units:
            print(f"  {action} {unit}")
            if not self.services.control(unit, action):
                success = False
        return success

    def print_service_status(self, repo: Optional[str] = None):
        """Print the service manager's status report for each runner service"""
        units = self._services_or_raise(repo)
        if repo is None:
            print("Status of ALL GitHub runners:")
        else:
            print(f"Status for repository: {repo}")
        for unit in units:
            print("")
            print(f"Service: {unit}")
            print(self.services.status_text(unit))

    def show_logs(self, repo: Optional[str] = None, lines: Optional[int] = None,
                  follow: bool = True) -> int:
        """
        Show aggregated logs for runner services

        Args:
            repo: Repository short name, or None for all runners
            lines: Number of recent lines when not following
            follow: Stream logs until interrupted

        Returns:
            Exit code
        """
        units = self._services_or_raise(repo)
        target = f"repository: {repo}" if repo else "ALL GitHub runners"
        if follow:
            print(f"Following logs for {target} (Ctrl+C to exit)")
            return self.services.follow_logs(units)

        for line in self.services.recent_logs(units, lines or self.config.log_lines):
            print(line)
        return 0

    def debug(self, repo: str):
        """Print service discovery diagnostics for a repository"""
        validate_repo_name(repo)
        print(f"Debug information for repository: {repo}")
        print(f"Looking for services containing: {repo}-runner-")
        print("")

        print("All GitHub Actions runner services on this system:")
        all_units = self.services.find_services()
        print("\n".join(all_units) if all_units else "No GitHub Actions runner services found")
        print("")

        print(f"Services for repository '{repo}':")
        units = [unit for unit in all_units if service_matches(unit, repo)]
        if units:
            print("\n".join(units))
        else:
            print(f"No services found for repository '{repo}'")
            print("")
            print("Possible issues:")
            print("1. Runners were not installed as services (answered 'n' during setup)")
            print("2. Service names are different than expected")
            print("3. Repository name doesn't match the service naming pattern")
            print("")
            print("Runner directories found:")
            run_scripts = [runner.runner_dir / 'run.sh' for runner in self.runners_for(repo)
                           if (runner.runner_dir / 'run.sh').is_file()]
            print("\n".join(str(p) for p in run_scripts) if run_scripts else "No runner directories found")

        orphaned = self.orphaned_services(all_units)
        if orphaned:
            print("")
            self._print_orphaned(orphaned)

    def _print_orphaned(self, orphaned: List[Dict]):
        print("Services without a runner directory:")
        for entry in orphaned:
            print(f"  ? {entry['service']} (no directory {entry['repo']}/{entry['index']})")

    def get_status(self, remote: bool = False) -> Dict:
        """
        Get status of every runner in every repository

        Args:
            remote: Also query GitHub for each runner's online/busy state

        Returns:
            Dictionary with runner statuses keyed by repository, and the
            services that have no runner directory under 'orphaned'
        """
        available = self.services.list_services()
        status = {'repositories': {}, 'orphaned': self.orphaned_services(available)}
        for repo in self.layout.list_repositories():
            runners = []
            for runner in self.runners_for(repo):
                runner_status = runner.get_status(available)
                if remote and self.github.enabled:
                    self._add_github_status(runner, runner_status)
                runners.append(runner_status)
            status['repositories'][repo] = runners
        return status

    def _add_github_status(self, runner: Runner, runner_status: Dict):
        github_repo = runner.github_repo()
        if not github_repo:
            return
        try:
            info = self.github.get_runner_by_name(github_repo, runner.name)
        except RunnerError as e:
            self.logger.debug(f"GitHub status unavailable for {runner.name}: {e}")
            return
        if info:
            runner_status['github_status'] = info.get('status')
            runner_status['github_busy'] = info.get('busy')

    def print_list(self, remote: bool = False):
        """Print repositories, their runners and service status"""
        status = self.get_status(remote=remote)
        print("GitHub Runner Repositories and Services:")
        print("========================================")

        for repo, runners in status['repositories'].items():
            print("")
            print(f"Repository: {repo}")
            print("Runners:")
            for runner_status in runners:
                line = f"  {runner_status['symbol']} Runner {runner_status['index']}: {runner_status['status']}"
                if runner_status['service']:
                    line += f" ({runner_status['service']})"
                if 'github_status' in runner_status:
                    busy = 'busy' if runner_status.get('github_busy') else 'idle'
                    line += f" [GitHub: {runner_status['github_status']}, {busy}]"
                print(line)
            print(f"  Total runners: {len(runners)}")

        if status['orphaned']:
            print("")
            self._print_orphaned(status['orphaned'])

    def _removal_token(self, runner: Runner) -> Optional[str]:
        github_repo = runner.github_repo()
        if not (self.github.enabled and github_repo):
            return None
        try:
            return self.github.get_removal_token(github_repo)
        except RunnerError as e:
            self.logger.warning(f"Could not obtain removal token: {e}")
            return None

    def _remove_single(self, repo: str, index: int, delete_dir: Optional[bool]) -> bool:
        runner = self.runner(repo, index)
        print(f"Removing runner {index} for repository {repo}...")

        if not runner.exists():
            self.logger.error(f"Runner directory not found: {runner.runner_dir}")
            return False

        service = runner.service_name()
        if service:
            print(f"  Stopping service: {service}")
            if not self.services.control(service, 'stop'):
                self.logger.warning("Service stop failed or already stopped")
            print(f"  Disabling service: {service}")
            self.services.disable(service)
        else:
            self.logger.warning(f"No service found for runner {index}")

        try:
            runner.uninstall_service()
        except RunnerError as e:
            self.logger.warning(f"svc.sh uninstall failed: {e}")

        runner.deregister(self._removal_token(runner))

        if delete_dir is None:
            delete_dir = self.confirm("  Do you want to delete the runner directory?")
        if delete_dir:
            runner.delete()
            print("  ✅ Runner directory deleted")
        else:
            print(f"  📁 Runner directory preserved at: {runner.runner_dir}")

        print(f"  ✅ Runner {index} removal completed")
        return True

    def remove(self, repo: str, runner_num: str, assume_yes: bool = False,
               delete_dir: Optional[bool] = None) -> bool:
        """
        Remove one runner or all runners of a repository

        Args:
            repo: Repository short name
            runner_num: Runner index or 'all'
            assume_yes: Answer yes to every confirmation
            delete_dir: Delete runner directories; None asks (or follows assume_yes)

        Returns:
            True if every requested runner was removed
        """
        validate_repo_name(repo)
        validate_runner_num(runner_num)
        if assume_yes and delete_dir is None:
            delete_dir = True

        if runner_num == ALL_RUNNERS:
            print(f"Removing ALL runners for repository: {repo}")
            if not assume_yes and not self.confirm(
                    "Are you sure? This will remove all runners and their data."):
                print("Operation cancelled")
                return True

            success = True
            for index in self.layout.list_runner_indices(repo):
                if not self._remove_single(repo, index, delete_dir):
                    success = False

            if self.layout.is_empty_repo(repo):
                if assume_yes or self.confirm("Repository directory is empty. Remove it?"):
                    self.layout.repo_dir(repo).rmdir()
                    print("✅ Repository directory removed")
        else:
            success = self._remove_single(repo, int(runner_num), delete_dir)

        print("")
        print("🔍 Checking remaining runners...")
        self.print_list()
        return success

    def health_check(self) -> Dict:
        """
        Check every runner that has a service and count active and failed ones

        Returns:
            Dictionary with total, active, failed counts, failure details
            and services without a runner directory
        """
        available = self.services.list_services()
        result = {'total': 0, 'active': 0, 'failed': 0, 'failures': []}

        for repo in self.layout.list_repositories():
            for runner in self.runners_for(repo):
                service = runner.service_name(available)
                if not service:
                    continue
                result['total'] += 1
                state = self.services.get_state(service)
                if state == STATUS_ACTIVE:
                    result['active'] += 1
                else:
                    result['failed'] += 1
                    result['failures'].append({'service': service, 'state': state})

        result['orphaned'] = self.orphaned_services(available)
        return result

    def print_health(self) -> bool:
        """Print the health report and return True when all runners are healthy"""
        print("GitHub Runners Health Check")
        print("==========================")
        print(f"Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
        print("")

        result = self.health_check()
        for failure in result['failures']:
            print(f"❌ FAILED: {failure['service']} ({failure['state']})")
        if result['orphaned']:
            print("")
            self._print_orphaned(result['orphaned'])

        print("")
        print("Summary:")
        print(f"  Total runners: {result['total']}")
        print(f"  Active runners: {result['active']}")
        print(f"  Failed runners: {result['failed']}")

        if result['failed'] == 0:
            print("✅ All runners are healthy!")
            return True
        print("⚠️  Some runners need attention!")
        return False

    def update_all(self) -> bool:
        """
        Update every installed runner in every repository

        Returns:
            True if every update succeeded
        """
        success = True
        for repo in self.layout.list_repositories():
            print(f"Updating runners for {repo}...")
            for runner in self.runners_for(repo):
                if not runner.config_script.exists():
                    continue
                if not runner.update():
                    success = False
        return success
