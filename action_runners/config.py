"""
Runner Configuration Module

Handles configuration loading from environment variables, .env files and
an optional YAML settings file.
"""

import os
import platform
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from .exceptions import RunnerError

DEFAULT_CONFIG_FILE = '~/.config/action-runners/config.yaml'


class RunnerConfig:
    """Configuration manager for runner settings"""

    def __init__(self, env_file: Optional[Path] = None):
        """
        Initialize configuration from environment, .env and YAML files

        Environment variables take precedence over .env entries, which take
        precedence over the YAML file, which overrides built-in defaults.

        Args:
            env_file: Path to a .env file (defaults to ./.env)
        """
        self.load_env_file(env_file or Path('.env'))
        self.config_file = Path(os.path.expanduser(
            os.getenv('RUNNER_CONFIG_FILE', DEFAULT_CONFIG_FILE)))
        self.file_settings = self.load_config_file(self.config_file)

        # Layout
        self.base_dir = Path(os.path.expanduser(self._get('RUNNER_BASE_DIR', '~/action-runners')))

        # GitHub configuration
        self.github_url = self._get('GITHUB_URL', 'https://github.com').rstrip('/')
        self.api_url = self._get('GITHUB_API_URL', 'https://api.github.com').rstrip('/')
        self.token = self._get('GITHUB_TOKEN', '')

        # Runner configuration
        self.runner_count = self._get_int('RUNNER_COUNT', 4)
        extra_labels = self._get('RUNNER_EXTRA_LABELS', '').strip()
        self.extra_labels = [label.strip() for label in extra_labels.split(',') if label.strip()]
        self.work_dir = self._get('RUNNER_WORK_DIR', '_work')
        self.job_concurrency = self._get_int('RUNNER_JOB_CONCURRENCY', 2)

        # Installation
        self.version = self._get('RUNNER_VERSION', '2.330.0')
        self.fallback_version = self._get('RUNNER_FALLBACK_VERSION', '2.330.0')
        self.os_name = self._get('RUNNER_OS', '')
        self.arch = self._get('RUNNER_ARCH', '')

        # Service management
        self.use_sudo = self._get_bool('RUNNER_USE_SUDO', 'true')
        self.log_lines = self._get_int('RUNNER_LOG_LINES', 50)

        # Logging
        self.log_level = self._get('LOG_LEVEL', 'INFO').upper()
        log_file = self._get('LOG_FILE', '')
        self.log_file = Path(os.path.expanduser(log_file)) if log_file else None

        # Timeouts
        self.api_timeout = self._get_int('GITHUB_API_TIMEOUT', 30)
        self.version_check_timeout = self._get_int('GITHUB_VERSION_CHECK_TIMEOUT', 10)

    def load_env_file(self, env_file: Path):
        """Load environment variables from .env file if it exists"""
        if env_file.exists():
            with open(env_file) as f:
                for line in f:
                    line = line.strip()
                    if line and not line.startswith('#') and '=' in line:
                        key, value = line.split('=', 1)
                        key = key.strip()
                        value = value.strip().strip('"').strip("'")
                        if key and value:
                            # Environment variables take precedence
                            if key not in os.environ:
                                os.environ[key] = value

    def load_config_file(self, config_file: Path) -> Dict[str, str]:
        """
        Load settings from a YAML file

        Keys are the lower-cased environment variable names, e.g.
        ``runner_base_dir`` or ``runner_extra_labels``. List values are
        joined with commas.

        Args:
            config_file: Path to the YAML file

        Returns:
            Mapping of lower-cased setting names to string values
        """
        if not config_file.exists():
            return {}

        try:
            with open(config_file, 'r') as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise RunnerError(f"Could not load config file {config_file}: {e}") from e

        if not isinstance(data, dict):
            raise RunnerError(f"Config file {config_file} must contain a mapping")

        settings = {}
        for key, value in data.items():
            if value is None:
                continue
            if isinstance(value, (list, tuple)):
                value = ','.join(str(v) for v in value)
            elif isinstance(value, bool):
                value = 'true' if value else 'false'
            settings[str(key).lower()] = str(value)
        return settings

    def _get(self, name: str, default: str) -> str:
        value = os.getenv(name)
        if value:
            return value
        return self.file_settings.get(name.lower(), default)

    def _get_int(self, name: str, default: int) -> int:
        value = self._get(name, str(default))
        try:
            return int(value)
        except ValueError:
            raise RunnerError(f"Invalid {name}: {value} (must be an integer)")

    def _get_bool(self, name: str, default: str) -> bool:
        return self._get(name, default).lower() in ('1', 'true', 'yes', 'y')

    def detect_os(self) -> str:
        """
        Detect host OS in GitHub's naming ('linux' or 'osx')

        Returns:
            OS identifier used in runner archive names

        Raises:
            RunnerError: On unsupported operating systems
        """
        if self.os_name:
            return self.os_name
        system = platform.system()
        if system == 'Linux':
            return 'linux'
        elif system == 'Darwin':
            return 'osx'
        raise RunnerError(f"Unsupported OS: {system}")

    def detect_architecture(self) -> str:
        """Detect system architecture ('x64' or 'arm64')"""
        if self.arch:
            return self.arch
        machine = platform.machine().lower()
        if machine in ('x86_64', 'amd64'):
            return 'x64'
        elif machine in ('arm64', 'aarch64'):
            return 'arm64'
        raise RunnerError(f"Unsupported architecture: {platform.machine()}")

    def labels_for(self, repo: str) -> List[str]:
        """
        Build runner labels for a repository

        Args:
            repo: Repository short name

        Returns:
            List of labels (self-hosted, os, arch, repo, extras)
        """
        labels = ['self-hosted', self.detect_os(), self.detect_architecture(), repo]
        for label in self.extra_labels:
            if label not in labels:
                labels.append(label)
        return labels

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors"""
        errors = []

        if self.runner_count < 1:
            errors.append(f"Invalid RUNNER_COUNT: {self.runner_count} (must be >= 1)")

        if self.job_concurrency < 1:
            errors.append(f"Invalid RUNNER_JOB_CONCURRENCY: {self.job_concurrency} (must be >= 1)")

        if self.os_name and self.os_name not in ('linux', 'osx'):
            errors.append(f"Invalid RUNNER_OS: {self.os_name} (must be 'linux' or 'osx')")

        if self.arch and self.arch not in ('x64', 'arm64'):
            errors.append(f"Invalid RUNNER_ARCH: {self.arch} (must be 'x64' or 'arm64')")

        if self.log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            errors.append(f"Invalid LOG_LEVEL: {self.log_level}")

        if self.log_lines < 1:
            errors.append(f"Invalid RUNNER_LOG_LINES: {self.log_lines} (must be >= 1)")

        return errors
