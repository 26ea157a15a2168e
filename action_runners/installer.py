"""
Runner Installer Module

Handles downloading and extracting the GitHub Actions runner release archive
into a runner directory.
"""

import json
import logging
import shutil
import subprocess
import urllib.error
import urllib.request
from pathlib import Path

from . import __version__
from .exceptions import RunnerError


class RunnerInstaller:
    """Handle runner download and extraction"""

    RELEASE_URL = 'https://github.com/actions/runner/releases/download/v{version}/{archive}'
    ARCHIVE_NAME = 'actions-runner-{os}-{arch}-{version}.tar.gz'
    LATEST_RELEASE_API = 'https://api.github.com/repos/actions/runner/releases/latest'

    def __init__(self, config, logger: logging.Logger):
        """
        Initialize runner installer

        Args:
            config: RunnerConfig instance
            logger: Logger instance
        """
        self.config = config
        self.logger = logger
        self._resolved_version = None

    def get_latest_version(self) -> str:
        """
        Get the latest runner version from GitHub

        Returns:
            Version string (e.g., '2.330.0')
        """
        try:
            req = urllib.request.Request(self.LATEST_RELEASE_API,
                                         headers={'User-Agent': f'action-runners/{__version__}'})
            with urllib.request.urlopen(req, timeout=self.config.version_check_timeout) as response:
                data = json.loads(response.read().decode('utf-8'))
                return data['tag_name'].lstrip('v')
        except (urllib.error.URLError, ValueError, KeyError, OSError) as e:
            self.logger.warning(f"Failed to get latest version: {e}, using {self.config.fallback_version}")
            return self.config.fallback_version

    @property
    def version(self) -> str:
        """Runner version to install, resolving 'latest' once per installer"""
        if self._resolved_version is None:
            version = self.config.version
            if version == 'latest':
                version = self.get_latest_version()
            self._resolved_version = version
        return self._resolved_version

    def archive_name(self) -> str:
        return self.ARCHIVE_NAME.format(
            os=self.config.detect_os(),
            arch=self.config.detect_architecture(),
            version=self.version,
        )

    def download_url(self) -> str:
        return self.RELEASE_URL.format(version=self.version, archive=self.archive_name())

    def _clean(self, runner_dir: Path):
        """Remove previously extracted binaries so extraction starts clean"""
        for name in ('bin', 'externals'):
            target = runner_dir / name
            if target.is_dir():
                shutil.rmtree(target)
        for script in runner_dir.glob('*.sh'):
            script.unlink()

    def _extract(self, archive: Path, runner_dir: Path):
        self.logger.info("Extracting runner package...")
        subprocess.run(['tar', 'xzf', str(archive), '-C', str(runner_dir)],
                       check=True, capture_output=True, text=True)

    def install(self, runner_dir: Path) -> bool:
        """
        Download and extract the runner into runner_dir

        Downloads only when the archive for the configured version is
        missing, and extracts only when config.sh is missing.

        Args:
            runner_dir: Runner directory (created if needed)

        Returns:
            True if the directory changed, False if already installed

        Raises:
            RunnerError: If download or extraction fails
        """
        runner_dir.mkdir(parents=True, exist_ok=True)
        archive = runner_dir / self.archive_name()

        try:
            if not archive.exists():
                url = self.download_url()
                self.logger.info(f"Downloading runner version {self.version} "
                                 f"for {self.config.detect_os()}-{self.config.detect_architecture()}...")
                self.logger.info(f"URL: {url}")
                self._clean(runner_dir)
                partial = archive.with_name(archive.name + '.part')
                urllib.request.urlretrieve(url, partial)
                partial.rename(archive)
                self._extract(archive, runner_dir)
            elif not (runner_dir / 'config.sh').exists():
                self._clean(runner_dir)
                self._extract(archive, runner_dir)
            else:
                self.logger.debug(f"Runner already installed at {runner_dir}")
                return False
        except subprocess.CalledProcessError as e:
            raise RunnerError(f"Extraction failed in {runner_dir}: {e.stderr.strip()}") from e
        except (urllib.error.URLError, OSError) as e:
            raise RunnerError(f"Download failed for {runner_dir}: {e}") from e

        self.logger.info(f"Runner installation complete in {runner_dir}")
        return True
