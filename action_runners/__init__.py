"""
Action Runners Package

Setup and management of GitHub Actions self-hosted runners installed
under ~/action-runners/<repo>/<index>/ and wrapped as OS services.
"""

__version__ = '1.0.0'

from .config import RunnerConfig
from .exceptions import RunnerError, ValidationError
from .github_api import GitHubAPI
from .installer import RunnerInstaller
from .layout import RunnerLayout
from .runner import Runner
from .service import ServiceManager, ServiceManagerFactory, SystemdServiceManager, LaunchdServiceManager
from .manager import RunnerManager

__all__ = [
    'RunnerConfig',
    'RunnerError',
    'ValidationError',
    'GitHubAPI',
    'RunnerInstaller',
    'RunnerLayout',
    'Runner',
    'ServiceManager',
    'ServiceManagerFactory',
    'SystemdServiceManager',
    'LaunchdServiceManager',
    'RunnerManager',
]
