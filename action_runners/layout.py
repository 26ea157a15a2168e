"""
Layout Module

Discovers repositories and runners from the on-disk directory convention
``<base_dir>/<repo>/<index>/``.
"""

import logging
from pathlib import Path
from typing import List

from .naming import REPO_NAME_RE, RUNNER_NUM_RE, validate_repo_name

logger = logging.getLogger(__name__)


class RunnerLayout:
    """Filesystem view of all runner directories on the host"""

    def __init__(self, base_dir: Path):
        self.base_dir = Path(base_dir)

    def repo_dir(self, repo: str) -> Path:
        return self.base_dir / validate_repo_name(repo)

    def runner_dir(self, repo: str, index: int) -> Path:
        return self.repo_dir(repo) / str(int(index))

    def list_repositories(self) -> List[str]:
        """
        List repository names that have a directory under the base dir

        Hidden directories and names that are not valid repository names
        (e.g. 'old runners') are skipped.

        Returns:
            Sorted repository names (empty if the base dir is missing)
        """
        if not self.base_dir.is_dir():
            return []
        repos = []
        for entry in self.base_dir.iterdir():
            if not entry.is_dir() or entry.name.startswith('.'):
                continue
            if not REPO_NAME_RE.fullmatch(entry.name):
                logger.debug(f"Skipping {entry}: not a repository name")
                continue
            repos.append(entry.name)
        return sorted(repos)

    def list_runner_indices(self, repo: str) -> List[int]:
        """
        List runner indices for a repository

        Only subdirectories named with ASCII digits count as runners.

        Args:
            repo: Repository short name

        Returns:
            Runner indices in ascending numeric order
        """
        repo_dir = self.repo_dir(repo)
        if not repo_dir.is_dir():
            return []
        return sorted(
            int(entry.name) for entry in repo_dir.iterdir()
            if entry.is_dir() and RUNNER_NUM_RE.fullmatch(entry.name)
        )

    def is_empty_repo(self, repo: str) -> bool:
        repo_dir = self.repo_dir(repo)
        return repo_dir.is_dir() and not any(repo_dir.iterdir())
