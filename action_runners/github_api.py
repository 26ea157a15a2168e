"""
GitHub API Module

Optional REST client for the repository runner endpoints. Only used when a
personal access token is configured; otherwise registration and removal
tokens are entered interactively.
"""

import json
import logging
import urllib.request
import urllib.error
from typing import Dict, List, Optional

from . import __version__
from .exceptions import RunnerError

API_VERSION = '2022-11-28'


class GitHubAPI:
    """Client for /repos/{owner}/{repo}/actions/runners"""

    def __init__(self, config, logger: logging.Logger):
        """
        Args:
            config: RunnerConfig holding token, api_url and api_timeout
            logger: Logger instance
        """
        self.config = config
        self.logger = logger

    @property
    def enabled(self) -> bool:
        return bool(self.config.token)

    def _request(self, github_repo: str, path: str, method: str = 'GET',
                 payload: Optional[Dict] = None) -> Dict:
        """
        Call a runner endpoint of a repository

        Args:
            github_repo: Repository in owner/repo form
            path: Path below the repository's actions/runners endpoint ('' for the listing)
            method: HTTP method
            payload: JSON body, if any

        Returns:
            Decoded JSON response

        Raises:
            RunnerError: Without a token, or on HTTP and network errors
        """
        if not self.enabled:
            raise RunnerError("GITHUB_TOKEN is required for GitHub API access")

        url = f"{self.config.api_url}/repos/{github_repo}/actions/runners"
        if path:
            url = f"{url}/{path}"

        headers = {
            'Accept': 'application/vnd.github+json',
            'Authorization': f'Bearer {self.config.token}',
            'X-GitHub-Api-Version': API_VERSION,
            'User-Agent': f'action-runners/{__version__}',
        }
        body = None
        if payload is not None:
            body = json.dumps(payload).encode('utf-8')
            headers['Content-Type'] = 'application/json'

        self.logger.debug(f"{method} {url}")
        req = urllib.request.Request(url, data=body, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=self.config.api_timeout) as resp:
                return json.loads(resp.read().decode('utf-8') or '{}')
        except urllib.error.HTTPError as e:
            detail = e.read().decode('utf-8', errors='replace') if e.fp else e.reason
            self.logger.error(f"GitHub API {method} {url} failed with {e.code}: {detail}")
            raise RunnerError(f"GitHub API error {e.code} for {github_repo}") from e
        except urllib.error.URLError as e:
            self.logger.error(f"Could not reach GitHub API: {e.reason}")
            raise RunnerError(f"GitHub API request failed: {e.reason}") from e

    def _create_token(self, github_repo: str, kind: str) -> str:
        self.logger.info(f"Requesting {kind} token for {github_repo}...")
        data = self._request(github_repo, f'{kind}-token', method='POST')
        if not data.get('token'):
            raise RunnerError(f"GitHub returned no {kind} token")
        self.logger.debug(f"{kind.capitalize()} token expires at {data.get('expires_at')}")
        return data['token']

    def get_registration_token(self, github_repo: str) -> str:
        """Short-lived token for config.sh --token"""
        return self._create_token(github_repo, 'registration')

    def get_removal_token(self, github_repo: str) -> str:
        """Short-lived token for config.sh remove --token"""
        return self._create_token(github_repo, 'remove')

    def list_runners(self, github_repo: str) -> List[Dict]:
        return self._request(github_repo, '').get('runners', [])

    def get_runner_by_name(self, github_repo: str, name: str) -> Optional[Dict]:
        """
        Look up a registered runner

        Args:
            github_repo: Repository in owner/repo form
            name: Runner name, e.g. viaduct-runner-1

        Returns:
            The runner's API record (status, busy, labels), or None
        """
        return next((r for r in self.list_runners(github_repo) if r.get('name') == name), None)
