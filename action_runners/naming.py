"""
Naming Module

Validation and naming conventions that tie a repository and runner index
to its directory, its GitHub runner name and its OS service unit.

A runner for repository ``viaduct`` with index ``2`` is registered as
``viaduct-runner-2`` and, once installed as a service, shows up as a unit
such as ``actions.runner.myorg-viaduct.viaduct-runner-2.service``.
"""

import re
from typing import Iterable, Optional, Tuple

from .exceptions import ValidationError

SERVICE_PREFIX = 'actions.runner.'
ALL_RUNNERS = 'all'

REPO_NAME_RE = re.compile(r'^[a-zA-Z0-9_.-]+$')
GITHUB_REPO_RE = re.compile(r'^[a-zA-Z0-9_-]+/[a-zA-Z0-9_.-]+$')
RUNNER_NUM_RE = re.compile(r'^[0-9]+$')
SERVICE_CHARS_RE = re.compile(r'^[a-zA-Z0-9_.-]+$')
# scope.<repo>-runner-<n>, suffix optional
SERVICE_RE = re.compile(r'^actions\.runner\.(?P<body>.+)-runner-(?P<index>[0-9]+)(?:\.service)?$')


def validate_repo_name(repo: str) -> str:
    """
    Validate a repository short name

    Args:
        repo: Repository name (e.g., 'viaduct')

    Returns:
        The validated name

    Raises:
        ValidationError: If the name is empty or has unsafe characters
    """
    if not repo:
        raise ValidationError("Repository name cannot be empty")
    if not REPO_NAME_RE.fullmatch(repo) or repo in (".", ".."):
        raise ValidationError(f"Repository name contains invalid characters: {repo}")
    return repo


def validate_runner_num(num: str) -> str:
    """Validate a runner number, which may also be 'all'"""
    if not num:
        raise ValidationError("Runner number cannot be empty")
    if num != ALL_RUNNERS and not RUNNER_NUM_RE.fullmatch(num):
        raise ValidationError(f"Runner number must be numeric or 'all': {num}")
    return num


def validate_github_repo(github_repo: str) -> str:
    """
    Validate a GitHub repository slug

    Args:
        github_repo: Repository in owner/repo form

    Returns:
        The validated slug
    """
    if not github_repo:
        raise ValidationError("GitHub repository cannot be empty")
    if not GITHUB_REPO_RE.fullmatch(github_repo):
        raise ValidationError("Invalid GitHub repository format. Expected: owner/repo")
    return github_repo


def repo_name_from_github(github_repo: str) -> str:
    """Extract the repository short name from owner/repo"""
    return validate_github_repo(github_repo).split('/', 1)[1]


def runner_name(repo: str, index: int) -> str:
    return f"{repo}-runner-{index}"


def is_runner_service(unit: str) -> bool:
    """Check whether a unit name follows the runner service naming pattern"""
    return unit.startswith(SERVICE_PREFIX) and SERVICE_RE.match(unit) is not None


def service_matches(unit: str, repo: str, index: Optional[int] = None) -> bool:
    """
    Check whether a service unit belongs to a repository (and runner index)

    The runner name must be a whole dot-separated segment at the end of the
    unit, so 'runner-1' does not match 'runner-10' and 'foo' does not match
    'barfoo'.

    Args:
        unit: Service unit name as listed by the service manager
        repo: Repository short name
        index: Runner index, or None to match any runner of the repository

    Returns:
        True if the unit is a runner service for repo (and index)
    """
    match = SERVICE_RE.match(unit)
    if not match:
        return False
    if index is not None and int(match.group('index')) != int(index):
        return False
    body = match.group('body')
    return body.endswith('.' + repo)


def parse_service_name(unit: str, known_repos: Optional[Iterable[str]] = None) -> Optional[Tuple[str, int]]:
    """
    Map a service unit name back to (repository, index)

    Repository names may contain dots, so when the set of repositories on
    disk is known, the longest one that ends the unit wins. Without it the
    last dot-separated segment is taken as the repository.

    Args:
        unit: Service unit name
        known_repos: Repository names to match against

    Returns:
        (repo, index) tuple, or None if the unit is not a runner service
    """
    match = SERVICE_RE.match(unit)
    if not match:
        return None
    body = match.group('body')
    index = int(match.group('index'))

    if known_repos:
        candidates = [repo for repo in known_repos if body.endswith('.' + repo)]
        if candidates:
            return max(candidates, key=len), index

    if '.' not in body:
        return None
    return body.rsplit('.', 1)[1], index


def validate_service_name(unit: str) -> str:
    """
    Validate a service name before it is handed to the service manager

    Raises:
        ValidationError: If the name has unexpected characters or prefix
    """
    if not SERVICE_CHARS_RE.fullmatch(unit or ''):
        raise ValidationError(f"Invalid service name format: {unit}")
    if not unit.startswith(SERVICE_PREFIX):
        raise ValidationError(f"Service name must start with '{SERVICE_PREFIX}': {unit}")
    return unit
