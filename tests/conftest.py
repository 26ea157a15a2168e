from __future__ import annotations

import logging
import subprocess
import sys
from pathlib import Path
from typing import Dict, List

import pytest

# Ensure `import action_runners` works when running `pytest` from repo root.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from action_runners.config import RunnerConfig  # noqa: E402
from action_runners.service import STATUS_NOT_FOUND, ServiceManager  # noqa: E402

CONFIG_VARS = (
    'RUNNER_BASE_DIR', 'RUNNER_CONFIG_FILE', 'RUNNER_VERSION', 'RUNNER_FALLBACK_VERSION',
    'RUNNER_COUNT', 'RUNNER_EXTRA_LABELS', 'RUNNER_WORK_DIR', 'RUNNER_JOB_CONCURRENCY',
    'RUNNER_OS', 'RUNNER_ARCH', 'RUNNER_USE_SUDO', 'RUNNER_LOG_LINES', 'GITHUB_URL',
    'GITHUB_API_URL', 'GITHUB_TOKEN', 'GITHUB_API_TIMEOUT', 'GITHUB_VERSION_CHECK_TIMEOUT',
    'LOG_LEVEL', 'LOG_FILE',
)


@pytest.fixture
def clean_env(tmp_path, monkeypatch):
    """Isolate configuration from the host: no env vars, no .env, no YAML file."""
    for name in CONFIG_VARS:
        # set-then-delete records the variable, so values a .env file loads are dropped on teardown
        monkeypatch.setenv(name, '')
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('RUNNER_CONFIG_FILE', str(tmp_path / 'missing-config.yaml'))
    return tmp_path


@pytest.fixture
def base_dir(tmp_path) -> Path:
    path = tmp_path / 'action-runners'
    path.mkdir()
    return path


@pytest.fixture
def config(clean_env, base_dir, monkeypatch) -> RunnerConfig:
    monkeypatch.setenv('RUNNER_BASE_DIR', str(base_dir))
    monkeypatch.setenv('RUNNER_OS', 'linux')
    monkeypatch.setenv('RUNNER_ARCH', 'x64')
    return RunnerConfig()


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger('action_runners.tests')


class FakeServiceManager(ServiceManager):
    """In-memory service manager recording every call."""

    name = 'fake'

    def __init__(self, config, logger, units: Dict[str, str] = None):
        super().__init__(config, logger)
        self.units: Dict[str, str] = dict(units or {})
        self.calls: List[tuple] = []
        self.svc_calls: List[tuple] = []
        self.failing_actions = set()
        self.log_lines: List[str] = []

    def list_services(self) -> List[str]:
        return list(self.units)

    def get_state(self, unit: str) -> str:
        return self.units.get(unit, STATUS_NOT_FOUND)

    def _control(self, unit, action):
        self.calls.append((action, unit))
        code = 1 if action in self.failing_actions else 0
        if code == 0:
            self.units[unit] = 'inactive' if action == 'stop' else 'active'
        return subprocess.CompletedProcess([action, unit], code, '', 'boom' if code else '')

    def disable(self, unit: str) -> bool:
        self.calls.append(('disable', unit))
        return True

    def status_text(self, unit: str) -> str:
        return f"{unit} - {self.units.get(unit)}"

    def recent_logs(self, units, lines):
        self.calls.append(('logs', tuple(units), lines))
        return self.log_lines[-lines:]

    def follow_logs(self, units) -> int:
        self.calls.append(('follow', tuple(units)))
        return 0

    def run_svc_script(self, svc_script: Path, command: str) -> bool:
        self.svc_calls.append((svc_script.parent.name, command))
        return 'svc-' + command not in self.failing_actions


@pytest.fixture
def services(config, logger) -> FakeServiceManager:
    return FakeServiceManager(config, logger)


def make_runner_dir(base_dir: Path, repo: str, index: int, configured: bool = True,
                    svc: bool = True, service_file: str = None) -> Path:
    """Create a runner directory that looks like an extracted, configured runner."""
    runner_dir = base_dir / repo / str(index)
    runner_dir.mkdir(parents=True)
    for script in ('config.sh', 'run.sh'):
        (runner_dir / script).write_text('#!/bin/sh\n')
    if svc:
        (runner_dir / 'svc.sh').write_text('#!/bin/sh\n')
    if configured:
        (runner_dir / '.runner').write_text(
            '\ufeff{"agentName": "%s-runner-%d", "gitHubUrl": "https://github.com/myorg/%s"}'
            % (repo, index, repo), encoding='utf-8')
    if service_file:
        (runner_dir / '.service').write_text(service_file + '\n')
    return runner_dir


@pytest.fixture
def runner_dir_factory(base_dir):
    def factory(repo: str, index: int, **kwargs) -> Path:
        return make_runner_dir(base_dir, repo, index, **kwargs)
    return factory
