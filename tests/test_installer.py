from __future__ import annotations

import json
import subprocess
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from action_runners.exceptions import RunnerError
from action_runners.installer import RunnerInstaller

ARCHIVE = 'actions-runner-linux-x64-2.330.0.tar.gz'


def fake_download(url, target):
    target.write_bytes(b'archive')


def fake_extract(cmd, **kwargs):
    # tar xzf <archive> -C <dir>
    target = cmd[-1]
    with open(f'{target}/config.sh', 'w') as f:
        f.write('#!/bin/sh\n')
    return subprocess.CompletedProcess(cmd, 0, '', '')


def test_download_url(config, logger) -> None:
    installer = RunnerInstaller(config, logger)
    assert installer.archive_name() == ARCHIVE
    assert installer.download_url() == (
        'https://github.com/actions/runner/releases/download/v2.330.0/' + ARCHIVE)


def test_latest_version_resolves_from_github(config, logger) -> None:
    config.version = 'latest'
    response = MagicMock()
    response.read.return_value = json.dumps({'tag_name': 'v2.331.1'}).encode()
    response.__enter__.return_value = response
    with patch('action_runners.installer.urllib.request.urlopen', return_value=response) as urlopen:
        installer = RunnerInstaller(config, logger)
        assert installer.version == '2.331.1'
        assert installer.version == '2.331.1'
    assert urlopen.call_count == 1


def test_latest_version_falls_back(config, logger) -> None:
    config.version = 'latest'
    config.fallback_version = '2.300.0'
    with patch('action_runners.installer.urllib.request.urlopen',
               side_effect=urllib.error.URLError('offline')):
        assert RunnerInstaller(config, logger).version == '2.300.0'


def test_install_downloads_and_extracts(config, logger, tmp_path) -> None:
    runner_dir = tmp_path / 'viaduct' / '1'
    with patch('action_runners.installer.urllib.request.urlretrieve', side_effect=fake_download) as retrieve, \
            patch('action_runners.installer.subprocess.run', side_effect=fake_extract) as run:
        assert RunnerInstaller(config, logger).install(runner_dir) is True

    assert (runner_dir / ARCHIVE).exists()
    assert (runner_dir / 'config.sh').exists()
    assert retrieve.call_args[0][0].endswith(ARCHIVE)
    assert run.call_args[0][0][:2] == ['tar', 'xzf']


def test_install_cleans_old_binaries_before_download(config, logger, tmp_path) -> None:
    runner_dir = tmp_path / 'runner'
    (runner_dir / 'bin').mkdir(parents=True)
    (runner_dir / 'bin' / 'Runner.Listener').write_text('old')
    (runner_dir / 'run.sh').write_text('old')
    (runner_dir / '.runner').write_text('{}')
    with patch('action_runners.installer.urllib.request.urlretrieve', side_effect=fake_download), \
            patch('action_runners.installer.subprocess.run', side_effect=fake_extract):
        RunnerInstaller(config, logger).install(runner_dir)

    assert not (runner_dir / 'bin').exists()
    assert not (runner_dir / 'run.sh').exists()
    assert (runner_dir / '.runner').exists()


def test_install_extracts_existing_archive(config, logger, tmp_path) -> None:
    runner_dir = tmp_path / 'runner'
    runner_dir.mkdir()
    (runner_dir / ARCHIVE).write_bytes(b'archive')
    with patch('action_runners.installer.urllib.request.urlretrieve') as retrieve, \
            patch('action_runners.installer.subprocess.run', side_effect=fake_extract) as run:
        assert RunnerInstaller(config, logger).install(runner_dir) is True
    retrieve.assert_not_called()
    run.assert_called_once()


def test_install_is_noop_when_present(config, logger, tmp_path) -> None:
    runner_dir = tmp_path / 'runner'
    runner_dir.mkdir()
    (runner_dir / ARCHIVE).write_bytes(b'archive')
    (runner_dir / 'config.sh').write_text('#!/bin/sh\n')
    with patch('action_runners.installer.urllib.request.urlretrieve') as retrieve, \
            patch('action_runners.installer.subprocess.run') as run:
        assert RunnerInstaller(config, logger).install(runner_dir) is False
    retrieve.assert_not_called()
    run.assert_not_called()


def test_download_failure_raises(config, logger, tmp_path) -> None:
    with patch('action_runners.installer.urllib.request.urlretrieve',
               side_effect=urllib.error.URLError('404')):
        with pytest.raises(RunnerError):
            RunnerInstaller(config, logger).install(tmp_path / 'runner')
    assert not (tmp_path / 'runner' / ARCHIVE).exists()


def test_extract_failure_raises(config, logger, tmp_path) -> None:
    error = subprocess.CalledProcessError(2, ['tar'], stderr='corrupt')
    with patch('action_runners.installer.urllib.request.urlretrieve', side_effect=fake_download), \
            patch('action_runners.installer.subprocess.run', side_effect=error):
        with pytest.raises(RunnerError, match='corrupt'):
            RunnerInstaller(config, logger).install(tmp_path / 'runner')
