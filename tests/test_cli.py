from __future__ import annotations

from unittest.mock import patch

import pytest

from action_runners import __version__
from action_runners.cli import build_parser, main
from action_runners.exceptions import RunnerError


@pytest.fixture
def manager(clean_env, monkeypatch):
    monkeypatch.setenv('RUNNER_BASE_DIR', str(clean_env / 'action-runners'))
    monkeypatch.setenv('RUNNER_OS', 'linux')
    monkeypatch.setenv('RUNNER_ARCH', 'x64')
    with patch('action_runners.cli.RunnerManager') as manager_cls:
        yield manager_cls.return_value


def test_no_command_prints_help(clean_env, capsys) -> None:
    assert main([]) == 1
    assert 'usage: action-runners' in capsys.readouterr().out


def test_version(capsys) -> None:
    with pytest.raises(SystemExit) as exc:
        build_parser().parse_args(['--version'])
    assert exc.value.code == 0
    assert __version__ in capsys.readouterr().out


def test_setup(manager) -> None:
    manager.setup.return_value = True
    assert main(['setup', 'myorg/viaduct', '2', '--token', 'T']) == 0
    manager.setup.assert_called_once_with('myorg/viaduct', 2, token='T', install_service=None)


def test_setup_service_flags(manager) -> None:
    manager.setup.return_value = False
    assert main(['setup', 'myorg/viaduct', '--no-service']) == 1
    manager.setup.assert_called_once_with('myorg/viaduct', None, token=None, install_service=False)

    manager.setup.reset_mock()
    main(['setup', 'myorg/viaduct', '--service'])
    assert manager.setup.call_args[1]['install_service'] is True


def test_setup_service_flags_are_exclusive(manager) -> None:
    with pytest.raises(SystemExit):
        main(['setup', 'myorg/viaduct', '--service', '--no-service'])


@pytest.mark.parametrize('action', ['start', 'stop', 'restart'])
def test_control_commands(manager, action) -> None:
    manager.control.return_value = True
    assert main([action, 'viaduct']) == 0
    manager.control.assert_called_once_with(action, 'viaduct')


def test_control_all_runners(manager) -> None:
    manager.control.return_value = False
    assert main(['stop']) == 1
    manager.control.assert_called_once_with('stop', None)


def test_logs_follow_by_default(manager) -> None:
    manager.show_logs.return_value = 0
    assert main(['logs', 'viaduct']) == 0
    manager.show_logs.assert_called_once_with('viaduct', lines=None, follow=True)


def test_logs_recent_lines(manager) -> None:
    manager.show_logs.return_value = 0
    main(['logs', '-n', '20'])
    manager.show_logs.assert_called_once_with(None, lines=20, follow=False)


def test_logs_rejects_non_positive_lines(manager, capsys) -> None:
    assert main(['logs', '--lines', '0']) == 1
    manager.show_logs.assert_not_called()
    assert '--lines must be at least 1' in capsys.readouterr().err


def test_remove(manager) -> None:
    manager.remove.return_value = True
    assert main(['remove', 'viaduct', '2']) == 0
    manager.remove.assert_called_once_with('viaduct', '2', assume_yes=False, delete_dir=None)


def test_remove_all_keep_dir(manager) -> None:
    manager.remove.return_value = True
    main(['remove', 'viaduct', 'all', '--yes', '--keep-dir'])
    manager.remove.assert_called_once_with('viaduct', 'all', assume_yes=True, delete_dir=False)


def test_health_exit_code(manager) -> None:
    manager.print_health.return_value = True
    assert main(['health']) == 0
    manager.print_health.return_value = False
    assert main(['health']) == 1


def test_reports(manager) -> None:
    assert main(['status']) == 0
    manager.print_service_status.assert_called_once_with(None)
    assert main(['list', '--remote']) == 0
    manager.print_list.assert_called_once_with(remote=True)
    assert main(['debug', 'viaduct']) == 0
    manager.debug.assert_called_once_with('viaduct')


def test_runner_error_exits_with_1(manager, capsys) -> None:
    manager.install_services.side_effect = RunnerError('Cannot access directory /x/viaduct')
    assert main(['install-services', 'viaduct']) == 1
    assert 'Error: Cannot access directory /x/viaduct' in capsys.readouterr().err


def test_keyboard_interrupt_exits_with_130(manager) -> None:
    manager.show_logs.side_effect = KeyboardInterrupt
    assert main(['logs']) == 130


def test_cli_overrides_config(manager, tmp_path) -> None:
    with patch('action_runners.cli.RunnerManager') as manager_cls:
        main(['--base-dir', str(tmp_path / 'runners'), '--log-level', 'debug', 'list'])
    config = manager_cls.call_args[0][0]
    assert config.base_dir == tmp_path / 'runners'
    assert config.log_level == 'DEBUG'


def test_invalid_config(manager, monkeypatch, capsys) -> None:
    monkeypatch.setenv('RUNNER_COUNT', '0')
    assert main(['list']) == 1
    assert 'Invalid RUNNER_COUNT' in capsys.readouterr().err
    manager.print_list.assert_not_called()


def test_unparseable_config(manager, monkeypatch, capsys) -> None:
    monkeypatch.setenv('RUNNER_COUNT', 'many')
    assert main(['list']) == 1
    assert 'Error:' in capsys.readouterr().err


def test_dashboard(manager) -> None:
    with patch('action_runners.cli.run_dashboard', return_value=0) as run_dashboard:
        assert main(['dashboard', '--interval', '2']) == 0
    run_dashboard.assert_called_once_with(manager, refresh_interval=2.0)


def test_dashboard_rejects_non_positive_interval(manager, capsys) -> None:
    with patch('action_runners.cli.run_dashboard') as run_dashboard:
        assert main(['dashboard', '--interval', '0']) == 1
    run_dashboard.assert_not_called()
    assert '--interval must be positive' in capsys.readouterr().err
