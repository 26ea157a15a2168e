from __future__ import annotations

import pytest

from action_runners.exceptions import ValidationError
from action_runners.layout import RunnerLayout


def test_missing_base_dir_is_empty(tmp_path) -> None:
    layout = RunnerLayout(tmp_path / 'nope')
    assert layout.list_repositories() == []
    assert layout.list_runner_indices('viaduct') == []


def test_lists_repositories_and_numeric_runner_dirs(base_dir) -> None:
    for index in (1, 2, 10):
        (base_dir / 'viaduct' / str(index)).mkdir(parents=True)
    (base_dir / 'viaduct' / 'notes').mkdir()
    (base_dir / 'alpha').mkdir()
    (base_dir / 'manager.log').write_text('')
    (base_dir / '.cache').mkdir()

    layout = RunnerLayout(base_dir)
    assert layout.list_repositories() == ['alpha', 'viaduct']
    assert layout.list_runner_indices('viaduct') == [1, 2, 10]
    assert layout.list_runner_indices('alpha') == []
    assert layout.is_empty_repo('alpha')
    assert not layout.is_empty_repo('viaduct')


def test_runner_dir_follows_convention(base_dir) -> None:
    layout = RunnerLayout(base_dir)
    assert layout.runner_dir('viaduct', 3) == base_dir / 'viaduct' / '3'


def test_repo_dir_rejects_path_traversal(base_dir) -> None:
    with pytest.raises(ValidationError):
        RunnerLayout(base_dir).repo_dir('../etc')


def test_skips_directories_that_are_not_repository_names(base_dir) -> None:
    (base_dir / 'viaduct' / '1').mkdir(parents=True)
    (base_dir / 'old runners' / '1').mkdir(parents=True)
    (base_dir / 'a;b').mkdir()

    assert RunnerLayout(base_dir).list_repositories() == ['viaduct']


def test_ignores_non_ascii_digit_runner_dirs(base_dir) -> None:
    for name in ('1', '²', '٣', '3'):
        (base_dir / 'viaduct' / name).mkdir(parents=True)

    assert RunnerLayout(base_dir).list_runner_indices('viaduct') == [1, 3]
