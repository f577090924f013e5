"""Tests for the command-line utilities."""

from json import loads
from typing import TYPE_CHECKING

import pytest
from click.testing import CliRunner

from pytest_courier.__main__ import cli
from tests.examples.plugins import example

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

if TYPE_CHECKING:
    from click.testing import Result
    from pytest_mock import MockType

PASSING_CASE = (
    'spec: case\n'
    'title: Increment\n'
    'params:\n'
    '  - name: value\n'
    '    values: [1, 2]\n'
    '---\n'
    'action: example.increment\n'
    'val: !var params.value\n'
    'expect:\n'
    '  - value: !var result\n'
    '    gt: 1\n'
)

FAILING_CASE = (
    'action: fail\n'
    'message: Broken on purpose\n'
)

INVALID_CASE = (
    'action: wait\n'
)


@pytest.fixture
def run_file(tmp_path: 'Path', patch_entrypoints: 'Callable[..., MockType]') -> 'Callable[..., Result]':
    """Provide a runner of the `run` command over YAML content."""
    patch_entrypoints(example)

    def run(content: str, *args: str) -> 'Result':
        filepath = tmp_path / 'test_cli_case.yaml'
        filepath.write_text(content)

        return CliRunner().invoke(cli, ['run', str(filepath), *args])

    return run


def test_schema() -> None:
    """Print the JSON Schema of case files."""
    result = CliRunner().invoke(cli, ['schema'])

    assert result.exit_code == 0
    assert loads(result.output)['title'] == 'pytest-courier'


def test_run_succeeds(run_file: 'Callable[..., Result]') -> None:
    """Run every parameter combination and exit with zero."""
    result = run_file(PASSING_CASE)

    assert result.exit_code == 0, result.output
    assert 'test_cli_case[1]: succeeded' in result.output
    assert 'test_cli_case[2]: succeeded' in result.output
    assert 'SUCCEEDED example.increment' in result.output


def test_run_fails(run_file: 'Callable[..., Result]') -> None:
    """Exit with one when a run fails."""
    result = run_file(FAILING_CASE)

    assert result.exit_code == 1
    assert 'test_cli_case: failed' in result.output
    assert 'Broken on purpose' in result.output


def test_run_fail_later(run_file: 'Callable[..., Result]') -> None:
    """Keep running top-level actions after a failure."""
    result = run_file(FAILING_CASE + '---\naction: echo\nmessage: still running\n', '--fail-later')

    assert result.exit_code == 1
    assert 'SUCCEEDED echo' in result.output


def test_run_invalid_file(run_file: 'Callable[..., Result]') -> None:
    """Exit with two when the file is invalid."""
    result = run_file(INVALID_CASE)

    assert result.exit_code == 2  # noqa: PLR2004


def test_run_missing_file(tmp_path: 'Path') -> None:
    """Reject a missing file."""
    result = CliRunner().invoke(cli, ['run', str(tmp_path / 'missing.yaml')])

    assert result.exit_code == 2  # noqa: PLR2004
    assert 'does not exist' in result.output
