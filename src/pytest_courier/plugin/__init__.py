"""Pytest plugin collecting and executing YAML case files.

This module integrates pytest-courier with pytest by:
- registering custom command-line options;
- configuring a shared `DocumentParser` instance and session settings;
- collecting YAML files as executable test cases.

YAML files matching the pattern `test_*.yml` or `test_*.yaml` are
automatically collected and parsed into pytest test items.
"""

from re import match
from typing import TYPE_CHECKING

from yaml import Loader, SafeLoader

from pytest_courier.settings import CourierSettings

from .spec import TestSpec

if TYPE_CHECKING:
    from pathlib import Path

if TYPE_CHECKING:
    from _pytest.config import Config
    from _pytest.config.argparsing import Parser
    from _pytest.nodes import Node


def pytest_addoption(parser: 'Parser') -> None:
    """Register pytest command-line options for pytest-courier."""
    group = parser.getgroup('courier', 'pytest-courier test cases')

    group.addoption(
        '--courier-unsafe-yaml',
        action='store_true',
        dest='courier_unsafe_yaml',
        default=False,
        help=(
            'Allow loading YAML files using the unsafe PyYAML Loader. '
            'This enables construction of arbitrary Python objects and '
            'should only be used with trusted test cases.'
        ),
    )
    group.addoption(
        '--courier-relaxed',
        action='store_true',
        dest='courier_relaxed',
        default=False,
        help=(
            'Disable strict plugin validation. '
            'Shadowing and third-party plugin loading errors '
            'are reported as warnings.'
        ),
    )
    group.addoption(
        '--courier-fail-later',
        action='store_true',
        dest='courier_fail_later',
        default=False,
        help='Keep executing top-level actions after a failure and report every failure.',
    )
    group.addoption(
        '--courier-case-timeout',
        action='store',
        dest='courier_case_timeout',
        type=float,
        default=None,
        help='Time in seconds after which a running test case is abandoned.',
    )


def pytest_configure(config: 'Config') -> None:
    """Configure pytest-courier integration.

    Attaches a shared `DocumentParser` as `config.courier_parser` and
    the session settings as `config.courier_settings`.
    """
    loader: type[Loader | SafeLoader] = SafeLoader
    if config.getoption('courier_unsafe_yaml', default=False):
        loader = Loader

    from pytest_courier.core import DocumentParser  # noqa: PLC0415

    config.courier_parser = DocumentParser(  # type: ignore[attr-defined]
        loader,
        strict=not config.getoption('courier_relaxed', default=False),
        auto_build=True,
    )

    overrides: dict[str, bool | float] = {}
    if config.getoption('courier_fail_later', default=False):
        overrides['fail_fast'] = False
    if (timeout := config.getoption('courier_case_timeout', default=None)) is not None:
        overrides['case_timeout'] = timeout

    config.courier_settings = CourierSettings(**overrides)  # type: ignore[attr-defined]


def pytest_collect_file(parent: 'Node', file_path: 'Path') -> TestSpec | None:
    """Collect YAML case files (`test_*.yml` or `test_*.yaml`)."""
    if match(r'^test_.+\.ya?ml$', file_path.name):
        return TestSpec.from_parent(
            parent,
            path=file_path,
        )

    return None
