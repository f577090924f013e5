"""Tests configurations and fixtures."""

from importlib.metadata import EntryPoint, EntryPoints
from typing import TYPE_CHECKING

import pytest
import yaml

from pytest_courier.builtins import validators
from pytest_courier.context import TestContext
from pytest_courier.core import DocumentParser
from pytest_courier.settings import CourierSettings
from tests.examples.plugins import example

if TYPE_CHECKING:
    from collections.abc import Callable

if TYPE_CHECKING:
    from pytest_mock import MockerFixture, MockType

if TYPE_CHECKING:
    from pytest_courier.extensions import Plugin


@pytest.fixture
def loader() -> type[yaml.SafeLoader]:
    """Provide an isolated YAML SafeLoader class for tests.

    Creates a dedicated subclass of `yaml.SafeLoader` to ensure that
    YAML constructors registered during a test do not leak into other
    tests or affect global loader state.

    Returns:
        A subclass of `yaml.SafeLoader` suitable for isolated DSL parsing.
    """
    class Loader(yaml.SafeLoader):
        pass

    return Loader


@pytest.fixture
def patch_entrypoints(mocker: 'MockerFixture') -> 'Callable[..., MockType]':
    """Provide a factory for mocking `importlib.metadata.entry_points`.

    Returns a callable that patches `entry_points()` to simulate
    discovery of plugins in the `courier_plugins` entry point group.

    The returned factory allows configuring:
    - a successfully loadable plugin,
    - or an exception raised during plugin loading,
    - or an empty entry point list.
    """
    def patch(*plugins: 'Plugin | object', raises: Exception | None = None) -> 'MockType':
        """Patch `entry_points` with a controlled plugin configuration.

        Args:
            plugins: Objects to be returned by `EntryPoint.load()`.
                If empty, no entry points are registered.
            raises: Exception to raise when `EntryPoint.load()` is called.
                Used to simulate plugin load failures.

        Returns:
            A mock patch object produced by `mocker.patch` that replaces
            `importlib.metadata.entry_points` for the duration of the test.
        """
        entrypoints = []
        for plugin in plugins:
            ep = mocker.Mock(spec=EntryPoint)
            ep.group = 'courier_plugins'
            ep.name = 'tests'
            ep.value = 'tests.examples.plugins:example'
            ep.load.return_value = plugin
            if raises is not None:
                ep.load.side_effect = raises
            entrypoints.append(ep)

        return mocker.patch(
            'importlib.metadata.entry_points',
            return_value=EntryPoints(entrypoints),
        )

    return patch


@pytest.fixture
def parser(patch_entrypoints: 'Callable[..., MockType]',
           loader: type[yaml.SafeLoader]) -> DocumentParser:
    """Provide a strict parser with the example plugin loaded."""
    patch_entrypoints(example)

    return DocumentParser(loader, strict=True, auto_build=True)


@pytest.fixture
def settings() -> CourierSettings:
    """Provide settings with short timeouts."""
    return CourierSettings(
        receive_timeout=1.0,
        poll_interval=0.01,
        correlation_grace_period=0.0,
        fail_fast=True,
        strict_headers=False,
        case_timeout=None,
    )


@pytest.fixture
def context(settings: CourierSettings, parser: DocumentParser) -> TestContext:
    """Provide a test context with built-in validators and every function."""
    return TestContext(
        settings=settings,
        validators=[validators.plaintext, validators.json_],
        functions=parser.functions,
    )
