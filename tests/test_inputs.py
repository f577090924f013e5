"""Tests for environment inputs definitions."""

import os
import re
from datetime import timedelta
from typing import TYPE_CHECKING, get_args

import pydantic
import pytest

from pytest_courier.errors import ActionFailed
from pytest_courier.schema.cases import Case
from pytest_courier.schema.inputs import EnvironmentDefinition, InputDefinition

if TYPE_CHECKING:
    from re import Pattern

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

    from pytest_courier.settings import CourierSettings


@pytest.mark.parametrize('name, except_message', (
    pytest.param('testVar0', None, id='lower camel case'),
    pytest.param('TestVar', None, id='upper camel case'),
    pytest.param('test_var_0', None, id='lower snake case'),
    pytest.param('TEST_VAR', None, id='upper snake case'),
    pytest.param('test-var', r'^1 validation error', id='kebab case'),
    pytest.param('test.var', r'^1 validation error', id='dot notation'),
    pytest.param('_v', r'^1 validation error', id='starts with underscore'),
    pytest.param('0v', r'^1 validation error', id='starts with digit'),
    pytest.param('', r'^1 validation error', id='empty string'),
))
def test_input_definition_name(name: str, except_message: 'Pattern | None') -> None:
    """Validate allowed and forbidden input names."""
    values = {
        'name': name,
        'description': 'A test variable',
    }

    if except_message is not None:
        with pytest.raises(pydantic.ValidationError, match=except_message):
            InputDefinition.model_validate(values)
        return

    definition = InputDefinition.model_validate(values)

    assert definition.name == name


@pytest.mark.parametrize('value_type, except_message', (
    pytest.param('str', None, id='string type'),
    pytest.param('int', None, id='integer type'),
    pytest.param('float', None, id='float type'),
    pytest.param('bool', None, id='bool type'),
    pytest.param('object', None, id='object type'),
    pytest.param('list', None, id='list type'),
    pytest.param('number', r'^1 validation error', id='unsupported type'),
    pytest.param('', r'^1 validation error', id='empty'),
))
def test_input_definition_type(value_type: str, except_message: 'Pattern | None') -> None:
    """Validate supported input types."""
    values = {
        'name': 'TEST_VAR',
        'type': value_type,
    }

    if except_message is not None:
        with pytest.raises(pydantic.ValidationError, match=except_message):
            InputDefinition.model_validate(values)
        return

    definition = InputDefinition.model_validate(values)

    assert definition.value_type == value_type


@pytest.mark.parametrize('default_value, required, except_message', (
    pytest.param('default', None, None, id='default value provided, required unspecified'),
    pytest.param('default', False, None, id='default value provided, not required'),
    pytest.param('default', True, r'Specified both a default value and a required constraint',
                 id='default value provided, required true'),
    pytest.param(None, True, None, id='no default value, required'),
    pytest.param(None, False, None, id='no default value, not required'),
))
def test_input_definition_default_required(default_value: str | None, required: bool | None,
                                           except_message: 'Pattern | None') -> None:
    """Validate interaction between default and required flags."""
    values = {'name': 'TEST_VAR', 'type': 'str'}
    if default_value is not None:
        values['default'] = default_value
    if required is not None:
        values['required'] = required  # type: ignore

    if except_message is not None:
        with pytest.raises(pydantic.ValidationError, match=except_message):
            InputDefinition.model_validate(values)
        return

    definition = InputDefinition.model_validate(values)

    assert definition.default == default_value
    assert definition.required == (required if required is not None else False)


@pytest.mark.parametrize('value', (
    pytest.param(None, id='value unspecified'),
    pytest.param('non-default value', id='valid value'),
))
def test_environment_definition_default(value: str | None, mocker: 'MockerFixture') -> None:
    """Resolve inputs with default values."""
    environment = {}
    if value is not None:
        environment['TEST_VAR'] = value

    mocker.patch.dict(os.environ, environment)

    definition = EnvironmentDefinition.model_validate([{
        'name': 'TEST_VAR',
        'default': 'default value',
    }])

    settings = definition.build()()

    assert (value if value is not None else 'default value') == settings.TEST_VAR


@pytest.mark.parametrize('value_type, raw, expected', (
    pytest.param('str', '42', '42', id='string type'),
    pytest.param('int', '42', 42, id='integer type'),
    pytest.param('float', '1.5', 1.5, id='float type'),
    pytest.param('bool', 'true', True, id='bool type'),
    pytest.param('object', '{"a": 1}', {'a': 1}, id='object type'),
    pytest.param('list', '[1, 2]', [1, 2], id='list type'),
))
def test_environment_definition_types(value_type: str, raw: str, expected: object,
                                      mocker: 'MockerFixture') -> None:
    """Coerce environment values to the declared type."""
    mocker.patch.dict(os.environ, {'TEST_VAR': raw})

    definition = EnvironmentDefinition.model_validate([{
        'name': 'TEST_VAR',
        'type': value_type,
    }])

    settings = definition.build()()

    assert settings.TEST_VAR == expected


def test_environment_definition_field_types() -> None:
    """Build optional annotated fields for every input."""
    definition = InputDefinition.model_validate({
        'name': 'TEST_VAR',
        'secret': True,
    })

    field_type, *_ = get_args(definition.build_field())

    assert field_type == pydantic.SecretStr | None


@pytest.mark.parametrize('value, except_message', (
    pytest.param('non-default value', None, id='non-default value'),
    pytest.param(None, r'^1 validation error', id='empty value'),
))
def test_environment_definition_required(value: str | None, except_message: 'Pattern | None',
                                         mocker: 'MockerFixture') -> None:
    """Require environment values."""
    environment = {}
    if value is not None:
        environment['TEST_VAR'] = value

    mocker.patch.dict(os.environ, environment)
    if value is None:
        os.environ.pop('TEST_VAR', None)

    definition = EnvironmentDefinition.model_validate([{
        'name': 'TEST_VAR',
        'required': True,
    }])

    settings = definition.build()

    if except_message is not None:
        with pytest.raises(pydantic.ValidationError, match=except_message):
            settings()
        return

    assert value == settings().TEST_VAR


def test_environment_definition_secret(mocker: 'MockerFixture') -> None:
    """Mask secret environment values."""
    mocker.patch.dict(os.environ, {'TEST_VAR': 'secret value'})

    definition = EnvironmentDefinition.model_validate([{
        'name': 'TEST_VAR',
        'secret': True,
        'required': True,
    }])

    settings = definition.build()()

    assert 'secret value' not in repr(settings)
    assert re.match(r'^SecretStr\(\'\*+\'\)$', repr(settings.TEST_VAR))
    assert settings.TEST_VAR.get_secret_value() == 'secret value'


@pytest.mark.parametrize('value_type, except_message', (
    pytest.param('str', None, id='string type'),
    pytest.param('int', r'Specified secret on non-string type', id='integer type'),
    pytest.param('bool', r'Specified secret on non-string type', id='bool type'),
))
def test_environment_definition_secret_type(value_type: str, except_message: 'Pattern | None') -> None:
    """Allow the secret flag on string inputs only."""
    values = [{
        'name': 'TEST_VAR',
        'type': value_type,
        'secret': True,
    }]

    if except_message is not None:
        with pytest.raises(pydantic.ValidationError, match=except_message):
            EnvironmentDefinition.model_validate(values)
        return

    EnvironmentDefinition.model_validate(values)


def test_resolve_environment(mocker: 'MockerFixture') -> None:
    """Resolve the inputs declared in a case header."""
    mocker.patch.dict(os.environ, {'COURIER_HOST': 'localhost', 'COURIER_PORT': '8080'})

    case = Case.model_validate({
        'spec': 'case',
        'envs': [
            {'name': 'COURIER_HOST', 'required': True},
            {'name': 'COURIER_PORT', 'type': 'int'},
            {'name': 'COURIER_USER', 'default': 'guest'},
        ],
    })

    assert case.resolve_environment() == {
        'COURIER_HOST': 'localhost',
        'COURIER_PORT': 8080,
        'COURIER_USER': 'guest',
    }


def test_resolve_empty_environment() -> None:
    """Resolve nothing without declared inputs."""
    assert Case.model_validate({'spec': 'case'}).resolve_environment() == {}


def test_resolve_missing_environment(mocker: 'MockerFixture') -> None:
    """Fail when a required input is absent."""
    mocker.patch.dict(os.environ, {})
    os.environ.pop('COURIER_MISSING', None)

    case = Case.model_validate({
        'spec': 'case',
        'envs': [{'name': 'COURIER_MISSING', 'required': True}],
    })

    with pytest.raises(ActionFailed, match=r'^Can not get required environment inputs') as error:
        case.resolve_environment()

    assert isinstance(error.value.__cause__, pydantic.ValidationError)


@pytest.mark.parametrize('header, expected', (
    pytest.param({}, {}, id='no overrides'),
    pytest.param({'failFast': False}, {'fail_fast': False}, id='fail fast'),
    pytest.param({'strictHeaders': True}, {'strict_headers': True}, id='strict headers'),
    pytest.param({'timeout': 2.5}, {'case_timeout': 2.5}, id='timeout in seconds'),
    pytest.param({'timeout': timedelta(minutes=1)}, {'case_timeout': 60.0}, id='timeout as timedelta'),
))
def test_case_configure(header: dict, expected: dict, settings: 'CourierSettings') -> None:
    """Apply the header overrides to settings."""
    case = Case.model_validate({'spec': 'case', **header})
    configured = case.configure(settings)

    for name, value in expected.items():
        assert getattr(configured, name) == value

    if not expected:
        assert configured is settings
