"""Tests for the checkers plugin system."""

# ruff: noqa: SLF001

from contextlib import suppress
from typing import TYPE_CHECKING

import pydantic
import pytest

from pytest_courier.builtins import checkers
from pytest_courier.builtins.lookups import VariableLookup
from pytest_courier.core import DocumentParser
from pytest_courier.errors import PluginError, PluginWarning
from pytest_courier.extensions import Attribute, Checker, Plugin

if TYPE_CHECKING:
    from collections.abc import Callable
    from re import Pattern
    from typing import Any

if TYPE_CHECKING:
    from pytest_mock import MockType


def test_base_loading(patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Test loading multiple checkers from a plugin and executing them."""
    patch_entrypoints(Plugin(name='test', checkers=[
        Checker(
            name='equals',
            checker=lambda val, params: val == params['equals'],
            field=Attribute(base=int),
        ),
        Checker(
            name='zero',
            checker=lambda val, params: val == 0 if params['zero'] else val != 0,
            field=Attribute(base=bool),
        ),
    ]))

    parser = DocumentParser(None, auto_attach=False)
    model = parser.build_checks(list(parser.checkers.values()))

    assert model is not None

    equal = model.model_validate({'equals': 42, 'value': 42})
    non_zero = model.model_validate({'zero': False, 'value': 42})

    assert callable(equal.root)
    assert callable(non_zero.root)

    assert equal.root({}) is True
    assert non_zero.root({}) is True


def test_one_checker_in_union(patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Test behavior when the parser contains a single checker."""
    patch_entrypoints()

    parser = DocumentParser(None, auto_attach=False)
    parser.clear_plugins()
    parser.add_checker(Checker(
        name='always',
        checker=lambda val, params: params['always'],  # noqa: ARG005
        field=Attribute(base=bool),
    ))

    assert list(parser.checkers) == ['always']

    model = parser.build_checks(list(parser.checkers.values()))

    assert model is not None

    always_true = model.model_validate({'always': True, 'value': 42})
    always_false = model.model_validate({'always': False, 'value': 42})

    assert always_true.root({}) is True
    assert always_false.root({}) is False


def test_checkers_shadowing(patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Test checker name shadowing with non-strict behavior."""
    patch_entrypoints()

    parser = DocumentParser(None, auto_attach=False)
    parser.add_checker(Checker(
        name='always',
        checker=lambda val, params: params['always'],  # noqa: ARG005
        field=Attribute(base=bool),
    ))

    with pytest.warns(PluginWarning, match=r'is shadowing an existing$'):
        parser.add_checker(Checker(
            name='always',
            checker=lambda val, params: not params['always'],  # noqa: ARG005
            field=Attribute(base=bool),
        ))

    model = parser.build_checks(list(parser.checkers.values()))

    assert model is not None

    always_true = model.model_validate({'always': True, 'value': 42})
    always_false = model.model_validate({'always': False, 'value': 42})

    assert always_true.root({}) is False
    assert always_false.root({}) is True


def test_checkers_strict_shadowing(patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Test checker name shadowing in strict mode."""
    patch_entrypoints()

    parser = DocumentParser(None, strict=True, auto_attach=False)

    with pytest.raises(PluginError, match=r'is shadowing an existing$'):
        parser.add_checker(Checker(
            name='regex',
            checker=lambda val, params: True,  # noqa: ARG005
            field=Attribute(required=True),
        ))


@pytest.mark.parametrize('document, context, result', (
    pytest.param({'eq': 42}, {'x': 42}, True, id='eq alias'),
    pytest.param({'equal': 42}, {'x': 42}, True, id='equal alias'),
    pytest.param({'match': 42}, {'x': 42}, True, id='canonical name'),
    pytest.param({'ne': 0}, {'x': 42}, True, id='ne alias'),
    pytest.param({'notEqual': 42}, {'x': 42}, False, id='notEqual alias'),
    pytest.param({'lt': 50}, {'x': 42}, True, id='lt alias'),
    pytest.param({'gte': 42}, {'x': 42}, True, id='gte alias'),
    pytest.param({'greaterThan': 42}, {'x': 42}, False, id='greaterThan alias'),
    pytest.param({'reMatch': r'^\d+$'}, {'x': '42'}, True, id='reMatch alias'),
    pytest.param({'eq': {'a': 1}, 'partialMatch': True}, {'x': {'a': 1, 'b': 2}}, True, id='partial'),
    pytest.param({'eq': '${y}'}, {'x': '${y}', 'y': 1}, True, id='strings are not rendered'),
))
def test_builtin_checks(document: dict, context: dict, result: bool,
                        patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Validate and run the built-in checks with their aliases."""
    patch_entrypoints()

    parser = DocumentParser(None, auto_attach=False)
    model = parser.build_checks(list(parser.checkers.values()))

    assert model is not None

    check = model.model_validate({'value': VariableLookup('x'), **document})

    real_result = False
    with suppress(AssertionError):
        real_result = check.root(context)

    assert real_result == result


@pytest.mark.parametrize('document', (
    pytest.param({'eq': 1, 'lt': 2}, id='two checkers'),
    pytest.param({'unknown': 1}, id='unknown checker'),
    pytest.param({'eq': 1, 'multiline': True}, id='foreign parameter'),
))
def test_invalid_checks(document: dict, patch_entrypoints: 'Callable[..., MockType]') -> None:
    """Reject documents matching no single check."""
    patch_entrypoints()

    parser = DocumentParser(None, auto_attach=False)
    model = parser.build_checks(list(parser.checkers.values()))

    assert model is not None

    with pytest.raises(pydantic.ValidationError):
        model.model_validate({'value': 1, **document})


@pytest.mark.parametrize('f, param, actual, expected, result', (
    pytest.param(checkers.less.checker, 'less_than', 42, 42, False, id='LT: equal'),
    pytest.param(checkers.less.checker, 'less_than', 42, 0, False, id='LT: false comparison'),
    pytest.param(checkers.less.checker, 'less_than', 0, 42, True, id='LT: true comparison'),
    pytest.param(checkers.less.checker, 'less_than', None, 42, False, id='LT: None and value'),
    pytest.param(checkers.less.checker, 'less_than', 42, None, False, id='LT: value and None'),
    pytest.param(checkers.less.checker, 'less_than', 42, 'a', False, id='LT: different types'),
    pytest.param(checkers.less_or_equal.checker, 'less_than_or_equal', 42, 42, True, id='LTE: equal'),
    pytest.param(checkers.less_or_equal.checker, 'less_than_or_equal', 42, 0, False, id='LTE: false comparison'),
    pytest.param(checkers.less_or_equal.checker, 'less_than_or_equal', 0, 42, True, id='LTE: true comparison'),
    pytest.param(checkers.greater.checker, 'greater_than', 42, 42, False, id='GT: equal'),
    pytest.param(checkers.greater.checker, 'greater_than', 42, 0, True, id='GT: true comparison'),
    pytest.param(checkers.greater.checker, 'greater_than', 0, 42, False, id='GT: false comparison'),
    pytest.param(checkers.greater.checker, 'greater_than', 42, 0.5, True, id='GT: int and float'),
    pytest.param(checkers.greater_or_equal.checker, 'greater_than_or_equal', 42, 42, True, id='GTE: equal'),
    pytest.param(checkers.greater_or_equal.checker, 'greater_than_or_equal', 0, 42, False, id='GTE: false comparison'),
    pytest.param(checkers.greater_or_equal.checker, 'greater_than_or_equal', None, 42, False, id='GTE: None and value'),
))
def test_builtin_comparators(f: 'Callable[[Any, Any], bool]', param: str,
                             actual: 'Any', expected: 'Any', result: bool) -> None:
    """Test the built-in comparison checker with various inputs."""
    real_result = False
    with suppress(AssertionError):
        real_result = f(actual, {param: expected})

    assert real_result == result


@pytest.mark.parametrize('actual, expected, result', (
    pytest.param(42, 42, True, id='EQ: equal'),
    pytest.param(42, 0, False, id='EQ: not equal'),
    pytest.param(42, 42.0, True, id='EQ: int and float'),
    pytest.param(1, True, False, id='EQ: int and bool'),
    pytest.param('42', 42, False, id='EQ: str and int'),
    pytest.param(pydantic.SecretStr('s'), 's', True, id='EQ: secret and str'),
    pytest.param({'a': 1, 'b': 2}, {'a': 1, 'b': 2}, True, id='EQ: dict equal'),
    pytest.param({'a': 1, 'b': 2}, {'a': 1}, False, id='EQ: dict not equal'),
    pytest.param([42, 0], [42, 0], True, id='EQ: list equal'),
    pytest.param([42, 0], [42, 1], False, id='EQ: list not equal'),
))
def test_exact_match(actual: 'Any', expected: 'Any', result: bool) -> None:
    """Test the exact match checker."""
    real_result = False
    with suppress(AssertionError):
        real_result = checkers._eq(actual, {'match': expected, 'partial_match': False})

    assert real_result == result


@pytest.mark.parametrize('actual, expected, result', (
    pytest.param(42, 42, False, id='NEQ: equal'),
    pytest.param(42, 0, True, id='NEQ: not equal'),
    pytest.param({'a': 1, 'b': 2}, {'a': 1, 'b': 2}, False, id='NEQ: dict equal'),
    pytest.param({'a': 1, 'b': 2}, {'a': 1}, True, id='NEQ: dict not equal'),
    pytest.param([42, 0], [42, 0], False, id='NEQ: list equal'),
    pytest.param([42, 0], [42, 1], True, id='NEQ: list not equal'),
))
def test_exact_not_match(actual: 'Any', expected: 'Any', result: bool) -> None:
    """Test the exact not match checker."""
    real_result = False
    with suppress(AssertionError):
        real_result = checkers._neq(actual, {'not_match': expected, 'partial_match': False})

    assert real_result == result


@pytest.mark.parametrize('actual, expected, result', (
    pytest.param({'a': 1, 'b': 2}, {'a': 1}, True, id='Partial EQ: dict partial match'),
    pytest.param({'a': 1, 'b': 2}, {'a': 2}, False, id='Partial EQ: dict partial not match'),
    pytest.param({'a': {'b': [1, {'c': 2, 'd': 3}]}}, {'a': {'b': [{'c': 2}]}}, True, id='Partial EQ: nested'),
    pytest.param({'a': 1}, {'a': 1, 'b': 2}, False, id='Partial EQ: missing key'),
    pytest.param([42, 0], [42], True, id='Partial EQ: list partial match'),
    pytest.param([42, 0], [95], False, id='Partial EQ: list partial not match'),
    pytest.param('text', ['text'], False, id='Partial EQ: scalar and list'),
))
def test_partial_match(actual: 'Any', expected: 'Any', result: bool) -> None:
    """Test the partial match checker."""
    real_result = False
    with suppress(AssertionError):
        real_result = checkers._eq(actual, {'match': expected, 'partial_match': True})

    assert real_result == result


def test_match_messages() -> None:
    """Describe the first difference in the assertion message."""
    with pytest.raises(AssertionError, match=r"^key 'b' is missing$"):
        checkers.partial_match({'a': 1}, {'a': 1, 'b': 2})

    with pytest.raises(AssertionError, match=r'^expected int, got str$'):
        checkers.exact_match('1', 1)

    with pytest.raises(AssertionError, match=r'^1 != 2$'):
        checkers.exact_match(1, 2)


@pytest.mark.parametrize('pattern, result', (
    pytest.param(r'', True, id='Regex: empty pattern'),
    pytest.param(r'^Hello\sworld$', True, id='Regex: full match'),
    pytest.param(r'^Hello$', False, id='Regex: not matching'),
    pytest.param(r'^Hello', True, id='Regex: starts with'),
    pytest.param(r'world$', True, id='Regex: ends with'),
    pytest.param(None, False, id='Regex: none pattern'),
    pytest.param(42, False, id='Regex: wrong type pattern'),
))
def test_regex_match(pattern: 'Pattern | str', result: bool) -> None:
    """Test the regex match checker."""
    assert result == checkers._regex('Hello world', {'regex': pattern})


def test_regex_multiline_match() -> None:
    """Test the regex match checker with multiline strings."""
    assert checkers._regex('Hello\nWorld', {'regex': r'^World$', 'multiline': True})
    assert not checkers._regex('Hello\nWorld', {'regex': r'^World$', 'multiline': False})


def test_regex_ignorecase_match() -> None:
    """Test the regex match checker with ignore case flag."""
    assert checkers._regex('HELLO WORLD', {'regex': r'^hello world$', 'ignore_case': True})
    assert not checkers._regex('HELLO WORLD', {'regex': r'^hello world$', 'ignore_case': False})
