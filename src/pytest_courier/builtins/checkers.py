"""Built-in comparison checkers.

Checkers are evaluated in `expect` lists after an action completes.
Equality supports strict and partial matching of scalars, sequences and
mappings; the same matching rules back the JSON message validator.
"""

# ruff: noqa: S101

from contextlib import suppress
from operator import ge, gt, le, lt
from re import IGNORECASE, MULTILINE, UNICODE, search
from typing import TYPE_CHECKING

from pydantic import SecretStr

from pytest_courier.errors import DSLRuntimeError
from pytest_courier.extensions import Attribute, Checker, Schema
from pytest_courier.values import MAPPINGS, SCALARS, SEQUENCES

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

if TYPE_CHECKING:
    from pytest_courier.values import RuntimeValue


def exact_match(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Compare values strictly.

    Integers and floats compare as numbers, secrets compare by their
    secret value.

    Raises:
        AssertionError: If values differ.
    """
    if isinstance(actual, SecretStr):
        actual = actual.get_secret_value()
    if isinstance(expected, SecretStr):
        expected = expected.get_secret_value()

    if expected is not None and not (_is_number(actual) and _is_number(expected)):
        assert isinstance(actual, type(expected)), (
            f'expected {type(expected).__name__}, got {type(actual).__name__}'
        )

    assert actual == expected, f'{actual!r} != {expected!r}'

    return True


def _is_number(value: 'RuntimeValue') -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def partial_match(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Match values recursively, ignoring extra content of the actual value.

    Mappings match if every expected key is present and its value
    matches. Sequences match if every expected item matches some actual
    item. Scalars match strictly.

    Raises:
        AssertionError: If values do not match.
        DSLRuntimeError: If the expected value type is unsupported.
    """
    if expected is None or isinstance(expected, SCALARS):
        return exact_match(actual, expected)

    if isinstance(expected, MAPPINGS):
        assert isinstance(actual, MAPPINGS), f'expected mapping, got {type(actual).__name__}'
        for key, value in expected.items():
            assert key in actual, f'key {key!r} is missing'
            partial_match(actual[key], value)
        return True

    if isinstance(expected, SEQUENCES):
        assert isinstance(actual, SEQUENCES), f'expected sequence, got {type(actual).__name__}'
        for value in expected:
            assert any(_matches(item, value) for item in actual), f'{value!r} is missing'
        return True

    raise DSLRuntimeError(f'Unsupported type {expected.__class__!r}')  # pragma: no cover


def _matches(actual: 'RuntimeValue', expected: 'RuntimeValue') -> bool:
    """Partial match returning a flag instead of raising."""
    with suppress(AssertionError):
        return partial_match(actual, expected)

    return False


def _choose(params: 'Mapping[str, RuntimeValue]') -> 'Callable[[RuntimeValue, RuntimeValue], bool]':
    """Select the matching strategy of equality checkers."""
    if params.get('partial_match', False):
        return partial_match

    return exact_match


def _eq(value: 'RuntimeValue', params: 'Mapping[str, RuntimeValue]') -> bool:
    """Equality checker."""
    return _choose(params)(value, params.get('match'))


def _neq(value: 'RuntimeValue', params: 'Mapping[str, RuntimeValue]') -> bool:
    """Inequality checker."""
    try:
        return not _choose(params)(value, params.get('not_match'))
    except AssertionError:
        return True


def _ordering(name: str, compare: 'Callable[[RuntimeValue, RuntimeValue], bool]',
              ) -> 'Callable[[RuntimeValue, Mapping[str, RuntimeValue]], bool]':
    """Build an ordering checker comparing the value with a bound."""
    def _check(value: 'RuntimeValue', params: 'Mapping[str, RuntimeValue]') -> bool:
        bound = params.get(name)
        if value is None or bound is None:
            return False

        try:
            return bool(compare(value, bound))
        except TypeError as error:
            raise AssertionError(f'{value!r} is not comparable with {bound!r}') from error

    return _check


def _regex(value: 'RuntimeValue', params: 'Mapping[str, RuntimeValue]') -> bool:
    """Regex search checker."""
    pattern = params.get('regex')
    if not isinstance(pattern, str) or not isinstance(value, str):
        return False

    flags = UNICODE
    if params.get('ignore_case'):
        flags |= IGNORECASE
    if params.get('multiline'):
        flags |= MULTILINE

    return search(pattern, value, flags) is not None


_PARTIAL = Schema({
    'partial_match': Attribute(
        base=bool,
        aliases=['partialMatch'],
        default=False,
        title='Partial comparison mode',
        description=(
            'If true, performs recursive partial matching '
            'instead of strict equality comparison.'
        ),
    ),
})

eq = Checker(
    checker=_eq,
    name='match',
    field=Attribute(
        aliases=['eq', 'equal'],
        required=True,
        title='Expected value',
        description='Value that must match the actual result.',
    ),
    parameters=_PARTIAL,
)

neq = Checker(
    checker=_neq,
    name='not_match',
    field=Attribute(
        aliases=['notMatch', 'ne', 'notEqual'],
        required=True,
        title='Forbidden value',
        description='Value that must not match the actual result.',
    ),
    parameters=_PARTIAL,
)

less = Checker(
    checker=_ordering('less_than', lt),
    name='less_than',
    field=Attribute(
        aliases=['lt', 'lessThan'],
        required=True,
        title='Upper bound',
    ),
)

less_or_equal = Checker(
    checker=_ordering('less_than_or_equal', le),
    name='less_than_or_equal',
    field=Attribute(
        aliases=['lte', 'lessThanOrEqual'],
        required=True,
        title='Upper bound (inclusive)',
    ),
)

greater = Checker(
    checker=_ordering('greater_than', gt),
    name='greater_than',
    field=Attribute(
        aliases=['gt', 'greaterThan'],
        required=True,
        title='Lower bound',
    ),
)

greater_or_equal = Checker(
    checker=_ordering('greater_than_or_equal', ge),
    name='greater_than_or_equal',
    field=Attribute(
        aliases=['gte', 'greaterThanOrEqual'],
        required=True,
        title='Lower bound (inclusive)',
    ),
)

regex = Checker(
    checker=_regex,
    name='regex',
    field=Attribute(
        aliases=['reMatch', 'regexMatch'],
        required=True,
        title='Regex pattern',
        description='Actual value must contain a match of this pattern.',
    ),
    parameters=Schema({
        'ignore_case': Attribute(
            base=bool,
            aliases=['ignoreCase'],
            default=False,
            title='Ignore case mode',
        ),
        'multiline': Attribute(
            base=bool,
            default=False,
            title='Multiline mode',
        ),
    }),
)
