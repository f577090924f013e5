"""Tests for message validation dispatch and the built-in validators."""

from subprocess import run  # noqa: S404
from sys import executable
from typing import TYPE_CHECKING

import pytest

from pytest_courier.builtins.validators import json_, plaintext
from pytest_courier.errors import NoValidatorFound, ValidationFailed
from pytest_courier.extensions import Validator
from pytest_courier.messages import Message
from pytest_courier.validation import MessageValidator, ValidationContext, ValidationDispatch
from tests.examples.validators import caseless

if TYPE_CHECKING:
    from typing import Any


@pytest.fixture
def dispatch() -> ValidationDispatch:
    """Provide a dispatch with the built-in validators."""
    return ValidationDispatch([plaintext, json_, caseless])


def test_validators_satisfy_protocol() -> None:
    """Use declarative validators as message validators."""
    assert isinstance(plaintext, MessageValidator)
    assert isinstance(json_, MessageValidator)


@pytest.mark.parametrize('message_type, expected', (
    pytest.param('plaintext', 'plaintext', id='plaintext'),
    pytest.param('TEXT', 'plaintext', id='case insensitive'),
    pytest.param('json', 'json', id='json'),
    pytest.param('application/json', 'json', id='json mime type'),
    pytest.param('caseless', 'caseless', id='plugin type'),
))
def test_select_first_supporting(dispatch: ValidationDispatch,
                                 message_type: str, expected: str) -> None:
    """Select the first validator supporting a declared type."""
    assert dispatch.select(message_type).name == expected


def test_select_registration_order() -> None:
    """Prefer the validator registered first."""
    catch_all = Validator(name='anything', validator=lambda *_: True, message_types=['*'])

    assert ValidationDispatch([catch_all, json_]).select('json') is catch_all
    assert ValidationDispatch([json_, catch_all]).select('json') is json_
    assert ValidationDispatch([json_, catch_all]).select('xml') is catch_all


def test_select_by_name(dispatch: ValidationDispatch) -> None:
    """Restrict selection to a named validator."""
    assert dispatch.select('json', 'json') is json_

    with pytest.raises(NoValidatorFound):
        dispatch.select('json', 'plaintext')


def test_select_unsupported(dispatch: ValidationDispatch) -> None:
    """Fail when no validator supports a type."""
    with pytest.raises(NoValidatorFound, match=r'^No validator supports message type "xml"$') as error:
        dispatch.select('xml')

    assert error.value.message_type == 'xml'


def test_identical_message_passes(dispatch: ValidationDispatch) -> None:
    """Accept a message identical to the expected one."""
    message = Message(payload={'id': 1, 'items': ['a']}, headers={'h': 'v'}, message_type='json')

    dispatch.validate(message, message)


def test_header_mutation_fails(dispatch: ValidationDispatch) -> None:
    """Reject a message whose expected header differs."""
    expected = Message(payload='ok', headers={'h': 'v'})
    received = Message(payload='ok', headers={'h': 'other'})

    with pytest.raises(ValidationFailed) as error:
        dispatch.validate(received, expected)

    assert error.value.details == ("header 'h': expected 'v', got 'other'",)


def test_missing_header_fails(dispatch: ValidationDispatch) -> None:
    """Reject a message without an expected header."""
    with pytest.raises(ValidationFailed, match=r"header 'h' is missing"):
        dispatch.validate(Message(payload='ok'), Message(payload='ok', headers={'h': 'v'}))


def test_header_compared_exactly(dispatch: ValidationDispatch) -> None:
    """Reject a header value equal only by its textual form."""
    with pytest.raises(ValidationFailed) as error:
        dispatch.validate(
            Message(payload='ok', headers={'count': '1'}),
            Message(payload='ok', headers={'count': 1}),
        )

    assert error.value.details == ("header 'count': expected 1, got '1'",)


@pytest.mark.parametrize('strict, passes', (
    pytest.param(False, True, id='lenient'),
    pytest.param(True, False, id='strict'),
))
def test_strict_headers(strict: bool, passes: bool) -> None:
    """Reject unexpected received headers in strict mode only."""
    dispatch = ValidationDispatch([plaintext], strict_headers=strict)
    received = Message(payload='ok', headers={'extra': 'x'})
    expected = Message(payload='ok')

    if passes:
        dispatch.validate(received, expected)
        return

    with pytest.raises(ValidationFailed, match=r"header 'extra' is not expected"):
        dispatch.validate(received, expected)


def test_strict_headers_context_override() -> None:
    """Let the validation context override the default header mode."""
    dispatch = ValidationDispatch([plaintext], strict_headers=True)

    dispatch.validate(
        Message(payload='ok', headers={'extra': 'x'}),
        Message(payload='ok'),
        ValidationContext(strict_headers=False),
    )


@pytest.mark.parametrize('received, expected, options', (
    pytest.param('  Hello  ', 'Hello', {}, id='plaintext surrounding whitespace'),
    pytest.param('Hello\n  world', 'Hello world', {'ignoreWhitespace': True}, id='plaintext collapsed whitespace'),
    pytest.param(b'Hello', 'Hello', {}, id='plaintext bytes'),
))
def test_plaintext_payloads(dispatch: ValidationDispatch, received: 'Any',
                            expected: 'Any', options: dict) -> None:
    """Compare textual payloads."""
    dispatch.validate(
        Message(payload=received),
        Message(payload=expected),
        ValidationContext(options=options),
    )


def test_plaintext_mismatch(dispatch: ValidationDispatch) -> None:
    """Report a textual difference."""
    with pytest.raises(ValidationFailed, match=r"'plaintext': text 'Hello' does not match 'Bye'"):
        dispatch.validate(Message(payload='Hello'), Message(payload='Bye'))


@pytest.mark.parametrize('received, expected, options', (
    pytest.param('{"a": 1, "b": [1, 2]}', {'a': 1, 'b': [1, 2]}, {}, id='text and structure'),
    pytest.param(b'{"a": 1}', '{"a": 1}', {}, id='bytes and text'),
    pytest.param({'a': 1, 'b': 2}, {'a': 1}, {'partial': True}, id='partial'),
    pytest.param({'a': 1.0}, {'a': 1}, {}, id='numbers'),
))
def test_json_payloads(dispatch: ValidationDispatch, received: 'Any',
                       expected: 'Any', options: dict) -> None:
    """Compare JSON payloads."""
    dispatch.validate(
        Message(payload=received, message_type='json'),
        Message(payload=expected, message_type='json'),
        ValidationContext(options=options),
    )


@pytest.mark.parametrize('received, expected, message', (
    pytest.param({'a': 1, 'b': 2}, {'a': 1}, r'\{.a.: 1, .b.: 2\} != \{.a.: 1\}', id='extra key'),
    pytest.param('"1"', 1, r'expected int, got str', id='type mismatch'),
    pytest.param('{broken', {'a': 1}, r'received payload is not valid JSON', id='invalid json'),
))
def test_json_mismatch(dispatch: ValidationDispatch, received: 'Any',
                       expected: 'Any', message: str) -> None:
    """Report JSON differences."""
    with pytest.raises(ValidationFailed, match=message):
        dispatch.validate(
            Message(payload=received, message_type='json'),
            Message(payload=expected, message_type='json'),
        )


def test_context_message_type_overrides(dispatch: ValidationDispatch) -> None:
    """Select the validator by the type required in the context."""
    dispatch.validate(
        Message(payload='{"a": 1}'),
        Message(payload='{ "a" : 1 }'),
        ValidationContext(message_type='json'),
    )


def test_validator_returning_false(dispatch: ValidationDispatch) -> None:
    """Report a mismatch signalled by a false result."""
    with pytest.raises(ValidationFailed, match=r"payload mismatch reported by 'caseless'"):
        dispatch.validate(
            Message(payload='HELLO', message_type='caseless'),
            Message(payload='bye', message_type='caseless'),
        )

    dispatch.validate(
        Message(payload='HELLO', message_type='caseless'),
        Message(payload='hello', message_type='caseless'),
    )


def test_several_validation_contexts(dispatch: ValidationDispatch) -> None:
    """Run one validator per validation context and collect every difference."""
    received = Message(payload='{"a": 1}', headers={'h': 'x'})
    expected = Message(payload='{"a": 2}', headers={'h': 'v'})

    with pytest.raises(ValidationFailed) as error:
        dispatch.validate(received, expected, validation_contexts=(
            ValidationContext(message_type='json'),
            ValidationContext(validator='plaintext'),
        ))

    assert len(error.value.details) == 3  # noqa: PLR2004
    assert error.value.details[0].startswith("header 'h'")
    assert error.value.details[1].startswith("'json'")
    assert error.value.details[2].startswith("'plaintext'")


def test_refuse_optimized_mode() -> None:
    """Refuse to validate when assertions are stripped."""
    script = (
        'from pytest_courier.builtins.validators import plaintext\n'
        'from pytest_courier.errors import DSLRuntimeError\n'
        'from pytest_courier.messages import Message\n'
        'from pytest_courier.validation import ValidationDispatch\n'
        'try:\n'
        '    ValidationDispatch([plaintext]).validate(Message(payload="a"), Message(payload="b"))\n'
        'except DSLRuntimeError as error:\n'
        '    print(error.message)\n'
    )

    result = run([executable, '-O', '-c', script], capture_output=True, text=True, check=True)  # noqa: S603

    assert result.stdout.strip() == 'Message validation needs assertions, run without -O'
