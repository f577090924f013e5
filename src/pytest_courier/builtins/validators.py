"""Built-in message validators.

Validators are selected by the declared type of the expected message in
registration order: `plaintext` first, then `json`. Plugins append
their validators after these.
"""

# ruff: noqa: S101

from json import JSONDecodeError, loads
from re import sub
from typing import TYPE_CHECKING

from pytest_courier.builtins.checkers import exact_match, partial_match
from pytest_courier.extensions import Validator
from pytest_courier.messages import thaw

if TYPE_CHECKING:
    from pytest_courier.messages import Message
    from pytest_courier.validation import ValidationContext
    from pytest_courier.values import RuntimeValue


def _text(payload: 'RuntimeValue') -> str:
    """Convert a payload into text."""
    if payload is None:
        return ''

    if isinstance(payload, bytes):
        return payload.decode('utf-8', errors='replace')

    return str(payload)


def _plaintext(received: 'Message', expected: 'Message', context: 'ValidationContext') -> bool:
    """Compare payloads as text.

    Surrounding whitespace is ignored. With the `ignoreWhitespace`
    option, every run of whitespace is collapsed before comparison.
    """
    actual, wanted = _text(received.payload).strip(), _text(expected.payload).strip()

    if context.options.get('ignoreWhitespace', False):
        actual, wanted = sub(r'\s+', ' ', actual), sub(r'\s+', ' ', wanted)

    assert actual == wanted, f'text {actual!r} does not match {wanted!r}'

    return True


def _load(payload: 'RuntimeValue', side: str) -> 'RuntimeValue':
    """Parse a JSON payload, passing structured values through."""
    if not isinstance(payload, (str, bytes)):
        return thaw(payload)

    try:
        return loads(payload)
    except JSONDecodeError as error:
        raise AssertionError(f'{side} payload is not valid JSON: {error.msg}') from error


def _json(received: 'Message', expected: 'Message', context: 'ValidationContext') -> bool:
    """Compare payloads as JSON documents.

    Payloads are compared strictly, or recursively ignoring extra
    received content with the `partial` option.
    """
    actual = _load(received.payload, 'received')
    wanted = _load(expected.payload, 'expected')

    if context.options.get('partial', False):
        return partial_match(actual, wanted)

    return exact_match(actual, wanted)


plaintext = Validator(
    name='plaintext',
    validator=_plaintext,
    message_types=['plaintext', 'text'],
)

json_ = Validator(
    name='json',
    validator=_json,
    message_types=['json', 'application/json'],
)
