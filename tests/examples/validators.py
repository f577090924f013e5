"""Examples of Validator definitions."""

from typing import TYPE_CHECKING

from pytest_courier.extensions import Validator

if TYPE_CHECKING:
    from pytest_courier.messages import Message
    from pytest_courier.validation import ValidationContext


def compare_caseless(received: 'Message', expected: 'Message',
                     context: 'ValidationContext') -> bool:  # noqa: ARG001
    """Compare textual payloads ignoring case."""
    return str(received.payload).casefold() == str(expected.payload).casefold()


caseless = Validator(
    name='caseless',
    validator=compare_caseless,
    message_types=['caseless'],
)
