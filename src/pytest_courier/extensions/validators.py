"""Declarative message validator definitions.

A validator compares the payload of a received message with the payload
of an expected one, for the message types it declares support for.
"""

from collections.abc import Callable

from pydantic import Field

from pytest_courier.messages import Message
from pytest_courier.models import SchemaModel
from pytest_courier.names import Variable  # noqa: TC001
from pytest_courier.validation import ValidationContext

#: The runner receives the received message, the expected message and the
#: validation context. It returns False, or raises AssertionError, on mismatch.
type ValidatorRunner = Callable[[Message, Message, ValidationContext], bool | None]

#: Message type supported by every validator declaring it.
ANY_TYPE = '*'


class Validator(SchemaModel):
    """Declarative validator definition.

    Instances satisfy the `MessageValidator` protocol directly.
    """

    name: Variable = Field(
        title='Validator name',
        description='Name used to select the validator in case headers and receive actions.',
    )

    validator: ValidatorRunner = Field(
        title='Validator function',
        description='Callable comparing a received message with an expected one.',
    )

    message_types: list[str] = Field(
        min_length=1,
        title='Supported message types',
        description='Declared message types handled by the validator; `*` matches any type.',
    )

    def supports(self, message_type: str) -> bool:
        """Return whether the validator handles a message type."""
        return any(
            supported == ANY_TYPE or supported.lower() == message_type.lower()
            for supported in self.message_types
        )

    def validate(self, received: Message, expected: Message,
                 context: ValidationContext) -> bool | None:
        """Compare payloads."""
        return self.validator(received, expected, context)
