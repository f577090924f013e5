"""Message validation dispatch.

Selects, from an ordered set of registered validators, the first one
supporting the declared type of the expected message, compares headers
and delegates payload comparison to the selected validator.
"""

import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import AliasChoices, Field

from pytest_courier.errors import DSLRuntimeError, NoValidatorFound, ValidationFailed
from pytest_courier.models import SchemaModel

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

if TYPE_CHECKING:
    from pytest_courier.messages import Message

logger = logging.getLogger(__name__)


class ValidationContext(SchemaModel):
    """Per-receive validation configuration."""

    message_type: str | None = Field(
        default=None,
        validation_alias=AliasChoices('message_type', 'messageType', 'type'),
        title='Required message type',
        description=(
            'Declared type a validator must support. '
            'Defaults to the type of the expected message.'
        ),
    )

    validator: str | None = Field(
        default=None,
        title='Validator name',
        description='Restrict selection to the validator registered under this name.',
    )

    strict_headers: bool | None = Field(
        default=None,
        validation_alias=AliasChoices('strict_headers', 'strictHeaders'),
        title='Strict headers',
        description='Fail on unexpected received headers. Defaults to the test case setting.',
    )

    options: dict[str, Any] = Field(
        default_factory=dict,
        title='Validator options',
        description='Validator-specific expected-value data.',
    )


@runtime_checkable
class MessageValidator(Protocol):
    """Pluggable payload validator."""

    name: str

    def supports(self, message_type: str) -> bool:
        """Return whether the validator handles a declared message type."""
        ...  # pragma: no cover

    def validate(self, received: 'Message', expected: 'Message',
                 context: ValidationContext) -> bool | None:
        """Compare payloads.

        Returns:
            `False` on mismatch. Raising `AssertionError` also reports a
            mismatch, with its message used as the difference detail.
        """
        ...  # pragma: no cover


class ValidationDispatch:
    """Validator registry with first-match selection."""

    def __init__(self, validators: 'Iterable[MessageValidator]' = (), *,
                 strict_headers: bool = False) -> None:
        """Initialize the dispatch.

        Args:
            validators: Validators in registration (selection) order.
            strict_headers: Default strict-header mode.
        """
        self.validators = tuple(validators)
        self.strict_headers = strict_headers

    def select(self, message_type: str, name: str | None = None) -> MessageValidator:
        """Select the first validator supporting a message type.

        Raises:
            NoValidatorFound: If no registered validator matches.
        """
        for validator in self.validators:
            if name is not None and validator.name != name:
                continue
            if validator.supports(message_type):
                return validator

        raise NoValidatorFound(message_type)

    def validate(self, received: 'Message', expected: 'Message',
                 context: ValidationContext | None = None,
                 validation_contexts: 'Sequence[ValidationContext]' = ()) -> None:
        """Validate a received message against an expected one.

        Header comparison is exact on expected headers. Every validation
        context selects and runs one validator; without any context the
        expected message type drives a single selection.

        Raises:
            DSLRuntimeError: If assertions are disabled, since validators
                report mismatches with `assert`.
            NoValidatorFound: If no validator supports a required type.
            ValidationFailed: If headers or payload do not match.
        """
        if not __debug__:
            raise DSLRuntimeError('Message validation needs assertions, run without -O')

        if context is None:
            context = ValidationContext()

        contexts = tuple(validation_contexts) or (context,)

        strict = context.strict_headers
        if strict is None:
            strict = self.strict_headers

        details = self.compare_headers(received, expected, strict=strict)

        for item in contexts:
            message_type = item.message_type or expected.message_type
            validator = self.select(message_type, item.validator)
            logger.debug('Validating %s message with %r', message_type, validator.name)

            try:
                if validator.validate(received, expected, item) is False:
                    details.append(f'payload mismatch reported by {validator.name!r}')
            except AssertionError as error:
                details.append(f'{validator.name!r}: {error}' if str(error) else (
                    f'payload mismatch reported by {validator.name!r}'
                ))

        if details:
            raise ValidationFailed(details)

    @staticmethod
    def compare_headers(received: 'Message', expected: 'Message', *,
                        strict: bool = False) -> list[str]:
        """Compare headers, returning a list of differences.

        Expected values must equal received values, so `1` does not match
        the text `"1"`.
        """
        details = []

        for name, value in expected.headers.items():
            if name not in received.headers:
                details.append(f'header {name!r} is missing')
                continue

            actual = received.headers[name]
            if actual != value:
                details.append(f'header {name!r}: expected {value!r}, got {actual!r}')

        if strict:
            for name in sorted(received.headers.keys() - expected.headers.keys()):
                details.append(f'header {name!r} is not expected')

        return details
