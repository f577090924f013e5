"""Message value objects.

A message is immutable once constructed: it is created by a send action
when composing a request, or by a transport adapter when an inbound
request arrives, and afterwards only read and compared. Headers and
structured payloads are stored as read-only copies, so a message shared
between concurrent branches can not be changed in place.
"""

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, NoReturn
from uuid import uuid4

from pydantic import AliasChoices, Field, field_validator

from pytest_courier.models import SchemaModel
from pytest_courier.values import Deferred, Value  # noqa: TC001

if TYPE_CHECKING:
    from collections.abc import Mapping

if TYPE_CHECKING:
    from pytest_courier.context import TestContext


def _immutable(self: Any, *args: Any, **kwargs: Any) -> NoReturn:  # noqa: ANN401, ARG001
    raise TypeError(f'{type(self).__name__} is immutable')


class FrozenDict(dict[str, Any]):
    """Read-only mapping of message headers and structured payloads."""

    __setitem__ = __delitem__ = __ior__ = _immutable
    clear = pop = popitem = setdefault = update = _immutable

    def __reduce__(self) -> tuple[type, tuple[dict[str, Any]]]:
        return type(self), (dict(self),)


class FrozenList(list[Any]):
    """Read-only sequence of structured payloads."""

    __setitem__ = __delitem__ = __iadd__ = __imul__ = _immutable
    append = extend = insert = pop = remove = clear = sort = reverse = _immutable

    def __reduce__(self) -> tuple[type, tuple[list[Any]]]:
        return type(self), (list(self),)


def freeze(value: Any) -> Any:  # noqa: ANN401
    """Recursively turn mappings and sequences into read-only copies."""
    if isinstance(value, (FrozenDict, FrozenList)):
        return value

    if isinstance(value, dict):
        return FrozenDict({key: freeze(item) for key, item in value.items()})

    if isinstance(value, (list, tuple)):
        return FrozenList(freeze(item) for item in value)

    return value


def thaw(value: Any) -> Any:  # noqa: ANN401
    """Recursively copy read-only containers into plain ones."""
    if isinstance(value, dict):
        return {key: thaw(item) for key, item in value.items()}

    if isinstance(value, list):
        return [thaw(item) for item in value]

    return value


class Message(SchemaModel):
    """Immutable message exchanged with endpoints."""

    payload: Any = Field(
        default=None,
        title='Payload',
        description='Message body: text, bytes or a structured value.',
    )

    headers: dict[str, Any] = Field(
        default_factory=dict,
        title='Headers',
        description='Message headers. Header names are unique.',
    )

    message_type: str = Field(
        default='plaintext',
        validation_alias=AliasChoices('message_type', 'type'),
        title='Message type',
        description='Declared type tag used to select a validator, for example `json`.',
    )

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        title='Message identifier',
    )

    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        title='Creation time',
    )

    @field_validator('payload', 'headers', mode='after')
    @classmethod
    def freeze_containers(cls, value: Any) -> Any:  # noqa: ANN401
        """Store headers and structured payloads as read-only copies."""
        return freeze(value)

    def header(self, name: str, default: Any = None) -> Any:  # noqa: ANN401
        """Return a header value or a default."""
        return self.headers.get(name, default)


class MessageTemplate(SchemaModel):
    """Declarative message definition of send and receive actions.

    All fields are deferred: they are resolved against the variable
    store and every string is rendered through the expression resolver
    when the message is built.
    """

    payload: Deferred[Value] = Field(
        default=None,
        validation_alias=AliasChoices('payload', 'body'),
        title='Payload',
        description='Message body. Strings are rendered through the expression resolver.',
        json_schema_extra={
            'x-aliases': ['body'],
        },
    )

    headers: dict[str, Deferred[Value]] = Field(
        default_factory=dict,
        title='Headers',
        description='Message headers. Values are rendered through the expression resolver.',
    )

    message_type: str = Field(
        default='plaintext',
        validation_alias=AliasChoices('message_type', 'type'),
        title='Message type',
        description='Declared type tag of the message.',
        json_schema_extra={
            'x-aliases': ['type'],
        },
    )

    def build(self, context: 'TestContext',
              locals_: 'Mapping[str, Value] | None' = None) -> Message:
        """Build a message.

        Args:
            context: Test context providing variables and the resolver.
            locals_: Action-local variables visible on top of the store.

        Returns:
            A new immutable message.
        """
        return Message(
            payload=context.render_value(self.payload, locals_),
            headers=context.render_value(self.headers, locals_),
            message_type=context.render(self.message_type, locals_),
        )
