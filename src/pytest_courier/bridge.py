"""Bridge between an external command protocol and endpoints.

A transport server (for example an SSH server) receives a command with
its standard input. The bridge turns it into a JSON request message on
an inbound endpoint, where a test case receives and validates it, waits
for the reply message the test case sends to an outbound endpoint and
translates the reply back into an exit code with standard output and
standard error.

Every request carries a unique `courier_correlation` header. A reply
must carry the same header back; it is handed to the command awaiting
it, so concurrent commands get their own replies in any order.

Request payload:

    {"command": "cat -", "stdin": "Hello"}

Reply payload:

    {"exit": 0, "stdout": "Hello", "stderr": ""}
"""

import logging
from json import JSONDecodeError, loads
from threading import Lock
from time import monotonic
from typing import TYPE_CHECKING
from uuid import uuid4

from pydantic import Field, ValidationError

from pytest_courier.messages import Message, thaw
from pytest_courier.models import SchemaModel

if TYPE_CHECKING:
    from pytest_courier.endpoints import Endpoint

logger = logging.getLogger(__name__)

#: Message type of bridged requests and replies.
BRIDGE_MESSAGE_TYPE = 'json'

#: Header carrying the command of a bridged request.
COMMAND_HEADER = 'courier_command'

#: Header pairing a bridged request with its reply.
CORRELATION_HEADER = 'courier_correlation'

#: Exit code reported when no valid reply is produced.
FAILURE_EXIT_CODE = 1


class CommandRequest(SchemaModel):
    """External command request."""

    command: str = Field(
        title='Command',
        description='Command text as received by the transport server.',
    )

    stdin: str = Field(
        default='',
        title='Standard input',
    )


class CommandResponse(SchemaModel):
    """External command response."""

    exit: int = Field(
        default=0,
        title='Exit code',
    )

    stdout: str = Field(
        default='',
        title='Standard output',
    )

    stderr: str = Field(
        default='',
        title='Standard error',
    )

    @classmethod
    def failure(cls, message: str) -> 'CommandResponse':
        """Build a response reporting a bridge failure."""
        return cls(exit=FAILURE_EXIT_CODE, stderr=message)


class CommandBridge:
    """Translate commands into messages and replies into responses.

    A single bridge may serve several commands at once. One handler at
    a time reads the outbound endpoint and files every reply under its
    correlation header; each handler then picks its own reply.
    """

    def __init__(self, inbound: 'Endpoint', outbound: 'Endpoint', timeout: float = 5.0,
                 interval: float = 0.05) -> None:
        """Initialize the bridge.

        Args:
            inbound: Endpoint request messages are sent to.
            outbound: Endpoint reply messages are received from.
            timeout: Seconds to wait for a reply.
            interval: Longest single read of the outbound endpoint.
        """
        self.inbound = inbound
        self.outbound = outbound
        self.timeout = timeout
        self.interval = interval

        self._lock = Lock()
        self._reader = Lock()
        self._pending: set[str] = set()
        self._replies: dict[str, Message] = {}

    def handle(self, request: CommandRequest) -> CommandResponse:
        """Bridge a single command.

        A missing or malformed reply is reported as a failed command
        rather than raised, so the transport server can always answer.
        """
        correlation = uuid4().hex

        with self._lock:
            self._pending.add(correlation)

        try:
            self.inbound.send(self.to_message(request, correlation))
            logger.debug('Bridged command %r as %s', request.command, correlation)
            reply = self.await_reply(correlation)

        except TimeoutError:
            logger.warning('No reply for command %r within %ss', request.command, self.timeout)
            return CommandResponse.failure(f'No reply within {self.timeout}s')

        finally:
            with self._lock:
                self._pending.discard(correlation)
                self._replies.pop(correlation, None)

        try:
            return self.from_message(reply)
        except (ValidationError, JSONDecodeError, TypeError) as error:
            logger.warning('Invalid reply for command %r: %s', request.command, error)
            return CommandResponse.failure('Invalid reply message')

    def await_reply(self, correlation: str) -> Message:
        """Wait for the reply carrying a correlation.

        Raises:
            TimeoutError: If the reply does not arrive within the timeout.
        """
        deadline = monotonic() + self.timeout

        while True:
            with self._lock:
                if correlation in self._replies:
                    return self._replies.pop(correlation)

            remaining = deadline - monotonic()
            if remaining <= 0:
                raise TimeoutError(f'No reply for {correlation} within {self.timeout}s')

            if not self._reader.acquire(timeout=min(remaining, self.interval)):
                continue

            try:
                reply = self.outbound.receive(min(remaining, self.interval))
            except TimeoutError:
                continue
            finally:
                self._reader.release()

            self.file_reply(reply)

    def file_reply(self, reply: Message) -> None:
        """Keep a reply for the command awaiting it, dropping strays."""
        correlation = reply.headers.get(CORRELATION_HEADER)

        with self._lock:
            if correlation in self._pending:
                self._replies[correlation] = reply
                return

        logger.warning('Dropped reply without a pending command: %s=%r', CORRELATION_HEADER, correlation)

    @staticmethod
    def to_message(request: CommandRequest, correlation: str) -> Message:
        """Build the request message of a command."""
        return Message(
            payload=request.model_dump(),
            headers={
                COMMAND_HEADER: request.command,
                CORRELATION_HEADER: correlation,
            },
            message_type=BRIDGE_MESSAGE_TYPE,
        )

    @staticmethod
    def from_message(message: Message) -> CommandResponse:
        """Translate a reply message into a command response.

        Raises:
            ValidationError: If the payload does not match the response schema.
            JSONDecodeError: If a textual payload is not valid JSON.
        """
        payload = message.payload
        if isinstance(payload, (str, bytes)):
            payload = loads(payload)

        return CommandResponse.model_validate(thaw(payload))
