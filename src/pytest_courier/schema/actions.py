"""Base action definitions for the DSL.

An action is a single scenario step that performs an operation against
the shared test context, may produce a result, and may export values
into the variable store for subsequent steps.

Every action follows the same execution contract: it checks that the
test case is not aborted, runs, stores its result under the output
name, applies exports and expectations, and appends exactly one record
to the execution log. Failures are attributed to the action's name.
"""

import logging
from collections.abc import Callable, Mapping
from datetime import timedelta
from threading import current_thread
from time import monotonic, perf_counter, time
from typing import TYPE_CHECKING, Any, ClassVar, Literal, Self

from pydantic import AliasChoices, Field, RootModel, model_validator

from pytest_courier.context import ContextDict
from pytest_courier.errors import (
    Abandoned,
    ActionFailed,
    ActionTimeout,
    DSLRuntimeError,
    ExpectationFailed,
)
from pytest_courier.messages import MessageTemplate
from pytest_courier.models import DescribedMixin, SchemaModel
from pytest_courier.names import Action, Endpoint, Variable  # noqa: TC001
from pytest_courier.records import ActionRecord
from pytest_courier.validation import ValidationContext
from pytest_courier.values import Deferred, RuntimeValue, Value, normalize

from .checks import BaseCheck  # noqa: TC001
from .contexts import ContextMixin

if TYPE_CHECKING:
    from pytest_courier.context import TestContext
    from pytest_courier.endpoints import Endpoint as EndpointProtocol
    from pytest_courier.messages import Message
    from pytest_courier.records import Outcome

logger = logging.getLogger(__name__)

#: The runner receives resolved input parameters and returns a value
#: stored under the output variable of the action. The returned value
#: is not written into the variable store unless it is exported.
type ActionRunner = Callable[[Mapping[str, RuntimeValue]], RuntimeValue]

#: Fields describing the action itself rather than runner parameters.
INTERNAL_FIELDS = frozenset({
    'spec',
    'action',
    'context',
    'expect',
    'export',
})


def seconds(value: float | timedelta) -> float:
    """Convert a duration into seconds."""
    if isinstance(value, timedelta):
        return value.total_seconds()

    return float(value)


class BaseAction(ContextMixin, DescribedMixin, SchemaModel):
    """Base class for executable actions.

    Represents a concrete executable step. Plugin actions delegate to a
    class-level runner callable; built-in actions override `run`.
    Actions may declare expectations and export selected values into
    the variable store.
    """

    #: Internal specification marker. Always `step` for executable actions.
    spec: Literal['step'] = 'step'
    #: Action identifier resolved by the execution engine.
    action: Action

    #: Callable implementing the action logic.
    runner: ClassVar[ActionRunner]

    expect: list[RootModel[BaseCheck]] = Field(
        default_factory=list,
        title='Action expectations',
        description=(
            'List of checks that must pass after the action execution.\n'
            'Checks see the variable store, the local variables and the '
            'action result.'
        ),
    )

    output: Variable = Field(
        default='result',
        title='Result variable',
        description=(
            'Name of the variable under which the action result is '
            'visible to exports and expectations.'
        ),
        json_schema_extra={
            'x-ref': 'ActionOutput',
        },
    )

    export: dict[Variable, Deferred[Value]] = Field(
        default_factory=dict,
        title='Exported variables',
        description=(
            'Mapping of variable names to values derived from '
            'the action result.\n'
            'Exported variables are written into the variable store '
            'and become available to subsequent steps.'
        ),
        json_schema_extra={
            'x-ref': 'ActionExports',
        },
    )

    @property
    def action_name(self) -> str:
        """Display name of the action: its title or its discriminator."""
        return self.title or self.action

    def execute(self, context: 'TestContext') -> None:
        """Execute the action against a test context.

        Args:
            context: Shared test context.

        Raises:
            Abandoned: If the test case is aborted.
            DSLRuntimeError: If the action fails, attributed to this action.
        """
        started, clock = time(), perf_counter()

        if context.aborted.is_set():
            error = Abandoned('Test case is aborted').bind(self, self.action_name)
            self.record(context, 'abandoned', started, clock, error)
            raise error

        logger.info('Action %r started', self.action_name)

        try:
            self.perform(context)

        except DSLRuntimeError as error:
            error.bind(self, self.action_name)
            outcome: Outcome = 'abandoned' if isinstance(error, Abandoned) else 'failed'
            self.record(context, outcome, started, clock, error)
            raise

        except Exception as base:
            error = ActionFailed(f'{base!r}').bind(self, self.action_name)
            self.record(context, 'failed', started, clock, error)
            raise error from base

        self.record(context, 'succeeded', started, clock)

    def record(self, context: 'TestContext', outcome: 'Outcome',
               started: float, clock: float,
               error: DSLRuntimeError | None = None) -> None:
        """Append the execution record of this action."""
        duration = perf_counter() - clock

        context.log.append(ActionRecord(
            name=self.action_name,
            action=self.action,
            outcome=outcome,
            error=error.message if error else None,
            kind=error.kind if error else None,
            started=started,
            duration=duration,
            thread=current_thread().name,
        ))

        if error is None:
            logger.info('Action %r succeeded in %.3fs', self.action_name, duration)
        else:
            logger.info('Action %r %s: %s', self.action_name, outcome, error.kind)

    def perform(self, context: 'TestContext') -> None:
        """Run the action and complete it with exports and expectations."""
        locals_ = self.resolve_context(context)
        result = self.run(context, locals_)

        self.complete(context, locals_, result)

    def run(self, context: 'TestContext', locals_: ContextDict) -> RuntimeValue:
        """Invoke the runner with resolved and rendered parameters."""
        params = context.render_value(
            self.model_dump(exclude=set(INTERNAL_FIELDS)),
            locals_,
        )

        return type(self).runner(params)

    def complete(self, context: 'TestContext', locals_: ContextDict,
                 result: RuntimeValue) -> None:
        """Apply exports and evaluate expectations.

        Exports are written into the store only after every expectation
        holds.

        Raises:
            ExpectationFailed: If an expectation does not hold.
        """
        if not self.export and not self.expect:
            return

        scope = context.snapshot(locals_)
        scope[self.output] = normalize(result, scope)

        exports = context.expressions.render_value(scope.resolve(self.export), scope)
        scope.update(exports)

        for check_num, _check in enumerate(self.expect):
            check = _check.root
            try:
                passed = check(scope)
            except AssertionError:
                passed = False

            if passed is False:
                message = 'Expectation failed'
                if check.title:
                    message += f': {check.title}'
                raise ExpectationFailed(message).bind(
                    check,
                    self.action_name,
                    context=scope,
                    check_num=check_num,
                )

        context.variables.update(exports)


class ExtractDefinition(SchemaModel):
    """Values extracted from a message into variables."""

    headers: dict[Variable, str] = Field(
        default_factory=dict,
        title='Header extraction',
        description='Mapping of variable names to header names.',
    )

    payload: Variable | None = Field(
        default=None,
        title='Payload extraction',
        description='Variable receiving the message payload.',
    )

    def apply(self, message: 'Message') -> dict[str, Value]:
        """Extract values from a message.

        Raises:
            ActionFailed: If an extracted header is absent.
        """
        values: dict[str, Value] = {}

        for variable, header in self.headers.items():
            if header not in message.headers:
                raise ActionFailed(f'Header {header!r} is absent, can not extract {variable!r}')
            values[variable] = normalize(message.headers[header])

        if self.payload:
            values[self.payload] = normalize(message.payload)

        return values


class SendAction(BaseAction):
    """Compose a message and send it to an endpoint and/or a correlation.

    On the request side, a correlation key registers a pending waiter
    before the message leaves, so the reply can never race the
    registration. On the reply side, `replyTo` resolves a pending
    correlation with the composed message.
    """

    spec: Literal['step'] = 'step'
    action: Literal['send'] = 'send'

    endpoint: Endpoint | None = Field(
        default=None,
        title='Endpoint',
        description='Name of the endpoint the message is sent to.',
    )

    message: MessageTemplate = Field(
        default_factory=MessageTemplate,
        title='Message',
        description='Message to compose.',
    )

    correlation_key: Deferred[Value] | None = Field(
        default=None,
        validation_alias=AliasChoices('correlation_key', 'correlationKey'),
        title='Correlation key',
        description='Key of the correlation registered for the reply.',
        json_schema_extra={
            'x-aliases': ['correlationKey'],
        },
    )

    correlation_header: str | None = Field(
        default=None,
        validation_alias=AliasChoices('correlation_header', 'correlationHeader'),
        title='Correlation header',
        description='Outgoing header whose value becomes the correlation key.',
        json_schema_extra={
            'x-aliases': ['correlationHeader'],
        },
    )

    reply_to: Deferred[Value] | None = Field(
        default=None,
        validation_alias=AliasChoices('reply_to', 'replyTo'),
        title='Reply correlation key',
        description='Key of a pending correlation resolved with the composed message.',
        json_schema_extra={
            'x-aliases': ['replyTo'],
        },
    )

    extract: ExtractDefinition = Field(
        default_factory=ExtractDefinition,
        title='Extraction',
        description='Values of the sent message written into variables.',
    )

    @model_validator(mode='after')
    def check_target(self) -> Self:
        """Require a destination for the message.

        Raises:
            ValueError: If neither an endpoint nor a correlation is given.
        """
        if self.correlation_key is not None and self.correlation_header is not None:
            raise ValueError('correlationKey and correlationHeader are mutually exclusive')

        if self.endpoint or self.reply_to is not None:
            return self

        raise ValueError('send requires an endpoint or a replyTo correlation')

    def run(self, context: 'TestContext', locals_: ContextDict) -> RuntimeValue:
        """Send the composed message."""
        message = self.message.build(context, locals_)

        key = None
        if self.correlation_key is not None:
            key = context.expressions.stringify(context.render_value(self.correlation_key, locals_))
        elif self.correlation_header is not None:
            if self.correlation_header not in message.headers:
                raise ActionFailed(f'Correlation header {self.correlation_header!r} is absent')
            key = context.expressions.stringify(message.headers[self.correlation_header])

        if key is not None:
            context.correlations.register(key)

        if self.reply_to is not None:
            reply_key = context.expressions.stringify(context.render_value(self.reply_to, locals_))
            context.correlations.resolve(reply_key, message)

        if self.endpoint:
            context.get_endpoint(self.endpoint).send(message)

        context.variables.update(self.extract.apply(message))

        return {
            'message': message,
            'correlation': key,
        }


class ReceiveAction(BaseAction):
    """Receive a message from an endpoint or a correlation and validate it."""

    spec: Literal['step'] = 'step'
    action: Literal['receive'] = 'receive'

    endpoint: Endpoint | None = Field(
        default=None,
        title='Endpoint',
        description='Name of the endpoint polled for the message.',
    )

    correlation_key: Deferred[Value] | None = Field(
        default=None,
        validation_alias=AliasChoices('correlation_key', 'correlationKey'),
        title='Correlation key',
        description='Key of the correlation awaited for the message.',
        json_schema_extra={
            'x-aliases': ['correlationKey'],
        },
    )

    timeout: float | timedelta | None = Field(
        default=None,
        title='Timeout',
        description='Time in seconds to wait. Defaults to the receive timeout setting.',
    )

    message: MessageTemplate | None = Field(
        default=None,
        title='Expected message',
        description='Expected message. Validation is skipped when absent.',
    )

    validation: ValidationContext = Field(
        default_factory=ValidationContext,
        title='Validation context',
        description='Validator selection and validator-specific options.',
    )

    extract: ExtractDefinition = Field(
        default_factory=ExtractDefinition,
        title='Extraction',
        description='Values of the received message written into variables.',
    )

    @model_validator(mode='after')
    def check_source(self) -> Self:
        """Require exactly one message source.

        Raises:
            ValueError: If both or none of endpoint and correlation are given.
        """
        if bool(self.endpoint) == (self.correlation_key is not None):
            raise ValueError('receive requires either an endpoint or a correlationKey')

        return self

    def run(self, context: 'TestContext', locals_: ContextDict) -> RuntimeValue:
        """Receive, validate and extract."""
        timeout = context.settings.receive_timeout
        if self.timeout is not None:
            timeout = seconds(self.timeout)

        if self.correlation_key is not None:
            key = context.expressions.stringify(context.render_value(self.correlation_key, locals_))
            handle = context.correlations.acquire(key)
            received = context.correlations.wait(
                handle, timeout,
                interval=context.settings.poll_interval,
                aborted=context.aborted,
            )
        else:
            received = self.poll(context, context.get_endpoint(self.endpoint or ''), timeout)

        if self.message is not None:
            expected = self.message.build(context, locals_)
            context.validation.validate(received, expected, self.validation, (self.validation,))

        context.variables.update(self.extract.apply(received))

        return {
            'message': received,
        }

    def poll(self, context: 'TestContext', endpoint: 'EndpointProtocol', timeout: float) -> 'Message':
        """Poll an endpoint in slices so an abort is observed.

        Raises:
            ActionTimeout: If nothing arrives within the timeout.
            Abandoned: If the test case is aborted while polling.
        """
        deadline = monotonic() + timeout

        while True:
            if context.aborted.is_set():
                raise Abandoned(f'Receive from {self.endpoint!r} abandoned')

            remaining = deadline - monotonic()
            if remaining <= 0:
                raise ActionTimeout(
                    f'No message on endpoint {self.endpoint!r} within {timeout}s',
                    timeout=timeout,
                )

            try:
                return endpoint.receive(min(remaining, context.settings.poll_interval))
            except TimeoutError:
                continue


class WaitAction(BaseAction):
    """Sleep for a duration, waking early if the test case is aborted."""

    spec: Literal['step'] = 'step'
    action: Literal['wait'] = 'wait'

    duration: float | timedelta = Field(
        validation_alias=AliasChoices('duration', 'time'),
        title='Duration',
        description='Time in seconds (or a `!duration`) to wait.',
        json_schema_extra={
            'x-aliases': ['time'],
        },
    )

    def run(self, context: 'TestContext', locals_: ContextDict) -> RuntimeValue:  # noqa: ARG002
        """Wait on the abort event."""
        if context.aborted.wait(seconds(self.duration)):
            raise Abandoned('Wait interrupted by abort')

        return None


class CreateVariablesAction(BaseAction):
    """Render values and write them into the variable store."""

    spec: Literal['step'] = 'step'
    action: Literal['createVariables'] = 'createVariables'

    variables: dict[Variable, Deferred[Value]] = Field(
        min_length=1,
        title='Variables',
        description=(
            'Variables to create or overwrite, evaluated in declaration order. '
            'Function calls are evaluated once, at creation.'
        ),
    )

    def run(self, context: 'TestContext', locals_: ContextDict) -> RuntimeValue:
        """Create the variables."""
        values = ContextDict(locals_)
        created: dict[str, Value] = {}

        for name, value in self.variables.items():
            created[name] = values[name] = context.render_value(value, values)

        context.variables.update(created)

        return created


class StopTimeAction(BaseAction):
    """Time-line measurement.

    The first call for a time line starts it. Every later call stores the
    elapsed milliseconds since the start in the variable `<id><suffix>`.
    """

    spec: Literal['step'] = 'step'
    action: Literal['stopTime'] = 'stopTime'

    timeline: Variable = Field(
        default='timeline',
        validation_alias=AliasChoices('timeline', 'id'),
        title='Time line identifier',
        json_schema_extra={
            'x-aliases': ['id'],
        },
    )

    suffix: str = Field(
        default='',
        pattern=r'^\w*$',
        title='Variable suffix',
        description='Suffix appended to the identifier to name the result variable.',
    )

    def run(self, context: 'TestContext', locals_: ContextDict) -> RuntimeValue:  # noqa: ARG002
        """Start the time line or store the elapsed time."""
        now = monotonic()

        elapsed = 0
        if (start := context.start_timer(self.timeline, now)) is not None:
            elapsed = round((now - start) * 1000)

        context.variables.set(f'{self.timeline}{self.suffix}', elapsed)

        return elapsed


class FailAction(BaseAction):
    """Fail the test case with a rendered message."""

    spec: Literal['step'] = 'step'
    action: Literal['fail'] = 'fail'

    message: Deferred[Value] = Field(
        default='Test failed',
        title='Failure message',
    )

    def run(self, context: 'TestContext', locals_: ContextDict) -> RuntimeValue:
        """Raise the failure."""
        message = context.render_value(self.message, locals_)

        raise ActionFailed(context.expressions.stringify(message))


def run_actions(actions: 'list[Any]', context: 'TestContext') -> None:
    """Execute actions in order, stopping at the first failure.

    Raises:
        DSLRuntimeError: The first failure, with the child's position recorded.
    """
    for step_num, step in enumerate(actions):
        try:
            step.execute(context)
        except DSLRuntimeError as error:
            error.locate(step_num)
            raise
