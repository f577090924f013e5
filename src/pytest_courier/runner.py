"""Test case runner.

The runner drives the top-level action sequence of one test case
against its own test context:

    NotStarted -> Running -> Succeeded | Failed | Abandoned

Whatever the outcome, the runner waits for async branches spawned by
the case before concluding, so their follow-up sequences still run,
and tears the context down, reporting correlations left unresolved.
"""

import logging
from threading import Lock, Timer
from time import monotonic
from typing import TYPE_CHECKING, Any, Literal

from pydantic import Field

from pytest_courier.context import TestContext
from pytest_courier.endpoints import Endpoint
from pytest_courier.errors import Abandoned, ActionFailed, DSLRuntimeError
from pytest_courier.models import SchemaModel
from pytest_courier.records import ActionRecord  # noqa: TC001
from pytest_courier.settings import CourierSettings

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

if TYPE_CHECKING:
    from pytest_courier.schema import BaseAction
    from pytest_courier.validation import MessageValidator
    from pytest_courier.values import Deferred, RuntimeValue, Value

logger = logging.getLogger(__name__)

type RunState = Literal['not_started', 'running', 'succeeded', 'failed', 'abandoned']

#: Endpoint given to the runner: an endpoint, or a factory creating one
#: for the test context of the run.
type EndpointSource = Endpoint | Callable[[TestContext], Endpoint]

#: Seconds abandoned branches are given, together, to record their outcome.
ABANDON_TIMEOUT = 1.0


class TestResult(SchemaModel):
    """Terminal outcome of a test case run."""

    __test__ = False

    name: str = Field(
        title='Test case name',
    )

    state: RunState = Field(
        title='Terminal state',
    )

    error: DSLRuntimeError | None = Field(
        default=None,
        title='Terminating error',
        description='The error deciding the outcome: the first failure, or the abandon reason.',
    )

    errors: tuple[DSLRuntimeError, ...] = Field(
        default=(),
        title='All errors',
        description='Every failure reported during the run, in reporting order.',
    )

    log: tuple[ActionRecord, ...] = Field(
        default=(),
        title='Execution log',
    )

    variables: dict[str, Any] = Field(
        default_factory=dict,
        title='Final variables',
    )

    @property
    def succeeded(self) -> bool:
        """Whether the run succeeded."""
        return self.state == 'succeeded'


class TestRunner:
    """Run the actions of one test case against a dedicated context.

    Every collaborator (endpoints, validators, functions) is passed in
    explicitly; nothing is shared between runners.
    """

    __test__ = False

    def __init__(self, actions: 'Iterable[BaseAction]', *,  # noqa: PLR0913
                 settings: CourierSettings | None = None,
                 endpoints: 'Mapping[str, EndpointSource] | None' = None,
                 validators: 'Iterable[MessageValidator]' = (),
                 functions: 'Mapping[str, Callable[..., RuntimeValue]] | None' = None,
                 variables: 'Mapping[str, Deferred[Value]] | None' = None,
                 name: str = 'test case') -> None:
        """Initialize a runner.

        Args:
            actions: Top-level actions in execution order.
            settings: Engine settings. Defaults to settings from the environment.
            endpoints: Endpoints by name, or factories creating them.
            validators: Validators in selection order.
            functions: Expression functions by qualified name.
            variables: Initial variables, evaluated in declaration order.
            name: Name of the test case used in logs and results.
        """
        if settings is None:
            settings = CourierSettings()

        self.actions = tuple(actions)
        self.settings = settings
        self.name = name

        self.context = TestContext(
            settings=settings,
            validators=validators,
            functions=functions,
        )

        self._endpoints = dict(endpoints or {})
        self._variables = dict(variables or {})

        self._state: RunState = 'not_started'
        self._state_lock = Lock()
        self._timed_out = False

    @property
    def state(self) -> RunState:
        """Current state of the run."""
        with self._state_lock:
            return self._state

    def abort(self) -> None:
        """Stop the run from outside.

        Pending async branches are abandoned without running their
        follow-up sequences.
        """
        logger.warning('Test case %r abort requested', self.name)
        self.context.abort()

    def run(self) -> TestResult:
        """Run the test case.

        Returns:
            The terminal outcome with the execution log.

        Raises:
            RuntimeError: If the runner was already started.
        """
        with self._state_lock:
            if self._state != 'not_started':
                raise RuntimeError(f'Test case {self.name!r} can run only once')
            self._state = 'running'

        logger.info('Test case %r started', self.name)

        watchdog = self.arm_watchdog()
        errors: list[DSLRuntimeError] = []

        try:
            self.prepare()
            self.execute(errors)

        except DSLRuntimeError as error:
            errors.append(error)

        finally:
            self.conclude(errors)
            if watchdog is not None:
                watchdog.cancel()

        result = self.decide(errors)

        with self._state_lock:
            self._state = result.state

        logger.info('Test case %r %s', self.name, result.state)

        return result

    def arm_watchdog(self) -> Timer | None:
        """Start the timer aborting the run after the case timeout."""
        if self.settings.case_timeout is None:
            return None

        watchdog = Timer(self.settings.case_timeout, self.expire)
        watchdog.daemon = True
        watchdog.start()

        return watchdog

    def expire(self) -> None:
        """Abort the run on case timeout."""
        logger.warning('Test case %r timed out after %ss', self.name, self.settings.case_timeout)

        self._timed_out = True
        self.context.abort()

    def prepare(self) -> None:
        """Register endpoints and evaluate initial variables.

        Raises:
            ActionFailed: If an endpoint or a variable can not be prepared.
            ExpressionError: If a variable expression can not be evaluated.
        """
        for name, source in self._endpoints.items():
            try:
                endpoint = source if isinstance(source, Endpoint) else source(self.context)
            except DSLRuntimeError:
                raise
            except Exception as base:
                raise ActionFailed(f'Can not create endpoint {name!r}: {base!r}') from base

            self.context.add_endpoint(name, endpoint)

        values: dict[str, Value] = {}
        for name, value in self._variables.items():
            try:
                values[name] = self.context.render_value(value, values)
            except DSLRuntimeError:
                raise
            except Exception as base:
                raise ActionFailed(f'Can not evaluate variable {name!r}: {base!r}') from base

        self.context.variables.update(values)

    def execute(self, errors: list[DSLRuntimeError]) -> None:
        """Execute top-level actions, collecting failures.

        With fail-fast, the first failure stops the sequence; otherwise
        the remaining top-level actions still run. An abort always stops it.
        """
        for step_num, action in enumerate(self.actions):
            if self.context.aborted.is_set():
                return

            try:
                action.execute(self.context)

            except Abandoned as error:
                errors.append(error.locate(step_num))
                return

            except DSLRuntimeError as error:
                errors.append(error.locate(step_num))
                if self.settings.fail_fast:
                    return

    def conclude(self, errors: list[DSLRuntimeError]) -> None:
        """Wait for async branches and tear the context down."""
        if not self.context.join_branches(self.settings.poll_interval):
            deadline = monotonic() + ABANDON_TIMEOUT
            for thread in self.context.branches():
                thread.join(max(deadline - monotonic(), 0))

        errors.extend(self.context.failures())
        errors.extend(self.context.close())

    def decide(self, errors: list[DSLRuntimeError]) -> TestResult:
        """Decide the terminal state of the run."""
        error: DSLRuntimeError | None = None

        if self.context.aborted.is_set():
            state: RunState = 'abandoned'
            error = next((item for item in errors if isinstance(item, Abandoned)), None)
            if error is None:
                reason = (
                    f'timed out after {self.settings.case_timeout}s'
                    if self._timed_out
                    else 'aborted'
                )
                error = Abandoned(f'Test case {self.name!r} {reason}')
                errors.append(error)

        elif errors:
            state = 'failed'
            error = errors[0]

        else:
            state = 'succeeded'

        return TestResult(
            name=self.name,
            state=state,
            error=error,
            errors=tuple(errors),
            log=self.context.log.records,
            variables=self.context.variables.snapshot(),
        )
