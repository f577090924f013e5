"""Shared per-test-case execution state.

This module defines the variable store and the test context threaded
through every action of a test case. Branches of parallel and async
containers share one context; every mutable collection is guarded by
its own lock and there is no global lock around the context.
"""

import logging
from copy import deepcopy
from threading import Event, Lock, RLock, Thread
from typing import TYPE_CHECKING, Any, overload

from pytest_courier.correlation import CorrelationManager
from pytest_courier.endpoints import MessageQueues
from pytest_courier.errors import UnknownEndpoint
from pytest_courier.expressions import ExpressionResolver
from pytest_courier.records import ExecutionLog
from pytest_courier.settings import CourierSettings
from pytest_courier.validation import ValidationDispatch
from pytest_courier.values import Deferred, Value, normalize

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping, Sequence

if TYPE_CHECKING:
    from pytest_courier.endpoints import Endpoint
    from pytest_courier.errors import DSLRuntimeError
    from pytest_courier.validation import MessageValidator
    from pytest_courier.values import RuntimeValue

logger = logging.getLogger(__name__)


class ContextDict(dict[str, Value]):
    """Variables snapshot used to resolve deferred DSL values.

    The snapshot acts as a mapping of variable names to values. It
    provides a recursive resolver that evaluates callables and nested
    structures into fully resolved DSL values.

    Snapshots taken from a test context carry its expression resolver,
    so deferred expressions (`!expr`) can call registered functions.
    """

    #: Resolver used by deferred expressions, if bound.
    expressions: ExpressionResolver | None = None

    @overload
    def resolve[T: Value](self, value: 'Mapping[str, Deferred[T]]') -> 'Mapping[str, T]':
        ...  # pragma: no cover

    @overload
    def resolve[T: Value](self, value: 'Sequence[Deferred[T]]') -> 'Sequence[T]':
        ...  # pragma: no cover

    @overload
    def resolve[T: Value](self, value: Deferred[T]) -> T | None:
        ...  # pragma: no cover

    def resolve(self, value: Any) -> Any:
        """Resolve a deferred value into a fully evaluated value.

        Args:
            value: A deferred value to resolve.

        Returns:
            A fully resolved DSL value or `None`.

        Raises:
            Any exception raised by deferred callables.
        """
        return normalize(value, self)


class VariableStore:
    """Thread-safe variable store with last-writer-wins semantics."""

    def __init__(self, values: 'Mapping[str, Value] | None' = None) -> None:
        self._values: dict[str, Value] = dict(values or {})
        self._lock = RLock()

    def get(self, name: str, default: Value = None) -> Value:
        """Return a variable value or a default."""
        with self._lock:
            return self._values.get(name, default)

    def set(self, name: str, value: Value) -> None:
        """Create or overwrite a variable."""
        with self._lock:
            self._values[name] = value

    def update(self, values: 'Mapping[str, Value]') -> None:
        """Create or overwrite several variables atomically."""
        with self._lock:
            self._values.update(values)

    def snapshot(self) -> ContextDict:
        """Return a deep copy of the current variables."""
        with self._lock:
            return ContextDict(deepcopy(self._values))

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._values

    def __getitem__(self, name: str) -> Value:
        with self._lock:
            return self._values[name]


class TestContext:
    """Mutable state owned by a single test case execution.

    Holds the variable store, the endpoint registry, pending
    correlations, validator dispatch and the execution log. Async
    branches spawned by containers are tracked here so the runner can
    join them before concluding.
    """

    __test__ = False

    def __init__(self, *,
                 settings: CourierSettings | None = None,
                 variables: 'Mapping[str, Value] | None' = None,
                 endpoints: 'Mapping[str, Endpoint] | None' = None,
                 validators: 'Iterable[MessageValidator]' = (),
                 functions: 'Mapping[str, Callable[..., RuntimeValue]] | None' = None) -> None:
        """Initialize a test context.

        Args:
            settings: Engine settings. Defaults to settings from the environment.
            variables: Initial variables.
            endpoints: Named endpoints available to actions.
            validators: Validators in selection order.
            functions: Expression functions by qualified name.
        """
        if settings is None:
            settings = CourierSettings()

        self.settings = settings
        self.variables = VariableStore(variables)

        self._endpoints: dict[str, Endpoint] = dict(endpoints or {})
        self._endpoints_lock = Lock()

        self.queues = MessageQueues()
        self.correlations = CorrelationManager(settings.correlation_grace_period)
        self.validation = ValidationDispatch(validators, strict_headers=settings.strict_headers)
        self.expressions = ExpressionResolver(functions, max_depth=settings.max_expression_depth)
        self.log = ExecutionLog()

        self.aborted = Event()

        self._branches: list[Thread] = []
        self._branches_lock = Lock()

        self._timers: dict[str, float] = {}
        self._timers_lock = Lock()

        self._failures: list[DSLRuntimeError] = []
        self._failures_lock = Lock()

    def get_endpoint(self, name: str) -> 'Endpoint':
        """Return a registered endpoint.

        Raises:
            UnknownEndpoint: If no endpoint is registered under the name.
        """
        with self._endpoints_lock:
            endpoint = self._endpoints.get(name)

        if endpoint is None:
            raise UnknownEndpoint(f'Endpoint {name!r} is not registered')

        return endpoint

    def add_endpoint(self, name: str, endpoint: 'Endpoint') -> None:
        """Register or replace an endpoint."""
        with self._endpoints_lock:
            self._endpoints[name] = endpoint

    @property
    def endpoints(self) -> dict[str, 'Endpoint']:
        """Snapshot of the endpoint registry."""
        with self._endpoints_lock:
            return dict(self._endpoints)

    def snapshot(self, locals_: 'Mapping[str, Value] | None' = None) -> ContextDict:
        """Return the variables visible to an action.

        Action-local variables shadow the store.
        """
        values = self.variables.snapshot()
        if locals_:
            values.update(locals_)

        values.expressions = self.expressions

        return values

    def render(self, template: str, locals_: 'Mapping[str, Value] | None' = None) -> str:
        """Render a template against the visible variables."""
        return self.expressions.render(template, self.snapshot(locals_))

    def render_value(self, value: 'Deferred[Value]',
                     locals_: 'Mapping[str, Value] | None' = None) -> Value:
        """Resolve a deferred value and render every string inside it."""
        values = self.snapshot(locals_)

        return self.expressions.render_value(values.resolve(value), values)

    def start_timer(self, name: str, now: float) -> float | None:
        """Start a named timer, returning its start if already running."""
        with self._timers_lock:
            if name in self._timers:
                return self._timers[name]
            self._timers[name] = now
            return None

    def spawn(self, target: 'Callable[[], None]', name: str) -> Thread:
        """Start a daemon branch thread tracked for joining."""
        thread = Thread(target=target, name=name, daemon=True)
        with self._branches_lock:
            self._branches.append(thread)
        thread.start()

        logger.debug('Spawned branch %r', name)

        return thread

    def branches(self) -> tuple[Thread, ...]:
        """Snapshot of spawned branch threads."""
        with self._branches_lock:
            return tuple(self._branches)

    def join_branches(self, interval: float | None = None) -> bool:
        """Wait for every spawned branch, including branches spawned meanwhile.

        Args:
            interval: Slice in seconds used to observe an abort.

        Returns:
            `True` if every branch finished, `False` if the test case
            was aborted while waiting.
        """
        while True:
            alive = [thread for thread in self.branches() if thread.is_alive()]
            if not alive:
                return True
            for thread in alive:
                while thread.is_alive():
                    if self.aborted.is_set():
                        return False
                    thread.join(interval)

    def report_failure(self, error: 'DSLRuntimeError') -> None:
        """Record a failure of an action that completes asynchronously."""
        with self._failures_lock:
            self._failures.append(error)

    def failures(self) -> tuple['DSLRuntimeError', ...]:
        """Failures reported by asynchronously completed actions."""
        with self._failures_lock:
            return tuple(self._failures)

    def abort(self) -> None:
        """Mark the test case as aborted."""
        if not self.aborted.is_set():
            logger.warning('Test case aborted')
        self.aborted.set()

    def close(self) -> list['DSLRuntimeError']:
        """Tear the context down.

        Returns:
            Errors for correlations left unresolved or unclaimed.
        """
        return list(self.correlations.close())
