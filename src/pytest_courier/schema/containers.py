"""Action containers controlling order and concurrency of child actions.

Containers are actions themselves. Their children are any step
documents, validated recursively with the step model of the parser that
builds the document. Local variables of a container are written into
the variable store before its children run, so the children can see
them.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from threading import current_thread
from time import perf_counter, time
from typing import TYPE_CHECKING, Annotated, Any, Literal

from pydantic import AfterValidator, Field, ValidationError, ValidationInfo

from pytest_courier.errors import Abandoned, DSLRuntimeError, ParallelFailed
from pytest_courier.names import Variable  # noqa: TC001

from .actions import BaseAction, run_actions

if TYPE_CHECKING:
    from pytest_courier.context import ContextDict, TestContext
    from pytest_courier.values import RuntimeValue

logger = logging.getLogger(__name__)

STEP_MODEL = 'step_model'


def validate_steps(value: list[Any], info: ValidationInfo) -> list[BaseAction]:
    """Validate child step documents with the step model in the validation context.

    Already built actions pass through unchanged.

    Raises:
        ValueError: If a child is not a valid step.
    """
    model = (info.context or {}).get(STEP_MODEL)

    steps = []
    for position, item in enumerate(value):
        if isinstance(item, BaseAction):
            steps.append(item)
            continue

        if model is None:
            raise ValueError('child steps can not be validated without a step model')

        try:
            steps.append(model.model_validate(item, context=info.context).root)
        except ValidationError as error:
            details = error.errors(include_url=False, include_input=False)
            location = '.'.join(str(key) for key in details[0]['loc'])
            raise ValueError(
                f'step {position + 1} is invalid: {details[0]['msg']} ({location})',
            ) from error

    return steps


#: Child steps of a container.
Steps = Annotated[list[Any], AfterValidator(validate_steps)]


def steps_field(title: str, description: str, *, required: bool = True) -> Any:  # noqa: ANN401
    """Build a field holding child steps."""
    if not required:
        return Field(
            default_factory=list,
            title=title,
            description=description,
            json_schema_extra={
                'items': {'$ref': '#'},
            },
        )

    return Field(
        title=title,
        description=description,
        json_schema_extra={
            'items': {'$ref': '#'},
        },
    )


class ContainerAction(BaseAction):
    """Base class for containers."""

    actions: Steps = steps_field(
        'Child actions',
        'Child steps executed by the container.',
    )

    def publish_context(self, context: 'TestContext') -> 'ContextDict':
        """Resolve local variables and write them into the store."""
        locals_ = self.resolve_context(context)
        if locals_:
            context.variables.update(locals_)

        return locals_

    def perform(self, context: 'TestContext') -> None:
        """Publish local variables, run children, then complete."""
        locals_ = self.publish_context(context)
        result = self.run(context, locals_)

        self.complete(context, locals_, result)


class SequentialContainer(ContainerAction):
    """Execute children strictly in order, stopping at the first failure."""

    spec: Literal['step'] = 'step'
    action: Literal['sequential'] = 'sequential'

    def run(self, context: 'TestContext', locals_: 'ContextDict') -> 'RuntimeValue':  # noqa: ARG002
        """Run every child in order."""
        run_actions(self.actions, context)

        return None


class ParallelContainer(ContainerAction):
    """Execute children concurrently and wait for every one of them.

    A failing child does not cancel its siblings. The container fails
    with the aggregate of every child error.
    """

    spec: Literal['step'] = 'step'
    action: Literal['parallel'] = 'parallel'

    def run(self, context: 'TestContext', locals_: 'ContextDict') -> 'RuntimeValue':  # noqa: ARG002
        """Run every child on its own thread."""
        if not self.actions:
            return None

        with ThreadPoolExecutor(
            max_workers=len(self.actions),
            thread_name_prefix=f'{current_thread().name}-parallel',
        ) as executor:
            futures = [
                executor.submit(step.execute, context)
                for step in self.actions
            ]

        errors = [
            error
            for future in futures
            if (error := future.exception()) is not None
        ]
        if not errors:
            return None

        failures = []
        for error in errors:
            if not isinstance(error, DSLRuntimeError):
                raise error
            failures.append(error)

        raise ParallelFailed(failures)


class IterateContainer(ContainerAction):
    """Execute children sequentially a number of times.

    The iteration index is written into the variable store before each
    iteration.
    """

    spec: Literal['step'] = 'step'
    action: Literal['iterate'] = 'iterate'

    index: Variable = Field(
        default='i',
        title='Index variable',
        description='Variable holding the current index.',
    )

    start: int = Field(
        default=1,
        title='Start index',
    )

    step: int = Field(
        default=1,
        title='Index step',
    )

    count: int = Field(
        ge=0,
        title='Iterations',
        description='Number of iterations.',
    )

    def run(self, context: 'TestContext', locals_: 'ContextDict') -> 'RuntimeValue':  # noqa: ARG002
        """Run the children once per index."""
        indexes = [self.start + self.step * number for number in range(self.count)]

        for index in indexes:
            context.variables.set(self.index, index)
            run_actions(self.actions, context)

        return indexes


class AsyncContainer(ContainerAction):
    """Run children on an independent thread and return immediately.

    When the branch reaches a terminal state, exactly one follow-up
    sequence runs: `success` if the branch completed without error,
    `error` otherwise. A branch failure is isolated to the branch; only a
    failure of the follow-up sequence fails the container, and it is
    reported to the runner when it happens.

    If the test case is aborted, the branch is abandoned without running
    any follow-up sequence.
    """

    spec: Literal['step'] = 'step'
    action: Literal['async'] = 'async'

    success: Steps = steps_field(
        'Success actions',
        'Steps executed after the branch completes without error.',
        required=False,
    )

    error: Steps = steps_field(
        'Error actions',
        'Steps executed after the branch fails.',
        required=False,
    )

    def execute(self, context: 'TestContext') -> None:
        """Schedule the branch without waiting for it.

        Raises:
            Abandoned: If the test case is aborted before scheduling.
            DSLRuntimeError: If local variables can not be resolved.
        """
        started, clock = time(), perf_counter()

        if context.aborted.is_set():
            error = Abandoned('Test case is aborted').bind(self, self.action_name)
            self.record(context, 'abandoned', started, clock, error)
            raise error

        try:
            self.publish_context(context)
        except DSLRuntimeError as error:
            error.bind(self, self.action_name)
            self.record(context, 'failed', started, clock, error)
            raise

        context.spawn(
            lambda: self.run_branch(context, started, clock),
            name=f'async-{self.action_name}',
        )

    def run_branch(self, context: 'TestContext', started: float, clock: float) -> None:
        """Run the branch and its follow-up sequence."""
        failure: DSLRuntimeError | None = None

        try:
            run_actions(self.actions, context)
        except DSLRuntimeError as error:
            failure = error

        if context.aborted.is_set():
            self.abandon(context, started, clock)
            return

        if failure is not None:
            logger.info('Async branch %r failed with %s, running error actions', self.action_name, failure.kind)

        try:
            run_actions(self.error if failure is not None else self.success, context)

        except Abandoned:
            self.abandon(context, started, clock)

        except DSLRuntimeError as error:
            error.bind(self, self.action_name)
            self.record(context, 'failed', started, clock, error)
            context.report_failure(error)

        else:
            self.record(context, 'succeeded', started, clock)

    def abandon(self, context: 'TestContext', started: float, clock: float) -> None:
        """Record the branch as abandoned."""
        logger.warning('Async branch %r abandoned', self.action_name)

        error = Abandoned('Async branch abandoned').bind(self, self.action_name)
        self.record(context, 'abandoned', started, clock, error)
