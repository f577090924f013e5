"""Base check definitions for DSL expectations.

This module defines the base class for declarative value checks used in
expectations evaluated after an action completes.
"""

from collections.abc import Callable, Mapping
from typing import ClassVar

from pydantic import Field

from pytest_courier.context import ContextDict
from pytest_courier.errors import DSLRuntimeError
from pytest_courier.models import DescribedMixin, SchemaModel
from pytest_courier.values import Deferred, RuntimeValue, Value

#: The runner receives a resolved target value and a mapping of resolved
#: check parameters, and must return True if the check passes or False
#: otherwise.
type CheckRunner = Callable[[RuntimeValue, Mapping[str, RuntimeValue]], bool]


class BaseCheck(DescribedMixin, SchemaModel):
    """Base class for declarative value checks.

    Represents a check that validates a resolved value against a specific
    condition. The actual validation logic is provided by a class-level
    runner callable.
    """

    #: Callable implementing the check logic.
    runner: ClassVar[CheckRunner]

    value: Deferred[Value] = Field(
        title='Target value',
        description=(
            'Value to be validated by the check.\n'
            'The value is resolved against the action scope before '
            'the check is executed.'
        ),
        json_schema_extra={
            'x-ref': 'CheckTargetValue',
        },
    )

    def __call__(self, context: Mapping[str, Value]) -> bool:
        """Execute the check against the provided scope.

        Args:
            context: Variables visible to the check.

        Returns:
            True if the check passes, False otherwise.

        Raises:
            Any exception raised during value resolution or by the runner.
        """
        if not __debug__:
            raise DSLRuntimeError('Expectations need assertions, run without -O')

        locals_ = context if isinstance(context, ContextDict) else ContextDict(context)

        return type(self).runner(
            locals_.resolve(self.value),
            locals_.resolve(
                self.model_dump(exclude={
                    'value',
                }),
            ),
        )
