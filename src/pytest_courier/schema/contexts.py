"""Base context operation definitions.

This module defines the mixin for declarative context-processing
operations used in the DSL, such as definition of local variables.
"""

from typing import TYPE_CHECKING

from pydantic import Field

from pytest_courier.context import ContextDict
from pytest_courier.models import SchemaModel
from pytest_courier.names import Variable  # noqa: TC001
from pytest_courier.values import Deferred, Value  # noqa: TC001

if TYPE_CHECKING:
    from pytest_courier.context import TestContext


class ContextMixin(SchemaModel):
    """Mixin providing local execution context variables.

    Adds a declarative mapping of local variables resolved against the
    variable store. Variables are evaluated in declaration order, so a
    later variable may reference an earlier one.

    The mixin does not define how the variables are applied; leaf
    actions keep them local, containers publish them to the store.
    """

    context: dict[Variable, Deferred[Value]] = Field(
        default_factory=dict,
        validation_alias='vars',
        title='Local context',
        description=(
            'Local variables provided to the block. '
            'Strings are rendered through the expression resolver.'
        ),
        json_schema_extra={
            'x-ref': 'ContextVariables',
        },
    )

    def resolve_context(self, context: 'TestContext') -> ContextDict:
        """Resolve local variables against the test context.

        The returned mapping contains only the local variables and does
        not modify the variable store.

        Args:
            context: Current test context.

        Returns:
            A new mapping with resolved local variables.

        Raises:
            Any exception raised during deferred value resolution.
        """
        locals_ = ContextDict()

        for name, value in self.context.items():
            locals_[name] = context.render_value(value, locals_)

        return locals_
