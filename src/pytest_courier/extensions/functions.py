"""Declarative expression function definitions.

Functions are called from expressions with a qualified name, for
example `courier:randomNumber(10)`. Arguments arrive rendered, as
strings; the result is converted to text where it is substituted.
"""

from collections.abc import Callable
from typing import Any

from pydantic import Field

from pytest_courier.models import SchemaModel
from pytest_courier.names import Variable  # noqa: TC001


class Function(SchemaModel):
    """Declarative expression function definition."""

    name: Variable = Field(
        title='Function name',
        description='Name of the function within the plugin namespace.',
    )

    function: Callable[..., Any] = Field(
        title='Function',
        description='Callable receiving rendered string arguments.',
    )

    def qualname(self, namespace: str) -> str:
        """Return the qualified name used in expressions."""
        return f'{namespace}:{self.name}'
