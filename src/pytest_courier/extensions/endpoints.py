"""Declarative endpoint type definitions.

An endpoint type creates endpoints declared in case headers. Options
are validated against the declared parameter schema, rendered through
the expression resolver and passed to the factory together with the
test context the endpoint belongs to.
"""

from collections.abc import Callable, Mapping
from typing import Any

from pydantic import Field, ValidationError

from pytest_courier.context import TestContext
from pytest_courier.endpoints import Endpoint
from pytest_courier.errors import ActionFailed
from pytest_courier.models import SchemaModel
from pytest_courier.names import Variable  # noqa: TC001

from .parameters import ParametersMixin

#: The factory receives validated options and the owning test context.
type EndpointFactory = Callable[[Mapping[str, Any], TestContext], Endpoint]


class EndpointType(ParametersMixin, SchemaModel):
    """Declarative endpoint type definition."""

    name: Variable = Field(
        title='Endpoint type name',
        description='Name used as `type` of endpoint declarations.',
    )

    factory: EndpointFactory = Field(
        title='Endpoint factory',
        description='Callable creating an endpoint from options and a test context.',
    )

    def create(self, options: Mapping[str, Any], context: TestContext) -> Endpoint:
        """Create an endpoint.

        Raises:
            ActionFailed: If the options do not match the parameter schema.
        """
        model = self.parameters.build_model(f'{self.name}_Options')

        try:
            params = model.model_validate(dict(options))
        except ValidationError as base:
            raise ActionFailed(f'Invalid options for endpoint type {self.name!r}') from base

        return self.factory(context.render_value(params.model_dump()), context)
