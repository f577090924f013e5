"""Declarative action definitions compiled into action models.

An actor describes a plugin action: its discriminator name, the callable
implementing it and the parameters it accepts. Actors are compiled into
Pydantic models derived from `BaseAction`; the engine executes those
models, while the actor callable only sees resolved parameters.
"""

from typing import Any, ClassVar, Literal

from pydantic import Field, create_model

from pytest_courier.models import SchemaModel
from pytest_courier.names import Variable  # noqa: TC001
from pytest_courier.schema import ActionRunner, BaseAction

from .parameters import ParametersMixin


class Actor(ParametersMixin, SchemaModel):
    """Declarative plugin action definition.

    String parameters are rendered through the expression resolver
    before the actor callable is invoked.
    """

    actor: ActionRunner = Field(
        title='Actor function',
        description=(
            'Callable implementing the action.\n'
            'Receives a mapping of resolved parameters and returns '
            'the action result.'
        ),
    )

    name: Variable = Field(
        title='Action discriminator name',
        description=(
            'Value of the `action` discriminator, prefixed with the '
            'plugin namespace for plugin actors.'
        ),
    )

    def build_action_field(self, namespace: str | None = None) -> Any:  # noqa: ANN401
        """Build the `action` discriminator type."""
        if namespace:
            return Literal[f'{namespace}.{self.name}']

        return Literal[self.name]

    def build_runner(self) -> tuple[Any, ActionRunner]:
        """Build the class-level runner definition."""
        return ClassVar[ActionRunner], staticmethod(self.actor)

    def build_fields(self, namespace: str | None = None) -> dict[str, Any]:
        """Build field definitions of the generated action model.

        Raises:
            ValueError: If parameters shadow built-in fields or each other.
        """
        return {
            'action': self.build_action_field(namespace),
            'runner': self.build_runner(),
            **self.parameters.build(exclude={
                *BaseAction.model_fields.keys(),
                'action_name',
                'runner',
                'vars',
            }),
        }

    def build(self, namespace: str | None = None) -> type[BaseAction]:
        """Build the action model.

        Raises:
            ValueError: If parameters shadow built-in fields or each other.
        """
        return create_model(f'{self.name}_Action', __base__=BaseAction, **self.build_fields(namespace))
