"""Declarative checker definitions compiled into check models.

A checker describes a reusable expectation. Its discriminator field
both identifies the check and holds the expected value, for example
`match: 200` or `regex: ^OK`.
"""

from typing import Any, ClassVar

from pydantic import Field, create_model

from pytest_courier.models import SchemaModel
from pytest_courier.names import Variable  # noqa: TC001
from pytest_courier.schema import BaseCheck, CheckRunner

from .parameters import Attribute, ParametersMixin


class Checker(ParametersMixin, SchemaModel):
    """Declarative checker definition."""

    checker: CheckRunner = Field(
        title='Checker function',
        description=(
            'Callable implementing the check. Receives the checked value '
            'and the resolved parameters, returns whether the check passes.'
        ),
    )

    name: Variable = Field(
        title='Discriminator field name',
        description='Name of the field identifying the check and holding the expected value.',
    )

    field: Attribute = Field(
        title='Discriminator field schema',
        description='Schema of the discriminator field.',
    )

    def build_runner(self) -> tuple[Any, CheckRunner]:
        """Build the class-level runner definition."""
        return ClassVar[CheckRunner], staticmethod(self.checker)

    def build_fields(self) -> dict[str, Any]:
        """Build field definitions of the generated check model.

        Raises:
            ValueError: If attribute names or aliases are not unique.
        """
        return {
            self.name: self.field.build(field_name=self.name),
            'runner': self.build_runner(),
            **self.parameters.build(exclude={
                *BaseCheck.model_fields.keys(),
                self.name,
                'runner',
            }),
        }

    def build(self) -> type[BaseCheck]:
        """Build the check model.

        Raises:
            ValueError: If attribute names or aliases are not unique.
        """
        return create_model(f'{self.name}_Check', __base__=BaseCheck, **self.build_fields())
