"""Declarative YAML instruction (custom tag) definitions.

An instruction binds a tag name to a constructor converting a YAML node
into a value or a deferred lookup, for example `!var user.name`.
"""

from typing import Any, ClassVar, Literal

from pydantic import Field, create_model

from pytest_courier.models import SchemaModel
from pytest_courier.names import Variable  # noqa: TC001
from pytest_courier.schema import BaseInstruction, InstructionRunner


class Instruction(SchemaModel):
    """Declarative instruction definition."""

    name: Variable = Field(
        title='Instruction name',
        description='Name of the YAML tag, without the leading `!`.',
    )

    node_type: Literal['scalar', 'mapping'] = Field(
        default='scalar',
        title='Node type',
        description='Kind of YAML node the tag applies to.',
    )

    constructor: InstructionRunner = Field(
        title='YAML constructor',
        description='Callable constructing a runtime value from a YAML node.',
    )

    def build(self) -> type[BaseInstruction]:
        """Build the instruction model registered as a YAML constructor."""
        runner: tuple[Any, InstructionRunner] = (
            ClassVar[InstructionRunner],
            staticmethod(self.constructor),
        )

        return create_model(
            f'{self.name}_Instruction',
            __base__=BaseInstruction,
            runner=runner,
            node_type=(ClassVar[Literal['scalar', 'mapping']], self.node_type),
        )
