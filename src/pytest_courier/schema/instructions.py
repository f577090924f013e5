"""Base instruction model for YAML compilation.

This module defines the base class used to represent compiled YAML
instructions (custom tags) registered as PyYAML constructors.
"""

from collections.abc import Callable
from typing import ClassVar, Literal

from yaml import BaseLoader
from yaml.nodes import Node

from pytest_courier.models import SchemaModel
from pytest_courier.values import Deferred, RuntimeValue

#: The runner is invoked by the YAML loader during parsing and converts
#: a YAML node into a runtime value or a deferred lookup.
type InstructionRunner = Callable[[BaseLoader, Node], Deferred[RuntimeValue]]


class BaseInstruction(SchemaModel):
    """Base class for a compiled YAML instruction.

    Instances are registered as PyYAML constructors. The conversion
    logic is provided by a class-level `runner` callable.
    """

    #: Callable implementing the instruction logic.
    runner: ClassVar[InstructionRunner]

    #: Kind of YAML node the instruction accepts.
    node_type: ClassVar[Literal['scalar', 'mapping']] = 'scalar'

    def __call__(self, loader: BaseLoader, node: Node) -> Deferred[RuntimeValue]:
        """Invoke the instruction runner for a YAML node."""
        return type(self).runner(loader, node)
