"""Declarative DSL plugin definition.

This module defines the top-level declarative container used to describe
extensions provided by a pytest-courier plugin: actors, checkers,
message validators, endpoint types, expression functions and YAML
instructions.

The plugin model itself is purely declarative. It is consumed by the
plugin loader, which registers every provided extension.
"""

from pydantic import Field

from pytest_courier.models import SchemaModel
from pytest_courier.names import Variable  # noqa: TC001

from .actors import Actor
from .checkers import Checker
from .endpoints import EndpointFactory, EndpointType
from .functions import Function
from .instructions import Instruction
from .parameters import Attribute, Schema
from .validators import Validator, ValidatorRunner

__all__ = (
    'Actor',
    'Attribute',
    'Checker',
    'EndpointFactory',
    'EndpointType',
    'Function',
    'Instruction',
    'Plugin',
    'Schema',
    'Validator',
    'ValidatorRunner',
)


class Plugin(SchemaModel):
    """Declarative container for plugin extensions.

    A plugin is a namespace grouping the extensions of one module.
    Actor discriminators and function names are qualified with it, for
    example `jms.purge` and `jms:correlationId()`. Every element is
    optional.
    """

    name: Variable = Field(
        title='Plugin namespace',
        description='Logical namespace of the plugin, used for qualification and diagnostics.',
    )

    version: int = Field(
        default=1,
        title='DSL version',
        description='Version of the plugin contract, not of the plugin implementation.',
    )

    actors: list[Actor] = Field(
        default_factory=list,
        title='Actors',
        description='Plugin actions.',
    )

    checkers: list[Checker] = Field(
        default_factory=list,
        title='Checkers',
        description='Expectation checkers.',
    )

    validators: list[Validator] = Field(
        default_factory=list,
        title='Validators',
        description='Message validators, appended after the built-in ones.',
    )

    endpoints: list[EndpointType] = Field(
        default_factory=list,
        title='Endpoint types',
        description='Transport bindings usable in endpoint declarations.',
    )

    functions: list[Function] = Field(
        default_factory=list,
        title='Functions',
        description='Expression functions.',
    )

    instructions: list[Instruction] = Field(
        default_factory=list,
        title='Instructions',
        description='Custom YAML tags.',
    )
