"""Declarative DSL base-schema for executable test cases.

Defines immutable Pydantic models that describe case headers, leaf
actions, containers, checks and instructions. The models carry their own
execution contract and are composed into a document model by the parser.
"""

from .actions import (
    ActionRunner,
    BaseAction,
    CreateVariablesAction,
    FailAction,
    ReceiveAction,
    SendAction,
    StopTimeAction,
    WaitAction,
)
from .cases import Case, EndpointDefinition, Parameter
from .checks import BaseCheck, CheckRunner
from .containers import AsyncContainer, ContainerAction, IterateContainer, ParallelContainer, SequentialContainer
from .instructions import BaseInstruction, InstructionRunner

#: Built-in leaf actions implemented by the engine.
LEAF_ACTIONS: tuple[type[BaseAction], ...] = (
    SendAction,
    ReceiveAction,
    WaitAction,
    CreateVariablesAction,
    StopTimeAction,
    FailAction,
)

#: Built-in containers.
CONTAINERS: tuple[type[ContainerAction], ...] = (
    SequentialContainer,
    ParallelContainer,
    AsyncContainer,
    IterateContainer,
)

__all__ = (
    'CONTAINERS',
    'LEAF_ACTIONS',
    'ActionRunner',
    'AsyncContainer',
    'BaseAction',
    'BaseCheck',
    'BaseInstruction',
    'Case',
    'CheckRunner',
    'ContainerAction',
    'CreateVariablesAction',
    'EndpointDefinition',
    'FailAction',
    'InstructionRunner',
    'IterateContainer',
    'ParallelContainer',
    'Parameter',
    'ReceiveAction',
    'SendAction',
    'SequentialContainer',
    'StopTimeAction',
    'WaitAction',
)
