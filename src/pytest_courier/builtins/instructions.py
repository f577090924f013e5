"""Built-in YAML instructions.

Each instruction is a PyYAML constructor. Lookup instructions produce
deferred objects evaluated later against the variable store; value
instructions (durations, file contents) are converted while loading.
"""

from datetime import timedelta
from pathlib import Path
from re import compile as regexp
from typing import TYPE_CHECKING

from yaml.error import MarkedYAMLError

from pytest_courier.builtins.lookups import ExpressionLookup, SecretLookup, VariableLookup
from pytest_courier.errors import DSLError, DSLRuntimeError, DSLSchemaError
from pytest_courier.extensions import Instruction

if TYPE_CHECKING:
    from collections.abc import Callable

    from yaml import BaseLoader
    from yaml.nodes import ScalarNode

    from pytest_courier.values import RuntimeValue

#: Duration is a number followed by a unit, for example `1.5s` or `2m`.
_DURATION_PATTERN = regexp(r'^(?P<value>-?\d+(\.\d+)?)\s*(?P<unit>ms|[wdhms])$')

_DURATION_UNITS = {
    'w': 604_800,
    'd': 86_400,
    'h': 3_600,
    'm': 60,
    's': 1,
    'ms': 0.001,
}


def _construct(loader: 'BaseLoader', node: 'ScalarNode', message: str,
               build: 'Callable[[str], RuntimeValue]') -> 'RuntimeValue':
    """Construct a value from a scalar node.

    Raises:
        DSLSchemaError: If the node is malformed or the value is invalid.
        DSLError: Errors raised by `build` are propagated as they are.
    """
    try:
        return build(loader.construct_scalar(node))

    except MarkedYAMLError as base:
        raise DSLSchemaError.from_yaml_error(base) from base

    except DSLError:
        raise

    except Exception as base:
        raise DSLSchemaError.from_yaml_node(message, node) from base


def variable_constructor(loader: 'BaseLoader', node: 'ScalarNode') -> VariableLookup:
    """Construct a tolerant variable lookup for `!var path`."""
    return _construct(loader, node, 'Invalid variable path', VariableLookup)


def secret_constructor(loader: 'BaseLoader', node: 'ScalarNode') -> SecretLookup:
    """Construct a secret lookup for `!secret path`."""
    return _construct(loader, node, 'Invalid secret variable path', SecretLookup)


def expression_constructor(loader: 'BaseLoader', node: 'ScalarNode') -> ExpressionLookup:
    """Construct a deferred expression for `!expr template`.

    The template is evaluated when the owning action runs, so it sees
    the variables and functions available at that moment.
    """
    return _construct(loader, node, 'Invalid expression', ExpressionLookup)


def _parse_timedelta(value: str) -> timedelta:
    return timedelta(seconds=float(value))


def _parse_duration(value: str) -> timedelta:
    match = _DURATION_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f'invalid duration {value!r}')

    return timedelta(seconds=float(match.group('value')) * _DURATION_UNITS[match.group('unit')])


def timedelta_constructor(loader: 'BaseLoader', node: 'ScalarNode') -> timedelta:
    """YAML constructor for durations expressed in seconds."""
    return _construct(loader, node, 'Invalid timedelta format', _parse_timedelta)


def duration_constructor(loader: 'BaseLoader', node: 'ScalarNode') -> timedelta:
    """YAML constructor for durations with a unit.

    Supported units are `w`, `d`, `h`, `m`, `s` and `ms`.

    Raises:
        DSLSchemaError: If the value can not be parsed.
    """
    return _construct(loader, node, 'Invalid duration value', _parse_duration)


def text_file_constructor(loader: 'BaseLoader', node: 'ScalarNode') -> str:
    """YAML constructor for loading text file contents.

    Relative paths are resolved against the working directory.

    Raises:
        DSLSchemaError: If the value is not a valid scalar.
        DSLRuntimeError: If the file does not exist or can not be read.
    """
    def _read(value: str) -> str:
        path = Path(value)
        if not path.is_file():
            raise DSLRuntimeError.from_yaml_node('File not found', node)

        try:
            return path.read_text()
        except OSError as base:
            raise DSLRuntimeError.from_yaml_node('Invalid text IO', node) from base

    return _construct(loader, node, 'Invalid file path', _read)


#: Instruction for `!var <path>` (path in dot notation).
variable = Instruction(name='var', constructor=variable_constructor)

#: Instruction for `!secret <path>` (path in dot notation).
secret = Instruction(name='secret', constructor=secret_constructor)

#: Instruction for `!expr <template>`.
expression = Instruction(name='expr', constructor=expression_constructor)

#: Instruction for `!timedelta <seconds>`.
timedelta_ = Instruction(name='timedelta', constructor=timedelta_constructor)

#: Instruction for `!duration <value><unit>`.
duration = Instruction(name='duration', constructor=duration_constructor)

#: Instruction for `!textFile <path>` (file must exist).
text_file = Instruction(name='textFile', constructor=text_file_constructor)
