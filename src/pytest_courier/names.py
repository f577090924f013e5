"""DSL names primitive types and validation rules.

Identifiers for actions, variables and endpoints share one base pattern:
they must start with a letter and may contain letters, digits, or
underscores. Actions may additionally be qualified with a plugin namespace.
"""

from re import ASCII
from re import compile as regexp
from typing import Annotated

from pydantic import Field

#: Base pattern for all DSL identifiers.
_NAME_PATTERN = r'[a-zA-Z][\w]*'

#: Compiled pattern for action identifiers.
#: Supports both builtin actions ("send") and plugin-qualified actions ("jms.purge").
ACTION_PATTERN = regexp(
    rf'^((?P<plugin>{_NAME_PATTERN})\.)?(?P<name>{_NAME_PATTERN})$',
    flags=ASCII,
)

#: Compiled pattern for variable identifiers.
VARIABLE_PATTERN = regexp(
    rf'^(?P<name>{_NAME_PATTERN})$',
    flags=ASCII,
)

#: Compiled pattern for qualified function calls inside expressions,
#: for example `courier:randomNumber(`.
FUNCTION_PATTERN = regexp(
    rf'(?<![\w.])(?P<namespace>{_NAME_PATTERN}):(?P<name>{_NAME_PATTERN})\(',
    flags=ASCII,
)


Action = Annotated[
    str, Field(
        pattern=rf'^({_NAME_PATTERN}\.)?{_NAME_PATTERN}$',
        title='Action identifier',
        description=(
            'Name of the action executed by a test step. '
            'An action may be specified either as a builtin name '
            '(for example, `send`) or as a plugin-qualified name '
            'using dot notation (for example, `jms.purge`).'
        ),
        examples=[
            'send',
            'receive',
            'jms.purge',
        ],
    ),
]

Variable = Annotated[
    str, Field(
        pattern=rf'^{_NAME_PATTERN}$',
        title='Variable identifier',
        description=(
            'Name of a variable used to store or reference values within '
            'the test context. '
            'Variable identifiers must start with a letter and may contain '
            'letters, digits, or underscores.'
        ),
        examples=[
            'correlationId',
            'user',
            'result',
        ],
    ),
]

Endpoint = Annotated[
    str, Field(
        pattern=rf'^{_NAME_PATTERN}$',
        title='Endpoint name',
        description=(
            'Name of an endpoint registered in the test context, '
            'either declared in the case header or passed to the runner.'
        ),
        examples=[
            'helloRequestSender',
            'directEndpoint',
        ],
    ),
]
