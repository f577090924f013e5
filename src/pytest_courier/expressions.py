"""Expression resolver for `${variable}` references and function calls.

Templates are rendered in a single left-to-right pass. A variable
reference is replaced with the current value of the variable, and a
qualified function call (for example `courier:randomNumber(10)`) is
replaced with its generated value. Variable values that contain
expressions themselves are rendered recursively, up to a fixed depth.
"""

from json import dumps
from re import ASCII
from re import compile as regexp
from typing import TYPE_CHECKING

from pydantic import SecretStr

from pytest_courier.errors import ExpressionTooDeep, UnknownFunction, UnresolvedVariable
from pytest_courier.names import FUNCTION_PATTERN
from pytest_courier.values import MAPPINGS, SEQUENCES

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

if TYPE_CHECKING:
    from pytest_courier.values import RuntimeValue

#: Start of any expression: a variable reference or a qualified function call.
TOKEN_PATTERN = regexp(rf'(?P<variable>\$\{{)|{FUNCTION_PATTERN.pattern}', flags=ASCII)

#: A template consisting of exactly one variable reference.
REFERENCE_PATTERN = regexp(r'^\$\{\s*(?P<path>[^{}]+?)\s*\}$', flags=ASCII)

QUOTES = ('"', "'")

#: Default nesting limit of variable and function expressions.
DEFAULT_DEPTH = 16


class ExpressionResolver:
    """Render templates against a variable store.

    Function evaluation has no side effects on the store: the resolver
    only reads variables. Unknown namespaces are treated as literal text,
    so strings like `urn:isbn(...)` pass through untouched, while an
    unknown function of a registered namespace is an error.
    """

    def __init__(self, functions: 'Mapping[str, Callable[..., RuntimeValue]] | None' = None, *,
                 max_depth: int = DEFAULT_DEPTH) -> None:
        """Initialize the resolver.

        Args:
            functions: Mapping of qualified names (`namespace:name`) to callables.
            max_depth: Maximum nesting of expressions.
        """
        self.functions = dict(functions or {})
        self.namespaces = {
            name.partition(':')[0]
            for name in self.functions
        }
        self.max_depth = max_depth

    def render(self, template: str, variables: 'Mapping[str, RuntimeValue]') -> str:
        """Render a template into a string.

        Args:
            template: Template string.
            variables: Variable store snapshot.

        Returns:
            The template with every expression replaced.

        Raises:
            UnresolvedVariable: If a referenced variable is absent.
            UnknownFunction: If a function of a known namespace is absent.
            ExpressionTooDeep: If nesting exceeds the depth limit.
        """
        return self._render(template, variables, 0)

    def evaluate(self, template: str, variables: 'Mapping[str, RuntimeValue]') -> 'RuntimeValue':
        """Evaluate a template, keeping the raw value of a single reference.

        `${user}` evaluates to the stored value itself (a mapping, a
        number, ...), whereas `user-${id}` evaluates to a string.
        """
        if match := REFERENCE_PATTERN.match(template):
            return self._lookup(match.group('path'), variables, 0)

        return self._render(template, variables, 0)

    def render_value(self, value: 'RuntimeValue',
                     variables: 'Mapping[str, RuntimeValue]') -> 'RuntimeValue':
        """Evaluate every string inside a nested structure.

        Mapping keys are left untouched. Non-string scalars are returned
        as they are.
        """
        if isinstance(value, str):
            return self.evaluate(value, variables)

        if isinstance(value, MAPPINGS):
            return {
                key: self.render_value(item, variables)
                for key, item in value.items()
            }

        if isinstance(value, SEQUENCES):
            return [
                self.render_value(item, variables)
                for item in value
            ]

        return value

    def _render(self, template: str, variables: 'Mapping[str, RuntimeValue]', depth: int) -> str:
        """Render a template at a nesting depth."""
        if depth > self.max_depth:
            raise ExpressionTooDeep(self.max_depth)

        output = []
        position = 0

        while match := TOKEN_PATTERN.search(template, position):
            output.append(template[position:match.start()])

            if match.group('variable'):
                end = template.find('}', match.end())
                if end < 0:
                    output.append(template[match.start():])
                    position = len(template)
                    break

                path = template[match.end():end].strip()
                output.append(self.stringify(self._lookup(path, variables, depth)))
                position = end + 1
                continue

            namespace = match.group('namespace')
            if namespace not in self.namespaces:
                output.append(match.group(0))
                position = match.end()
                continue

            arguments, end = self._split_arguments(template, match.end())
            if end < 0:
                output.append(template[match.start():])
                position = len(template)
                break

            qualname = f'{namespace}:{match.group('name')}'
            function = self.functions.get(qualname)
            if function is None:
                raise UnknownFunction(qualname)

            values = [
                self._render(argument, variables, depth + 1)
                for argument in arguments
            ]
            output.append(self.stringify(function(*values)))
            position = end

        output.append(template[position:])

        return ''.join(output)

    def _lookup(self, path: str, variables: 'Mapping[str, RuntimeValue]', depth: int) -> 'RuntimeValue':
        """Resolve a dotted variable path strictly.

        Nested string values containing expressions are rendered one
        level deeper.
        """
        keys = path.split('.')
        if not keys[0] or keys[0] not in variables:
            raise UnresolvedVariable(path)

        value = variables[keys[0]]
        for key in keys[1:]:
            if isinstance(value, MAPPINGS) and key in value:
                value = value[key]
            elif isinstance(value, (list, tuple)) and key.isdecimal() and int(key) < len(value):
                value = value[int(key)]
            else:
                raise UnresolvedVariable(path)

        if isinstance(value, str) and TOKEN_PATTERN.search(value):
            return self._render(value, variables, depth + 1)

        return value

    @staticmethod
    def _split_arguments(template: str, start: int) -> tuple[list[str], int]:
        """Split function arguments up to the closing parenthesis.

        Commas inside quotes or nested calls do not split. Quoted
        arguments are unquoted.

        Returns:
            The argument list and the position after the closing
            parenthesis, or `-1` if the call is not closed.
        """
        arguments: list[str] = []
        current: list[str] = []
        quote: str | None = None
        nesting = 0

        for position in range(start, len(template)):
            char = template[position]

            if quote:
                current.append(char)
                if char == quote:
                    quote = None
                continue

            if char in QUOTES:
                quote = char
            elif char == '(':
                nesting += 1
            elif char == ')' and nesting:
                nesting -= 1
            elif char == ')':
                if current or arguments:
                    arguments.append(''.join(current))
                return [_unquote(argument) for argument in arguments], position + 1
            elif char == ',' and not nesting:
                arguments.append(''.join(current))
                current = []
                continue

            current.append(char)

        return [], -1

    @staticmethod
    def stringify(value: 'RuntimeValue') -> str:
        """Convert a resolved value into its textual form."""
        if isinstance(value, str):
            return value

        if isinstance(value, SecretStr):
            return value.get_secret_value()

        if isinstance(value, bytes):
            return value.decode('utf-8', errors='replace')

        if value is None or isinstance(value, (bool, *MAPPINGS, *SEQUENCES)):
            return dumps(value, default=str, ensure_ascii=False)

        return str(value)


def _unquote(argument: str) -> str:
    """Strip whitespace and one level of matching quotes."""
    argument = argument.strip()
    if len(argument) > 1 and argument[0] in QUOTES and argument[-1] == argument[0]:
        return argument[1:-1]

    return argument
