"""Deferred lookups produced by YAML instructions.

Lookups are evaluated against a snapshot of the variable store when an
action resolves its parameters:

- `VariableLookup` reads a dotted path, tolerating missing keys
- `SecretLookup` reads a dotted path and unwraps secrets
- `ExpressionLookup` evaluates a template with the expression resolver
"""

from typing import TYPE_CHECKING

from pytest_courier.errors import DSLSchemaError
from pytest_courier.expressions import ExpressionResolver
from pytest_courier.names import VARIABLE_PATTERN

if TYPE_CHECKING:
    from collections.abc import Mapping

    from pydantic import SecretStr

if TYPE_CHECKING:
    from pytest_courier.values import RuntimeValue


class VariableLookup:
    """Resolver for dotted-path variable access.

    The resolver is tolerant: any missing key, invalid index or type
    mismatch results in `None` instead of raising an exception. Strict
    lookups are written as `${path}` expressions instead.
    """

    def __init__(self, path: str) -> None:
        """Initialize the resolver with a dotted path.

        Args:
            path: Dot-separated path. Numeric segments index lists.

        Raises:
            DSLSchemaError: If the provided path is not valid.
        """
        self.path = path.strip().split('.')

        if not VARIABLE_PATTERN.match(self.path[0]):
            raise DSLSchemaError('Invalid variable path')

    def __call__(self, context: 'Mapping[str, RuntimeValue]') -> 'RuntimeValue':
        """Resolve the variable path against a context."""
        return self.resolve(context)

    def __repr__(self) -> str:
        return f'!var {".".join(self.path)}'

    def resolve(self, value: 'RuntimeValue') -> 'RuntimeValue':
        """Traverse a value along the configured path.

        Returns:
            The resolved value if the full path is valid, otherwise `None`.
        """
        for key in self.path:
            if value is None or not key:
                return None

            if key.isdecimal() and isinstance(value, (list, tuple)):
                index = int(key)
                value = value[index] if index < len(value) else None
            elif hasattr(value, 'get'):
                value = value.get(key)
            else:
                return None

        return value


class SecretLookup(VariableLookup):
    """Variable resolver that unwraps secret values."""

    def __call__(self, context: 'Mapping[str, RuntimeValue]') -> 'RuntimeValue':
        """Resolve and unwrap a secret value from the context.

        Returns:
            The underlying secret string if the resolved value is a
            `SecretStr`, otherwise the value itself.
        """
        value = super().resolve(context)

        if hasattr(value, 'get_secret_value'):
            secret: SecretStr = value
            return secret.get_secret_value()

        return value

    def __repr__(self) -> str:
        return f'!secret {".".join(self.path)}'


class ExpressionLookup:
    """Deferred evaluation of an expression template.

    Snapshots taken from a test context carry its resolver, so function
    calls registered by plugins are available. Without one, a resolver
    without functions is used.
    """

    def __init__(self, template: str) -> None:
        """Initialize the lookup.

        Raises:
            DSLSchemaError: If the template is empty.
        """
        if not template.strip():
            raise DSLSchemaError('Empty expression')

        self.template = template

    def __call__(self, context: 'Mapping[str, RuntimeValue]') -> 'RuntimeValue':
        """Evaluate the template against a context.

        Raises:
            ExpressionError: If the template can not be evaluated.
        """
        resolver = getattr(context, 'expressions', None)
        if resolver is None:
            resolver = ExpressionResolver()

        return resolver.evaluate(self.template, context)

    def __repr__(self) -> str:
        return f'!expr {self.template}'
