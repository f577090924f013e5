"""Core exception hierarchy.

This module defines base error and warning types used across the library
to report plugin loading issues, DSL schema and model construction
failures, and runtime execution errors in a structured way.

Runtime errors always carry the name of the action they originate from and
expose their kind (the class name), so the runner can surface a precise
outcome instead of a bare generic message.
"""

from datetime import timedelta
from os import linesep
from typing import TYPE_CHECKING, Any, TypedDict

from pydantic import BaseModel, SecretStr  # noqa: TC002
from yaml import safe_dump
from yaml.error import MarkedYAMLError

from pytest_courier.values import MAPPINGS, SCALARS, SEQUENCES

if TYPE_CHECKING:
    from collections.abc import Sequence
    from importlib.metadata import EntryPoint
    from typing import Self

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails, ValidationError
    from yaml.nodes import Node

SNIPPET_ELLIPSIS = f' ...{linesep}'
SNIPPET_SEPARATOR = f' ---{linesep}'
SNIPPET_INDENT = 2

FORMAT_REPLACER = '<runtime object>'
FORMAT_SECRET = '**********'
FORMAT_FILENAME = '<unicode string>'
FORMAT_INDENT = 4


class ErrorContext(TypedDict, total=False):
    """Container describing contextual information for error formatting.

    All fields are optional; the formatter adapts output based on
    provided values.
    """

    #: Name of the source file where the error occurred.
    filename: str | None

    #: Line number in the source file.
    line_num: int | None
    #: Column number in the source file.
    column_num: int | None

    #: Display name of the action where the error occurred.
    action: str | None
    #: Number of the DSL step where the error occurred.
    step_num: int | None
    #: Number of the expectation within a step.
    check_num: int | None

    #: Underlying exception that triggered formatting.
    error: Exception | None

    #: Variables available at the moment of failure.
    context: dict[str, Any] | None
    #: Runtime element associated with the error.
    element: Any


class ErrorFormatter:
    """Utility class for formatting DSL-related errors.

    Produces human-readable messages with optional source location, the
    failing action and a YAML snippet of the element and variables.
    """

    @classmethod
    def format(cls, message: str, context: ErrorContext | None = None) -> str:
        """Format an error message using contextual information.

        Args:
            message: Base human-readable error message.
            context: Optional error context with location and data.

        Returns:
            A fully formatted error message suitable for display.
        """
        if not context:
            return message

        message += linesep
        message += cls.get_location_string(context, indent=FORMAT_INDENT)
        message += cls.get_snippet_string(context, indent=FORMAT_INDENT * 2)

        return message

    @classmethod
    def get_location_string(cls, context: ErrorContext, *,
                            indent: str | int | None = None) -> str:
        """Format source and execution location information.

        Args:
            context: Error context containing location metadata.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted location string including filename, line,
            column, action, step, and expectation numbers when available.
        """
        indent = cls._ensure_indent(indent)

        filename = context.get('filename')
        if not filename:
            filename = FORMAT_FILENAME

        message = f'{indent}in "{filename}"'
        if (line_num := context.get('line_num')) is not None:
            line_num += 1
            message += f', line {line_num}'
            if (column_num := context.get('column_num')) is not None:
                column_num += 1
                message += f', column {column_num}'
        message += linesep

        if action := context.get('action'):
            message += f'{indent}in action "{action}"{linesep}'

        if (step_num := context.get('step_num')) is not None:
            step_num += 1
            message += f'{indent}on step {step_num}'
            if (check_num := context.get('check_num')) is not None:
                check_num += 1
                message += f', expectation {check_num}'
            message += linesep

        return message

    @classmethod
    def get_snippet_string(cls, context: ErrorContext, *,
                           indent: str | int | None = None) -> str:
        """Generate a formatted snippet illustrating the error context.

        Args:
            context: Error context containing model or exception data.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted multi-line snippet string, or an empty string
            if no snippet data is available.
        """
        indent = cls._ensure_indent(indent)

        if (error := context.get('error')) and isinstance(error, MarkedYAMLError):
            snippet = error.problem_mark.get_snippet(indent=0) or ''
            return cls._make_indent(snippet, indent)

        if element := context.get('element'):
            return cls._make_snippet(element, context, indent)

        return ''

    @classmethod
    def _make_snippet(cls, element: dict[str, Any],
                      context: ErrorContext, indent: str) -> str:
        """Build a YAML-based snippet for an element and its variables."""
        snippet = f'{indent}{SNIPPET_ELLIPSIS}'

        if values := context.get('context'):
            snippet += cls._make_yaml({'context': {**values}}, indent)
            snippet += linesep
            snippet += f'{indent}{SNIPPET_SEPARATOR}'

        snippet += cls._make_yaml(element, indent)
        snippet += linesep

        return snippet

    @classmethod
    def _filter_unsafe(cls, value: Any) -> Any:  # noqa: ANN401
        """Recursively sanitize values for safe YAML serialization.

        Secrets are masked, and non-scalar, non-container objects are
        replaced with a placeholder.
        """
        if isinstance(value, SecretStr):
            return FORMAT_SECRET

        if isinstance(value, timedelta):
            return f'{value.total_seconds()}s'

        if value is None or isinstance(value, SCALARS):
            return value

        if isinstance(value, MAPPINGS):
            return {
                key: cls._filter_unsafe(item)
                for key, item in value.items()
            }

        if isinstance(value, SEQUENCES):
            return [
                cls._filter_unsafe(item)
                for item in value
            ]

        return FORMAT_REPLACER

    @classmethod
    def _make_yaml(cls, value: Any, indent: str = '') -> str:  # noqa: ANN401
        """Serialize a sanitized value to an indented YAML string."""
        data = safe_dump(
            cls._filter_unsafe(value),
            indent=SNIPPET_INDENT,
            sort_keys=False,
        )

        return cls._make_indent(data, indent)

    @staticmethod
    def _make_indent(value: str, indent: str) -> str:
        """Apply indentation to a multi-line string, dropping blank lines."""
        if not indent:
            return value

        return linesep.join(
            f'{indent}{line}'
            for line in value.splitlines()
            if line.strip()
        )

    @staticmethod
    def _ensure_indent(indent: str | int | None = None) -> str:
        """Normalize indentation given as a string or number of spaces."""
        if isinstance(indent, int) and indent > 0:
            return ' ' * indent

        if isinstance(indent, str):
            return indent

        return ''


class PluginWarning(UserWarning):
    """Warning emitted for non-fatal plugin-related issues.

    Used when a plugin cannot be loaded or shadows an existing extension
    while running in non-strict mode.
    """


class DSLError(Exception, ErrorFormatter):
    """Base exception for all pytest-courier errors."""

    def __init__(self, message: str, *,
                 context: ErrorContext | None = None) -> None:
        """Initialize an error.

        Args:
            message: Human-readable error description.
            context: Error context containing optional runtime values.
        """
        self.message = message
        self.context = context

        super().__init__(message)

    def __str__(self) -> str:
        """String representation."""
        return self.format(self.message, self.context)

    @classmethod
    def from_yaml_node(cls, message: str, node: 'Node',
                       error: Exception | None = None) -> 'Self':
        """Create an error instance located at a YAML node.

        Args:
            message: Human-readable error message.
            node: YAML node associated with the error.
            error: Optional underlying exception.

        Returns:
            An initialized error with location context.
        """
        error_context = ErrorContext(
            filename=node.start_mark.name,
            line_num=node.start_mark.line,
            column_num=node.start_mark.column,
            error=error,
        )

        return cls(message, context=error_context)


class PluginError(DSLError):
    """Error raised for fatal plugin-related failures in strict mode."""

    def __init__(self, message: str, *,
                 entrypoint: 'EntryPoint | None' = None) -> None:
        """Initialize a plugin error.

        Args:
            message: Human-readable error description.
            entrypoint: Optional plugin entry point associated with the error.
        """
        self.entrypoint = entrypoint

        super().__init__(message)


class DSLBuildError(DSLError):
    """Error raised during dynamic construction of the document model."""


class DSLSchemaError(DSLError):
    """Error raised when a DSL document is invalid or inconsistent."""

    @classmethod
    def from_yaml_error(cls, error: MarkedYAMLError) -> 'Self':
        """Create a schema error from a YAML parsing failure.

        Args:
            error: Exception raised by the YAML parser.

        Returns:
            DSLSchemaError located at the problem mark.
        """
        error_context = ErrorContext(
            filename=error.problem_mark.name,
            line_num=error.problem_mark.line,
            column_num=error.problem_mark.column,
            error=error,
        )

        message = 'Invalid YAML'
        if error.problem:
            message += f'{linesep}{' ' * FORMAT_INDENT}{error.problem}'

        return cls(message, context=error_context)

    @classmethod
    def from_pydantic_error(cls, error: 'ValidationError', *,
                            data: Any = None,  # noqa: ANN401
                            filename: str | None = None,
                            step_num: int | None = None) -> 'Self':
        """Create a schema error from a Pydantic validation failure.

        The message is taken from the first validation issue that can be
        located in the document data, and the snippet is narrowed to the
        failing fragment.

        Args:
            error: ValidationError raised by Pydantic.
            data: Document data.
            filename: Name of the source file where the error occurred.
            step_num: Number of the document in the file.

        Returns:
            DSLSchemaError representing the validation failure.
        """
        error_context = ErrorContext(
            filename=filename,
            step_num=step_num,
            error=error,
            element=data,
        )

        if not data or not isinstance(data, dict):
            return cls('Type validation error', context=error_context)

        for item in error.errors(include_url=False, include_input=False):
            if context := cls._locate_pydantic_context(data, item):
                message, value = context
                return cls(message, context=ErrorContext({**error_context, 'element': value}))

        return cls('Validation error', context=error_context)

    @classmethod
    def _locate_pydantic_context(cls, value: Any,  # noqa: ANN401
                                 error: 'ErrorDetails') -> tuple[str, Any] | None:
        """Locate the most specific failing element in validated data.

        Walks the Pydantic error location path and extracts the minimal
        substructure responsible for the failure.

        Returns:
            A tuple of (error message, extracted element) if a relevant
            context can be located, otherwise None.
        """
        container = last_item = value
        last_key: int | str | None = None

        for key in error['loc']:
            if isinstance(last_item, (list, tuple)):
                if isinstance(key, int) and 0 <= key < len(last_item):
                    container = last_item
                    last_item = last_item[key]
                    last_key = key
            elif isinstance(last_item, dict):
                if key in last_item:
                    container = last_item
                    last_item = last_item[key]
                    last_key = key
            else:
                return None

        message = None
        if isinstance(last_key, (int, str)):
            for item in (error.get('msg') or '').splitlines():
                item_message = item.strip()
                if item_message:
                    message = item_message
                    break

        if message:
            if isinstance(container, (list, tuple)):
                return message, [last_item]
            if isinstance(container, dict):
                return message, {last_key: last_item}

        return None


class DSLRuntimeError(DSLError):
    """Error raised during test case execution.

    Every runtime error is attributed to the action it originates from.
    The attribution happens once, at the innermost action, so containers
    re-raising a child error keep the child's name.
    """

    @property
    def kind(self) -> str:
        """Error kind reported in the execution log."""
        return type(self).__name__

    @property
    def action(self) -> str | None:
        """Display name of the originating action, if attributed."""
        if not self.context:
            return None

        return self.context.get('action')

    def bind(self, model: BaseModel, action: str, *,  # noqa: PLR0913
             context: dict[str, Any] | None = None,
             filename: str | None = None,
             step_num: int | None = None,
             check_num: int | None = None) -> 'Self':
        """Attribute the error to an action model, if not yet attributed.

        Args:
            model: The action model that failed.
            action: Display name of the action.
            context: Variables visible to the action.
            filename: An optional filename of source.
            step_num: Position of step.
            check_num: Position of expectation.

        Returns:
            The same error instance.
        """
        if self.action is not None:
            return self

        error_context = ErrorContext(
            action=action,
            filename=filename,
            step_num=step_num,
            check_num=check_num,
            context=context,
            element=model.model_dump(
                exclude_none=True,
                exclude_unset=True,
            ),
        )
        for key, value in (self.context or {}).items():
            if value is not None:
                error_context[key] = value  # type: ignore[literal-required]

        self.context = error_context

        return self

    def locate(self, step_num: int) -> 'Self':
        """Record the position of the failing child in its sequence."""
        if self.context is None:
            self.context = ErrorContext()

        if self.context.get('step_num') is None:
            self.context['step_num'] = step_num

        return self

    def in_file(self, filename: str) -> 'Self':
        """Record the source file of the failing test case."""
        if self.context is None:
            self.context = ErrorContext()

        if not self.context.get('filename'):
            self.context['filename'] = filename

        return self


class ActionFailed(DSLRuntimeError):
    """Generic failure of a leaf action."""


class ExpectationFailed(ActionFailed, AssertionError):
    """An expectation declared on an action did not hold.

    Also an `AssertionError`, so pytest reports a failed test rather
    than an error.
    """


class ActionTimeout(ActionFailed):
    """An action did not complete within its caller-specified timeout."""

    def __init__(self, message: str, *, timeout: float | None = None) -> None:
        """Initialize a timeout error.

        Args:
            message: Human-readable error description.
            timeout: The expired timeout in seconds.
        """
        self.timeout = timeout

        super().__init__(message)


class ParallelFailed(ActionFailed):
    """One or more children of a parallel container failed.

    Carries every child error, in no particular order.
    """

    def __init__(self, errors: 'Sequence[DSLRuntimeError]') -> None:
        """Initialize an aggregate error.

        Args:
            errors: Errors of every failed child.
        """
        self.errors = tuple(errors)

        summary = ', '.join(
            f'{error.kind} in "{error.action}"'
            for error in self.errors
        )

        super().__init__(f'{len(self.errors)} parallel action(s) failed: {summary}')


class ExpressionError(DSLRuntimeError):
    """Base error of the expression resolver."""


class UnresolvedVariable(ExpressionError):
    """A referenced variable is absent from the variable store."""

    def __init__(self, name: str) -> None:
        """Initialize the error for a missing variable name."""
        self.name = name

        super().__init__(f'Unknown variable "{name}"')


class ExpressionTooDeep(ExpressionError):
    """Nested expressions exceeded the configured depth limit."""

    def __init__(self, depth: int) -> None:
        """Initialize the error for an exceeded depth limit."""
        self.depth = depth

        super().__init__(f'Expression nesting exceeds {depth} levels')


class UnknownFunction(ExpressionError):
    """A function of a known namespace is not registered."""

    def __init__(self, name: str) -> None:
        """Initialize the error for a qualified function name."""
        self.name = name

        super().__init__(f'Unknown function "{name}"')


class CorrelationError(DSLRuntimeError):
    """Base error of the correlation manager."""

    def __init__(self, message: str, *, key: str) -> None:
        """Initialize a correlation error.

        Args:
            message: Human-readable error description.
            key: The correlation key involved.
        """
        self.key = key

        super().__init__(message)


class DuplicateCorrelation(CorrelationError):
    """A key already has a pending waiter."""


class UnknownCorrelation(CorrelationError):
    """No waiter is registered for a key, or the handle was consumed."""


class CorrelationTimeout(CorrelationError):
    """No message was delivered for a key before the timeout expired."""


class UnresolvedCorrelation(CorrelationError):
    """A waiter was still pending when the test context was torn down."""


class MessageValidationError(DSLRuntimeError):
    """Base error of message validation dispatch."""


class NoValidatorFound(MessageValidationError):
    """No registered validator supports the declared message type."""

    def __init__(self, message_type: str) -> None:
        """Initialize the error for an unsupported message type."""
        self.message_type = message_type

        super().__init__(f'No validator supports message type "{message_type}"')


class ValidationFailed(MessageValidationError):
    """A received message does not match the expected one."""

    def __init__(self, details: 'Sequence[str]') -> None:
        """Initialize the error with the list of differences."""
        self.details = tuple(details)

        message = 'Message validation failed'
        for detail in self.details:
            message += f'{linesep}{' ' * FORMAT_INDENT}- {detail}'

        super().__init__(message)


class UnknownEndpoint(DSLRuntimeError):
    """An action refers to an endpoint not registered in the context."""


class Abandoned(DSLRuntimeError):
    """Execution was dropped because the test case was aborted."""
