"""DSL models for test case headers.

A case header defines the initial variables, environment inputs, the
parameter matrix, endpoints and validators of a test case, and may
override engine settings for that case.
"""

from datetime import timedelta
from typing import TYPE_CHECKING, Literal

from pydantic import AliasChoices, Field

from pytest_courier.models import DescribedMixin, SchemaModel
from pytest_courier.names import VARIABLE_PATTERN, Endpoint, Variable
from pytest_courier.values import Value  # noqa: TC001

from .contexts import ContextMixin
from .inputs import EnvironmentMixin

if TYPE_CHECKING:
    from pytest_courier.settings import CourierSettings


class Parameter(DescribedMixin, SchemaModel):
    """Parameter definition for data-driven execution.

    Describes a single named parameter and its possible values. The case
    runs once per combination of parameter values.
    """

    name: str = Field(
        pattern=VARIABLE_PATTERN,
        title='Parameter name',
        description=(
            'Identifier of the parameter.\n'
            'The value is referenced as `params.<name>`.'
        ),
        json_schema_extra={
            'x-ref': 'ParameterName',
        },
    )

    values: list[Value] = Field(
        default_factory=list,
        min_length=1,
        title='Parameter values',
        description='List of possible values for the parameter.',
    )


class EndpointDefinition(DescribedMixin, SchemaModel):
    """Declaration of a named endpoint of a test case."""

    name: Endpoint

    endpoint_type: str = Field(
        default='direct',
        validation_alias=AliasChoices('endpoint_type', 'type'),
        title='Endpoint type',
        description='Name of a registered endpoint type, for example `direct`.',
        json_schema_extra={
            'x-aliases': ['type'],
        },
    )

    options: dict[str, Value] = Field(
        default_factory=dict,
        title='Endpoint options',
        description='Options passed to the endpoint type factory.',
    )


class Case(ContextMixin, EnvironmentMixin, DescribedMixin, SchemaModel):
    """Executable test case header.

    A case is the primary unit of execution. It may be executed directly
    or expanded into one run per parameter combination.
    """

    #: Internal specification marker. Always `case` for executable case.
    spec: Literal['case']

    metadata: dict[Variable, Value] = Field(
        default_factory=dict,
        title='Case metadata',
        description='Additional metadata exposed as `meta.*`.',
    )

    params: list[Parameter] = Field(
        default_factory=list,
        title='Case parameters',
        description=(
            'Parameters driving data-driven execution of the case. '
            'The case runs once per combination of values.'
        ),
    )

    endpoints: list[EndpointDefinition] = Field(
        default_factory=list,
        title='Endpoints',
        description='Endpoints created for every run of the case.',
    )

    validators: list[str] | None = Field(
        default=None,
        title='Validators',
        description=(
            'Names of message validators in selection order. '
            'Defaults to every registered validator in registration order.'
        ),
    )

    fail_fast: bool | None = Field(
        default=None,
        validation_alias=AliasChoices('fail_fast', 'failFast'),
        title='Fail fast',
        description='Stop at the first failing top-level action.',
        json_schema_extra={
            'x-aliases': ['failFast'],
        },
    )

    timeout: float | timedelta | None = Field(
        default=None,
        title='Case timeout',
        description='Time in seconds after which the run is abandoned.',
    )

    strict_headers: bool | None = Field(
        default=None,
        validation_alias=AliasChoices('strict_headers', 'strictHeaders'),
        title='Strict header validation',
        description='Fail validation on unexpected received headers.',
        json_schema_extra={
            'x-aliases': ['strictHeaders'],
        },
    )

    def __call__(self, params: dict[str, Value]) -> dict[str, Value]:
        """Build the initial variables of a run.

        Parameters, metadata and environment inputs come first; the
        declared variables follow in declaration order and stay deferred
        until the runner evaluates them.

        Args:
            params: Parameter values of this run.

        Returns:
            Mapping of initial variables.
        """
        return {
            'params': params,
            'meta': self.metadata,
            'envs': self.resolve_environment(),
            **self.context,
        }

    def configure(self, settings: 'CourierSettings') -> 'CourierSettings':
        """Apply the overrides declared in the header to settings."""
        update: dict[str, Value] = {}

        if self.fail_fast is not None:
            update['fail_fast'] = self.fail_fast

        if self.strict_headers is not None:
            update['strict_headers'] = self.strict_headers

        if self.timeout is not None:
            timeout = self.timeout
            if isinstance(timeout, timedelta):
                timeout = timeout.total_seconds()
            update['case_timeout'] = timeout

        if not update:
            return settings

        return settings.model_copy(update=update)
