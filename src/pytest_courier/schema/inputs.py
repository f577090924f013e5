"""Environment inputs of test cases.

A case header may declare environment inputs. The declarations are
compiled into a pydantic-settings model and resolved from environment
variables when the case starts; the values are exposed as `envs.*`.
"""

from typing import Annotated, Any, Literal, Self

from pydantic import Field, RootModel, SecretStr, ValidationError, create_model, model_validator

from pytest_courier.errors import ActionFailed
from pytest_courier.models import SchemaModel, SettingsModel
from pytest_courier.names import Variable  # noqa: TC001
from pytest_courier.values import Value  # noqa: TC001

type TypeName = Literal['str', 'int', 'float', 'bool', 'object', 'list']

TYPES: dict[str, type[Any]] = {
    'str': str,
    'int': int,
    'float': float,
    'bool': bool,
    'object': dict,
    'list': list,
}


class InputDefinition(SchemaModel):
    """Definition of a single environment input.

    An input may be required or optional, may define a default, and can
    be marked as secret so it is masked in error reports.
    """

    name: Variable = Field(
        title='Input name',
        description=(
            'Name of the environment variable, also used to reference '
            'the value as `envs.<name>`.'
        ),
        json_schema_extra={
            'x-ref': 'InputName',
        },
    )

    description: str | None = Field(
        default=None,
        title='Input description',
        description='Human-readable description of the input.',
    )

    value_type: TypeName = Field(
        default='str',
        validation_alias='type',
        title='Input type',
        description='Data type of the input.',
    )

    default: Value = Field(
        default=None,
        title='Default value',
        description='Value used when the variable is not set. Not allowed for required inputs.',
    )

    required: bool = Field(
        default=False,
        title='Required flag',
        description='Whether the variable must be set.',
    )

    secret: bool = Field(
        default=False,
        title='Secret flag',
        description='Marks the input as sensitive; only string inputs may be secret.',
    )

    @model_validator(mode='after')
    def check_default_required(self) -> Self:
        """Reject a default value on a required input.

        Raises:
            ValueError: If both a default and a required constraint are specified.
        """
        if not self.required or self.default is None:
            return self

        raise ValueError('Specified both a default value and a required constraint')

    @model_validator(mode='after')
    def check_secret_type(self) -> Self:
        """Reject the secret flag on non-string inputs.

        Raises:
            ValueError: If `secret` is specified for a non-string type.
        """
        if not self.secret or self.value_type == 'str':
            return self

        raise ValueError('Specified secret on non-string type')

    def build_field(self) -> Any:  # noqa: ANN401
        """Build the annotated settings field of the input."""
        field_type = SecretStr if self.secret else TYPES[self.value_type]

        return Annotated[
            field_type | None, Field(
                default=... if self.required else self.default,
                description=self.description,
                title=self.name,
            ),
        ]


class EnvironmentDefinition(RootModel[list[InputDefinition]]):
    """Ordered collection of environment inputs."""

    root: list[InputDefinition] = Field(
        default_factory=list,
        title='Environment inputs',
        description='List of environment input definitions.',
    )

    def build(self) -> type[SettingsModel]:
        """Create a settings model from the definitions."""
        fields = {
            definition.name: definition.build_field()
            for definition in self.root
        }

        return create_model('EnvironmentSettings', __base__=SettingsModel, **fields)


class EnvironmentMixin(SchemaModel):
    """Mixin resolving declared environment inputs."""

    environment: EnvironmentDefinition = Field(
        default_factory=EnvironmentDefinition,
        validation_alias='envs',
        title='Environment definition',
        description=(
            'Definition of environment inputs required by the case, '
            'such as endpoint addresses or credentials.'
        ),
    )

    def resolve_environment(self) -> dict[str, Value]:
        """Resolve declared inputs from environment variables.

        Returns:
            Validated environment values, or an empty dictionary.

        Raises:
            ActionFailed: If a required variable is missing or invalid.
        """
        if not self.environment.root:
            return {}

        try:
            environment = self.environment.build()()
        except ValidationError as base:
            raise ActionFailed('Can not get required environment inputs') from base

        return environment.model_dump()
