"""Declarative parameter schemas for extensions.

Extensions (actors, checkers, endpoint types) declare the parameters
they accept as a mapping of attributes. The mapping is compiled into
Pydantic field definitions, or into a standalone model, at runtime.
"""

from functools import partial  # noqa: I001
from types import GenericAlias, UnionType
from typing import Annotated, Any, Self, TypeAliasType
from typing import _BaseGenericAlias  # type: ignore[attr-defined]

from pydantic import AliasChoices, Field, RootModel, create_model, model_validator

from pytest_courier.models import ALIASES_FIELD, DescribedMixin, SchemaModel
from pytest_courier.names import Variable
from pytest_courier.values import Deferred, Value

#: Relies on a private typing class until generic aliases share a public base.
type BaseType = type | GenericAlias | TypeAliasType | UnionType | _BaseGenericAlias


class Attribute(DescribedMixin, SchemaModel):
    """Declarative attribute (field) definition.

    Describes the type of a value together with its aliases, default,
    examples and required flag.
    """

    base: BaseType = Field(
        default=Deferred,
        title='Base type',
        description=(
            'Python type of the attribute value. Deferred values are '
            'always accepted in addition to this type.'
        ),
    )

    aliases: list[Variable] = Field(
        default_factory=list,
        title='Attribute aliases',
        description='Alternative names of the attribute in documents.',
    )

    examples: list[Value] | None = Field(
        default=None,
        min_length=1,
        title='Example values',
        description='Representative values used in the JSON Schema.',
    )

    default: Value = Field(
        default=None,
        title='Default value',
        description='Value used when the attribute is omitted.',
    )

    required: bool = Field(
        default=False,
        title='Required flag',
        description='Whether the attribute must be provided. Required attributes have no default.',
    )

    @model_validator(mode='after')
    def check_default_required(self) -> Self:
        """Reject a default value on a required attribute.

        Raises:
            ValueError: If specified both a `default` value and a `required` constraint.
        """
        if not self.required or self.default is None:
            return self

        raise ValueError('specified both a default value and a required constraint')

    @staticmethod
    def _extend_schema_aliases(schema: dict[str, Any],
                               aliases: AliasChoices | None = None) -> None:
        """Publish aliases in the JSON Schema of the field."""
        if not aliases:
            return

        schema[ALIASES_FIELD] = [
            alias
            for alias in aliases.choices
            if isinstance(alias, str)
        ]

    def build(self, *, field_name: str | None = None) -> Any:  # noqa: ANN401
        """Build an annotated field type for this attribute.

        Args:
            field_name: Canonical field name, accepted next to the aliases.

        Returns:
            An `Annotated` type representing the configured attribute.
        """
        aliases = None
        if self.aliases:
            aliases = (
                AliasChoices(field_name, *self.aliases)
                if field_name
                else AliasChoices(*self.aliases)
            )

        field_type: BaseType = Deferred | None
        if self.base and self.base not in (Deferred, Value):
            field_type = self.base | Deferred | None

        return Annotated[
            field_type, Field(
                default=... if self.required else self.default,
                validation_alias=aliases,
                title=self.title,
                description=self.description,
                examples=self.examples,
                json_schema_extra=partial(
                    self._extend_schema_aliases,
                    aliases=aliases,
                ),
            ),
        ]


class Schema(RootModel[dict[Variable, Attribute]]):
    """Declarative schema composed of named attributes."""

    root: dict[Variable, Attribute] = Field(
        default_factory=dict,
        title='Schema attributes',
        description='Mapping of attribute names to their declarative definitions.',
    )

    def build(self, exclude: set[str] | None = None) -> dict[str, Any]:
        """Compile the schema into Pydantic field definitions.

        Args:
            exclude: Reserved names attributes must not use, for
                example fields of the base model.

        Returns:
            A mapping of attribute names to annotated types.

        Raises:
            ValueError: If attribute names or aliases are not unique.
        """
        reserved = set(exclude or ())

        fields = {}
        for name, attribute in self.root.items():
            if name in reserved:
                raise ValueError(f'attribute `{name}` is not unique in schema')
            if reserved.intersection(attribute.aliases):
                raise ValueError(f'aliases for attribute `{name}` is not unique in schema')

            reserved.add(name)
            reserved.update(attribute.aliases)

            fields[name] = attribute.build(field_name=name)

        return fields

    def build_model(self, name: str) -> type[SchemaModel]:
        """Compile the schema into a standalone model."""
        return create_model(name, __base__=SchemaModel, **self.build())


class ParametersMixin(SchemaModel):
    """Mixin providing a declarative parameter schema."""

    parameters: Schema = Field(
        default_factory=Schema,
        title='Extension parameters schema',
        description=(
            'Additional parameters accepted by the extension. They are '
            'validated and passed to the extension callable.'
        ),
    )
