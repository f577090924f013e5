"""Base Pydantic models for DSL elements and runtime settings.

Every declarative element (cases, actions, checks, messages, records) is an
immutable model with strict validation, so a parsed test case can be shared
between concurrently running branches as is.
"""

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from pydantic import GetJsonSchemaHandler
    from pydantic.json_schema import JsonSchemaValue
    from pydantic_core.core_schema import CoreSchema


ALIASES_FIELD = 'x-aliases'
REQUIRED_FIELD = 'required'


class SchemaModel(BaseModel):
    """Base immutable model for all DSL elements.

    Models are frozen and reject unknown fields, so a typo in a YAML
    document is reported instead of being silently ignored.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra='forbid',
    )

    @classmethod
    def _update_object(cls, schema: 'JsonSchemaValue') -> 'JsonSchemaValue | None':
        """Expand object JSON schema with alias-aware variants.

        Properties declaring alternative names via the `x-aliases`
        extension key are duplicated under every alias, and required
        properties become a `oneOf` over their mutually exclusive aliases.

        Args:
            schema: A JSON schema dictionary.

        Returns:
            A modified JSON schema, or `None` if no expansion is required.
        """
        properties = schema.get('properties', {})
        if schema.get('type') != 'object' or not properties:
            return None

        aliases = {
            field_name: sorted({
                field_name,
                *field_schema[ALIASES_FIELD],
            })
            for field_name, field_schema in properties.items()
            if ALIASES_FIELD in field_schema
        }
        if not aliases:
            return None

        requirements = []
        required = set(schema.get(REQUIRED_FIELD, ()))

        for field_name, field_aliases in aliases.items():
            for alias in field_aliases:
                properties[alias] = properties[field_name]
                if field_name in required:
                    requirements.append(cls._alias_requirements(field_aliases, alias))
            required.discard(field_name)

        return {
            **schema,
            'required': sorted(required),
            'oneOf': [
                *schema.get('oneOf', ()),
                *requirements,
            ],
        }

    @staticmethod
    def _alias_requirements(aliases: list[str], alias: str) -> 'JsonSchemaValue':
        """Build the requirement clause for a single alias."""
        index = aliases.index(alias)

        return {
            REQUIRED_FIELD: [alias],
            'not': {'anyOf': [
                {REQUIRED_FIELD: [value]}
                for value in aliases[:index] + aliases[index + 1:]
            ]},
        }

    @classmethod
    def __get_pydantic_json_schema__(cls, core_schema: 'CoreSchema',
                                     handler: 'GetJsonSchemaHandler') -> 'JsonSchemaValue':
        """Hook into generating the model's JSON schema with aliases."""
        schema = super().__get_pydantic_json_schema__(core_schema, handler)
        if update := cls._update_object(schema):
            return update

        return schema


class DescribedMixin(SchemaModel):
    """Mixin providing element self-documentation.

    The fields defined here do not affect execution semantics. The title
    doubles as the display name of an action in the execution log.
    """

    title: str | None = Field(
        default=None,
        title='Title',
        description='Short human-readable title of the DSL element.',
        json_schema_extra={
            'x-ref': 'DescribedModelTitle',
        },
    )

    description: str | None = Field(
        default=None,
        title='Description',
        description='Detailed human-readable description of the DSL element.',
        json_schema_extra={
            'x-ref': 'DescribedModelDescription',
        },
    )


class SettingsModel(BaseSettings):
    """Base immutable model for runtime settings.

    Settings are resolved from environment variables and explicit
    overrides. Unknown variables are ignored so the surrounding
    environment may contain unrelated values.
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra='ignore',
    )
