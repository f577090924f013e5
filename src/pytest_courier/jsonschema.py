"""JSON Schema of the DSL documents."""

from functools import cache
from json import dumps
from typing import TYPE_CHECKING

from pydantic.json_schema import GenerateJsonSchema, JsonSchemaValue
from yaml import SafeLoader

from pytest_courier.core import DocumentParser

if TYPE_CHECKING:
    from pydantic import BaseModel
    from pydantic_core import core_schema as core


class SchemaGenerator(GenerateJsonSchema):
    """JSON Schema generator for case files.

    Deferred values (`!var`, `!expr` and other tags) only get a value when
    an action runs, so their schema is left open. Fragments tagged with
    `x-ref` are emitted once under the shared definitions.
    """

    @classmethod
    @cache
    def get_parser(cls) -> DocumentParser:
        """Return a cached non-strict document parser with its own loader."""
        class ClearLoader(SafeLoader):
            pass

        return DocumentParser(ClearLoader, strict=False)

    @classmethod
    @cache
    def get_model(cls) -> 'type[BaseModel]':
        """Build and cache the document model."""
        document, _ = cls.get_parser().build()

        return document

    @classmethod
    @cache
    def make_schema(cls, indent: int | str | None = 4) -> str:
        """Generate the serialized JSON Schema of case files.

        Args:
            indent: Indentation level used for JSON formatting.
        """
        model = cls.get_model()

        schema = {
            **model.model_json_schema(
                schema_generator=cls,
                union_format='primitive_type_array',
            ),
            'title': 'pytest-courier',
            'description': 'JSON Schema for pytest-courier DSL documents',
            '$schema': cls.schema_dialect,
        }

        return dumps(
            schema,
            ensure_ascii=False,
            sort_keys=True,
            indent=indent,
        )

    def callable_schema(self, schema: 'core.CallableSchema') -> JsonSchemaValue:  # noqa: ARG002
        """Represent a callable as an unconstrained runtime value."""
        return {'description': 'Runtime value'}

    def generate_inner(self, schema: 'core.CoreSchema') -> JsonSchemaValue:
        """Generate a JSON schema, sharing fragments marked with `x-ref`."""
        json_schema = super().generate_inner(schema)

        if ref_id := json_schema.get('x-ref'):
            ref_def, ref_link = self.get_cache_defs_ref_schema(ref_id)
            self.definitions[ref_def] = json_schema
            return ref_link

        return json_schema
