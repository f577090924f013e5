"""YAML DSL parser and runtime integration.

This module defines a high-level parser responsible for integrating
all DSL extensions into a YAML loader and validating DSL documents.

The parser coordinates:
- built-in instructions, actors, checkers, validators, endpoint types
  and expression functions,
- plugin-provided extensions,
- custom YAML constructors.

The parser is also the registry the test plan builds runners from: it
knows every validator, endpoint type and function available to a case.
"""

from typing import TYPE_CHECKING

from pydantic import PydanticUserError, ValidationError
from yaml import add_constructor, load_all
from yaml.error import MarkedYAMLError

from pytest_courier.builtins import actors, checkers, endpoints, functions, instructions, validators
from pytest_courier.errors import DSLBuildError, DSLError, DSLSchemaError
from pytest_courier.schema import BaseAction, Case
from pytest_courier.schema.containers import STEP_MODEL

from .builder import Document, ExtensionsBuilderMixin
from .builder import Step as StepModel
from .loader import ExtensionsLoaderMixin

if TYPE_CHECKING:
    from io import TextIOBase

if TYPE_CHECKING:
    from yaml import BaseLoader

    from pytest_courier.extensions import EndpointType, Validator

#: Parsed file header. A Case header, or None if no header is present.
type Header = Case | None

#: Parsed executable step.
type Step = BaseAction

#: Parsed executable steps.
type Steps = tuple[Step, ...]

#: Fully unpacked DSL file contents.
#: Consists of an optional header and a list of steps.
type Source = tuple[Header, Steps]


class DocumentParser(ExtensionsBuilderMixin, ExtensionsLoaderMixin):
    """DSL YAML parser with plugin and extension support.

    This class is responsible for:
    - registering built-in and plugin-provided extensions;
    - attaching custom YAML constructors to a loader;
    - dynamically building a Pydantic model representing the DSL schema;
    - parsing and validating YAML documents into executable DSL models.

    The parser is stateful and caches the built DSL model for reuse.
    """

    def __init__(self, loader: type['BaseLoader'],
                 strict: bool = False,
                 auto_attach: bool = True,
                 auto_build: bool = False) -> None:
        """Initialize the DSL document parser.

        Args:
            loader: YAML loader class to extend with DSL constructors.
            strict: Whether to raise errors on plugin or extension loading
                failures instead of emitting warnings.
            auto_attach: Whether to automatically attach all known DSL
                constructors to the YAML loader during initialization.
            auto_build: Whether to automatically build and cache the DSL
                document model during initialization.

        Raises:
            DSLBuildError: If the DSL document model cannot be built
                when `auto_build` is enabled.
            PluginError: If a plugin can not be loaded on strict mode.
        """
        self.loader = loader
        self.strict_mode = strict

        self.clear_plugins()

        self.add_instruction(instructions.variable)
        self.add_instruction(instructions.secret)
        self.add_instruction(instructions.expression)

        self.add_instruction(instructions.timedelta_)
        self.add_instruction(instructions.duration)

        self.add_instruction(instructions.text_file)

        self.add_actor(actors.noop)
        self.add_actor(actors.echo)

        self.add_checker(checkers.eq)
        self.add_checker(checkers.neq)
        self.add_checker(checkers.less)
        self.add_checker(checkers.less_or_equal)
        self.add_checker(checkers.greater)
        self.add_checker(checkers.greater_or_equal)
        self.add_checker(checkers.regex)

        self.add_validator(validators.plaintext)
        self.add_validator(validators.json_)

        self.add_endpoint_type(endpoints.direct)

        for function in (
            functions.random_number,
            functions.random_string,
            functions.random_uuid,
            functions.current_date,
            functions.concat,
            functions.upper_case,
            functions.lower_case,
            functions.substring,
        ):
            self.add_function(function)

        self.load_plugins()

        if auto_attach:
            self.attach()

        self._cached_model: tuple[type[Document], type[StepModel]] | None = None
        if auto_build:
            self.build()

    def attach(self) -> None:
        """Attach all known instruction constructors (`!<name>`) to the YAML loader.

        It is safe to call this method multiple times, but repeated calls
        may overwrite previously registered constructors.
        """
        for name, instruction in self.instructions.items():
            add_constructor(f'!{name}', instruction(), Loader=self.loader)

    def build(self) -> tuple[type[Document], type[StepModel]]:
        """Build and cache the root DSL document model.

        Returns:
            The document model and the step model.

        Raises:
            DSLBuildError: If the document model cannot be built due to
                configuration conflicts or internal errors.
        """
        if self._cached_model is not None:
            return self._cached_model

        try:
            self._cached_model = self.build_document(
                list(self.actors.values()),
                list(self.checkers.values()),
            )

        except PydanticUserError as base:
            raise DSLBuildError('Document model has conflicts') from base

        except Exception as base:
            raise DSLBuildError('Unexpected error') from base

        return self._cached_model

    def parse(self, content: 'TextIOBase | str') -> Source:
        """Parse a YAML stream into validated DSL documents.

        The input may contain multiple YAML documents. At most one header
        document is allowed and it must appear first. All subsequent
        documents are treated as executable steps.

        Args:
            content: YAML content as a string or file-like object.

        Returns:
            A tuple consisting of the optional header document and the
            executable step documents.

        Raises:
            DSLBuildError: If the document model cannot be built.
            DSLSchemaError: If YAML parsing fails or DSL validation fails.
        """
        model, step = self.build()

        try:
            documents = list(load_all(content, Loader=self.loader))

        except MarkedYAMLError as base:
            raise DSLSchemaError.from_yaml_error(base) from base

        except DSLError:
            raise

        except Exception as base:
            raise DSLSchemaError('Unexpected error') from base

        header, steps = None, []

        for position, document in enumerate(documents):
            if document is None:
                continue

            try:
                item = model.model_validate(document, context={STEP_MODEL: step})

            except ValidationError as base:
                raise DSLSchemaError.from_pydantic_error(
                    base,
                    step_num=position,
                    data=document,
                ) from base

            if isinstance(item.root, Case):
                if position > 0:
                    raise DSLSchemaError('Header must be at first position')
                header = item.root
            else:
                steps.append(item.root.root)

        return header, tuple(steps)

    def parse_file(self, content: 'TextIOBase | str') -> Source:
        """Parse a case file, requiring at least one step.

        Raises:
            DSLBuildError: If the document model cannot be built.
            DSLSchemaError: If the file is invalid or has no steps.
        """
        header, steps = self.parse(content)
        if not steps:
            raise DSLSchemaError('Case must contain at least one step')

        return header, steps

    def parse_step(self, document: dict) -> BaseAction:
        """Validate a single step document.

        Raises:
            DSLSchemaError: If the document is not a valid step.
        """
        _, step = self.build()

        try:
            return step.model_validate(document, context={STEP_MODEL: step}).root

        except ValidationError as base:
            raise DSLSchemaError.from_pydantic_error(base, data=document) from base

    def select_validators(self, names: list[str] | None = None) -> list['Validator']:
        """Return validators in selection order.

        Args:
            names: Validator names overriding the registration order.

        Raises:
            DSLSchemaError: If a name is not registered.
        """
        if names is None:
            return list(self.validators.values())

        unknown = [name for name in names if name not in self.validators]
        if unknown:
            raise DSLSchemaError(f'Unknown validators: {', '.join(unknown)}')

        return [self.validators[name] for name in names]

    def get_endpoint_type(self, name: str) -> 'EndpointType':
        """Return a registered endpoint type.

        Raises:
            DSLSchemaError: If the type is not registered.
        """
        endpoint_type = self.endpoint_types.get(name)
        if endpoint_type is None:
            raise DSLSchemaError(f'Unknown endpoint type {name!r}')

        return endpoint_type
