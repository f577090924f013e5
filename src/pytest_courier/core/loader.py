"""Extensions discovery and extension loading infrastructure.

This module defines a mixin responsible for discovering, loading, and
registering DSL plugins exposed via Python entry points.

Plugins are loaded defensively: individual failures do not interrupt
the loading process unless strict mode is enabled. Each plugin may
contribute actors, checkers, message validators, endpoint types,
expression functions and YAML instructions.
"""

from typing import TYPE_CHECKING
from warnings import warn

from pydantic import ValidationError

from pytest_courier.errors import PluginError, PluginWarning
from pytest_courier.extensions import Plugin

if TYPE_CHECKING:
    from collections.abc import Callable
    from importlib.metadata import EntryPoint

if TYPE_CHECKING:
    from pytest_courier.extensions import Actor, Checker, EndpointType, Function, Instruction, Validator
    from pytest_courier.schema import BaseAction, BaseCheck, BaseInstruction
    from pytest_courier.values import RuntimeValue

    type Definition = Actor | Checker | EndpointType | Function | Instruction | Validator

#: Entry point group of plugins.
PLUGINS_GROUP = 'courier_plugins'

#: Namespace of built-in expression functions.
BUILTIN_NAMESPACE = 'courier'


class ExtensionsLoaderMixin:
    """Mixin defining plugin extension loading behavior.

    This mixin encapsulates logic for discovering and loading plugins
    via entry points and registering their declared extensions.

    Registries preserve registration order: built-in extensions first,
    then plugins in entry point order. Validator selection relies on it.

    Attributes:
        strict_mode: If True, any plugin loading issue raises an error.
            If False, issues are emitted as warnings and loading continues.
    """

    strict_mode: bool = False

    actors: dict[str, type['BaseAction']]
    checkers: dict[str, type['BaseCheck']]
    validators: dict[str, 'Validator']
    endpoint_types: dict[str, 'EndpointType']
    functions: dict[str, 'Callable[..., RuntimeValue]']
    instructions: dict[str, type['BaseInstruction']]

    def _check_shadowing(self, kind: str, registry: dict, key: str,
                         module: str, entrypoint: 'EntryPoint | None') -> None:
        """Report a definition replacing an already registered one.

        Raises:
            PluginError: On strict mode.
        """
        if key in registry and (error := self.emit_plugin_issue(
            f'{kind} {key!r} from {module!r} is shadowing an existing',
            entrypoint,
        )):
            raise error

    def add_actor(self, actor: 'Actor',
                  entrypoint: 'EntryPoint | None' = None,
                  namespace: str | None = None) -> None:
        """Register an actor definition.

        Args:
            actor: Declarative actor definition.
            entrypoint: Entry point from which the actor was loaded,
                if applicable. Used for diagnostics and warnings.
            namespace: Optional plugin namespace to prefix the actor name.

        Raises:
            PluginError: If actor is shadowing on strict mode.
        """
        module, qualname = self.resolve_plugin_names(actor, entrypoint, namespace)
        self._check_shadowing('Actor', self.actors, qualname, module, entrypoint)

        self.actors[qualname] = actor.build(namespace)

    def add_checker(self, checker: 'Checker',
                    entrypoint: 'EntryPoint | None' = None) -> None:
        """Register a checker definition.

        Raises:
            PluginError: If checker is shadowing on strict mode.
        """
        module, _ = self.resolve_plugin_names(checker, entrypoint)
        self._check_shadowing('Checker', self.checkers, checker.name, module, entrypoint)

        self.checkers[checker.name] = checker.build()

    def add_validator(self, validator: 'Validator',
                      entrypoint: 'EntryPoint | None' = None) -> None:
        """Register a message validator.

        Validators are referenced by their plain name, so a plugin
        validator may replace a built-in one.

        Raises:
            PluginError: If validator is shadowing on strict mode.
        """
        module, _ = self.resolve_plugin_names(validator, entrypoint)
        self._check_shadowing('Validator', self.validators, validator.name, module, entrypoint)

        self.validators[validator.name] = validator

    def add_endpoint_type(self, endpoint_type: 'EndpointType',
                          entrypoint: 'EntryPoint | None' = None,
                          namespace: str | None = None) -> None:
        """Register an endpoint type.

        Plugin endpoint types are qualified with the plugin namespace,
        for example `jms.queue`.

        Raises:
            PluginError: If endpoint type is shadowing on strict mode.
        """
        module, _ = self.resolve_plugin_names(endpoint_type, entrypoint, namespace)
        name = f'{namespace}.{endpoint_type.name}' if namespace else endpoint_type.name
        self._check_shadowing('Endpoint type', self.endpoint_types, name, module, entrypoint)

        self.endpoint_types[name] = endpoint_type

    def add_function(self, function: 'Function',
                     entrypoint: 'EntryPoint | None' = None,
                     namespace: str = BUILTIN_NAMESPACE) -> None:
        """Register an expression function under `<namespace>:<name>`.

        Raises:
            PluginError: If function is shadowing on strict mode.
        """
        module, _ = self.resolve_plugin_names(function, entrypoint, namespace)
        qualname = function.qualname(namespace)
        self._check_shadowing('Function', self.functions, qualname, module, entrypoint)

        self.functions[qualname] = function.function

    def add_instruction(self, instruction: 'Instruction',
                        entrypoint: 'EntryPoint | None' = None) -> None:
        """Register an instruction.

        Raises:
            PluginError: If instruction is shadowing on strict mode.
        """
        module, _ = self.resolve_plugin_names(instruction, entrypoint)
        self._check_shadowing('Instruction', self.instructions, instruction.name, module, entrypoint)

        self.instructions[instruction.name] = instruction.build()

    @staticmethod
    def resolve_plugin_names(item: 'Definition',
                             entrypoint: 'EntryPoint | None' = None,
                             namespace: str | None = None) -> tuple[str, str]:
        """Resolve plugin display names for a definition.

        Returns:
            Tuple with a module name and a qualified name for a definition.
        """
        return (
            f'{entrypoint.value if entrypoint else item.__module__}',
            f'{namespace}.{item.name}' if namespace else item.name,
        )

    def emit_plugin_issue(self, message: str,
                          entrypoint: 'EntryPoint | None' = None) -> Exception | None:
        """Emit a plugin warning or return the exception.

        Returns:
            PluginError on strict mode, otherwise `None`
                with producing a PluginWarning.
        """
        if self.strict_mode:
            return PluginError(message, entrypoint=entrypoint)

        warn(message, category=PluginWarning, stacklevel=3)

        return None

    def _load_plugin(self, entrypoint: 'EntryPoint') -> None:
        """Load and process a single plugin entry point.

        Any errors or malformed entries result in warnings and do not
        interrupt plugin loading by default, but raise on strict mode.

        Raises:
            PluginError: If any loading issues occur on strict mode.
        """
        try:
            plugin = entrypoint.load()

        except ValidationError as base:
            if error := self.emit_plugin_issue(
                f'Failed to validate entrypoint {entrypoint.name!r}',
                entrypoint,
            ):
                raise error from base
            return

        except Exception as base:
            if error := self.emit_plugin_issue(
                f'Failed to load entrypoint {entrypoint.name!r}',
                entrypoint,
            ):
                raise error from base
            return

        if not isinstance(plugin, Plugin):
            if error := self.emit_plugin_issue(
                f'Loaded from entrypoint {entrypoint.name!r} object is not a plugin',
                entrypoint,
            ):
                raise error
            return

        self.add_plugin(plugin, entrypoint)

    def add_plugin(self, plugin: Plugin, entrypoint: 'EntryPoint | None' = None) -> None:
        """Register every extension declared by a plugin.

        Raises:
            PluginError: If any extension is shadowing on strict mode.
        """
        for actor in plugin.actors:
            self.add_actor(actor, entrypoint, namespace=plugin.name)

        for checker in plugin.checkers:
            self.add_checker(checker, entrypoint)

        for validator in plugin.validators:
            self.add_validator(validator, entrypoint)

        for endpoint_type in plugin.endpoints:
            self.add_endpoint_type(endpoint_type, entrypoint, namespace=plugin.name)

        for function in plugin.functions:
            self.add_function(function, entrypoint, namespace=plugin.name)

        for instruction in plugin.instructions:
            self.add_instruction(instruction, entrypoint)

    def clear_plugins(self) -> None:
        """Clear every registry."""
        self.actors = {}
        self.checkers = {}
        self.validators = {}
        self.endpoint_types = {}
        self.functions = {}
        self.instructions = {}

    def load_plugins(self) -> None:
        """Load plugins via entry points and register their extensions.

        Discovers plugins from the `courier_plugins` entry point group.

        Raises:
            PluginError: If any loading issues occur on strict mode.
        """
        from importlib.metadata import entry_points  # noqa: PLC0415

        for entrypoint in entry_points().select(group=PLUGINS_GROUP):
            self._load_plugin(entrypoint)
