"""Dynamic DSL schema composition utilities.

This module defines helpers for building runtime Pydantic models that
represent executable DSL documents.

It composes built-in actions, containers, plugin actions and checks
into a single root document model. Actions are distinguished by their
`action` discriminator; container children are validated against the
same step model, so containers nest to any depth.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import Field, RootModel, create_model

from pytest_courier.schema import CONTAINERS, LEAF_ACTIONS, BaseAction, BaseCheck, Case

#: Root model for executable actions (with optional expectations).
type RootAction = RootModel[BaseAction]

#: Root model for checks used as expectations.
type RootCheck = RootModel[BaseCheck]

#: Step executable definition in a document.
type Step = RootAction

#: Single executable definition in a document.
type Definition = Case | Step

#: Root model for the entire DSL document.
type Document = RootModel[Definition]


class ExtensionsBuilderMixin:
    """Mixin providing dynamic DSL schema composition.

    The resulting models are used for validation of parsed DSL
    documents. Child steps of containers are validated with the step
    model passed in the validation context under `step_model`.
    """

    @classmethod
    def build_actions(cls, actions: list[type[BaseAction]],
                      check_model: type[RootCheck] | None = None) -> type[RootAction]:
        """Build a root model aggregating all executable actions.

        Each action model is extended with an `expect` field
        containing post-execution checks.

        Args:
            actions: Plugin action models, appended after built-in ones.
            check_model: Root model for expectations.

        Returns:
            RootModel wrapping a discriminated union of action variants.
        """
        models = tuple(
            create_model(  # type: ignore[call-overload]
                model.__name__,
                __base__=model,
                __module__=model.__module__,
                expect=cls.build_check_field(check_model),
            )
            for model in (*LEAF_ACTIONS, *CONTAINERS, *actions)
        )

        if len(models) == 1:  # pragma: no cover
            root: Any = models[0]
        else:
            root = Annotated[Union[models], Field(discriminator='action')]  # noqa: UP007

        return create_model(
            'Step',
            __base__=RootModel,
            root=root,
        )

    @classmethod
    def build_check_field(cls, check_model: type[RootCheck] | None = None) -> tuple[Any, Any]:
        """Build a Pydantic field definition for action expectations.

        Args:
            check_model: Root check model to use for expectations.

        Returns:
            A tuple suitable for passing to `create_model`.
                If no check model is provided, returns a `Literal[None]` field.
        """
        if not check_model:
            return Literal[None], None

        return list[check_model], Field(  # type: ignore[valid-type]
            default_factory=list,
            title='Action expectations',
            description=(
                'List of checks that must pass after the action execution. '
                'Checks see the variable store, the local variables and '
                'the action result.'
            ),
        )

    @classmethod
    def build_checks(cls, checks: list[type[BaseCheck]]) -> type[RootCheck] | None:
        """Build a root model aggregating all available checks.

        Returns:
            RootModel wrapping a union of all checks, or None if no checks are provided.
        """
        if not checks:  # pragma: no cover
            return None

        return create_model(
            'Check',
            __base__=RootModel,
            root=Union[tuple(checks)],  # noqa: UP007
        )

    @classmethod
    def build_document(cls, actions: list[type[BaseAction]],
                       checks: list[type[BaseCheck]]) -> tuple[type[Document], type[Step]]:
        """Build the root DSL document model.

        Args:
            actions: Registered plugin action models.
            checks: Registered check models.

        Returns:
            The document model accepting a case header or a step, and
            the step model used to validate container children.
        """
        step = cls.build_actions(actions, check_model=cls.build_checks(checks))

        document = create_model(
            'Document',
            __base__=RootModel,
            root=Union[(Case, step)],  # noqa: UP007
        )

        return document, step
