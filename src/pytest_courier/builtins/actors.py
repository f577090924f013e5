"""Built-in plugin-style actions.

These actions carry no engine semantics: they only see resolved and
rendered parameters, the same way plugin actors do.
"""

import logging
from typing import TYPE_CHECKING

from pytest_courier.extensions import Actor, Attribute, Schema

if TYPE_CHECKING:
    from collections.abc import Mapping

if TYPE_CHECKING:
    from pytest_courier.values import RuntimeValue

logger = logging.getLogger(__name__)


def _noop(params: 'Mapping[str, RuntimeValue]') -> 'RuntimeValue':  # noqa: ARG001
    """A logic-neutral action acting as a syntactic placeholder.

    Accepts any parameters and performs no processing. It is used
    where the syntax requires a step, for example to export or check
    variables computed in `vars`.

    Returns:
        Always returns `None`.
    """
    return None


def _echo(params: 'Mapping[str, RuntimeValue]') -> 'RuntimeValue':
    """Log a rendered message and return it."""
    message = params.get('message')
    logger.info('%s', message)

    return message


noop = Actor(actor=_noop, name='empty')

echo = Actor(
    actor=_echo,
    name='echo',
    parameters=Schema({
        'message': Attribute(
            required=True,
            title='Message',
            description='Text rendered with variables and functions, then logged.',
            examples=['Hello ${user}'],
        ),
    }),
)
