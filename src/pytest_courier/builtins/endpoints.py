"""Built-in endpoint types."""

from typing import TYPE_CHECKING

from pytest_courier.endpoints import DirectEndpoint, TopicEndpoint
from pytest_courier.extensions import Attribute, EndpointType, Schema

if TYPE_CHECKING:
    from collections.abc import Mapping

    from pytest_courier.context import TestContext
    from pytest_courier.endpoints import Endpoint
    from pytest_courier.values import RuntimeValue

#: Delivery modes of direct endpoints.
DIRECT_MODES = ('queue', 'topic')


def _direct(options: 'Mapping[str, RuntimeValue]', context: 'TestContext') -> 'Endpoint':
    """Bind a direct endpoint to a named queue or topic of the test context.

    Raises:
        ValueError: If the mode is unknown.
    """
    name = str(options['queue'])
    mode = options.get('mode') or 'queue'

    if mode == 'topic':
        return TopicEndpoint(context.queues.topic(name))
    if mode == 'queue':
        return DirectEndpoint(context.queues.get(name))

    raise ValueError(f'Unknown direct endpoint mode {mode!r}, expected one of {DIRECT_MODES}')


#: Endpoint type for in-process queues and topics shared per test case.
direct = EndpointType(
    name='direct',
    factory=_direct,
    parameters=Schema({
        'queue': Attribute(
            base=str,
            required=True,
            title='Queue name',
            description='Endpoints declaring the same queue or topic exchange messages.',
        ),
        'mode': Attribute(
            base=str,
            default='queue',
            title='Delivery mode',
            description=(
                'With `queue`, every message is taken by one receiver. '
                'With `topic`, every endpoint subscribes on creation and '
                'each message reaches every subscriber.'
            ),
            examples=list(DIRECT_MODES),
        ),
    }),
)
