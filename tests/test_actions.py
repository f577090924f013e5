"""Tests for leaf actions."""

import logging
from threading import Timer
from typing import TYPE_CHECKING

import pytest

from pytest_courier.builtins.lookups import VariableLookup
from pytest_courier.endpoints import DirectEndpoint
from pytest_courier.errors import (
    Abandoned,
    ActionFailed,
    ActionTimeout,
    DSLSchemaError,
    ExpectationFailed,
    UnknownEndpoint,
    ValidationFailed,
)
from pytest_courier.messages import Message

if TYPE_CHECKING:
    from pytest_courier.context import TestContext
    from pytest_courier.core import DocumentParser


@pytest.fixture
def direct(context: 'TestContext') -> DirectEndpoint:
    """Register a direct endpoint named `out` bound to the queue `q`."""
    endpoint = DirectEndpoint(context.queues.get('q'))
    context.add_endpoint('out', endpoint)

    return endpoint


def test_send_to_endpoint(parser: 'DocumentParser', context: 'TestContext',
                          direct: DirectEndpoint) -> None:
    """Render and send a message to an endpoint."""
    context.variables.update({'name': 'bob', 'id': 42})

    parser.parse_step({
        'action': 'send',
        'endpoint': 'out',
        'message': {
            'body': 'Hello ${name}',
            'headers': {'id': '${id}'},
        },
    }).execute(context)

    sent = direct.queue.get(0.1)
    record, = context.log.records

    assert sent.payload == 'Hello bob'
    assert sent.headers == {'id': 42}
    assert sent.message_type == 'plaintext'
    assert record.name == 'send'
    assert record.outcome == 'succeeded'
    assert record.error is None


def test_request_reply_by_correlation_key(parser: 'DocumentParser', context: 'TestContext',
                                          direct: DirectEndpoint) -> None:
    """Deliver a reply to the receive awaiting its correlation key."""
    context.variables.set('id', 42)

    request = parser.parse_step({
        'action': 'send',
        'endpoint': 'out',
        'correlationKey': '${id}',
        'message': {'payload': 'ping'},
    })
    reply = parser.parse_step({
        'action': 'send',
        'replyTo': '${id}',
        'message': {'payload': 'pong'},
    })
    receive = parser.parse_step({
        'action': 'receive',
        'correlationKey': '42',
        'timeout': 1,
        'message': {'payload': 'pong'},
        'extract': {'payload': 'answer'},
    })

    request.execute(context)
    assert context.correlations.pending() == ('42',)
    assert direct.queue.get(0.1).payload == 'ping'

    reply.execute(context)
    receive.execute(context)

    assert context.variables['answer'] == 'pong'
    assert context.correlations.pending() == ()
    assert [record.outcome for record in context.log.records] == ['succeeded'] * 3


def test_correlation_header(parser: 'DocumentParser', context: 'TestContext',
                            direct: DirectEndpoint) -> None:  # noqa: ARG001
    """Register the value of an outgoing header as the correlation key."""
    parser.parse_step({
        'action': 'send',
        'endpoint': 'out',
        'correlationHeader': 'msgId',
        'message': {'headers': {'msgId': 'abc'}},
        'export': {'key': VariableLookup('result.correlation')},
    }).execute(context)

    assert context.variables['key'] == 'abc'
    assert context.correlations.pending() == ('abc',)


def test_correlation_header_absent(parser: 'DocumentParser', context: 'TestContext',
                                   direct: DirectEndpoint) -> None:
    """Fail without sending when the correlation header is absent."""
    step = parser.parse_step({
        'action': 'send',
        'endpoint': 'out',
        'correlationHeader': 'msgId',
        'message': {'payload': 'ping'},
    })

    with pytest.raises(ActionFailed, match=r"^Correlation header 'msgId' is absent"):
        step.execute(context)

    assert len(direct.queue) == 0


@pytest.mark.parametrize('document', (
    pytest.param({'action': 'send'}, id='send without target'),
    pytest.param({
        'action': 'send',
        'endpoint': 'out',
        'correlationKey': 'k',
        'correlationHeader': 'h',
    }, id='send with both correlation sources'),
    pytest.param({'action': 'receive'}, id='receive without source'),
    pytest.param({
        'action': 'receive',
        'endpoint': 'out',
        'correlationKey': 'k',
    }, id='receive with both sources'),
    pytest.param({'action': 'wait'}, id='wait without duration'),
    pytest.param({'action': 'createVariables', 'variables': {}}, id='no variables'),
    pytest.param({'action': 'stopTime', 'suffix': '-end'}, id='invalid suffix'),
    pytest.param({'action': 'echo'}, id='echo without message'),
    pytest.param({'action': 'send', 'endpoint': 'out', 'unknown': 1}, id='extra field'),
))
def test_invalid_steps(parser: 'DocumentParser', document: dict) -> None:
    """Reject invalid step documents."""
    with pytest.raises(DSLSchemaError):
        parser.parse_step(document)


def test_receive_timeout(parser: 'DocumentParser', context: 'TestContext',
                         direct: DirectEndpoint) -> None:  # noqa: ARG001
    """Time out when nothing arrives on the endpoint."""
    step = parser.parse_step({
        'action': 'receive',
        'endpoint': 'out',
        'timeout': 0.05,
    })

    with pytest.raises(ActionTimeout, match=r"^No message on endpoint 'out' within 0.05s") as error:
        step.execute(context)

    record, = context.log.records

    assert error.value.timeout == 0.05  # noqa: PLR2004
    assert error.value.action == 'receive'
    assert record.outcome == 'failed'
    assert record.kind == 'ActionTimeout'


def test_receive_validation_failure(parser: 'DocumentParser', context: 'TestContext',
                                    direct: DirectEndpoint) -> None:
    """Fail on a message different from the expected one."""
    direct.send(Message(payload='Hello'))

    step = parser.parse_step({
        'action': 'receive',
        'title': 'Check greeting',
        'endpoint': 'out',
        'message': {'payload': 'Bye'},
    })

    with pytest.raises(ValidationFailed) as error:
        step.execute(context)

    record, = context.log.records

    assert error.value.action == 'Check greeting'
    assert record.name == 'Check greeting'
    assert record.kind == 'ValidationFailed'


def test_receive_extracts_values(parser: 'DocumentParser', context: 'TestContext',
                                 direct: DirectEndpoint) -> None:
    """Validate a JSON message and extract its header and payload."""
    direct.send(Message(payload='{"a": 1}', headers={'trace': 't1'}, message_type='json'))

    parser.parse_step({
        'action': 'receive',
        'endpoint': 'out',
        'message': {
            'type': 'json',
            'payload': {'a': 1},
        },
        'extract': {
            'headers': {'traceId': 'trace'},
            'payload': 'body',
        },
    }).execute(context)

    assert context.variables['traceId'] == 't1'
    assert context.variables['body'] == '{"a": 1}'


def test_receive_extract_missing_header(parser: 'DocumentParser', context: 'TestContext',
                                        direct: DirectEndpoint) -> None:
    """Fail when an extracted header is absent."""
    direct.send(Message(payload='ok'))

    step = parser.parse_step({
        'action': 'receive',
        'endpoint': 'out',
        'extract': {'headers': {'traceId': 'trace'}},
    })

    with pytest.raises(ActionFailed, match=r"Header 'trace' is absent"):
        step.execute(context)

    assert 'traceId' not in context.variables


def test_loopback_endpoint_type(parser: 'DocumentParser', context: 'TestContext') -> None:
    """Exchange messages with an endpoint created from a plugin endpoint type."""
    endpoint_type = parser.get_endpoint_type('example.loopback')
    context.add_endpoint('svc', endpoint_type.create({'prefix': 're: '}, context))

    parser.parse_step({
        'action': 'send',
        'endpoint': 'svc',
        'message': {'payload': 'ping', 'headers': {'h': 'v'}},
    }).execute(context)
    parser.parse_step({
        'action': 'receive',
        'endpoint': 'svc',
        'message': {'payload': 're: ping', 'headers': {'h': 'v'}},
    }).execute(context)

    assert context.endpoints['svc'].sent[0].payload == 'ping'


def test_unknown_endpoint(parser: 'DocumentParser', context: 'TestContext') -> None:
    """Fail on an endpoint that is not registered."""
    step = parser.parse_step({
        'action': 'send',
        'endpoint': 'missing',
    })

    with pytest.raises(UnknownEndpoint) as error:
        step.execute(context)

    assert error.value.action == 'send'


def test_wait(parser: 'DocumentParser', context: 'TestContext') -> None:
    """Sleep for a duration."""
    parser.parse_step({'action': 'wait', 'time': 0.01}).execute(context)

    assert context.log.records[0].outcome == 'succeeded'


def test_wait_interrupted(parser: 'DocumentParser', context: 'TestContext') -> None:
    """Wake up early when the test case is aborted."""
    step = parser.parse_step({'action': 'wait', 'duration': 5})
    timer = Timer(0.05, context.abort)
    timer.start()

    try:
        with pytest.raises(Abandoned, match=r'^Wait interrupted by abort'):
            step.execute(context)
    finally:
        timer.cancel()

    record, = context.log.records

    assert record.outcome == 'abandoned'
    assert record.duration < 5  # noqa: PLR2004


def test_aborted_context(parser: 'DocumentParser', context: 'TestContext') -> None:
    """Refuse to run an action once the test case is aborted."""
    context.abort()

    with pytest.raises(Abandoned, match=r'^Test case is aborted'):
        parser.parse_step({'action': 'empty'}).execute(context)

    assert context.log.records[0].outcome == 'abandoned'


def test_create_variables(parser: 'DocumentParser', context: 'TestContext') -> None:
    """Create variables in declaration order, evaluating functions once."""
    parser.parse_step({
        'action': 'createVariables',
        'variables': {
            'a': 'x',
            'b': '${a}-y',
            'c': 'courier:upperCase(${b})',
            'd': {'items': ['${a}', 3]},
        },
    }).execute(context)

    assert context.variables.snapshot() == {
        'a': 'x',
        'b': 'x-y',
        'c': 'X-Y',
        'd': {'items': ['x', 3]},
    }


def test_stop_time(parser: 'DocumentParser', context: 'TestContext') -> None:
    """Start a time line and measure elapsed milliseconds."""
    parser.parse_step({'action': 'stopTime', 'id': 'line'}).execute(context)
    parser.parse_step({'action': 'wait', 'duration': 0.02}).execute(context)
    parser.parse_step({'action': 'stopTime', 'id': 'line', 'suffix': '_end'}).execute(context)

    assert context.variables['line'] == 0
    assert context.variables['line_end'] >= 10  # noqa: PLR2004


@pytest.mark.parametrize('document, message', (
    pytest.param({'action': 'fail'}, 'Test failed', id='default message'),
    pytest.param({'action': 'fail', 'message': 'Broken ${what}'}, 'Broken pipe', id='rendered message'),
))
def test_fail(parser: 'DocumentParser', context: 'TestContext',
              document: dict, message: str) -> None:
    """Fail with a rendered message."""
    context.variables.set('what', 'pipe')

    with pytest.raises(ActionFailed) as error:
        parser.parse_step(document).execute(context)

    assert error.value.message == message
    assert context.log.records[0].error == message


def test_echo_exports_after_checks(parser: 'DocumentParser', context: 'TestContext',
                                   caplog: pytest.LogCaptureFixture) -> None:
    """Log a message, check the result and export it."""
    context.variables.set('name', 'bob')

    step = parser.parse_step({
        'action': 'echo',
        'message': 'Hello ${name}',
        'output': 'greeting',
        'export': {'said': VariableLookup('greeting')},
        'expect': [
            {'value': VariableLookup('greeting'), 'match': 'Hello bob'},
            {'value': VariableLookup('said'), 'regex': '^hello', 'ignoreCase': True},
        ],
    })

    with caplog.at_level(logging.INFO, logger='pytest_courier'):
        step.execute(context)

    assert context.variables['said'] == 'Hello bob'
    assert 'greeting' not in context.variables
    assert 'Hello bob' in caplog.messages


def test_expectation_failure_skips_exports(parser: 'DocumentParser', context: 'TestContext') -> None:
    """Fail on an unmet expectation without writing exports."""
    step = parser.parse_step({
        'action': 'echo',
        'message': 'Hello',
        'export': {'said': VariableLookup('result')},
        'expect': [
            {'value': VariableLookup('result'), 'eq': 'Hello'},
            {'title': 'greeting is polite', 'value': VariableLookup('result'), 'eq': 'Good day'},
        ],
    })

    with pytest.raises(ExpectationFailed) as error:
        step.execute(context)

    assert isinstance(error.value, AssertionError)
    assert error.value.message == 'Expectation failed: greeting is polite'
    assert error.value.context['check_num'] == 1
    assert 'said' not in context.variables
    assert context.log.records[0].kind == 'ExpectationFailed'


def test_plugin_actor_with_locals(parser: 'DocumentParser', context: 'TestContext') -> None:
    """Run a plugin actor with local variables kept out of the store."""
    parser.parse_step({
        'action': 'example.increment',
        'vars': {'n': 41},
        'val': '${n}',
        'export': {'answer': VariableLookup('result')},
    }).execute(context)

    assert context.variables.snapshot() == {'answer': 42}


def test_plugin_actor_exception(parser: 'DocumentParser', context: 'TestContext') -> None:
    """Wrap a plain exception of an actor into an action failure."""
    step = parser.parse_step({
        'action': 'example.divide',
        'dividend': 1,
        'divisor': 0,
    })

    with pytest.raises(ActionFailed, match=r'^ZeroDivisionError') as error:
        step.execute(context)

    assert isinstance(error.value.__cause__, ZeroDivisionError)
    assert error.value.action == 'example.divide'
    assert context.log.records[0].outcome == 'failed'
