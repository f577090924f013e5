"""Endpoint contract and the in-process direct endpoint.

Concrete transports (SSH, JMS, HTTP, files) live outside the engine and
only need to satisfy the `Endpoint` protocol. The direct endpoint binds
to a named in-process queue shared by every endpoint of a test case
declaring the same queue name (point-to-point), or subscribes to a named
topic, where every sent message reaches every subscriber (publish and
subscribe).
"""

import logging
from queue import Empty, Queue
from threading import Lock
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from pytest_courier.messages import Message

logger = logging.getLogger(__name__)


@runtime_checkable
class Endpoint(Protocol):
    """Transport binding capable of producing and consuming messages."""

    def send(self, message: 'Message') -> Any:  # noqa: ANN401
        """Produce a message."""
        ...  # pragma: no cover

    def receive(self, timeout: float) -> 'Message':
        """Consume a message.

        Raises:
            TimeoutError: If no message arrives within `timeout` seconds.
        """
        ...  # pragma: no cover


class MessageQueue:
    """Named unbounded in-process message queue."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._queue: Queue[Message] = Queue()

    def put(self, message: 'Message') -> None:
        """Enqueue a message."""
        self._queue.put(message)

    def get(self, timeout: float) -> 'Message':
        """Dequeue a message, waiting at most `timeout` seconds.

        Raises:
            TimeoutError: If the queue stays empty.
        """
        try:
            return self._queue.get(timeout=max(timeout, 0))
        except Empty as base:
            raise TimeoutError(f'No message on queue {self.name!r} within {timeout}s') from base

    def __len__(self) -> int:
        return self._queue.qsize()


class MessageTopic:
    """Named in-process topic fanning messages out to subscriber queues.

    Only subscribers existing when a message is published receive it.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: list[MessageQueue] = []
        self._lock = Lock()

    def subscribe(self) -> MessageQueue:
        """Add a subscriber and return its own queue."""
        with self._lock:
            queue = MessageQueue(f'{self.name}#{len(self._subscribers) + 1}')
            self._subscribers.append(queue)

        return queue

    def publish(self, message: 'Message') -> int:
        """Deliver a message to every subscriber.

        Returns:
            The number of subscribers reached.
        """
        with self._lock:
            subscribers = tuple(self._subscribers)

        for queue in subscribers:
            queue.put(message)

        return len(subscribers)


class MessageQueues:
    """Registry of named queues owned by one test context."""

    def __init__(self) -> None:
        self._queues: dict[str, MessageQueue] = {}
        self._topics: dict[str, MessageTopic] = {}
        self._lock = Lock()

    def get(self, name: str) -> MessageQueue:
        """Return the queue with a name, creating it on first use."""
        with self._lock:
            if name not in self._queues:
                self._queues[name] = MessageQueue(name)
            return self._queues[name]

    def topic(self, name: str) -> MessageTopic:
        """Return the topic with a name, creating it on first use."""
        with self._lock:
            if name not in self._topics:
                self._topics[name] = MessageTopic(name)
            return self._topics[name]

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._queues


class DirectEndpoint:
    """Endpoint sending to and receiving from an in-process queue."""

    def __init__(self, queue: MessageQueue) -> None:
        self.queue = queue

    def send(self, message: 'Message') -> None:
        """Put a message on the bound queue."""
        logger.debug('Direct send to %r: %s', self.queue.name, message.id)
        self.queue.put(message)

    def receive(self, timeout: float) -> 'Message':
        """Take a message from the bound queue."""
        message = self.queue.get(timeout)
        logger.debug('Direct receive from %r: %s', self.queue.name, message.id)

        return message

    def __repr__(self) -> str:
        return f'DirectEndpoint(queue={self.queue.name!r})'


class TopicEndpoint:
    """Endpoint publishing to a topic and receiving from its own subscription.

    The endpoint subscribes when created, so it also receives the messages
    it publishes.
    """

    def __init__(self, topic: MessageTopic) -> None:
        self.topic = topic
        self.subscription = topic.subscribe()

    def send(self, message: 'Message') -> int:
        """Publish a message to every subscriber of the topic."""
        count = self.topic.publish(message)
        logger.debug('Topic publish to %r reached %d subscriber(s): %s', self.topic.name, count, message.id)

        return count

    def receive(self, timeout: float) -> 'Message':
        """Take the next message of this subscription."""
        message = self.subscription.get(timeout)
        logger.debug('Topic receive from %r: %s', self.subscription.name, message.id)

        return message

    def __repr__(self) -> str:
        return f'TopicEndpoint(topic={self.topic.name!r})'
