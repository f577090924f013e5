"""Correlation of asynchronous replies with pending receivers.

A receiver registers a correlation key and obtains a handle; whoever
produces the reply resolves the key with a message, and the receiver
awaits the handle. Each key maps to at most one pending waiter and a
delivered message is consumed exactly once.

A reply arriving for a key with no registered waiter is discarded and
reported with `UnknownCorrelation`, unless a positive grace period is
configured: then the reply is buffered for that long, and a registration
within the grace period receives it immediately.
"""

import logging
from threading import Event, Lock
from time import monotonic
from typing import TYPE_CHECKING

from pytest_courier.errors import (
    Abandoned,
    CorrelationTimeout,
    DuplicateCorrelation,
    UnknownCorrelation,
    UnresolvedCorrelation,
)

if TYPE_CHECKING:
    from collections.abc import Callable

if TYPE_CHECKING:
    from pytest_courier.errors import CorrelationError
    from pytest_courier.messages import Message

logger = logging.getLogger(__name__)


class CorrelationHandle:
    """Waiter handle returned by `CorrelationManager.register`."""

    def __init__(self, key: str) -> None:
        self.key = key
        self.message: Message | None = None
        self.delivered = Event()
        self.abandoned = False
        self.waiting = False
        self.consumed = False

    def __repr__(self) -> str:
        return f'CorrelationHandle(key={self.key!r}, delivered={self.delivered.is_set()})'


class CorrelationManager:
    """Thread-safe registry of pending correlations."""

    def __init__(self, grace_period: float = 0.0, *,
                 clock: 'Callable[[], float]' = monotonic) -> None:
        """Initialize the registry.

        Args:
            grace_period: Seconds an unmatched reply is buffered.
                Zero discards unmatched replies.
            clock: Monotonic clock used for buffer expiry.
        """
        self.grace_period = grace_period
        self.clock = clock

        self._pending: dict[str, CorrelationHandle] = {}
        self._buffered: dict[str, tuple[float, Message]] = {}
        self._lock = Lock()
        self._closed = False

    def register(self, key: str) -> CorrelationHandle:
        """Register a waiter for a key.

        Raises:
            DuplicateCorrelation: If the key already has a pending waiter.
        """
        with self._lock:
            return self._register(key)

    def acquire(self, key: str) -> CorrelationHandle:
        """Return the pending waiter of a key, registering one if absent.

        Used by receive actions that consume a correlation registered by
        an earlier send of the same key.

        Raises:
            DuplicateCorrelation: If another receiver already waits on the key.
        """
        with self._lock:
            if handle := self._pending.get(key):
                if handle.waiting:
                    raise DuplicateCorrelation(f'Correlation {key!r} already has a receiver', key=key)
                return handle
            return self._register(key)

    def _register(self, key: str) -> CorrelationHandle:
        """Register a waiter; the caller holds the lock."""
        if self._closed:
            raise Abandoned('Test context is closed')

        if key in self._pending:
            raise DuplicateCorrelation(f'Correlation {key!r} already has a pending waiter', key=key)

        handle = CorrelationHandle(key)
        self._pending[key] = handle

        if buffered := self._buffered.pop(key, None):
            expires, message = buffered
            if self.clock() <= expires:
                logger.debug('Correlation %r delivered from buffer', key)
                self._deliver(handle, message)
            else:
                logger.warning('Correlation %r buffered reply expired', key)

        logger.debug('Correlation %r registered', key)

        return handle

    def resolve(self, key: str, message: 'Message') -> None:
        """Deliver a message to the waiter of a key.

        Raises:
            UnknownCorrelation: If no waiter is registered and no grace
                period is configured.
        """
        with self._lock:
            handle = self._pending.get(key)
            if handle is not None and not handle.delivered.is_set():
                logger.debug('Correlation %r resolved with message %s', key, message.id)
                self._deliver(handle, message)
                return

            if self.grace_period > 0 and not self._closed:
                logger.debug('Correlation %r has no waiter, buffering for %ss', key, self.grace_period)
                self._buffered[key] = (self.clock() + self.grace_period, message)
                return

        logger.warning('Correlation %r has no waiter, reply discarded', key)

        raise UnknownCorrelation(f'No waiter registered for correlation {key!r}', key=key)

    @staticmethod
    def _deliver(handle: CorrelationHandle, message: 'Message') -> None:
        """Hand a message to a handle; the caller holds the lock."""
        handle.message = message
        handle.delivered.set()

    def wait(self, handle: CorrelationHandle, timeout: float, *,
             interval: float | None = None,
             aborted: 'Event | None' = None) -> 'Message':
        """Block until a message is delivered to a handle.

        Only the calling thread blocks. The registration is consumed
        both on delivery and on timeout.

        Args:
            handle: Handle obtained from `register` or `acquire`.
            timeout: Seconds to wait.
            interval: Slice in seconds used to observe an abort.
            aborted: Event set when the test case is aborted.

        Returns:
            The delivered message.

        Raises:
            UnknownCorrelation: If the handle was already consumed.
            DuplicateCorrelation: If another thread already waits on the handle.
            CorrelationTimeout: If nothing is delivered in time.
            Abandoned: If the test case is aborted while waiting.
        """
        with self._lock:
            if handle.consumed or self._pending.get(handle.key) is not handle:
                raise UnknownCorrelation(
                    f'Correlation {handle.key!r} is not pending',
                    key=handle.key,
                )
            if handle.waiting:
                raise DuplicateCorrelation(
                    f'Correlation {handle.key!r} already has a receiver',
                    key=handle.key,
                )
            handle.waiting = True

        deadline = self.clock() + timeout
        while not handle.delivered.is_set():
            remaining = deadline - self.clock()
            if remaining <= 0 or handle.abandoned:
                break
            if aborted is not None and aborted.is_set():
                break
            handle.delivered.wait(min(remaining, interval) if interval else remaining)

        with self._lock:
            if handle.consumed:
                raise UnknownCorrelation(
                    f'Correlation {handle.key!r} is not pending',
                    key=handle.key,
                )
            if self._pending.get(handle.key) is handle:
                del self._pending[handle.key]
            handle.consumed = True

            if handle.delivered.is_set() and handle.message is not None:
                return handle.message

        if handle.abandoned or (aborted is not None and aborted.is_set()):
            raise Abandoned(f'Correlation {handle.key!r} abandoned')

        logger.debug('Correlation %r timed out after %ss', handle.key, timeout)

        raise CorrelationTimeout(
            f'No reply for correlation {handle.key!r} within {timeout}s',
            key=handle.key,
        )

    def pending(self) -> tuple[str, ...]:
        """Keys with a pending waiter."""
        with self._lock:
            return tuple(self._pending)

    def close(self) -> list['CorrelationError']:
        """Abandon pending waiters and report unclaimed entries.

        Returns:
            `UnresolvedCorrelation` for every waiter that never got a
            message and `UnknownCorrelation` for every buffered reply
            that was never claimed.
        """
        errors: list[CorrelationError] = []

        with self._lock:
            self._closed = True

            for key, handle in self._pending.items():
                if handle.delivered.is_set():
                    continue
                handle.abandoned = True
                handle.delivered.set()
                errors.append(UnresolvedCorrelation(
                    f'Correlation {key!r} was never resolved',
                    key=key,
                ))

            for key in self._buffered:
                errors.append(UnknownCorrelation(
                    f'Buffered reply for correlation {key!r} was never claimed',
                    key=key,
                ))

            self._pending.clear()
            self._buffered.clear()

        for error in errors:
            logger.warning('%s', error.message)

        return errors
