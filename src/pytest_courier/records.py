"""Execution log of a test case.

Every executed action (leaf or container) appends one record when it
reaches a terminal state. Records of concurrently running branches are
appended in completion order.
"""

from threading import Lock
from typing import Literal

from pydantic import Field

from pytest_courier.models import SchemaModel

type Outcome = Literal['succeeded', 'failed', 'abandoned']


class ActionRecord(SchemaModel):
    """Record of a single executed action."""

    name: str = Field(
        title='Action name',
        description='Display name of the action (its title or discriminator).',
    )

    action: str = Field(
        title='Action discriminator',
        description='Discriminator of the executed action, for example `send`.',
    )

    outcome: Outcome = Field(
        title='Outcome',
        description='Terminal state reached by the action.',
    )

    error: str | None = Field(
        default=None,
        title='Error message',
        description='Message of the terminating error, if any.',
    )

    kind: str | None = Field(
        default=None,
        title='Error kind',
        description='Kind of the terminating error, for example `CorrelationTimeout`.',
    )

    started: float = Field(
        title='Start time',
        description='Wall-clock timestamp of the action start.',
    )

    duration: float = Field(
        ge=0,
        title='Duration',
        description='Execution time in seconds.',
    )

    thread: str = Field(
        title='Thread name',
        description='Name of the concurrency unit the action ran on.',
    )

    def __str__(self) -> str:
        """Single-line representation for reports."""
        line = f'{self.outcome.upper():<9} {self.name} ({self.duration:.3f}s)'
        if self.kind:
            line += f' {self.kind}: {self.error}'

        return line


class ExecutionLog:
    """Append-only, thread-safe log of action records."""

    def __init__(self) -> None:
        self._records: list[ActionRecord] = []
        self._lock = Lock()

    def append(self, record: ActionRecord) -> None:
        """Append a record."""
        with self._lock:
            self._records.append(record)

    @property
    def records(self) -> tuple[ActionRecord, ...]:
        """Snapshot of the records appended so far."""
        with self._lock:
            return tuple(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
