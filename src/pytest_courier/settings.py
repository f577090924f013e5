"""Runtime configuration of the execution engine."""

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from pytest_courier.models import SettingsModel


class CourierSettings(SettingsModel):
    """Engine settings resolved from `COURIER_*` environment variables.

    Explicit keyword arguments take precedence over the environment, and
    case headers may override a subset of values for a single test case.
    """

    model_config = SettingsConfigDict(
        env_prefix='COURIER_',
        frozen=True,
        extra='ignore',
    )

    receive_timeout: float = Field(
        default=5.0,
        gt=0,
        title='Receive timeout',
        description='Default time in seconds a receive action waits for a message.',
    )

    correlation_grace_period: float = Field(
        default=0.0,
        ge=0,
        title='Correlation grace period',
        description=(
            'Time in seconds a reply without a registered waiter is buffered '
            'for a late registration. Zero discards such replies and fails '
            'the resolving action.'
        ),
    )

    fail_fast: bool = Field(
        default=True,
        title='Fail fast',
        description=(
            'Stop executing top-level actions after the first failure. '
            'Otherwise remaining top-level actions still run and every '
            'failure is reported.'
        ),
    )

    strict_headers: bool = Field(
        default=False,
        title='Strict header validation',
        description='Fail validation when a received message carries unexpected headers.',
    )

    case_timeout: float | None = Field(
        default=None,
        gt=0,
        title='Test case timeout',
        description='Time in seconds after which a running test case is abandoned.',
    )

    max_expression_depth: int = Field(
        default=16,
        ge=1,
        title='Expression depth limit',
        description='Maximum nesting of variable and function expressions.',
    )

    poll_interval: float = Field(
        default=0.05,
        gt=0,
        title='Poll interval',
        description='Slice in seconds used by blocking operations to observe an abort.',
    )
