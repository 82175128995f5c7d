"""Runtime configuration for the execution engine and scheduler.

Settings are resolved from environment variables prefixed with `MARCUS_`
and may be overridden field by field by the command line or pytest options.
"""

from datetime import timedelta
from os import cpu_count

from pydantic import Field, PositiveInt
from pydantic_settings import SettingsConfigDict

from pytest_marcus.models import SettingsModel


class RunnerSettings(SettingsModel):
    """Execution settings shared by every test of a run.

    Attributes:
        retry_delay: Default delay between polling attempts.
        retry_max: Default number of attempts for wait conditions.
        timeout: Transport timeout of the HTTP client, in seconds.
        workers: Upper bound of simultaneously running parallel jobs.
        preview_limit: Number of response characters attached to
            status assertion failures.
    """

    model_config = SettingsConfigDict(
        env_prefix='MARCUS_',
    )

    retry_delay: timedelta = Field(
        default=timedelta(seconds=1),
        title='Retry delay',
        description='Delay between attempts while a wait condition is unmet.',
    )

    retry_max: PositiveInt = Field(
        default=10,
        title='Retry attempts',
        description='Maximum number of attempts while a wait condition is unmet.',
    )

    timeout: float | None = Field(
        default=30.0,
        title='HTTP timeout',
        description='Transport timeout of a single request, in seconds.',
    )

    workers: PositiveInt = Field(
        default_factory=lambda: cpu_count() or 1,
        title='Parallel workers',
        description='Maximum number of requests in flight in parallel mode.',
    )

    preview_limit: PositiveInt = Field(
        default=500,
        title='Response preview limit',
        description='Maximum number of response characters shown on status failures.',
    )
