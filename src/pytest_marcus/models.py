"""Pydantic bases shared by every model of the package.

Parsed tests, assertions, responses, and results are frozen records: the
parser builds them once, and the engine only reads them, possibly from
several worker threads at a time. Settings are frozen as well, but they
tolerate unrelated keys because they are resolved from the environment.
"""

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchemaModel(BaseModel):
    """Frozen record with a closed set of fields.

    Unknown fields are rejected so that a parser producing a misspelled
    key fails loudly instead of losing the value. Arbitrary types are
    allowed for fields holding paths, durations, or exceptions.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra='forbid',
    )


class SettingsModel(BaseSettings):
    """Frozen settings resolved once per run.

    Unrelated environment variables and keys are ignored.
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra='ignore',
    )
