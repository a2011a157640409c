"""
Settings, loaded from the environment.
"""

from typing import Optional

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from oilgas_common.connection import asyncpg_connect_args, database_name
from oilgas_common.constants import DEFAULT_ROLLOUT_CONCURRENCY
from oilgas_common.exceptions import ConfigurationError

_SUPPORTED_SCHEMES = ("postgres", "postgresql", "postgresql+asyncpg")


class MigratorSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    database_url: str = Field(
        ...,
        description="Administrative connection string (central database)",
        alias="DATABASE_URL",
    )

    rollout_concurrency: int = Field(
        default=DEFAULT_ROLLOUT_CONCURRENCY,
        ge=1,
        description="Maximum number of tenants a rollout touches concurrently",
        alias="ROLLOUT_CONCURRENCY",
    )

    rollout_timeout: Optional[float] = Field(
        default=None,
        gt=0,
        description="Seconds before a rollout stops admitting tenants and reports the rest as timed out",
        alias="ROLLOUT_TIMEOUT",
    )

    tenant_connect_retries: int = Field(
        default=3,
        ge=1,
        description="Connection attempts against a freshly created tenant database",
        alias="TENANT_CONNECT_RETRIES",
    )

    debug: bool = Field(default=False, description="", alias="DEBUG")

    @field_validator("database_url")
    @classmethod
    def _check_database_url(cls, value: str) -> str:
        scheme = value.split("://", 1)[0] if "://" in value else ""
        if scheme not in _SUPPORTED_SCHEMES:
            raise ValueError(f"unsupported scheme {scheme!r}, expected one of {_SUPPORTED_SCHEMES}")
        # pydantic only collects ValueError
        try:
            database_name(value)
            asyncpg_connect_args(value)
        except ConfigurationError as exc:
            raise ValueError(str(exc)) from exc
        return value


def load_settings(**overrides) -> MigratorSettings:
    """
    Build settings from the environment, translating pydantic errors into
    ConfigurationError so a missing DATABASE_URL is a clean fatal error.
    """
    try:
        return MigratorSettings(**overrides)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'settings'}: {err['msg']}"
            for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {problems}") from exc
