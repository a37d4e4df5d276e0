"""Connection configuration settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


class ConnectionSettings(BaseSettings):
    """Which store to connect to and how."""

    backend: Literal["duckdb", "sqlalchemy"] = Field(
        default="duckdb",
        description="Store implementation: duckdb or sqlalchemy",
    )

    # DuckDB
    database: str = Field(
        default=":memory:",
        description="DuckDB database file, or :memory:",
    )
    read_only: bool = Field(default=False)

    # SQLAlchemy
    database_url: str = Field(
        default="sqlite://",
        description="SQLAlchemy URL used by the sqlalchemy backend",
    )
    dialect: str | None = Field(
        default=None,
        description="Dialect preset name; inferred from the backend when unset",
    )

    echo_sql: bool = Field(
        default=False,
        description="Log every statement sent to the store at INFO level",
    )

    model_config = SettingsConfigDict(
        env_prefix="TIDYSQL_",
        env_file=str(_ENV_FILE) if _ENV_FILE.exists() else ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> ConnectionSettings:
    """Get cached connection settings."""
    return ConnectionSettings()
