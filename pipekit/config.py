"""Import pipeline settings.

Settings come from constructor arguments or from ``PIPEKIT_*`` environment
variables. A ``.env`` file in the working directory is loaded first so local
development does not need exported variables.
"""

import logging
import os
from dataclasses import dataclass, fields
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "PIPEKIT_"


@dataclass(frozen=True)
class ImportSettings:
    """Tunable limits for parsing, mapping, validation and commit."""

    max_rows: int = 20000
    max_file_bytes: int = 50 * 1024 * 1024
    preview_rows: int = 20
    fuzzy_threshold: float = 0.8
    validation_workers: int = 4
    sub_batch_size: int = 200
    sub_batch_timeout: float = 30.0
    session_ttl: float = 24 * 60 * 60
    soft_budget: float = 10.0
    lock_retry_attempts: int = 3
    lock_retry_backoff: float = 0.2

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "ImportSettings":
        """Build settings from the environment.

        Args:
            env_file: Optional path to a .env file (defaults to ./.env lookup)

        Returns:
            ImportSettings with every ``PIPEKIT_<FIELD>`` override applied
        """
        load_dotenv(env_file)

        values = {}
        for f in fields(cls):
            raw = os.getenv(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None or not raw.strip():
                continue
            try:
                values[f.name] = type(f.default)(raw.strip())
            except ValueError:
                raise ValueError(
                    f"Invalid value for {ENV_PREFIX}{f.name.upper()}: {raw!r}"
                )

        settings = cls(**values)
        if values:
            logger.info(f"Import settings overridden from environment: {sorted(values)}")
        return settings


def database_url_from_env(env_file: Optional[str] = None) -> str:
    """Resolve the Postgres connection string.

    Priority: 1) PIPEKIT_DB_URL, 2) individual PIPEKIT_DB_* variables.

    Raises:
        ValueError: If neither form is fully configured
    """
    load_dotenv(env_file)

    db_url = os.getenv(f"{ENV_PREFIX}DB_URL")
    if db_url and db_url.strip():
        return db_url.strip()

    host = os.getenv(f"{ENV_PREFIX}DB_HOST")
    port = os.getenv(f"{ENV_PREFIX}DB_PORT", "5432")
    database = os.getenv(f"{ENV_PREFIX}DB_NAME")
    user = os.getenv(f"{ENV_PREFIX}DB_USER")
    password = os.getenv(f"{ENV_PREFIX}DB_PASSWORD")

    if not all([host, database, user, password]):
        raise ValueError(
            "Missing database connection parameters. Set PIPEKIT_DB_URL or "
            "PIPEKIT_DB_HOST, PIPEKIT_DB_NAME, PIPEKIT_DB_USER, "
            "PIPEKIT_DB_PASSWORD environment variables."
        )

    return f"postgresql://{user}:{password}@{host}:{port}/{database}"
