"""Configuration module for bear-query."""

import logging
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

from bear_query.exceptions import ConfigurationError, NoHomeDirectoryError

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, if a home directory exists at all
try:
    load_dotenv(Path.home() / ".bear-query" / ".env")
except RuntimeError:
    pass


logger = logging.getLogger(__name__)

# Bear's sandboxed group container, relative to the user's home directory
BEAR_DATABASE_RELATIVE_PATH = Path(
    "Library/Group Containers/9K33E3U3T4.net.shinyfrog.bear/"
    "Application Data/database.sqlite"
)

DEFAULT_BUSY_TIMEOUT_MS = 5000


def home_directory() -> Path:
    """Return the current user's home directory.

    Raises:
        NoHomeDirectoryError: If no home directory can be determined.
    """
    try:
        home = Path.home()
    except (RuntimeError, KeyError) as e:
        raise NoHomeDirectoryError() from e
    # Older interpreters hand back "~" unexpanded instead of raising
    if not home.is_absolute():
        raise NoHomeDirectoryError()
    return home


class BearQueryConfig(BaseModel):
    """Configuration for bear-query."""

    # Explicit database location; None means Bear's default location
    database_path: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("BEAR_QUERY_DATABASE_PATH"))
            if os.getenv("BEAR_QUERY_DATABASE_PATH")
            else None
        )
    )
    # Upper bound on waiting for a lock held by Bear, in milliseconds.
    # The environment value arrives as text and is parsed by the validators.
    busy_timeout_ms: int = Field(
        default_factory=lambda: os.getenv(
            "BEAR_QUERY_BUSY_TIMEOUT_MS", str(DEFAULT_BUSY_TIMEOUT_MS)
        ),
        validate_default=True,
    )
    # Skips junction table discovery when set (e.g. "Z_5TAGS")
    junction_table: Optional[str] = Field(
        default_factory=lambda: os.getenv("BEAR_QUERY_JUNCTION_TABLE") or None
    )

    model_config = {"validate_assignment": True}

    @field_validator("busy_timeout_ms", mode="before")
    @classmethod
    def parse_busy_timeout(cls, v: Any) -> Any:
        """Parse millisecond counts given as text (e.g. from the environment)."""
        if isinstance(v, str):
            try:
                return int(v.strip())
            except ValueError:
                raise ValueError(
                    f"busy_timeout_ms must be a whole number of milliseconds, got {v!r}"
                ) from None
        return v

    @field_validator("busy_timeout_ms")
    @classmethod
    def validate_busy_timeout(cls, v: int) -> int:
        """Validate that the busy timeout is a positive bound."""
        if v <= 0:
            raise ValueError("busy_timeout_ms must be > 0")
        return v

    def resolve_database_path(self) -> Path:
        """Get the path of the database file to open.

        Returns the configured override when set, otherwise Bear's default
        location under the user's home directory. The file is not required
        to exist yet; existence is checked each time a connection is opened.

        Raises:
            NoHomeDirectoryError: If the default location is needed but the
                home directory cannot be determined.
        """
        if self.database_path is not None:
            return self.database_path.expanduser()
        return home_directory() / BEAR_DATABASE_RELATIVE_PATH


def load_config() -> BearQueryConfig:
    """Build the configuration from the environment.

    Raises:
        ConfigurationError: If an environment value is malformed or out of
            range.
    """
    try:
        return BearQueryConfig()
    except ValidationError as e:
        error = e.errors()[0]
        key = str(error["loc"][0]) if error["loc"] else None
        raise ConfigurationError(
            f"Invalid bear-query configuration: {error['msg']}", config_key=key
        ) from e


# Create a global config instance
config = load_config()
