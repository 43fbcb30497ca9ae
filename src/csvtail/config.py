"""Typed configuration — single source of truth for all csvtail runtime settings.

Loading priority (highest to lowest):
  1. Explicit init kwargs (programmatic overrides, tests)
  2. Environment variables: CSVTAIL_<SECTION>__<KEY>  (double-underscore separator)
  3. Config file: CSVTAIL_CONFIG_FILE env var, or conf/settings.toml at project root
  4. Model field defaults

Example env overrides:
  CSVTAIL_WATCH__INTERVAL_SECONDS=1
  CSVTAIL_TAIL__SKIP_HEADER=false
  CSVTAIL_LOGGING__LEVEL=DEBUG
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

# Derive project root from this file's location: src/csvtail/config.py → ../../..
_PROJECT_ROOT = Path(__file__).parent.parent.parent
_DEFAULT_CONFIG = _PROJECT_ROOT / "conf" / "settings.toml"


def _config_file() -> Path:
    """Resolve the config file path.

    Returns CSVTAIL_CONFIG_FILE if set (raises FileNotFoundError if missing),
    otherwise returns the bundled default at conf/settings.toml.
    """
    if env_val := os.environ.get("CSVTAIL_CONFIG_FILE"):
        p = Path(env_val)
        if not p.is_file():
            raise FileNotFoundError(f"CSVTAIL_CONFIG_FILE not found: {p}")
        return p
    return _DEFAULT_CONFIG


# ---------------------------------------------------------------------------
# Section models — each maps to a [section] in conf/settings.toml
# ---------------------------------------------------------------------------


class WatchSettings(BaseModel):
    """Polling cadence shared by both watcher loops."""

    # Non-positive values mean "poll again immediately".
    interval_seconds: float = 5.0
    # Wait before retrying a file that does not exist yet or cannot be opened.
    open_retry_seconds: float = Field(default=0.5, ge=0)
    # Wait after a failed cycle (read error, handler error) before retrying.
    recovery_seconds: float = Field(default=1.0, ge=0)


class TailSettings(BaseModel):
    """Append-tail reader behaviour."""

    # The first line of every opened (or reset) file is a column header.
    skip_header: bool = True
    chunk_size: int = Field(default=64 * 1024, gt=0)


class CsvSettings(BaseModel):
    """Options handed to the CSV parser."""

    delimiter: str = ","
    # Raise a parse error on malformed quoting instead of reading leniently.
    strict: bool = False

    @field_validator("delimiter")
    @classmethod
    def _single_char(cls, v: str) -> str:
        if len(v) != 1:
            raise ValueError(f"delimiter must be a single character, got {v!r}")
        return v


class LoggingSettings(BaseModel):
    """Logging verbosity and output format."""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"

    @field_validator("level", mode="before")
    @classmethod
    def _normalise_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"level must be one of {sorted(valid)}, got {v!r}")
        return v.upper()


# ---------------------------------------------------------------------------
# Root settings class
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """All csvtail runtime settings, fully resolved and validated."""

    watch: WatchSettings = WatchSettings()
    tail: TailSettings = TailSettings()
    csv: CsvSettings = CsvSettings()
    logging: LoggingSettings = LoggingSettings()

    model_config = SettingsConfigDict(
        env_prefix="CSVTAIL_",
        env_nested_delimiter="__",  # CSVTAIL_TAIL__CHUNK_SIZE → tail.chunk_size
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Exclude dotenv and file-secret sources; csvtail uses TOML + env only.
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=_config_file()),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide Settings instance (loaded once, cached thereafter).

    Tests should call ``get_settings.cache_clear()`` before each test that
    patches environment variables or the config file.
    """
    return Settings()
