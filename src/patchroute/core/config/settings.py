from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    """
    Global application-level configuration.

    This class is the single source of truth for:
    - environment selection
    - logging behavior
    - default patch recording behavior
    - HTTP service metadata
    """

    model_config = SettingsConfigDict(
        env_prefix="PATCHROUTE_",
        env_file=".env",
        extra="ignore",
    )

    # ---- Environment -------------------------------------------------

    env: Literal["local", "staging", "prod"] = "local"

    # ---- Logging -----------------------------------------------------

    log_level: str = "INFO"

    log_json: bool = Field(
        default=True,
        description="Render logs as JSON lines (False = console renderer)",
    )

    # ---- Patch recording ---------------------------------------------

    # When a list shrinks, record a single `replace` of its `length`
    # instead of one `remove` per dropped index.
    array_length_assignment: bool = Field(
        default=False,
        description="Record list shrink as a length replacement",
    )

    # ---- HTTP service ------------------------------------------------

    service_title: str = Field(
        default="patchroute",
        description="Title reported by the HTTP service",
    )


# Singleton settings object
settings = AppSettings()
