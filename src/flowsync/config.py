"""Configuration for the workflow model.

Configuration is loaded from:
- environment variables (prefixed with ``FLOWSYNC_``)
- and a local `.env` file (if present)
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlowSyncSettings(BaseSettings):
    """Settings shared by the models and the CLI."""

    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Log everything at DEBUG, YAML parser internals included",
    )

    default_indent: int = Field(
        default=2,
        ge=1,
        le=8,
        description="Indentation width for new content when the document gives no hint",
    )
    history_limit: int = Field(
        default=100,
        ge=0,
        description="Number of snapshots kept for undo (0 disables history)",
    )
    dialect: Literal["orquesta", "mistral"] = Field(
        default="orquesta",
        description="Workflow dialect used when it cannot be detected from the text",
    )

    model_config = SettingsConfigDict(
        env_prefix="FLOWSYNC_",
        env_file=".env",
        extra="ignore",
    )
