#lease_engine\scripts\config.py

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScriptQueueSettings(BaseSettings):
    """Script queue configuration from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Working root holding the _scripts folder
    scripts_root: str = "."

    # Provisioning toolkit root exported to scripts as CLOUDIFY_HOME
    cloudify_home: Optional[str] = Field(default=None, validation_alias="CLOUDIFY_HOME")


script_settings = ScriptQueueSettings()
