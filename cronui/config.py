import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

_CONFIG_PATH = os.getenv("CRONUI_CONFIG", "config.toml")
_ENV_PATH = os.getenv("CRONUI_ENV", ".env")


class SyncSettings(BaseModel):
    save_interval_seconds: float = 30
    backup_interval_seconds: float = 60 * 60
    blob_name: str = "cronos_backups/cron_jobs.db"


class LocalStorageSettings(BaseModel):
    root: Path
    base_url: Optional[str] = None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CRONUI_",
        env_nested_delimiter="__",
        toml_file=_CONFIG_PATH,
        env_file=_ENV_PATH,
    )

    database_path: Path = Field(default=Path("cron_jobs.db"))
    logs_dir: Path = Field(default=Path("logs"))
    timezone: str = "UTC"
    sync: SyncSettings = Field(default_factory=SyncSettings)
    # Backup and restore are disabled when no storage is configured
    storage: Optional[LocalStorageSettings] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Source order: init args > OS env > .env > config.toml > secrets
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


settings = Settings()
