"""dockhand configuration management.

Configuration sources (in priority order):
1. Environment variables (DOCKHAND_ prefix)
2. Config file (dockhand.yaml)
3. Defaults
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class DockerConfig(BaseModel):
    """Docker driver configuration."""

    socket: str = "unix:///var/run/docker.sock"


class InjectionConfig(BaseModel):
    """Archive transfer configuration."""

    # Max chunks buffered between the tar producer and the runtime upload
    pipe_depth: int = Field(default=16, gt=0)
    chunk_size: int = Field(default=64 * 1024, gt=0)
    # Destinations with these suffixes are injected as single files
    file_suffixes: list[str] = Field(default_factory=lambda: [".toml"])


class WindowsConfig(BaseModel):
    """Helper container settings for Windows targets."""

    staging_dir: str = "c:\\windows"
    # Same directory as staging_dir, expressed as a tar extraction path
    staging_tar_path: str = "/windows"
    admin_user: str = "ContainerAdministrator"
    isolation: str = "process"


class Settings(BaseSettings):
    """dockhand settings."""

    model_config = SettingsConfigDict(
        env_prefix="DOCKHAND_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    docker: DockerConfig = Field(default_factory=DockerConfig)
    injection: InjectionConfig = Field(default_factory=InjectionConfig)
    windows: WindowsConfig = Field(default_factory=WindowsConfig)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # File values arrive as init kwargs; the environment wins over them
        return env_settings, init_settings, dotenv_settings, file_secret_settings


def _load_config_file() -> dict:
    """Load configuration from YAML file if exists.

    Looks for config file in order:
    1. DOCKHAND_CONFIG_FILE environment variable
    2. ./dockhand.yaml
    3. /etc/dockhand/config.yaml
    """
    config_paths = [
        os.environ.get("DOCKHAND_CONFIG_FILE"),
        Path("dockhand.yaml"),
        Path("/etc/dockhand/config.yaml"),
    ]

    for path in config_paths:
        if path is None:
            continue
        path = Path(path)
        if path.exists():
            with open(path) as f:
                return yaml.safe_load(f) or {}

    return {}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Environment variables override values from the YAML file.
    """
    file_config = _load_config_file()
    return Settings(**file_config)
