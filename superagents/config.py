"""Configuration management for superagents."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.superagents/config.yaml").expanduser()
DEFAULT_TASKS_PATH = Path("~/.superagents/tasks.json").expanduser()
LOCAL_CONFIG_FILENAME = "superagents.yaml"


class TasksConfig(BaseModel):
    """Timing knobs of the task engine."""

    poll_interval_ms: int = 100
    completion_display_seconds: float = 10.0
    parent_grace_seconds: float = 3.0
    notify_delay_ms: int = 200
    event_reconnect_seconds: float = 1.0
    wait_poll_seconds: float = 0.5
    resume_poll_seconds: float = 1.0
    resume_max_attempts: int = 600
    resume_idle_grace_attempts: int = 5
    default_wait_timeout_ms: int = 60_000
    max_wait_timeout_ms: int = 600_000
    toast_duration_ms: int = 5_000
    progress_toast_duration_ms: int = 150


class StorageConfig(BaseModel):
    """Durable task metadata location."""

    path: str = str(DEFAULT_TASKS_PATH)


class ServerConfig(BaseModel):
    """Session server connection (HTTP client)."""

    base_url: str = "http://127.0.0.1:4096"
    directory: str = ""
    timeout_seconds: float = 30.0


class ForkConfig(BaseModel):
    """Limits applied when a forked task inherits parent history."""

    max_tokens: int = 100_000
    tool_result_limit: int = 1_500
    tool_params_limit: int = 200


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["console", "json"] = "console"


class Config(BaseSettings):
    """Main configuration for superagents."""

    tasks: TasksConfig = Field(default_factory=TasksConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    fork: ForkConfig = Field(default_factory=ForkConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="SUPERAGENTS_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment wins over values read from YAML (passed as init kwargs).
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls) -> "Config":
        """Load configuration, preferring env vars over YAML."""
        return cls.from_yaml()

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def resolved_storage_path(self) -> Path:
        return Path(self.storage.path).expanduser()


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
