"""Configuration management for buildchanges."""

import os
import tomllib
from pathlib import Path

import tomli_w
from pydantic import BaseModel, Field, ValidationError

from .constants import CONFIG_DIR, CONFIG_FILE, JIRA_TIMEOUT, TEAMCITY_TIMEOUT
from .errors import BuildChangesError

# Environment variables that override config.toml values
ENV_TEAMCITY_URL = "BUILDCHANGES_TEAMCITY_URL"
ENV_TEAMCITY_USER = "BUILDCHANGES_TEAMCITY_USER"
ENV_TEAMCITY_PASSWORD = "BUILDCHANGES_TEAMCITY_PASSWORD"


class ConfigError(BuildChangesError):
    """Configuration file could not be loaded."""


class TeamCityConfig(BaseModel):
    """Connection settings for the TeamCity server."""

    server_url: str = ""
    username: str | None = None  # guest access when unset
    password: str | None = None
    timeout: float = Field(default=TEAMCITY_TIMEOUT, description="HTTP timeout in seconds")


class JiraConfig(BaseModel):
    """Jira issue resolver settings. The resolver is disabled without base_url."""

    base_url: str = ""
    username: str | None = None
    token: str | None = None
    project_keys: list[str] = Field(
        default_factory=list, description="Only match these project keys (all if empty)"
    )
    timeout: float = JIRA_TIMEOUT

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)


class MappingConfig(BaseModel):
    """Package to build mapping settings."""

    cache_path: Path | None = Field(
        default=None, description="JSON file written by 'buildchanges mapping build'"
    )
    servers: list[str] = Field(
        default_factory=list, description="Extra servers to scan when building mappings"
    )


class BuildChangesConfig(BaseModel):
    """Root configuration model."""

    teamcity: TeamCityConfig = Field(default_factory=TeamCityConfig)
    jira: JiraConfig = Field(default_factory=JiraConfig)
    mapping: MappingConfig = Field(default_factory=MappingConfig)

    def with_env_overrides(self) -> "BuildChangesConfig":
        """Return a copy with TeamCity settings taken from the environment where set."""
        overrides = {
            "server_url": os.getenv(ENV_TEAMCITY_URL),
            "username": os.getenv(ENV_TEAMCITY_USER),
            "password": os.getenv(ENV_TEAMCITY_PASSWORD),
        }
        teamcity = self.teamcity.model_copy(
            update={k: v for k, v in overrides.items() if v}
        )
        return self.model_copy(update={"teamcity": teamcity})


def get_config_path(root: Path) -> Path:
    """Default config location under ``root``."""
    return root / CONFIG_DIR / CONFIG_FILE


def load_config(config_path: Path) -> BuildChangesConfig:
    """Load config from a config.toml file.

    Args:
        config_path: Path to config.toml

    Returns:
        Loaded configuration with environment overrides applied, or
        defaults if the file doesn't exist

    Raises:
        ConfigError: If the file is not valid TOML or fails validation
    """
    if not config_path.exists():
        return BuildChangesConfig().with_env_overrides()
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
        config = BuildChangesConfig.model_validate(data)
    except (tomllib.TOMLDecodeError, ValidationError) as e:
        raise ConfigError(f"Invalid config {config_path}: {e}") from e
    return config.with_env_overrides()


def write_config_template(config_path: Path) -> Path:
    """Write default config.toml template.

    Args:
        config_path: Where to write the template

    Returns:
        Path to the written config file
    """
    config_path.parent.mkdir(parents=True, exist_ok=True)
    template = {
        "teamcity": {
            "server_url": "https://teamcity.example.com",
            "timeout": TEAMCITY_TIMEOUT,
        },
        # Leave base_url empty to disable Jira enrichment
        "jira": {
            "base_url": "",
            "project_keys": [],
            "timeout": JIRA_TIMEOUT,
        },
        "mapping": {
            "cache_path": str(Path(CONFIG_DIR) / "package-mappings.json"),
            "servers": [],
        },
    }
    with open(config_path, "wb") as f:
        tomli_w.dump(template, f)
    return config_path
