"""Configuration management for the release deployer.

Two layers:

* ``Settings`` holds process-level options read from the environment
  (and an optional ``.env`` file), including the GitHub API token.
* ``DeployerConfig`` is the JSON configuration file naming the deploy
  directory, the monitored targets and the signing key.
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from release_deployer.constants import GITHUB_API_URL, HTTP_TIMEOUT_SECONDS, TARGET_NAME_PATTERN
from release_deployer.errors import ConfigError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # GitHub
    github_api_token: SecretStr = Field(description="GitHub API token used for release lookups")
    github_api_url: str = Field(default=GITHUB_API_URL, description="GitHub API base URL")
    http_timeout: float = Field(
        default=HTTP_TIMEOUT_SECONDS, gt=0, description="HTTP timeout in seconds"
    )

    # Deployer
    config_file: Path = Field(default=Path("config.json"), description="Path to the JSON config")
    run_once: bool = Field(default=False, description="Run a single sweep and exit")

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


class Target(BaseModel):
    """A monitored GitHub repository whose releases are deployed."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: Annotated[str, Field(pattern=TARGET_NAME_PATTERN)]
    owner: Annotated[str, Field(min_length=1)]
    repo: Annotated[str, Field(min_length=1)]


class DeployerConfig(BaseModel):
    """Contents of the JSON configuration file."""

    model_config = ConfigDict(extra="forbid")

    deploy_dir: Path
    targets: list[Target]
    public_signing_key: str = ""
    public_signing_key_file: Path | None = None
    unsafe_skip_signature_verification: bool = False
    update_interval: Annotated[int, Field(gt=0, description="Seconds between sweeps")]

    @field_validator("deploy_dir", mode="before")
    @classmethod
    def _require_deploy_dir(cls, value: object) -> object:
        if value is None or not str(value).strip():
            raise ValueError("deploy directory must be set")
        return value

    @model_validator(mode="after")
    def _check_consistency(self) -> DeployerConfig:
        if not self.targets:
            raise ValueError("at least one target must be set")

        seen: set[str] = set()
        for index, target in enumerate(self.targets):
            if target.name in seen:
                raise ValueError(f"target {index} has duplicate name {target.name!r}")
            seen.add(target.name)

        has_key = bool(self.public_signing_key.strip()) or self.public_signing_key_file is not None
        if not self.unsafe_skip_signature_verification and not has_key:
            raise ValueError(
                "public signing key (or key file) must be set if signature verification is enabled"
            )
        return self

    def public_key(self) -> str:
        """Return the public signing key text, reading the key file if one is configured.

        Returns an empty string when signature verification is skipped and no
        key is configured.
        """
        if self.public_signing_key.strip():
            return self.public_signing_key.strip()
        if self.public_signing_key_file is None:
            return ""
        try:
            return self.public_signing_key_file.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigError(
                f"cannot read public signing key file {self.public_signing_key_file}: {exc}"
            ) from exc


def load_config(path: str | Path) -> DeployerConfig:
    """Load and validate the JSON configuration file.

    Raises:
        ConfigError: if the file cannot be read, is not JSON, or fails validation.
    """
    config_path = Path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"cannot read config file {config_path}: {exc}") from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"config file {config_path} is not valid JSON: {exc}") from exc

    try:
        return DeployerConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid config file {config_path}: {exc}") from exc
