"""Layered release configuration using Pydantic Settings.

Precedence, lowest to highest:

1. built-in defaults
2. system config file (``~/.release-pilot.yml``)
3. repository config file (only after the workspace is checked out)
4. CI vendor variables normalized into ``runner_*`` fields
5. ``RELEASE_PILOT_*`` environment variables
6. explicit CLI / programmatic options

A later layer replaces a value set by an earlier one; structured values are
never merged.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from contextvars import ContextVar
from enum import Enum
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from release_pilot.errors import ConfigFileUnreadable, ReleaseCredentialsMissing

logger = logging.getLogger(__name__)

ENV_PREFIX = "RELEASE_PILOT_"
DEFAULT_CONFIG_FILE = Path("~/.release-pilot.yml")
DEFAULT_REPO_CONFIG_FILE_NAME = ".release-pilot.yml"

# Config files active for the resolution currently in progress
_config_files_ctx: ContextVar[tuple[Path, ...]] = ContextVar("config_files", default=())


class BumpType(str, Enum):
    """Semantic version segment to increment on release."""

    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Read a YAML configuration file into a flat mapping.

    Raises:
        ConfigFileUnreadable: If the file is missing, unreadable or not a mapping
    """
    config_path = Path(path).expanduser()
    if not config_path.is_file():
        raise ConfigFileUnreadable(f"Configuration file not found: {config_path}")

    try:
        raw = config_path.read_text(encoding="utf-8")
        data = yaml.safe_load(raw)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigFileUnreadable(f"Could not read configuration file {config_path}: {exc}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigFileUnreadable(f"Configuration file {config_path} must be a YAML mapping")
    return data


class ConfigFileSettingsSource(PydanticBaseSettingsSource):
    """Settings source reading the system and repository YAML files."""

    def __init__(self, settings_cls: type[BaseSettings], paths: tuple[Path, ...]):
        super().__init__(settings_cls)
        self._data: dict[str, Any] = {}
        for path in paths:
            try:
                self._data.update(load_config_file(path))
            except ConfigFileUnreadable as exc:
                logger.warning(
                    "Configuration file unavailable, using remaining layers",
                    extra={"path": str(path), "error": str(exc)},
                )
                continue
            logger.info("Loaded configuration file", extra={"path": str(path)})

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return self._data.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        fields = self.settings_cls.model_fields
        return {key: value for key, value in self._data.items() if key in fields}


class CircleCISettingsSource(PydanticBaseSettingsSource):
    """Normalizes CircleCI build variables into ``runner_*`` fields.

    Reference: https://circleci.com/docs/variables/
    """

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        env = os.environ
        if not env.get("CIRCLECI"):
            return {}

        username = env.get("CIRCLE_PROJECT_USERNAME", "")
        reponame = env.get("CIRCLE_PROJECT_REPONAME", "")
        data: dict[str, Any] = {
            "runner": "circleci",
            "runner_pull_request": env.get("CI_PULL_REQUEST", ""),
            "runner_sha": env.get("CIRCLE_SHA1", ""),
            "runner_branch": env.get("CIRCLE_BRANCH", ""),
            "runner_repo_name": reponame,
        }
        if username and reponame:
            data["runner_repo_full_name"] = f"{username}/{reponame}"
            data["runner_clone_url"] = f"https://github.com/{username}/{reponame}.git"
        return {key: value for key, value in data.items() if value}


class Configuration(BaseSettings):
    """Immutable configuration snapshot for one release run."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Pipeline selection (usually set from the CLI)
    source: str = "github"
    runner: Literal["default", "circleci"] = "default"
    package_type: str = "default"
    dry_run: bool = False

    # Config files
    config_file: Path | None = None
    repo_config_file_name: str = DEFAULT_REPO_CONFIG_FILE_NAME

    # Source (GitHub)
    source_github_access_token: str = ""
    source_github_api_endpoint: str = "https://api.github.com"
    source_github_web_endpoint: str = "https://github.com"
    source_git_parent_path: Path | None = None
    source_release_delay_seconds: float = 5.0
    source_status_context: str = "release-pilot"
    source_status_target_url: str = "https://github.com/release-pilot/release-pilot"

    # Runner (normalized CI signals)
    runner_pull_request: str = ""
    runner_sha: str = ""
    runner_branch: str = ""
    runner_clone_url: str = ""
    runner_repo_full_name: str = ""
    runner_repo_name: str = ""

    # Engine tuning
    engine_version_bump_type: BumpType = BumpType.PATCH
    engine_disable_test: bool = False
    engine_disable_lint: bool = False
    engine_disable_coverage: bool = False
    engine_cmd_test: str | None = None
    engine_cmd_lint: str | None = None
    engine_cmd_coverage: str | None = None
    engine_git_author_name: str = "release-pilot"
    engine_git_author_email: str = "release-pilot@users.noreply.github.com"

    # Registry credentials
    npm_auth_token: str = ""
    pypi_username: str = ""
    pypi_password: str = ""
    pypi_repository: str = "https://upload.pypi.org/legacy/"
    rubygems_api_key: str = ""
    chef_supermarket_username: str = ""
    chef_supermarket_key: str = ""
    chef_supermarket_type: str = "Other"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: Literal["json", "text"] = "text"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            CircleCISettingsSource(settings_cls),
            ConfigFileSettingsSource(settings_cls, _config_files_ctx.get()),
        )

    @field_validator("source", "engine_version_bump_type", mode="before")
    @classmethod
    def _normalize_symbol(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("runner", "package_type", mode="before")
    @classmethod
    def _normalize_selector(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            if value in ("", "none", "general"):
                return "default"
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    def chef_supermarket_key_decoded(self) -> str | None:
        """Return the base64-decoded supermarket client key, if configured."""
        if not self.chef_supermarket_key:
            return None
        try:
            return base64.b64decode(self.chef_supermarket_key, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise ReleaseCredentialsMissing(f"Could not decode chef_supermarket_key: {exc}")

    def snapshot(self) -> str:
        """Canonical JSON form of this configuration."""
        return self.model_dump_json()


def _system_config_file(options: dict[str, Any]) -> Path:
    explicit = options.get("config_file") or os.environ.get(f"{ENV_PREFIX}CONFIG_FILE")
    return Path(explicit or DEFAULT_CONFIG_FILE).expanduser()


def resolve(
    options: dict[str, Any] | None = None,
    *,
    config_files: list[str | Path] | None = None,
) -> Configuration:
    """Build a configuration snapshot from all layers.

    Args:
        options: Explicit CLI/programmatic options; ``None`` values are ignored
        config_files: File layers in increasing precedence (defaults to the
            system config file)
    """
    explicit = {key: value for key, value in (options or {}).items() if value is not None}
    if config_files is None:
        config_files = [_system_config_file(explicit)]

    token = _config_files_ctx.set(tuple(Path(p).expanduser() for p in config_files))
    try:
        return Configuration(**explicit)
    finally:
        _config_files_ctx.reset(token)


class ConfigurationResolver:
    """Resolves the configuration once at start-up and again after checkout."""

    def __init__(self, options: dict[str, Any] | None = None):
        self.options = {key: value for key, value in (options or {}).items() if value is not None}
        self.system_config_file = _system_config_file(self.options)

    def resolve(self) -> Configuration:
        return resolve(self.options, config_files=[self.system_config_file])

    def resolve_with_repository(self, repo_path: str | Path, current: Configuration) -> Configuration:
        """Re-resolve with the repository file layered above the system file.

        Environment and explicit options are re-applied on top, so the
        repository file can never override them.
        """
        repo_file = Path(repo_path) / current.repo_config_file_name
        return resolve(self.options, config_files=[self.system_config_file, repo_file])
