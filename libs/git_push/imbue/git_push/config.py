import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from typing import Final

from loguru import logger
from pydantic import BaseModel
from pydantic import Field
from pydantic import ValidationError

from imbue.git_push.data_types import FrozenModel
from imbue.git_push.data_types import PushConfig
from imbue.git_push.data_types import RemoteConfig
from imbue.git_push.data_types import ScmConfig
from imbue.git_push.errors import ConfigNotFoundError
from imbue.git_push.errors import ConfigParseError
from imbue.git_push.errors import ConfigurationError
from imbue.git_push.primitives import MissingBranchPolicy
from imbue.git_push.primitives import NonEmptyStr
from imbue.git_push.primitives import RefSpec
from imbue.git_push.primitives import RemoteName
from imbue.git_push.remotes import default_fetch_refspec
from imbue.git_push.validation import FIELD_REQUIRED_MESSAGE

CONFIG_FILENAME: Final[str] = "git-push.toml"

# Environment variables that override values from the config file.
ENV_TARGET_REPO: Final[str] = "GIT_PUSH_TARGET_REPO"
ENV_TARGET_BRANCH: Final[str] = "GIT_PUSH_TARGET_BRANCH"
ENV_MAX_ATTEMPTS: Final[str] = "GIT_PUSH_MAX_ATTEMPTS"


class PushSettings(FrozenModel):
    """Push settings as read from one source. Unset fields are None so sources can be layered."""

    target_repo: str | None = Field(default=None, description="Name of the remote to push to")
    target_branch: str | None = Field(default=None, description="Name of the branch to push to")
    missing_branch_policy: MissingBranchPolicy | None = Field(
        default=None,
        description="What to do when the branch does not exist on the remote yet",
    )
    committer_name: str | None = Field(default=None, description="Identity used for merge commits")
    committer_email: str | None = Field(default=None, description="Identity used for merge commits")
    max_attempts: int | None = Field(default=None, ge=1, description="How many times to run the protocol")

    def merge_with(self, override: "PushSettings") -> "PushSettings":
        """Return settings where every field set in override replaces the one in self."""
        return self.model_copy(update=override.model_dump(exclude_none=True))


class _RemoteSection(BaseModel):
    """Shape of a [remotes.<name>] table."""

    urls: list[str]
    fetch: list[str] = Field(default_factory=list)


class ConfigFile(FrozenModel):
    """Everything a git-push.toml file can configure."""

    push: PushSettings = Field(default_factory=PushSettings, description="The [push] table")
    scm: ScmConfig = Field(default_factory=ScmConfig, description="Remotes declared in [remotes.<name>] tables")


def _load_toml(path: Path) -> dict[str, Any]:
    """Load and parse a TOML file."""
    if not path.exists():
        raise ConfigNotFoundError(f"Config file not found: {path}")

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(f"Failed to parse {path}: {e}") from e


def _check_unknown_fields(
    raw_config: Mapping[str, Any],
    known_fields: set[str],
    context: str,
) -> None:
    """Raise ConfigParseError if raw_config contains fields other than known_fields."""
    unknown = set(raw_config.keys()) - known_fields
    if unknown:
        raise ConfigParseError(f"Unknown fields in {context}: {sorted(unknown)}. Valid fields: {sorted(known_fields)}")


def _require_table(value: Any, context: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ConfigParseError(f"Expected [{context}] to be a table, got {type(value).__name__}")
    return value


def _parse_push_settings(raw_push: dict[str, Any]) -> PushSettings:
    _check_unknown_fields(raw_push, set(PushSettings.model_fields.keys()), "push")
    try:
        return PushSettings.model_validate(raw_push)
    except ValidationError as e:
        raise ConfigParseError(f"Invalid [push] settings: {e}") from e


def _parse_remotes(raw_remotes: dict[str, Any]) -> ScmConfig:
    """Parse [remotes.<name>] tables, keeping the order in which they are declared."""
    remotes: list[RemoteConfig] = []
    for name, raw_value in raw_remotes.items():
        raw_remote = _require_table(raw_value, f"remotes.{name}")
        _check_unknown_fields(raw_remote, set(_RemoteSection.model_fields.keys()), f"remotes.{name}")
        try:
            section = _RemoteSection.model_validate(raw_remote)
            remote = RemoteConfig(
                name=RemoteName(name),
                uris=tuple(NonEmptyStr(url) for url in section.urls),
                fetch_refspecs=tuple(RefSpec(spec) for spec in section.fetch) or (default_fetch_refspec(name),),
            )
        except (ValidationError, ValueError) as e:
            raise ConfigParseError(f"Invalid [remotes.{name}] settings: {e}") from e
        remotes.append(remote)
    return ScmConfig(remotes=tuple(remotes))


def parse_config(raw_config: dict[str, Any]) -> ConfigFile:
    """Parse the contents of a git-push.toml file."""
    _check_unknown_fields(raw_config, {"push", "remotes"}, "config file")
    push = _parse_push_settings(_require_table(raw_config.get("push", {}), "push"))
    scm = _parse_remotes(_require_table(raw_config.get("remotes", {}), "remotes"))
    return ConfigFile(push=push, scm=scm)


def load_config_file(workspace: Path, config_path: Path | None = None) -> ConfigFile:
    """Load git-push.toml from config_path, or from the workspace root if it has one.

    An explicit config_path must exist; the workspace file is optional.
    """
    if config_path is not None:
        logger.debug("Loading config from {}", config_path)
        return parse_config(_load_toml(config_path))

    default_path = workspace / CONFIG_FILENAME
    if not default_path.exists():
        logger.trace("No {} in {}, using defaults", CONFIG_FILENAME, workspace)
        return ConfigFile()
    logger.debug("Loading config from {}", default_path)
    return parse_config(_load_toml(default_path))


def read_environment_overrides(environ: Mapping[str, str]) -> PushSettings:
    """Read push settings from GIT_PUSH_* environment variables. Empty values are ignored."""
    values: dict[str, Any] = {}
    if target_repo := environ.get(ENV_TARGET_REPO):
        values["target_repo"] = target_repo
    if target_branch := environ.get(ENV_TARGET_BRANCH):
        values["target_branch"] = target_branch
    if raw_max_attempts := environ.get(ENV_MAX_ATTEMPTS):
        try:
            values["max_attempts"] = int(raw_max_attempts)
        except ValueError as e:
            raise ConfigParseError(f"{ENV_MAX_ATTEMPTS} must be an integer, got '{raw_max_attempts}'") from e
    try:
        return PushSettings.model_validate(values)
    except ValidationError as e:
        raise ConfigParseError(f"Invalid {ENV_MAX_ATTEMPTS}: {e}") from e


def build_push_config(settings: PushSettings) -> PushConfig:
    """Turn layered settings into a complete PushConfig.

    Raises ConfigurationError when a required field is missing or blank.
    """
    for field_name, value in (("target_repo", settings.target_repo), ("target_branch", settings.target_branch)):
        if value is None or not value.strip():
            raise ConfigurationError(f"{field_name}: {FIELD_REQUIRED_MESSAGE}")
    assert settings.target_repo is not None and settings.target_branch is not None

    return PushConfig(
        target_repo=NonEmptyStr(settings.target_repo),
        target_branch=NonEmptyStr(settings.target_branch),
        missing_branch_policy=settings.missing_branch_policy or MissingBranchPolicy.FAIL,
        committer_name=settings.committer_name,
        committer_email=settings.committer_email,
        max_attempts=settings.max_attempts or 1,
    )
