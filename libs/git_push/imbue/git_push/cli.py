import os
from collections.abc import Mapping
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from typing import assert_never

import click
from click_option_group import optgroup
from loguru import logger

from imbue.git_push.adapters import PostBuildStep
from imbue.git_push.config import ConfigFile
from imbue.git_push.config import PushSettings
from imbue.git_push.config import build_push_config
from imbue.git_push.config import load_config_file
from imbue.git_push.config import read_environment_overrides
from imbue.git_push.data_types import BuildContext
from imbue.git_push.data_types import FrozenModel
from imbue.git_push.data_types import PushOutcome
from imbue.git_push.data_types import ScmConfig
from imbue.git_push.data_types import ValidationResult
from imbue.git_push.errors import NotAGitRepositoryError
from imbue.git_push.logging import setup_logging
from imbue.git_push.primitives import BuildKind
from imbue.git_push.primitives import BuildResult
from imbue.git_push.primitives import LogLevel
from imbue.git_push.primitives import MissingBranchPolicy
from imbue.git_push.primitives import OutcomeKind
from imbue.git_push.remotes import merge_scm_configs
from imbue.git_push.remotes import read_scm_config
from imbue.git_push.validation import check_target_branch
from imbue.git_push.validation import check_target_repo
from imbue.git_push.validation import has_errors


class CommonCliOptions(FrozenModel):
    """Options shared by every git-push command."""

    target_repo: str | None
    target_branch: str | None
    workspace: str | None
    config_path: str | None
    log_level: str


class PushCliOptions(CommonCliOptions):
    """Options passed from the CLI to the push command."""

    build_result: str
    build_kind: str
    env: tuple[str, ...]
    max_attempts: int | None
    allow_branch_creation: bool
    committer_name: str | None
    committer_email: str | None


class ValidateCliOptions(CommonCliOptions):
    """Options passed from the CLI to the validate command."""


def add_common_options(command: Any) -> Any:
    """Add the target, workspace and logging options shared by all commands."""
    # Applied in reverse order (bottom-up per click convention)
    command = optgroup.option(
        "--log-level",
        type=click.Choice([level.value for level in LogLevel], case_sensitive=False),
        default=LogLevel.INFO.value,
        show_default=True,
        help="Minimum level of log messages to print.",
    )(command)
    command = optgroup.group("Logging")(command)

    command = optgroup.option(
        "--config",
        "config_path",
        type=click.Path(dir_okay=False),
        default=None,
        help="Config file to read instead of git-push.toml in the workspace.",
    )(command)
    command = optgroup.option(
        "--workspace",
        type=click.Path(file_okay=False),
        default=None,
        help="The build's git checkout. Defaults to the current directory.",
    )(command)
    command = optgroup.option(
        "--target-branch",
        default=None,
        help="Branch to push to. May contain $VAR placeholders.",
    )(command)
    command = optgroup.option(
        "--target-repo",
        default=None,
        help="Name of the remote to push to. May contain $VAR placeholders.",
    )(command)
    command = optgroup.group("Target")(command)
    return command


def parse_env_assignments(assignments: Sequence[str]) -> dict[str, str]:
    """Parse KEY=VALUE pairs given with --env."""
    environment: dict[str, str] = {}
    for assignment in assignments:
        key, separator, value = assignment.partition("=")
        if not separator or not key:
            raise click.BadParameter(f"Expected KEY=VALUE, got '{assignment}'", param_hint="--env")
        environment[key] = value
    return environment


def _resolve_workspace(workspace: str | None) -> Path:
    return Path(workspace).resolve() if workspace is not None else Path.cwd()


def _load_scm(workspace: Path, config_file: ConfigFile) -> ScmConfig | None:
    """Combine remotes from the config file with the workspace's own remotes.

    Returns None when the workspace is not a git checkout and the config file declares no remotes.
    """
    try:
        workspace_scm = read_scm_config(workspace)
    except NotAGitRepositoryError:
        logger.debug("{} is not a git checkout", workspace)
        return config_file.scm if config_file.scm.remotes else None
    return merge_scm_configs(config_file.scm, workspace_scm)


def _layer_settings(
    config_file: ConfigFile,
    environ: Mapping[str, str],
    cli_settings: PushSettings,
) -> PushSettings:
    """Config file, then environment variables, then CLI options."""
    return config_file.push.merge_with(read_environment_overrides(environ)).merge_with(cli_settings)


def _describe_outcome(outcome: PushOutcome) -> str:
    match outcome.kind:
        case OutcomeKind.SUCCESS:
            assert outcome.pushed_commit is not None
            merge_note = " (after merging the remote branch)" if outcome.is_remote_merged else ""
            return f"Pushed {outcome.pushed_commit.short}{merge_note}"
        case OutcomeKind.SKIPPED_NOT_APPLICABLE:
            return f"Skipped: {outcome.reason}"
        case OutcomeKind.FAILED:
            return f"Failed: {outcome.reason}"
        case _ as unreachable:
            assert_never(unreachable)


@click.command(name="push")
@add_common_options
@optgroup.group("Build")
@optgroup.option(
    "--build-result",
    type=click.Choice([result.value for result in BuildResult], case_sensitive=False),
    default=BuildResult.SUCCESS.value,
    show_default=True,
    help="Result of the build that produced the workspace. Nothing is pushed unless it is SUCCESS.",
)
@optgroup.option(
    "--build-kind",
    type=click.Choice([kind.value for kind in BuildKind], case_sensitive=False),
    default=BuildKind.STANDALONE_OR_AGGREGATE.value,
    show_default=True,
    help="FAN_OUT_UNIT for one unit of a fan-out build; those never push.",
)
@optgroup.option(
    "--env",
    multiple=True,
    help="Extra KEY=VALUE used to expand placeholders (repeatable). The process environment is always used.",
)
@optgroup.group("Behavior")
@optgroup.option(
    "--max-attempts",
    type=click.IntRange(min=1),
    default=None,
    help="Run the whole protocol again after network failures or rejected pushes, up to this many times.",
)
@optgroup.option(
    "--allow-branch-creation",
    is_flag=True,
    help="Create the target branch if the remote does not have it yet.",
)
@optgroup.option("--committer-name", default=None, help="user.name for merge commits.")
@optgroup.option("--committer-email", default=None, help="user.email for merge commits.")
@click.pass_context
def push(ctx: click.Context, **kwargs: Any) -> None:
    """Push the workspace's HEAD to the target branch, merging the remote branch first if it moved.

    \b
    Examples:
      git-push push --target-repo origin --target-branch main
      git-push push --target-repo origin --target-branch '${BRANCH}' --env BRANCH=release
    """
    opts = PushCliOptions(**kwargs)
    setup_logging(LogLevel(opts.log_level.upper()))

    workspace = _resolve_workspace(opts.workspace)
    config_file = load_config_file(workspace, Path(opts.config_path) if opts.config_path else None)
    cli_settings = PushSettings(
        target_repo=opts.target_repo,
        target_branch=opts.target_branch,
        missing_branch_policy=MissingBranchPolicy.CREATE if opts.allow_branch_creation else None,
        committer_name=opts.committer_name,
        committer_email=opts.committer_email,
        max_attempts=opts.max_attempts,
    )
    push_config = build_push_config(_layer_settings(config_file, os.environ, cli_settings))

    build = BuildContext(
        workspace=workspace,
        build_result=BuildResult(opts.build_result.upper()),
        build_kind=BuildKind(opts.build_kind.upper()),
        environment={**os.environ, **parse_env_assignments(opts.env)},
    )
    outcome = PostBuildStep(config=push_config).perform(build, scm=_load_scm(workspace, config_file))

    click.echo(_describe_outcome(outcome))
    if not outcome.is_step_successful:
        ctx.exit(1)


@click.command(name="validate")
@add_common_options
@click.pass_context
def validate(ctx: click.Context, **kwargs: Any) -> None:
    """Check the push configuration without touching any remote.

    \b
    Examples:
      git-push validate --target-repo origin --target-branch main
    """
    opts = ValidateCliOptions(**kwargs)
    setup_logging(LogLevel(opts.log_level.upper()))

    workspace = _resolve_workspace(opts.workspace)
    config_file = load_config_file(workspace, Path(opts.config_path) if opts.config_path else None)
    settings = _layer_settings(
        config_file,
        os.environ,
        PushSettings(target_repo=opts.target_repo, target_branch=opts.target_branch),
    )

    results: list[tuple[str, ValidationResult]] = [
        ("target_repo", check_target_repo(settings.target_repo, _load_scm(workspace, config_file))),
        ("target_branch", check_target_branch(settings.target_branch)),
    ]
    for field_name, result in results:
        suffix = f": {result.message}" if result.message else ""
        click.echo(f"{field_name}: {result.kind}{suffix}")

    if has_errors([result for _, result in results]):
        ctx.exit(1)
