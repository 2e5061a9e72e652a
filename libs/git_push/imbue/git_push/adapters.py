"""Entry points a build host calls to push a build's HEAD back to its remote.

PostBuildStep runs after the build with whatever result the host recorded.
run_pipeline_step is called from a running pipeline, which has no recorded result yet.
finish_aggregate_build runs the configured step once when every unit of a fan-out build is done.
"""

from collections.abc import Iterable
from collections.abc import Mapping
from pathlib import Path

import pluggy
from loguru import logger
from pydantic import Field
from pydantic import ValidationError

from imbue.git_push.data_types import BuildContext
from imbue.git_push.data_types import FrozenModel
from imbue.git_push.data_types import PushConfig
from imbue.git_push.data_types import PushOutcome
from imbue.git_push.data_types import PushTarget
from imbue.git_push.data_types import ScmConfig
from imbue.git_push.errors import ConfigurationError
from imbue.git_push.errors import NotAGitRepositoryError
from imbue.git_push.errors import PushFailedError
from imbue.git_push.errors import TransportError
from imbue.git_push.gate import run_gated
from imbue.git_push.git_client import GitClientInterface
from imbue.git_push.git_client import LocalGitClient
from imbue.git_push.plugins import get_or_create_plugin_manager
from imbue.git_push.primitives import BuildKind
from imbue.git_push.primitives import BuildResult
from imbue.git_push.primitives import MissingBranchPolicy
from imbue.git_push.reconciler import reconcile
from imbue.git_push.remotes import expand_variables
from imbue.git_push.remotes import read_scm_config
from imbue.git_push.remotes import resolve_target


def reconcile_with_retries(
    git: GitClientInterface,
    target: PushTarget,
    missing_branch_policy: MissingBranchPolicy,
    max_attempts: int,
    pm: pluggy.PluginManager,
) -> PushOutcome:
    """Run the push protocol, starting over after transport failures up to max_attempts times.

    Merge conflicts and missing branches fail immediately since another attempt cannot fix them.
    """
    attempt = 1
    while True:
        pm.hook.on_before_push(target=target)
        try:
            outcome = reconcile(git, target, missing_branch_policy)
        except PushFailedError as e:
            try:
                pm.hook.on_push_failed(target=target, error=e)
            except Exception:
                logger.exception("on_push_failed hook raised while handling: {}", e)
            if not isinstance(e, TransportError) or attempt >= max_attempts:
                raise
            logger.warning("Attempt {} of {} to push to {} failed, retrying: {}", attempt, max_attempts, target.uri, e)
            attempt += 1
            continue
        outcome = outcome.model_copy(update={"attempts": attempt})
        pm.hook.on_after_push(target=target, outcome=outcome)
        return outcome


def _push_workspace(
    config: PushConfig,
    workspace: Path,
    environment: Mapping[str, str],
    scm: ScmConfig | None,
    pm: pluggy.PluginManager,
) -> PushOutcome:
    git = LocalGitClient(
        workspace=workspace,
        committer_name=config.committer_name,
        committer_email=config.committer_email,
    )
    if not git.is_git_repository():
        raise NotAGitRepositoryError(workspace)
    if scm is None:
        scm = read_scm_config(workspace)

    target = resolve_target(config.target_repo, config.target_branch, environment, scm)
    return reconcile_with_retries(git, target, config.missing_branch_policy, config.max_attempts, pm)


class PostBuildStep(FrozenModel):
    """The push step as configured on a job, run after the build finishes."""

    config: PushConfig = Field(description="Where and how to push")

    def perform(
        self,
        build: BuildContext,
        scm: ScmConfig | None = None,
        pm: pluggy.PluginManager | None = None,
    ) -> PushOutcome:
        """Push the build's HEAD if the build succeeded.

        scm defaults to the remotes configured in the workspace's git config.
        The returned outcome is never raised; check is_step_successful.
        """
        plugin_manager = pm if pm is not None else get_or_create_plugin_manager()
        remote_description = expand_variables(self.config.target_repo, build.environment).strip()
        return run_gated(
            build.build_result,
            build.build_kind,
            remote_description,
            lambda: _push_workspace(self.config, build.workspace, build.environment, scm, plugin_manager),
        )


def run_pipeline_step(
    scm: ScmConfig | None,
    target_repo: str,
    target_branch: str,
    build: BuildContext,
    missing_branch_policy: MissingBranchPolicy = MissingBranchPolicy.FAIL,
    max_attempts: int = 1,
    pm: pluggy.PluginManager | None = None,
) -> PushOutcome:
    """Push from inside a running pipeline.

    The pipeline passes its git configuration explicitly. A build that has not recorded a result
    yet is still running, so it counts as successful.
    Raises ConfigurationError if scm is missing.
    """
    if scm is None:
        raise ConfigurationError("scm is missing")
    try:
        config = PushConfig.model_validate(
            {
                "target_repo": target_repo,
                "target_branch": target_branch,
                "missing_branch_policy": missing_branch_policy,
                "max_attempts": max_attempts,
            }
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid push step arguments: {e}") from e
    if build.build_result is None:
        build = build.model_copy(update={"build_result": BuildResult.SUCCESS})
    return PostBuildStep(config=config).perform(build, scm=scm, pm=pm)


def finish_aggregate_build(
    configured_steps: Iterable[object],
    build: BuildContext,
    scm: ScmConfig | None = None,
    pm: pluggy.PluginManager | None = None,
) -> PushOutcome:
    """Run the job's push step once for a fan-out build, after all of its units completed.

    configured_steps are the post-build steps configured on the job; only the first PostBuildStep is used.
    """
    step = next((s for s in configured_steps if isinstance(s, PostBuildStep)), None)
    if step is None:
        return PushOutcome.skipped("No push step is configured on this job")
    aggregate_build = build.model_copy(update={"build_kind": BuildKind.STANDALONE_OR_AGGREGATE})
    return step.perform(aggregate_build, scm=scm, pm=pm)
