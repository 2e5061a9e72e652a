"""Turn configured (possibly templated) remote and branch names into a concrete push target."""

import re
from collections.abc import Mapping
from pathlib import Path
from typing import Final

from loguru import logger

from imbue.git_push.data_types import PushTarget
from imbue.git_push.data_types import RemoteConfig
from imbue.git_push.data_types import ScmConfig
from imbue.git_push.errors import ConfigurationError
from imbue.git_push.errors import GitUnavailableError
from imbue.git_push.errors import NotAGitRepositoryError
from imbue.git_push.errors import RemoteNotFoundError
from imbue.git_push.processes import FinishedProcess
from imbue.git_push.processes import ProcessSetupError
from imbue.git_push.processes import run_process_to_completion
from imbue.git_push.primitives import BranchName
from imbue.git_push.primitives import NonEmptyStr
from imbue.git_push.primitives import RefSpec
from imbue.git_push.primitives import RemoteName

# Matches $NAME and ${NAME}. Only the braced form may contain dots.
_PLACEHOLDER_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{([A-Za-z0-9_.]+)\}|\$([A-Za-z0-9_]+)")

# Matches the keys printed by `git config --get-regexp '^remote\.'`, e.g. remote.origin.url
_REMOTE_CONFIG_KEY_PATTERN: Final[re.Pattern[str]] = re.compile(r"^remote\.(?P<name>.+)\.(?P<key>url|fetch)$")


def expand_variables(template: str, environment: Mapping[str, str]) -> str:
    """Replace $NAME and ${NAME} placeholders with values from the environment.

    Placeholders whose name is not in the environment are left untouched, and substituted
    values are never expanded again.
    """

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1) if match.group(1) is not None else match.group(2)
        value = environment.get(name)
        return match.group(0) if value is None else value

    return _PLACEHOLDER_PATTERN.sub(_replace, template)


def has_placeholders(value: str) -> bool:
    return _PLACEHOLDER_PATTERN.search(value) is not None


def expand_remote(remote: RemoteConfig, environment: Mapping[str, str]) -> RemoteConfig:
    """Return a copy of the remote with placeholders in its URIs and ref-specs expanded."""
    return RemoteConfig(
        name=remote.name,
        uris=tuple(NonEmptyStr(expand_variables(uri, environment)) for uri in remote.uris),
        fetch_refspecs=tuple(RefSpec(expand_variables(spec, environment)) for spec in remote.fetch_refspecs),
    )


def resolve_target(
    target_repo: str,
    target_branch: str,
    environment: Mapping[str, str],
    scm: ScmConfig,
) -> PushTarget:
    """Expand the configured remote and branch names and look the remote up in the job's remotes.

    Only the first URI of the remote is used; extra URIs never become extra push targets.
    Raises RemoteNotFoundError if no remote has the expanded name.
    """
    remote_name = expand_variables(target_repo, environment).strip()
    branch_name = expand_variables(target_branch, environment).strip()
    if not remote_name:
        raise ConfigurationError(f"Target repo '{target_repo}' expands to an empty name")
    if not branch_name:
        raise ConfigurationError(f"Target branch '{target_branch}' expands to an empty name")

    remote = scm.get_remote_by_name(remote_name)
    if remote is None:
        raise RemoteNotFoundError(remote_name)

    try:
        expanded_remote = expand_remote(remote, environment)
    except ValueError as e:
        raise ConfigurationError(f"Remote '{remote_name}' expands to an invalid configuration: {e}") from e
    return PushTarget(
        remote_name=RemoteName(remote_name),
        branch_name=BranchName(branch_name),
        uri=expanded_remote.uris[0],
        fetch_refspecs=expanded_remote.fetch_refspecs,
    )


def default_fetch_refspec(remote_name: str) -> RefSpec:
    return RefSpec(f"+refs/heads/*:refs/remotes/{remote_name}/*")


def parse_remote_config_lines(output: str) -> ScmConfig:
    """Parse the output of `git config --get-regexp '^remote\\.'` into an ScmConfig.

    Remotes keep the order in which they first appear. A remote without fetch entries gets git's
    default ref-spec; a remote without any URL is dropped since it can never be a target.
    """
    uris_by_name: dict[str, list[str]] = {}
    refspecs_by_name: dict[str, list[str]] = {}
    for line in output.splitlines():
        key, _, value = line.strip().partition(" ")
        match = _REMOTE_CONFIG_KEY_PATTERN.match(key)
        if match is None or not value.strip():
            continue
        name = match.group("name")
        uris_by_name.setdefault(name, [])
        refspecs_by_name.setdefault(name, [])
        if match.group("key") == "url":
            uris_by_name[name].append(value.strip())
        else:
            refspecs_by_name[name].append(value.strip())

    remotes: list[RemoteConfig] = []
    for name, uris in uris_by_name.items():
        if not uris:
            logger.debug("Ignoring remote {} since it has no url", name)
            continue
        refspecs = refspecs_by_name[name] or [default_fetch_refspec(name)]
        remotes.append(
            RemoteConfig(
                name=RemoteName(name),
                uris=tuple(NonEmptyStr(uri) for uri in uris),
                fetch_refspecs=tuple(RefSpec(spec) for spec in refspecs),
            )
        )
    return ScmConfig(remotes=tuple(remotes))


def _run_git_in(workspace: Path, *args: str) -> FinishedProcess:
    try:
        return run_process_to_completion(["git", *args], cwd=workspace, is_checked_after=False)
    except ProcessSetupError as e:
        raise GitUnavailableError(f"Failed to run git in {workspace}: {e.stderr.strip()}") from e


def read_scm_config(workspace: Path) -> ScmConfig:
    """Read the remotes configured in a workspace's git config.

    Raises NotAGitRepositoryError if the workspace is not a git checkout.
    """
    if not workspace.is_dir():
        raise NotAGitRepositoryError(workspace)
    is_repo = _run_git_in(workspace, "rev-parse", "--git-dir")
    if is_repo.returncode != 0:
        raise NotAGitRepositoryError(workspace)

    # Exit code 1 just means no remote is configured
    result = _run_git_in(workspace, "config", "--get-regexp", r"^remote\.")
    if result.returncode not in (0, 1):
        raise ConfigurationError(f"Failed to read the remotes of {workspace}: {result.stderr.strip()}")
    return parse_remote_config_lines(result.stdout)


def merge_scm_configs(primary: ScmConfig, fallback: ScmConfig) -> ScmConfig:
    """Combine two remote sets; remotes in primary win over same-named remotes in fallback."""
    primary_names = {remote.name for remote in primary.remotes}
    extra = tuple(remote for remote in fallback.remotes if remote.name not in primary_names)
    return ScmConfig(remotes=primary.remotes + extra)
