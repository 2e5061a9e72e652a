import os
from abc import ABC
from abc import abstractmethod
from collections.abc import Sequence
from pathlib import Path
from typing import Final

from loguru import logger
from pydantic import Field

from imbue.git_push.data_types import FrozenModel
from imbue.git_push.errors import GitUnavailableError
from imbue.git_push.errors import MergeConflictError
from imbue.git_push.errors import PushRejectedError
from imbue.git_push.errors import RevisionResolutionError
from imbue.git_push.errors import TagRejectedError
from imbue.git_push.errors import TransportError
from imbue.git_push.processes import FinishedProcess
from imbue.git_push.processes import ProcessError
from imbue.git_push.processes import ProcessSetupError
from imbue.git_push.processes import run_process_to_completion
from imbue.git_push.primitives import CommitHash

# Markers git prints for refs the remote refused to update
_REJECTION_MARKERS: Final[tuple[str, ...]] = ("[rejected]", "[remote rejected]")

# Reason git gives for a tag that exists on the remote with a different target
_TAG_EXISTS_MARKER: Final[str] = "(already exists)"


class GitClientInterface(FrozenModel, ABC):
    """Operations the push protocol needs from the workspace checkout.

    Every method operates against the single working tree bound to the current build.
    """

    @abstractmethod
    def is_git_repository(self) -> bool:
        """Check whether the workspace is inside a git repository."""

    @abstractmethod
    def head_commit(self) -> CommitHash:
        """Return the commit HEAD points at."""

    @abstractmethod
    def fetch(self, uri: str, refspecs: Sequence[str]) -> None:
        """Fetch refs matching refspecs from uri into local tracking refs."""

    @abstractmethod
    def resolve_revision(self, name: str) -> CommitHash | None:
        """Resolve a revision to a commit, or None if it does not exist."""

    @abstractmethod
    def merge(self, commit: CommitHash, message: str | None = None) -> CommitHash:
        """Merge commit into HEAD and return the new HEAD."""

    @abstractmethod
    def push(self, uri: str, refspec: str, is_including_tags: bool) -> None:
        """Push refspec to uri, optionally with every local tag."""


class LocalGitClient(GitClientInterface):
    """Drive the git executable in a local workspace."""

    workspace: Path = Field(description="Root of the checkout")
    committer_name: str | None = Field(default=None, description="user.name used for merge commits")
    committer_email: str | None = Field(default=None, description="user.email used for merge commits")
    timeout_seconds: float | None = Field(
        default=None,
        description="Per-command timeout; None inherits whatever the transport enforces",
    )

    def _identity_args(self) -> list[str]:
        args: list[str] = []
        if self.committer_name:
            args.extend(["-c", f"user.name={self.committer_name}"])
        if self.committer_email:
            args.extend(["-c", f"user.email={self.committer_email}"])
        return args

    def _run_git(self, *args: str, is_checked_after: bool = True) -> FinishedProcess:
        # A CI workspace has nobody to answer credential prompts
        env = {**os.environ, "GIT_TERMINAL_PROMPT": "0"}
        try:
            return run_process_to_completion(
                ["git", *self._identity_args(), *args],
                cwd=self.workspace,
                timeout=self.timeout_seconds,
                env=env,
                is_checked_after=is_checked_after,
            )
        except ProcessSetupError as e:
            raise GitUnavailableError(f"Failed to run git in {self.workspace}: {e.stderr.strip()}") from e

    def is_git_repository(self) -> bool:
        if not self.workspace.is_dir():
            return False
        result = self._run_git("rev-parse", "--git-dir", is_checked_after=False)
        return result.returncode == 0

    def head_commit(self) -> CommitHash:
        commit = self.resolve_revision("HEAD")
        if commit is None:
            raise RevisionResolutionError("HEAD")
        return commit

    def fetch(self, uri: str, refspecs: Sequence[str]) -> None:
        try:
            self._run_git("fetch", "--", uri, *refspecs)
        except ProcessError as e:
            raise TransportError(f"Failed to fetch from {uri}: {e.stderr.strip()}") from e

    def resolve_revision(self, name: str) -> CommitHash | None:
        result = self._run_git("rev-parse", "--verify", "--quiet", f"{name}^{{commit}}", is_checked_after=False)
        if result.returncode != 0:
            return None
        return CommitHash(result.stdout.strip())

    def merge(self, commit: CommitHash, message: str | None = None) -> CommitHash:
        args = ["merge", "--no-edit"]
        if message is not None:
            args.extend(["-m", message])
        try:
            self._run_git(*args, commit)
        except ProcessError as merge_error:
            self._abort_merge_in_progress()
            details = (merge_error.stdout.strip() + "\n" + merge_error.stderr.strip()).strip()
            raise MergeConflictError(f"Failed to merge {commit}: {details}") from merge_error
        return self.head_commit()

    def _abort_merge_in_progress(self) -> None:
        # No MERGE_HEAD means git refused to start the merge, so there is nothing to abort
        if self.resolve_revision("MERGE_HEAD") is None:
            return
        try:
            self._run_git("merge", "--abort")
        except ProcessError as abort_error:
            logger.warning(
                "Failed to abort merge in {}: {}. Repository may be in a conflicted state.",
                self.workspace,
                abort_error.stderr.strip(),
            )

    def push(self, uri: str, refspec: str, is_including_tags: bool) -> None:
        # The branch and the tags land together or not at all
        args = ["push", "--atomic"]
        if is_including_tags:
            args.append("--tags")
        args.extend(["--", uri, refspec])
        try:
            self._run_git(*args)
        except ProcessError as e:
            stderr = e.stderr.strip()
            if _TAG_EXISTS_MARKER in stderr:
                raise TagRejectedError(f"Push to {uri} was rejected because a tag already exists there: {stderr}") from e
            if any(marker in stderr for marker in _REJECTION_MARKERS):
                raise PushRejectedError(f"Push to {uri} was rejected: {stderr}") from e
            raise TransportError(f"Failed to push to {uri}: {stderr}") from e
