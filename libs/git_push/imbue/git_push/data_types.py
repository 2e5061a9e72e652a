from collections.abc import Mapping
from pathlib import Path
from typing import Self

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field

from imbue.git_push.primitives import BranchName
from imbue.git_push.primitives import BuildKind
from imbue.git_push.primitives import BuildResult
from imbue.git_push.primitives import CommitHash
from imbue.git_push.primitives import MissingBranchPolicy
from imbue.git_push.primitives import NonEmptyStr
from imbue.git_push.primitives import OutcomeKind
from imbue.git_push.primitives import RefSpec
from imbue.git_push.primitives import RemoteName
from imbue.git_push.primitives import ValidationKind


class FrozenModel(BaseModel):
    """Base class for immutable pydantic models that prevent attribute mutation after construction."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=False,
    )


# === Remote Configuration ===


class RemoteConfig(FrozenModel):
    """A named remote of the workspace. URIs and ref-specs may contain $VAR placeholders."""

    name: RemoteName = Field(description="Name of the remote (e.g. 'origin')")
    uris: tuple[NonEmptyStr, ...] = Field(
        min_length=1,
        description="Connection endpoints; only the first one is used for fetch and push",
    )
    fetch_refspecs: tuple[RefSpec, ...] = Field(
        default=(),
        description="Ref-specs mapping remote refs to local tracking refs during fetch",
    )


class ScmConfig(FrozenModel):
    """The git configuration of a job: its ordered set of named remotes."""

    remotes: tuple[RemoteConfig, ...] = Field(default=(), description="Configured remotes, in declaration order")

    def get_remote_by_name(self, name: str) -> RemoteConfig | None:
        """Return the remote with exactly this (case-sensitive) name, or None."""
        for remote in self.remotes:
            if remote.name == name:
                return remote
        return None


class PushTarget(FrozenModel):
    """A fully resolved push/fetch target. Built once per invocation."""

    remote_name: RemoteName = Field(description="Expanded name of the remote")
    branch_name: BranchName = Field(description="Expanded name of the branch to push to")
    uri: NonEmptyStr = Field(description="Expanded URI used for fetch and push")
    fetch_refspecs: tuple[RefSpec, ...] = Field(description="Expanded fetch ref-specs")

    @property
    def short_branch_name(self) -> str:
        """The branch name without a leading refs/heads/, as used in tracking refs."""
        return self.branch_name.removeprefix("refs/heads/")

    @property
    def tracking_ref(self) -> str:
        return f"{self.remote_name}/{self.short_branch_name}"

    @property
    def push_refspec(self) -> str:
        return f"HEAD:refs/heads/{self.short_branch_name}"


# === Push Configuration ===


class PushConfig(FrozenModel):
    """Configuration of a push step. Values may contain $VAR placeholders."""

    target_repo: NonEmptyStr = Field(description="Name of the remote to push to")
    target_branch: NonEmptyStr = Field(description="Name of the branch to push to")
    missing_branch_policy: MissingBranchPolicy = Field(
        default=MissingBranchPolicy.FAIL,
        description="What to do when the branch does not exist on the remote yet",
    )
    committer_name: str | None = Field(default=None, description="Identity used for merge commits")
    committer_email: str | None = Field(default=None, description="Identity used for merge commits")
    max_attempts: int = Field(
        default=1,
        ge=1,
        description="How many times to run the whole protocol when the remote moved or the network failed",
    )


class BuildContext(FrozenModel):
    """What the host tells us about the build a push step runs in."""

    workspace: Path = Field(description="The build's git checkout")
    build_result: BuildResult | None = Field(
        default=None,
        description="Result recorded so far, or None when the host has not recorded one",
    )
    build_kind: BuildKind = Field(
        default=BuildKind.STANDALONE_OR_AGGREGATE,
        description="Position of this build in the build topology",
    )
    environment: Mapping[str, str] = Field(
        default_factory=dict,
        description="Build environment used for placeholder expansion",
    )


# === Results ===


class PushOutcome(FrozenModel):
    """Result of one invocation of a push step."""

    kind: OutcomeKind = Field(description="Whether the push succeeded, was skipped, or failed")
    reason: str | None = Field(default=None, description="Why the push was skipped or failed")
    pushed_commit: CommitHash | None = Field(default=None, description="Commit the remote branch now points at")
    remote_tip_before: CommitHash | None = Field(
        default=None,
        description="Remote branch tip found by the initial fetch, or None if the branch was created",
    )
    is_remote_merged: bool = Field(default=False, description="Whether merging the remote tip moved HEAD before pushing")
    attempts: int = Field(default=0, description="Number of protocol runs it took to push successfully")

    @property
    def is_step_successful(self) -> bool:
        return self.kind != OutcomeKind.FAILED

    @classmethod
    def skipped(cls, reason: str) -> Self:
        return cls(kind=OutcomeKind.SKIPPED_NOT_APPLICABLE, reason=reason)

    @classmethod
    def failed(cls, reason: str) -> Self:
        return cls(kind=OutcomeKind.FAILED, reason=reason)


class ValidationResult(FrozenModel):
    """Result of validating one configuration field."""

    kind: ValidationKind = Field(description="Severity of the result")
    message: str | None = Field(default=None, description="Human-readable explanation")

    @classmethod
    def ok(cls) -> Self:
        return cls(kind=ValidationKind.OK)

    @classmethod
    def warning(cls, message: str) -> Self:
        return cls(kind=ValidationKind.WARNING, message=message)

    @classmethod
    def error(cls, message: str) -> Self:
        return cls(kind=ValidationKind.ERROR, message=message)
