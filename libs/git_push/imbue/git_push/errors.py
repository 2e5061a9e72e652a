from pathlib import Path

from click import ClickException


class BaseGitPushError(Exception):
    """Base exception for all git-push errors."""


class GitPushError(ClickException, BaseGitPushError):
    """Base exception for all user-facing git-push errors.

    Subclasses can provide a user_help_text attribute with additional context to help
    the user resolve the error. The CLI displays it next to the message.
    """

    user_help_text: str | None = None

    def format_message(self) -> str:
        if self.user_help_text:
            return str(self) + "  [" + self.user_help_text + "]"
        return str(self)


# === Configuration Errors ===


class ConfigurationError(GitPushError):
    """Raised when the push configuration is incomplete or inconsistent."""

    exit_code = 2


class ConfigNotFoundError(ConfigurationError):
    """Raised when an explicitly requested config file does not exist."""


class ConfigParseError(ConfigurationError):
    """Raised when a config file cannot be parsed."""


class RemoteNotFoundError(ConfigurationError):
    """Raised when the target repo does not name any configured remote."""

    user_help_text = "Check the remotes configured for the workspace with 'git remote -v'."

    def __init__(self, remote_name: str) -> None:
        self.remote_name = remote_name
        super().__init__(f"No repository found for target repo name '{remote_name}'")


class NotAGitRepositoryError(GitPushError):
    """Raised when the workspace is not a git checkout."""

    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Not a git repository: {path}")


class GitUnavailableError(GitPushError):
    """Raised when git cannot be started, e.g. it is not on PATH or the workspace directory is gone."""

    user_help_text = "Check that git is installed and on PATH for the build."


# === Reconciliation Errors ===


class PushFailedError(GitPushError):
    """Raised when the push protocol cannot complete. The underlying cause is chained."""


class TransportError(PushFailedError):
    """Raised when a fetch or push fails (network, authentication, unknown ref)."""

    user_help_text = "This is usually transient; re-running the push starts over from a fresh fetch."


class PushRejectedError(TransportError):
    """Raised when the remote refuses the ref update, e.g. because another push landed first."""


class TagRejectedError(PushFailedError):
    """Raised when the remote already has a tag with the same name pointing somewhere else.

    The push is atomic, so the branch was not updated either.
    """

    user_help_text = "Delete or rename the conflicting tag, locally or on the remote, then rebuild."


class RevisionResolutionError(PushFailedError):
    """Raised when the remote branch has no tracking ref after fetching."""

    user_help_text = "The branch may not exist on the remote yet. Set missing_branch_policy = \"CREATE\" to create it."

    def __init__(self, revision: str) -> None:
        self.revision = revision
        super().__init__(f"Could not resolve revision '{revision}'")


class MergeConflictError(PushFailedError):
    """Raised when the remote tip cannot be merged into HEAD automatically."""

    user_help_text = "Resolve the conflict on the remote branch or in the build, then rebuild."
