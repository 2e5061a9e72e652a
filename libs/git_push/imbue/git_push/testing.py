"""Helpers shared by the git_push tests."""

import subprocess
from collections.abc import Sequence
from pathlib import Path

from pydantic import ConfigDict
from pydantic import Field

from imbue.git_push.errors import GitPushError
from imbue.git_push.git_client import GitClientInterface
from imbue.git_push.primitives import CommitHash


def run_git_command(cwd: Path, *args: str) -> subprocess.CompletedProcess[str]:
    """Run a git command in the given directory.

    Raises an exception if the command fails.
    """
    result = subprocess.run(
        ["git", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        raise GitPushError(f"git {' '.join(args)} failed: {result.stderr}")
    return result


def get_commit(cwd: Path, revision: str) -> str:
    return run_git_command(cwd, "rev-parse", f"{revision}^{{commit}}").stdout.strip()


def get_commit_parents(cwd: Path, revision: str) -> list[str]:
    """Return the parents of a commit, in order."""
    output = run_git_command(cwd, "rev-list", "--parents", "-n", "1", revision).stdout.split()
    return output[1:]


def commit_file(cwd: Path, filename: str, content: str, message: str) -> str:
    """Write a file, commit it, and return the new commit."""
    (cwd / filename).write_text(content)
    run_git_command(cwd, "add", filename)
    run_git_command(cwd, "commit", "-m", message)
    return get_commit(cwd, "HEAD")


def create_bare_remote(tmp_path: Path, name: str = "remote.git") -> Path:
    """Create a bare repository whose main branch holds a single commit with a README.md."""
    remote_path = tmp_path / name
    run_git_command(tmp_path, "init", "--bare", "-b", "main", str(remote_path))

    seed_path = tmp_path / f"{name}-seed"
    seed_path.mkdir()
    run_git_command(seed_path, "init", "-b", "main")
    commit_file(seed_path, "README.md", "Initial content\n", "Initial commit")
    run_git_command(seed_path, "push", str(remote_path), "main:main")
    return remote_path


def clone_remote(remote_path: Path, destination: Path) -> Path:
    """Clone the remote as 'origin' with the main branch checked out."""
    run_git_command(remote_path.parent, "clone", "-b", "main", str(remote_path), str(destination))
    return destination


class FakeGitClient(GitClientInterface):
    """In-memory stand-in for the workspace checkout that records every call.

    remote_tips maps tracking refs (e.g. 'origin/main') to the commit a fetch makes them point at.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    head: CommitHash
    remote_tips: dict[str, CommitHash] = Field(default_factory=dict)
    merge_result: CommitHash | None = None
    merge_error: GitPushError | None = None
    push_errors: list[GitPushError] = Field(default_factory=list)
    fetch_errors: list[GitPushError] = Field(default_factory=list)
    calls: list[str] = Field(default_factory=list)
    state: dict[str, CommitHash] = Field(default_factory=dict)

    def is_git_repository(self) -> bool:
        return True

    def head_commit(self) -> CommitHash:
        return self.state.get("HEAD", self.head)

    def fetch(self, uri: str, refspecs: Sequence[str]) -> None:
        self.calls.append(f"fetch {uri} {' '.join(refspecs)}".strip())
        if self.fetch_errors:
            raise self.fetch_errors.pop(0)
        self.state.update(self.remote_tips)

    def resolve_revision(self, name: str) -> CommitHash | None:
        self.calls.append(f"resolve {name}")
        if name == "HEAD":
            return self.head_commit()
        return self.state.get(name)

    def merge(self, commit: CommitHash, message: str | None = None) -> CommitHash:
        self.calls.append(f"merge {commit}")
        if self.merge_error is not None:
            raise self.merge_error
        new_head = self.merge_result if self.merge_result is not None else commit
        self.state["HEAD"] = new_head
        return new_head

    def push(self, uri: str, refspec: str, is_including_tags: bool) -> None:
        self.calls.append(f"push {uri} {refspec} tags={is_including_tags}")
        if self.push_errors:
            raise self.push_errors.pop(0)

    @property
    def operations(self) -> list[str]:
        """The recorded calls reduced to their verbs."""
        return [call.split(" ", 1)[0] for call in self.calls]
