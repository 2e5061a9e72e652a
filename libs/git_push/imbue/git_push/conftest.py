import sys
from collections.abc import Generator
from pathlib import Path

import pluggy
import pytest
from click.testing import CliRunner
from loguru import logger

from imbue.git_push import hookspecs
from imbue.git_push.plugins import reset_plugin_manager
from imbue.git_push.testing import clone_remote
from imbue.git_push.testing import create_bare_remote


@pytest.fixture(autouse=True)
def setup_test_git_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Isolate every test from the real git configuration and plugin state.

    HOME points to a fresh directory holding only a minimal .gitconfig, the system config is
    ignored, and the plugin manager singleton is rebuilt on first use.
    """
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    (home_dir / ".gitconfig").write_text(
        "[user]\n\tname = Test User\n\temail = test@example.com\n[init]\n\tdefaultBranch = main\n"
    )
    monkeypatch.setenv("HOME", str(home_dir))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
    monkeypatch.delenv("GIT_CONFIG_GLOBAL", raising=False)
    for name in ("GIT_PUSH_TARGET_REPO", "GIT_PUSH_TARGET_BRANCH", "GIT_PUSH_MAX_ATTEMPTS"):
        monkeypatch.delenv(name, raising=False)
    reset_plugin_manager()
    yield
    reset_plugin_manager()
    # CLI commands replace the loguru sinks with one bound to the runner's stream, which is closed by now
    logger.remove()
    logger.add(sys.stderr, level="DEBUG")


@pytest.fixture
def remote_repo(tmp_path: Path) -> Path:
    """A bare repository with one commit on main."""
    return create_bare_remote(tmp_path)


@pytest.fixture
def workspace(remote_repo: Path, tmp_path: Path) -> Path:
    """A build checkout of remote_repo, with the remote named origin."""
    return clone_remote(remote_repo, tmp_path / "workspace")


@pytest.fixture
def other_clone(remote_repo: Path, tmp_path: Path) -> Path:
    """A second checkout of remote_repo, used to move the remote branch behind the workspace's back."""
    return clone_remote(remote_repo, tmp_path / "other_clone")


@pytest.fixture
def plugin_manager() -> pluggy.PluginManager:
    """A plugin manager with the git_push hookspecs and no plugins registered."""
    pm = pluggy.PluginManager("git_push")
    pm.add_hookspecs(hookspecs)
    return pm


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI runner for testing CLI commands."""
    return CliRunner()


@pytest.fixture
def log_messages() -> Generator[list[str], None, None]:
    """Collect the messages loguru emits at DEBUG and above during the test."""
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
