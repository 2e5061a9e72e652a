"""Tests of the git-push command line against real repositories."""

from pathlib import Path

from click.testing import CliRunner

from imbue.git_push.config import CONFIG_FILENAME
from imbue.git_push.main import cli
from imbue.git_push.testing import commit_file
from imbue.git_push.testing import get_commit
from imbue.git_push.testing import run_git_command


def test_push_pushes_the_workspace_head(cli_runner: CliRunner, workspace: Path, remote_repo: Path) -> None:
    local = commit_file(workspace, "build.txt", "output\n", "Build output")

    result = cli_runner.invoke(
        cli,
        ["push", "--workspace", str(workspace), "--target-repo", "origin", "--target-branch", "main"],
    )

    assert result.exit_code == 0, result.output
    assert f"Pushed {local[:10]}" in result.output
    assert get_commit(remote_repo, "main") == local


def test_push_merges_a_diverged_remote(
    cli_runner: CliRunner,
    workspace: Path,
    other_clone: Path,
    remote_repo: Path,
) -> None:
    commit_file(other_clone, "other.txt", "other\n", "Concurrent work")
    run_git_command(other_clone, "push", "origin", "main")
    commit_file(workspace, "build.txt", "output\n", "Build output")

    result = cli_runner.invoke(
        cli,
        ["push", "--workspace", str(workspace), "--target-repo", "origin", "--target-branch", "main"],
    )

    assert result.exit_code == 0, result.output
    assert "after merging the remote branch" in result.output
    assert get_commit(remote_repo, "main") == get_commit(workspace, "HEAD")


def test_push_expands_env_placeholders(cli_runner: CliRunner, workspace: Path, remote_repo: Path) -> None:
    local = commit_file(workspace, "build.txt", "output\n", "Build output")

    result = cli_runner.invoke(
        cli,
        [
            "push",
            "--workspace",
            str(workspace),
            "--target-repo",
            "origin",
            "--target-branch",
            "${BRANCH}",
            "--env",
            "BRANCH=release",
            "--allow-branch-creation",
        ],
    )

    assert result.exit_code == 0, result.output
    assert get_commit(remote_repo, "release") == local


def test_push_reads_the_workspace_config_file(cli_runner: CliRunner, workspace: Path, remote_repo: Path) -> None:
    (workspace / CONFIG_FILENAME).write_text('[push]\ntarget_repo = "origin"\ntarget_branch = "main"\n')
    local = commit_file(workspace, "build.txt", "output\n", "Build output")

    result = cli_runner.invoke(cli, ["push", "--workspace", str(workspace)])

    assert result.exit_code == 0, result.output
    assert get_commit(remote_repo, "main") == local


def test_cli_options_override_environment_and_config(
    cli_runner: CliRunner,
    workspace: Path,
    remote_repo: Path,
) -> None:
    (workspace / CONFIG_FILENAME).write_text('[push]\ntarget_repo = "nowhere"\ntarget_branch = "main"\n')
    local = commit_file(workspace, "build.txt", "output\n", "Build output")

    result = cli_runner.invoke(
        cli,
        ["push", "--workspace", str(workspace), "--target-repo", "origin"],
        env={"GIT_PUSH_TARGET_REPO": "also-nowhere"},
    )

    assert result.exit_code == 0, result.output
    assert get_commit(remote_repo, "main") == local


def test_environment_overrides_config_file(cli_runner: CliRunner, workspace: Path) -> None:
    (workspace / CONFIG_FILENAME).write_text('[push]\ntarget_repo = "origin"\ntarget_branch = "main"\n')

    result = cli_runner.invoke(
        cli,
        ["push", "--workspace", str(workspace)],
        env={"GIT_PUSH_TARGET_REPO": "fork"},
    )

    assert result.exit_code == 1
    assert "No repository found for target repo name 'fork'" in result.output


def test_push_skips_failed_builds(cli_runner: CliRunner, workspace: Path, remote_repo: Path) -> None:
    before = get_commit(remote_repo, "main")
    commit_file(workspace, "build.txt", "output\n", "Build output")

    result = cli_runner.invoke(
        cli,
        [
            "push",
            "--workspace",
            str(workspace),
            "--target-repo",
            "origin",
            "--target-branch",
            "main",
            "--build-result",
            "failure",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Build did not succeed, so no pushing will occur." in result.output
    assert get_commit(remote_repo, "main") == before


def test_push_exits_with_failure_on_merge_conflict(
    cli_runner: CliRunner,
    workspace: Path,
    other_clone: Path,
) -> None:
    commit_file(other_clone, "README.md", "theirs\n", "Their change")
    run_git_command(other_clone, "push", "origin", "main")
    commit_file(workspace, "README.md", "ours\n", "Our change")

    result = cli_runner.invoke(
        cli,
        ["push", "--workspace", str(workspace), "--target-repo", "origin", "--target-branch", "main"],
    )

    assert result.exit_code == 1
    assert "Failed to push to origin" in result.output


def test_push_without_target_is_a_usage_error(cli_runner: CliRunner, workspace: Path) -> None:
    result = cli_runner.invoke(cli, ["push", "--workspace", str(workspace), "--target-repo", "origin"])

    assert result.exit_code == 2
    assert "target_branch: This field is required" in result.output


def test_push_with_missing_config_file_is_a_usage_error(cli_runner: CliRunner, workspace: Path) -> None:
    result = cli_runner.invoke(cli, ["push", "--workspace", str(workspace), "--config", str(workspace / "nope.toml")])

    assert result.exit_code == 2
    assert "Config file not found" in result.output


def test_validate_accepts_a_known_remote(cli_runner: CliRunner, workspace: Path) -> None:
    result = cli_runner.invoke(
        cli,
        ["validate", "--workspace", str(workspace), "--target-repo", "origin", "--target-branch", "main"],
    )

    assert result.exit_code == 0, result.output
    assert "target_repo: OK" in result.output
    assert "target_branch: OK" in result.output


def test_validate_reports_unknown_remotes_and_blank_branches(cli_runner: CliRunner, workspace: Path) -> None:
    result = cli_runner.invoke(cli, ["validate", "--workspace", str(workspace), "--target-repo", "upstream"])

    assert result.exit_code == 1
    assert "target_repo: ERROR: No remote repository configured with name 'upstream'" in result.output
    assert "target_branch: ERROR: This field is required" in result.output


def test_validate_warns_outside_a_git_checkout(cli_runner: CliRunner, tmp_path: Path) -> None:
    plain = tmp_path / "plain"
    plain.mkdir()

    result = cli_runner.invoke(
        cli,
        ["validate", "--workspace", str(plain), "--target-repo", "origin", "--target-branch", "main"],
    )

    assert result.exit_code == 0, result.output
    assert "target_repo: WARNING: Project not currently configured to use Git" in result.output
