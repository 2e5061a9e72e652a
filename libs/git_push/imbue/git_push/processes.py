import shlex
import subprocess
from collections.abc import Mapping
from collections.abc import Sequence
from pathlib import Path
from typing import Final
from typing import Self

from loguru import logger

from imbue.git_push.data_types import FrozenModel
from imbue.git_push.errors import BaseGitPushError

_MAX_OUTPUT_IN_MESSAGE: Final[int] = 8000


class ProcessError(BaseGitPushError):
    """Raised when a process fails with a non-zero exit code."""

    def __init__(
        self,
        command: tuple[str, ...],
        stdout: str,
        stderr: str,
        returncode: int | None = None,
        message: str = "Command failed with non-zero exit code",
    ) -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.command = command
        self.message = message
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        msg = f"{self.message} {self.returncode}. command=`{shlex.join(self.command)}`"
        output = self.stdout + "\n" + self.stderr
        if len(output) > _MAX_OUTPUT_IN_MESSAGE:
            half = _MAX_OUTPUT_IN_MESSAGE // 2
            output = output[:half] + "\n... OUTPUT TRUNCATED ...\n" + output[-half:]
        return msg + f"\noutput:\n{output}"

    def __str__(self) -> str:
        return self._format_message()


class ProcessTimeoutError(ProcessError):
    """Raised when a process times out."""

    def __init__(self, command: tuple[str, ...], stdout: str, stderr: str) -> None:
        super().__init__(command, stdout, stderr, None, message="Command timed out")


class ProcessSetupError(ProcessError):
    """Raised when a process fails to start (e.g. the executable is missing)."""

    def __init__(self, command: tuple[str, ...], stdout: str, stderr: str) -> None:
        super().__init__(command, stdout, stderr, None, message="Command failed to start")


class FinishedProcess(FrozenModel):
    """A completed process with its output and exit status."""

    returncode: int | None = None
    stdout: str
    stderr: str
    command: tuple[str, ...]
    is_timed_out: bool = False

    def check(self) -> Self:
        if self.is_timed_out:
            raise ProcessTimeoutError(command=self.command, stdout=self.stdout, stderr=self.stderr)
        if self.returncode != 0:
            raise ProcessError(
                command=self.command,
                returncode=self.returncode,
                stdout=self.stdout,
                stderr=self.stderr,
            )
        return self


def _decode(output: bytes | str | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


def run_process_to_completion(
    command: Sequence[str],
    cwd: Path | None = None,
    timeout: float | None = None,
    env: Mapping[str, str] | None = None,
    is_checked_after: bool = True,
) -> FinishedProcess:
    """Run a process to completion, blocking until it finishes.

    When `is_checked_after` is True (the default), raise a ProcessError if the process exits with a
    non-zero exit code or times out.
    """
    command_tuple = tuple(command)
    logger.trace("Running command: {}", shlex.join(command_tuple))
    try:
        completed = subprocess.run(
            command_tuple,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            capture_output=True,
            timeout=timeout,
            stdin=subprocess.DEVNULL,
        )
    except subprocess.TimeoutExpired as e:
        result = FinishedProcess(
            command=command_tuple,
            stdout=_decode(e.stdout),
            stderr=_decode(e.stderr),
            is_timed_out=True,
        )
    except OSError as e:
        raise ProcessSetupError(command=command_tuple, stdout="", stderr=str(e)) from e
    else:
        result = FinishedProcess(
            command=command_tuple,
            returncode=completed.returncode,
            stdout=_decode(completed.stdout),
            stderr=_decode(completed.stderr),
        )

    if is_checked_after:
        result.check()
    return result
