"""Root conftest for enforcing the test suite time limit."""

import os
import time

import pytest

# Every test drives real git processes, so the whole suite is expected to stay well under this
_DEFAULT_MAX_DURATION_SECONDS = 60.0


def is_xdist_worker() -> bool:
    """Return True if we are running as an xdist worker process."""
    return "PYTEST_XDIST_WORKER" in os.environ


def get_max_duration_seconds() -> float:
    """Return the time limit for the suite. PYTEST_MAX_DURATION overrides the default."""
    if "PYTEST_MAX_DURATION" in os.environ:
        return float(os.environ["PYTEST_MAX_DURATION"])
    return _DEFAULT_MAX_DURATION_SECONDS


@pytest.hookimpl(tryfirst=True)
def pytest_sessionstart(session: pytest.Session) -> None:
    setattr(session, "start_time", time.time())


@pytest.hookimpl(trylast=True)
def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    """Fail the run if the test session took longer than the configured limit."""
    if is_xdist_worker() or not hasattr(session, "start_time"):
        return

    duration = time.time() - getattr(session, "start_time")
    max_duration = get_max_duration_seconds()
    if duration > max_duration:
        pytest.exit(
            f"Test suite took {duration:.2f}s, exceeding the {max_duration}s limit",
            returncode=1,
        )
