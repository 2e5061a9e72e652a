"""Checks run against the push configuration before any build uses it."""

from collections.abc import Sequence
from typing import Final

from imbue.git_push.data_types import ScmConfig
from imbue.git_push.data_types import ValidationResult
from imbue.git_push.primitives import ValidationKind
from imbue.git_push.remotes import has_placeholders

FIELD_REQUIRED_MESSAGE: Final[str] = "This field is required"

NO_SCM_MESSAGE: Final[str] = "Project not currently configured to use Git; cannot check remote repository"


def check_field_not_blank(value: str | None) -> ValidationResult:
    if value is None or not value.strip():
        return ValidationResult.error(FIELD_REQUIRED_MESSAGE)
    return ValidationResult.ok()


def check_target_branch(value: str | None) -> ValidationResult:
    return check_field_not_blank(value)


def check_target_repo(value: str | None, scm: ScmConfig | None) -> ValidationResult:
    """Check that the target repo is set and names one of the configured remotes.

    scm is None when the job does not use git at all, in which case the name cannot be checked.
    Names built from placeholders are only known once a build runs.
    """
    result = check_field_not_blank(value)
    if result.kind != ValidationKind.OK:
        return result
    assert value is not None

    if scm is None:
        return ValidationResult.warning(NO_SCM_MESSAGE)

    name = value.strip()
    if has_placeholders(name):
        return ValidationResult.warning(f"Target repo '{name}' contains placeholders and is only checked when a build runs")
    if scm.get_remote_by_name(name) is None:
        return ValidationResult.error(f"No remote repository configured with name '{name}'")
    return ValidationResult.ok()


def has_errors(results: Sequence[ValidationResult]) -> bool:
    return any(result.kind == ValidationKind.ERROR for result in results)
