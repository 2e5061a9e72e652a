import re
from enum import StrEnum
from enum import auto
from typing import Any
from typing import Final
from typing import Self

from pydantic import GetCoreSchemaHandler
from pydantic_core import CoreSchema
from pydantic_core import core_schema

# === Base Types ===


class UpperCaseStrEnum(StrEnum):
    """A StrEnum whose auto() values are the uppercased member names."""

    @staticmethod
    def _generate_next_value_(
        name: str,
        start: int,
        count: int,
        last_values: list[str],
    ) -> str:
        return name.upper()


class NonEmptyStr(str):
    """A string that cannot be empty or whitespace-only. Surrounding whitespace is stripped."""

    def __new__(cls, value: str) -> Self:
        if not value or not value.strip():
            raise ValueError(f"{cls.__name__} cannot be empty")
        return super().__new__(cls, value.strip())

    @classmethod
    def __get_pydantic_core_schema__(
        cls,
        source_type: Any,
        handler: GetCoreSchemaHandler,
    ) -> CoreSchema:
        return core_schema.no_info_after_validator_function(
            cls,
            core_schema.str_schema(min_length=1),
            serialization=core_schema.to_string_ser_schema(),
        )


# === Enums ===


class LogLevel(UpperCaseStrEnum):
    """Log level for console output."""

    TRACE = auto()
    DEBUG = auto()
    INFO = auto()
    WARNING = auto()
    ERROR = auto()


class BuildResult(UpperCaseStrEnum):
    """Result of a build, ordered from best to worst."""

    SUCCESS = auto()
    UNSTABLE = auto()
    FAILURE = auto()
    NOT_BUILT = auto()
    ABORTED = auto()

    @property
    def severity(self) -> int:
        return _BUILD_RESULT_SEVERITY[self]

    def is_worse_than(self, other: "BuildResult") -> bool:
        return self.severity > other.severity


_BUILD_RESULT_SEVERITY: Final[dict[BuildResult, int]] = {
    BuildResult.SUCCESS: 0,
    BuildResult.UNSTABLE: 1,
    BuildResult.FAILURE: 2,
    BuildResult.NOT_BUILT: 3,
    BuildResult.ABORTED: 4,
}


class BuildKind(UpperCaseStrEnum):
    """Where a build sits in the build topology.

    STANDALONE_OR_AGGREGATE: a plain build, or the aggregate of a fan-out build
    FAN_OUT_UNIT: one configuration run of a fan-out (matrix) build
    """

    STANDALONE_OR_AGGREGATE = auto()
    FAN_OUT_UNIT = auto()


class OutcomeKind(UpperCaseStrEnum):
    """Result of a push reconciliation attempt."""

    SUCCESS = auto()
    SKIPPED_NOT_APPLICABLE = auto()
    FAILED = auto()


class GateDecision(UpperCaseStrEnum):
    """Whether the reconciler should run for an invocation."""

    PROCEED = auto()
    SKIP_FAN_OUT_UNIT = auto()
    SKIP_BUILD_NOT_SUCCESSFUL = auto()


class MissingBranchPolicy(UpperCaseStrEnum):
    """What to do when the target branch has no tracking ref after fetching.

    FAIL: raise RevisionResolutionError
    CREATE: skip the merge and let the push create the branch on the remote
    """

    FAIL = auto()
    CREATE = auto()


class ValidationKind(UpperCaseStrEnum):
    """Severity of a configuration validation result."""

    OK = auto()
    WARNING = auto()
    ERROR = auto()


# === Name Types ===


class RemoteName(NonEmptyStr):
    """Name of a configured git remote (e.g. 'origin')."""


class BranchName(NonEmptyStr):
    """Name of a branch on a remote (e.g. 'main')."""


class RefSpec(NonEmptyStr):
    """A git ref-spec (e.g. '+refs/heads/*:refs/remotes/origin/*')."""


_COMMIT_HASH_PATTERN: Final[re.Pattern[str]] = re.compile(r"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")


class CommitHash(NonEmptyStr):
    """A full hexadecimal git object id (sha1 or sha256)."""

    def __new__(cls, value: str) -> Self:
        normalized = value.strip().lower()
        if not _COMMIT_HASH_PATTERN.match(normalized):
            raise ValueError(f"Not a full commit hash: {value!r}")
        return super().__new__(cls, normalized)

    @property
    def short(self) -> str:
        return self[:10]
