from collections.abc import Callable
from typing import Final
from typing import assert_never

from loguru import logger

from imbue.git_push.data_types import PushOutcome
from imbue.git_push.errors import GitPushError
from imbue.git_push.primitives import BuildKind
from imbue.git_push.primitives import BuildResult
from imbue.git_push.primitives import GateDecision

BUILD_NOT_SUCCESSFUL_MESSAGE: Final[str] = "Build did not succeed, so no pushing will occur."

FAN_OUT_UNIT_MESSAGE: Final[str] = "Pushing happens once for the aggregate build, not for each unit."


def evaluate_gate(build_result: BuildResult | None, build_kind: BuildKind) -> GateDecision:
    """Decide whether a push step should run for a build.

    A missing build result counts as not successful: the host only records a result once it knows it.
    """
    match build_kind:
        case BuildKind.FAN_OUT_UNIT:
            return GateDecision.SKIP_FAN_OUT_UNIT
        case BuildKind.STANDALONE_OR_AGGREGATE:
            pass
        case _ as unreachable:
            assert_never(unreachable)

    if build_result is None or build_result.is_worse_than(BuildResult.SUCCESS):
        return GateDecision.SKIP_BUILD_NOT_SUCCESSFUL
    return GateDecision.PROCEED


def run_gated(
    build_result: BuildResult | None,
    build_kind: BuildKind,
    remote_description: str,
    push: Callable[[], PushOutcome],
) -> PushOutcome:
    """Run push if the gate lets it through, turning any GitPushError into a FAILED outcome.

    remote_description names the target in the failure log line, since resolution may be what failed.
    """
    decision = evaluate_gate(build_result, build_kind)
    match decision:
        case GateDecision.SKIP_FAN_OUT_UNIT:
            logger.debug(FAN_OUT_UNIT_MESSAGE)
            return PushOutcome.skipped(FAN_OUT_UNIT_MESSAGE)
        case GateDecision.SKIP_BUILD_NOT_SUCCESSFUL:
            logger.info(BUILD_NOT_SUCCESSFUL_MESSAGE)
            return PushOutcome.skipped(BUILD_NOT_SUCCESSFUL_MESSAGE)
        case GateDecision.PROCEED:
            pass
        case _ as unreachable:
            assert_never(unreachable)

    try:
        return push()
    except GitPushError as e:
        logger.opt(exception=e).debug("Push failed with a traceback")
        logger.error("Failed to push to {}", remote_description)
        logger.error("{}", e.format_message())
        return PushOutcome.failed(str(e))
