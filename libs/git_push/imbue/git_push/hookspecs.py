import pluggy

from imbue.git_push.data_types import PushOutcome
from imbue.git_push.data_types import PushTarget
from imbue.git_push.errors import PushFailedError

hookspec = pluggy.HookspecMarker("git_push")


@hookspec
def on_before_push(target: PushTarget) -> None:
    """Called before the remote branch is reconciled with HEAD.

    This hook fires once per attempt, after the target has been resolved from the configuration.

    If a hook raises an exception, the push is aborted.
    """


@hookspec
def on_after_push(target: PushTarget, outcome: PushOutcome) -> None:
    """Called after HEAD was pushed successfully.

    The outcome records the pushed commit and whether the remote tip had to be merged first.
    """


@hookspec
def on_push_failed(target: PushTarget, error: PushFailedError) -> None:
    """Called when an attempt fails.

    This hook fires for every failed attempt, including ones that will be retried.
    An exception raised by a hook is logged and the original error is what gets reported.
    """
