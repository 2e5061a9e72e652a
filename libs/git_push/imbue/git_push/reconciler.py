"""The push protocol: bring the remote branch up to date with the build's HEAD.

Two variants of this protocol have existed historically:
  (a) always merge the remote tip, push, then fetch again
  (b) skip the merge when HEAD already equals the remote tip, push, and stop
We run (b) followed by the trailing fetch of (a). Skipping the merge avoids empty merge
commits on rebuilds, and the trailing fetch leaves the tracking refs matching what was pushed.

Every run starts with a fetch, so re-running after any failure is safe: a merge left over from
a previous attempt either equals the remote tip (the push had landed) or gets merged again.
"""

from typing import assert_never

from loguru import logger

from imbue.git_push.data_types import PushOutcome
from imbue.git_push.data_types import PushTarget
from imbue.git_push.errors import RevisionResolutionError
from imbue.git_push.git_client import GitClientInterface
from imbue.git_push.logging import log_span
from imbue.git_push.primitives import CommitHash
from imbue.git_push.primitives import MissingBranchPolicy
from imbue.git_push.primitives import OutcomeKind


def _fetch(git: GitClientInterface, target: PushTarget) -> None:
    with log_span("Fetching {} from {}", ", ".join(target.fetch_refspecs) or "default refs", target.uri):
        git.fetch(target.uri, target.fetch_refspecs)


def _resolve_remote_tip(
    git: GitClientInterface,
    target: PushTarget,
    missing_branch_policy: MissingBranchPolicy,
) -> CommitHash | None:
    remote_tip = git.resolve_revision(target.tracking_ref)
    if remote_tip is not None:
        return remote_tip
    match missing_branch_policy:
        case MissingBranchPolicy.FAIL:
            raise RevisionResolutionError(target.tracking_ref)
        case MissingBranchPolicy.CREATE:
            logger.info("Branch {} does not exist on {} yet, it will be created", target.branch_name, target.uri)
            return None
        case _ as unreachable:
            assert_never(unreachable)


def reconcile(
    git: GitClientInterface,
    target: PushTarget,
    missing_branch_policy: MissingBranchPolicy = MissingBranchPolicy.FAIL,
) -> PushOutcome:
    """Merge the remote branch into HEAD if needed, then push HEAD and all tags to it.

    Raises a PushFailedError subclass when any step fails:
    TransportError for fetch/push failures (PushRejectedError when the remote moved),
    TagRejectedError when a tag of the same name already exists on the remote,
    RevisionResolutionError when the branch is missing, MergeConflictError on conflicts.
    """
    with log_span("Reconciling HEAD with {}", target.tracking_ref, remote=str(target.remote_name)):
        _fetch(git, target)

        remote_tip = _resolve_remote_tip(git, target, missing_branch_policy)
        head = git.head_commit()

        is_remote_merged = False
        if remote_tip is None:
            logger.debug("No remote tip to merge, pushing {} as is", head.short)
        elif remote_tip == head:
            logger.debug("HEAD already equals {} ({}), skipping merge", target.tracking_ref, head.short)
        else:
            with log_span("Merging {} ({}) into HEAD ({})", target.tracking_ref, remote_tip.short, head.short):
                new_head = git.merge(remote_tip, message=f"Merge remote-tracking branch '{target.tracking_ref}'")
            is_remote_merged = new_head != head
            head = new_head

        with log_span("Pushing {} to {} on {}", head.short, target.branch_name, target.uri):
            git.push(target.uri, target.push_refspec, is_including_tags=True)

        # Keep the tracking refs in line with what was just pushed for later steps of the same build
        _fetch(git, target)

    logger.info("Pushed {} to {} ({})", head.short, target.tracking_ref, target.uri)
    return PushOutcome(
        kind=OutcomeKind.SUCCESS,
        pushed_commit=head,
        remote_tip_before=remote_tip,
        is_remote_merged=is_remote_merged,
        attempts=1,
    )
