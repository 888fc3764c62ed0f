"""Pull request ready state resolution shared by every PR capable provider."""

from hookgate.models.build_params import PullRequestReadyState

READY_FOR_REVIEW_ACTION = "ready_for_review"


def resolve_ready_state(is_draft: bool, action: str = "") -> PullRequestReadyState:
    """Draft wins; a ready_for_review action means the PR was just converted."""
    if is_draft:
        return PullRequestReadyState.DRAFT
    if action == READY_FOR_REVIEW_ACTION:
        return PullRequestReadyState.CONVERTED_TO_READY_FOR_REVIEW
    return PullRequestReadyState.READY_FOR_REVIEW


def resolve_ready_state_from_draft_change(
    is_draft: bool, was_draft: bool = False
) -> PullRequestReadyState:
    """Variant for platforms that report the previous draft flag instead of an action."""
    action = READY_FOR_REVIEW_ACTION if was_draft and not is_draft else ""
    return resolve_ready_state(is_draft, action)
