"""Forward-only lifecycle of a crowd-funded testing request."""

from typing import Optional

from app.models.product_vote import VoteStatus
from app.services.errors import DomainValidationError, IllegalTransitionError

STATUS_ORDER = [
    VoteStatus.COLLECTING_VOTES,
    VoteStatus.THRESHOLD_REACHED,
    VoteStatus.QUEUED,
    VoteStatus.TESTING,
    VoteStatus.COMPLETE,
]


def parse_status(value) -> VoteStatus:
    try:
        return VoteStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in VoteStatus)
        raise DomainValidationError(f"Invalid status {value!r}. Must be one of: {allowed}")


def next_status(current) -> Optional[VoteStatus]:
    """The only status reachable from ``current``, or None at the end."""
    index = STATUS_ORDER.index(parse_status(current))
    if index + 1 < len(STATUS_ORDER):
        return STATUS_ORDER[index + 1]
    return None


def validate_transition(current, target) -> VoteStatus:
    """
    Check that ``target`` immediately follows ``current``.

    Raises:
        IllegalTransitionError: The move skips a state, goes backwards or
            repeats the current state
    """
    current_status = parse_status(current)
    target_status = parse_status(target)

    expected = next_status(current_status)
    if expected is None:
        raise IllegalTransitionError(
            current_status.value, target_status.value, "complete is a terminal state"
        )
    if target_status != expected:
        raise IllegalTransitionError(
            current_status.value,
            target_status.value,
            f"next allowed status is {expected.value}",
        )
    return target_status
