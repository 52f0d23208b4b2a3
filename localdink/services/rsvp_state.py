"""
RSVP state machine.

An invitation starts INVITED and moves once to ACCEPTED, DECLINED or EXPIRED.
Those three are terminal for the instance; re-inviting creates a new one.
"""

from datetime import datetime
from typing import Dict, FrozenSet, Optional

from localdink.database.models import RsvpStatus
from localdink.services.errors import InvalidTransitionError
from localdink.utils.datetime_utils import ensure_utc

TRANSITIONS: Dict[RsvpStatus, FrozenSet[RsvpStatus]] = {
    RsvpStatus.INVITED: frozenset({RsvpStatus.ACCEPTED, RsvpStatus.DECLINED, RsvpStatus.EXPIRED}),
    RsvpStatus.ACCEPTED: frozenset(),
    RsvpStatus.DECLINED: frozenset(),
    RsvpStatus.EXPIRED: frozenset(),
}

# Active statuses block a fresh invitation for the same (session, player) pair
BLOCKS_REINVITE = frozenset({RsvpStatus.INVITED, RsvpStatus.ACCEPTED})


def is_terminal(status) -> bool:
    return not TRANSITIONS[RsvpStatus(status)]


def can_transition(current, target) -> bool:
    return RsvpStatus(target) in TRANSITIONS[RsvpStatus(current)]


def transition(current, target, now: Optional[datetime] = None,
               deadline: Optional[datetime] = None) -> RsvpStatus:
    """
    Validate a move and return the new status.

    EXPIRED requires `now >= deadline`. ACCEPTED and DECLINED are refused once
    the deadline has been reached, when both times are given.

    Raises:
        InvalidTransitionError: If the move is not in the transition table
        ValueError: If an expiry comes before the response deadline, or an
            answer comes after it
    """
    current = RsvpStatus(current)
    target = RsvpStatus(target)
    if target not in TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)
    if target == RsvpStatus.EXPIRED:
        if now is None or deadline is None:
            raise ValueError("Expiring an invitation requires the current time and its deadline")
        if ensure_utc(now) < ensure_utc(deadline):
            raise ValueError("Invitation has not reached its response deadline")
    elif now is not None and deadline is not None and ensure_utc(now) >= ensure_utc(deadline):
        raise ValueError("The response deadline for this invitation has passed")
    return target


def can_reinvite(active_status) -> bool:
    """A new invitation is allowed when there is none, or the last one was declined or expired."""
    if active_status is None:
        return True
    return RsvpStatus(active_status) not in BLOCKS_REINVITE
