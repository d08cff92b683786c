"""Offer negotiation states and the transitions between them.

    pending --seller accept--> accepted
    pending --seller reject--> rejected
    pending --seller counter--> countered
    countered --buyer accept--> accepted
    countered --buyer reject--> rejected

accepted, rejected and expired are terminal. An open offer (pending or
countered) whose expiry time has passed counts as expired.
"""
from datetime import datetime, timezone
from typing import Optional

from errors import ValidationError

PENDING = 'pending'
ACCEPTED = 'accepted'
REJECTED = 'rejected'
COUNTERED = 'countered'
EXPIRED = 'expired'

STATUSES = (PENDING, ACCEPTED, REJECTED, COUNTERED, EXPIRED)
OPEN_STATUSES = (PENDING, COUNTERED)
TERMINAL_STATUSES = (ACCEPTED, REJECTED, EXPIRED)

SELLER = 'seller'
BUYER = 'buyer'

ACCEPT = 'accept'
REJECT = 'reject'
COUNTER = 'counter'

# Actions each party may take at all
ACTOR_ACTIONS = {
    SELLER: (ACCEPT, REJECT, COUNTER),
    BUYER: (ACCEPT, REJECT)
}

TRANSITIONS = {
    (PENDING, SELLER, ACCEPT): ACCEPTED,
    (PENDING, SELLER, REJECT): REJECTED,
    (PENDING, SELLER, COUNTER): COUNTERED,
    (COUNTERED, BUYER, ACCEPT): ACCEPTED,
    (COUNTERED, BUYER, REJECT): REJECTED
}

# Status an actor must find the offer in before acting
EXPECTED_STATUS = {
    SELLER: PENDING,
    BUYER: COUNTERED
}

WRONG_STATE_MESSAGES = {
    SELLER: "This offer has already been responded to",
    BUYER: "This offer does not have a counter offer to respond to"
}


class InvalidTransitionError(ValidationError):
    """Raised for an unknown action or a move the state machine forbids."""
    pass


class OfferExpiredError(ValidationError):
    """Raised when responding to an offer past its expiry time."""

    def __init__(self, message: str = "This offer has expired"):
        super().__init__(message)


def check_action(actor: str, action: Optional[str]) -> str:
    """Reject action tokens the actor can never use."""
    if action not in ACTOR_ACTIONS.get(actor, ()):
        raise InvalidTransitionError("Invalid action")
    return action


def next_status(current: str, actor: str, action: Optional[str]) -> str:
    """Status an offer moves to when ``actor`` takes ``action``.

    Raises:
        InvalidTransitionError: If the action is unknown for the actor or the
            offer is not in the state the actor responds to
        OfferExpiredError: If the offer is already marked expired
    """
    check_action(actor, action)
    try:
        return TRANSITIONS[(current, actor, action)]
    except KeyError:
        if current == EXPIRED:
            raise OfferExpiredError()
        raise InvalidTransitionError(WRONG_STATE_MESSAGES[actor])


def is_effectively_expired(status: str, expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """True when an open offer has passed its expiry time."""
    if status not in OPEN_STATUSES or expires_at is None:
        return False
    now = now or datetime.now(timezone.utc)
    return expires_at <= now


def effective_status(status: str, expires_at: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Stored status, or ``expired`` for a stale open offer."""
    if is_effectively_expired(status, expires_at, now):
        return EXPIRED
    return status
