"""Status transition rules for events and registrations.

The evaluators never mutate anything; they return a ``TransitionResult`` and
leave applying the change (and its side effects) to the service layer.
"""

from typing import NamedTuple

from .enums import EventStatus, RegistrationStatus


class TransitionResult(NamedTuple):
    allowed: bool
    reason: str | None = None


ALLOWED = TransitionResult(True)

REGISTRATION_TRANSITIONS = {
    RegistrationStatus.PENDING: {
        RegistrationStatus.CONFIRMED,
        RegistrationStatus.CANCELLED,
        RegistrationStatus.ATTENDED,
        RegistrationStatus.NO_SHOW,
    },
    RegistrationStatus.CONFIRMED: {
        RegistrationStatus.PENDING,
        RegistrationStatus.CANCELLED,
        RegistrationStatus.ATTENDED,
        RegistrationStatus.NO_SHOW,
    },
    RegistrationStatus.NO_SHOW: {
        RegistrationStatus.ATTENDED,
        RegistrationStatus.CANCELLED,
    },
    RegistrationStatus.ATTENDED: set(),
    RegistrationStatus.CANCELLED: set(),
}


def evaluate_event_transition(event, new_status: EventStatus, now) -> TransitionResult:
    if new_status == EventStatus.CANCELLED:
        if not event.can_be_cancelled(now):
            return TransitionResult(False, "This event cannot be cancelled")
        return ALLOWED

    if new_status == EventStatus.COMPLETED:
        if event.status != EventStatus.PUBLISHED:
            return TransitionResult(
                False, "Only published events can be marked as completed"
            )
        return ALLOWED

    # draft <-> published and archival only need a valid enum value
    return ALLOWED


def evaluate_registration_transition(
    registration, new_status: RegistrationStatus
) -> TransitionResult:
    current = registration.status
    if new_status in REGISTRATION_TRANSITIONS.get(current, set()):
        return ALLOWED
    if current == new_status:
        return TransitionResult(False, f"Registration is already {current.value}")
    return TransitionResult(
        False, f"Cannot change registration from {current.value} to {new_status.value}"
    )
