from emr_scheduling.core.errors import InvalidTransition, ReasonRequired, ValidationError
from emr_scheduling.modules.appointments.models import AppointmentStatus as S

TRANSITIONS: dict[str, set[str]] = {
    S.SCHEDULED.value: {S.CHECKED_IN.value, S.CANCELLED.value},
    S.CHECKED_IN.value: {S.IN_PROGRESS.value, S.CANCELLED.value},
    S.IN_PROGRESS.value: {S.COMPLETED.value},
    S.COMPLETED.value: set(),
    S.CANCELLED.value: set(),
}

def is_terminal(status: str) -> bool:
    return not TRANSITIONS.get(status)

def allowed_next(status: str) -> set[str]:
    return set(TRANSITIONS.get(status, set()))

def validate_transition(current: str, target: str, cancel_reason: str | None = None) -> str | None:
    """
    Check ``current -> target`` and return the cancel reason to store.

    Asking for the status the appointment already has is not a transition.
    """
    if target not in TRANSITIONS:
        raise ValidationError(f"Unknown status {target}", field="status")
    if target not in TRANSITIONS.get(current, set()):
        raise InvalidTransition(current, target)
    reason = (cancel_reason or "").strip()
    if target == S.CANCELLED.value:
        if not reason:
            raise ReasonRequired()
        return reason
    if cancel_reason is not None:
        raise ValidationError("cancel_reason is only accepted when cancelling", field="cancel_reason")
    return None
