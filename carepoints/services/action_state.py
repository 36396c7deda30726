"""Lifecycle rules for corrective actions.

Every status change goes through :func:`apply_transition`; call sites never
assign ``CorrectiveAction.status`` directly.
"""

from __future__ import annotations

import enum

from carepoints.errors import InvalidStateError
from carepoints.models import ActionStatus


class ActionEvent(str, enum.Enum):
    EMPLOYEE_ACKNOWLEDGED = "EMPLOYEE_ACKNOWLEDGED"
    EMPLOYEE_DISPUTED = "EMPLOYEE_DISPUTED"
    VOID = "VOID"


_OPEN_STATUSES = frozenset(
    {ActionStatus.PENDING_SIGNATURE, ActionStatus.ACKNOWLEDGED, ActionStatus.DISPUTED}
)

_TRANSITIONS: dict[tuple[ActionStatus, ActionEvent], ActionStatus] = {}
for _status in _OPEN_STATUSES:
    _TRANSITIONS[(_status, ActionEvent.EMPLOYEE_ACKNOWLEDGED)] = ActionStatus.ACKNOWLEDGED
    _TRANSITIONS[(_status, ActionEvent.EMPLOYEE_DISPUTED)] = ActionStatus.DISPUTED
    _TRANSITIONS[(_status, ActionEvent.VOID)] = ActionStatus.VOIDED

_REJECTION_MESSAGES: dict[ActionEvent, str] = {
    ActionEvent.EMPLOYEE_ACKNOWLEDGED: "Cannot sign a voided corrective action",
    ActionEvent.EMPLOYEE_DISPUTED: "Cannot sign a voided corrective action",
    ActionEvent.VOID: "This corrective action is already voided",
}


def next_status(current: ActionStatus, event: ActionEvent) -> ActionStatus:
    target = _TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidStateError(_REJECTION_MESSAGES[event])
    return target


def employee_signature_event(acknowledged: bool | None) -> ActionEvent:
    # Omitted acknowledgement counts as agreement.
    if acknowledged is False:
        return ActionEvent.EMPLOYEE_DISPUTED
    return ActionEvent.EMPLOYEE_ACKNOWLEDGED


def ensure_accepts_signature(current: ActionStatus) -> None:
    if current not in _OPEN_STATUSES:
        raise InvalidStateError("Cannot sign a voided corrective action")


def ensure_editable(current: ActionStatus) -> None:
    if current in (ActionStatus.ACKNOWLEDGED, ActionStatus.VOIDED):
        raise InvalidStateError("Cannot edit an acknowledged or voided action")


def apply_transition(action, event: ActionEvent) -> ActionStatus:  # type: ignore[no-untyped-def]
    previous = action.status
    action.status = next_status(previous, event)
    return previous
