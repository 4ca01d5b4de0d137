# app/domain/models/lifecycle.py
"""
Máquina de estados de la factura.

    queued -> processing -> accepted | rejected | submitted | processing | error
    error  -> processing   (sólo reintento explícito o reintento del mismo job)
"""
from typing import Dict, FrozenSet

from app.domain.exceptions import InvalidStateTransitionError
from app.domain.models.invoice import InvoiceState

TERMINAL_STATES: FrozenSet[InvoiceState] = frozenset(
    {InvoiceState.ACCEPTED, InvoiceState.REJECTED, InvoiceState.ERROR}
)

_TRANSITIONS: Dict[InvoiceState, FrozenSet[InvoiceState]] = {
    InvoiceState.QUEUED: frozenset({InvoiceState.PROCESSING}),
    InvoiceState.PROCESSING: frozenset({
        InvoiceState.PROCESSING,
        InvoiceState.SUBMITTED,
        InvoiceState.ACCEPTED,
        InvoiceState.REJECTED,
        InvoiceState.ERROR,
    }),
}


def can_transition(current: InvoiceState, target: InvoiceState, retry: bool = False) -> bool:
    if current == InvoiceState.ERROR and target == InvoiceState.PROCESSING:
        return retry
    return target in _TRANSITIONS.get(current, frozenset())


def ensure_transition(current: InvoiceState, target: InvoiceState, retry: bool = False) -> InvoiceState:
    if not can_transition(current, target, retry=retry):
        raise InvalidStateTransitionError(current.value, target.value)
    return target


def is_terminal(state: InvoiceState) -> bool:
    return state in TERMINAL_STATES
