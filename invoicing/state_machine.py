from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Final

from invoicing.dates import parse_date
from invoicing.errors import IllegalTransitionError

DRAFT: Final[str] = "draft"
SENT: Final[str] = "sent"
PAID: Final[str] = "paid"
OVERDUE: Final[str] = "overdue"
CANCELLED: Final[str] = "cancelled"

ALL_STATES: Final[tuple[str, ...]] = (DRAFT, SENT, PAID, OVERDUE, CANCELLED)

READ_ONLY_STATES: Final[frozenset[str]] = frozenset({PAID, CANCELLED})

# Overdue is derived by the system and is never a manual target.
MANUAL_TRANSITIONS: Final[dict[str, frozenset[str]]] = {
    DRAFT: frozenset({SENT, PAID, CANCELLED}),
    SENT: frozenset({DRAFT, PAID, CANCELLED}),
    PAID: frozenset({DRAFT, SENT, CANCELLED}),
    CANCELLED: frozenset({DRAFT, SENT, PAID}),
    OVERDUE: frozenset({DRAFT, SENT, PAID, CANCELLED}),
}


@dataclass(frozen=True)
class StatusChange:
    previous: str
    current: str

    @property
    def changed(self) -> bool:
        return self.previous != self.current


def _normalize(status: str | None) -> str:
    value = (status or DRAFT).strip().lower()
    if value not in MANUAL_TRANSITIONS:
        raise IllegalTransitionError(f"Unknown status: {status}", code="unknown_status")
    return value


def can_transition(from_status: str, to_status: str) -> bool:
    try:
        from_norm = _normalize(from_status)
        to_norm = _normalize(to_status)
    except IllegalTransitionError:
        return False
    if to_norm == OVERDUE:
        return False
    return from_norm == to_norm or to_norm in MANUAL_TRANSITIONS[from_norm]


def ensure_manual_target(to_status: str) -> str:
    to_norm = _normalize(to_status)
    if to_norm == OVERDUE:
        raise IllegalTransitionError(
            "Overdue status is set automatically and cannot be chosen manually.",
            code="manual_overdue",
        )
    return to_norm


def transition_status(from_status: str | None, to_status: str) -> StatusChange:
    to_norm = ensure_manual_target(to_status)
    from_norm = _normalize(from_status)
    if from_norm == to_norm:
        return StatusChange(previous=from_norm, current=to_norm)
    if to_norm not in MANUAL_TRANSITIONS[from_norm]:
        raise IllegalTransitionError(f"Invalid transition: {from_norm} -> {to_norm}")
    return StatusChange(previous=from_norm, current=to_norm)


def derive_status(
    status: str | None,
    due_date: date | datetime | str | None,
    now: date | datetime,
) -> str:
    current = _normalize(status)
    if current != SENT:
        return current
    due = due_date if isinstance(due_date, (date, datetime)) else parse_date(due_date)
    if due is None:
        return current
    due_day = due.date() if isinstance(due, datetime) else due
    today = now.date() if isinstance(now, datetime) else now
    if due_day < today:
        return OVERDUE
    return current


def is_read_only(status: str | None) -> bool:
    return _normalize(status) in READ_ONLY_STATES


def ensure_editable(status: str | None) -> None:
    current = _normalize(status)
    if current in READ_ONLY_STATES:
        raise IllegalTransitionError(
            f"This invoice is {current} and cannot be edited.",
            code="read_only_invoice",
        )
