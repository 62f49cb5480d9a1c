"""Invoice status state machine.

Lifecycle:

    BROUILLON ──► EMISE ──► PAYEE
        │           │ ▲
        │           │ └── EN_RETARD (sweep only) ──► PAYEE | ANNULEE
        ▼           ▼
      ANNULEE ◄─────┘
        │
        └──► BROUILLON   (explicit reopen)

PAYEE is terminal.  A self-transition (from == to) is always a no-op.
EMISE → EN_RETARD is the only transition the system makes on its own
(see services.invoices.update_overdue_invoices).
"""

import enum
from datetime import date

from backoffice.middleware.exceptions import TransitionError


class InvoiceStatus(str, enum.Enum):
    BROUILLON = "BROUILLON"
    EMISE = "EMISE"
    PAYEE = "PAYEE"
    ANNULEE = "ANNULEE"
    EN_RETARD = "EN_RETARD"

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]


STATUS_LABELS: dict[InvoiceStatus, str] = {
    InvoiceStatus.BROUILLON: "Brouillon",
    InvoiceStatus.EMISE: "Émise",
    InvoiceStatus.PAYEE: "Payée",
    InvoiceStatus.ANNULEE: "Annulée",
    InvoiceStatus.EN_RETARD: "En retard",
}

ALLOWED_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.BROUILLON: frozenset({InvoiceStatus.EMISE, InvoiceStatus.ANNULEE}),
    InvoiceStatus.EMISE: frozenset({
        InvoiceStatus.PAYEE, InvoiceStatus.ANNULEE, InvoiceStatus.EN_RETARD,
    }),
    InvoiceStatus.PAYEE: frozenset(),
    InvoiceStatus.ANNULEE: frozenset({InvoiceStatus.BROUILLON}),
    InvoiceStatus.EN_RETARD: frozenset({InvoiceStatus.PAYEE, InvoiceStatus.ANNULEE}),
}

EDITABLE_STATUSES = frozenset({InvoiceStatus.BROUILLON})
DELETABLE_STATUSES = frozenset({InvoiceStatus.BROUILLON, InvoiceStatus.ANNULEE})
OVERDUE_CANDIDATE_STATUSES = frozenset({InvoiceStatus.EMISE, InvoiceStatus.BROUILLON})
UNPAID_STATUSES = frozenset({InvoiceStatus.EMISE, InvoiceStatus.EN_RETARD})


def can_transition(current: InvoiceStatus, target: InvoiceStatus) -> bool:
    """Return True if `current → target` is in the transition table."""
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS[current]


def allowed_targets(current: InvoiceStatus) -> list[InvoiceStatus]:
    """Statuses reachable from `current` in one step, in declaration order."""
    return [s for s in InvoiceStatus if s in ALLOWED_TRANSITIONS[current]]


def assert_transition(current: InvoiceStatus, target: InvoiceStatus) -> None:
    """Raise TransitionError unless `current → target` is allowed."""
    if not can_transition(current, target):
        raise TransitionError(
            current.value,
            target.value,
            allowed=[s.value for s in allowed_targets(current)],
        )


def is_editable(status: InvoiceStatus) -> bool:
    return status in EDITABLE_STATUSES


def is_deletable(status: InvoiceStatus) -> bool:
    return status in DELETABLE_STATUSES


def is_overdue(status: InvoiceStatus, due_date: date, today: date | None = None) -> bool:
    """Due date has passed and the invoice is still awaiting emission or payment."""
    today = today or date.today()
    return due_date < today and status in OVERDUE_CANDIDATE_STATUSES


def leaves_draft(current: InvoiceStatus, target: InvoiceStatus) -> bool:
    """True for the first step out of BROUILLON (where a number is assigned)."""
    return current == InvoiceStatus.BROUILLON and target != InvoiceStatus.BROUILLON
