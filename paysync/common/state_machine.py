"""Payment-transaction state machine enforced by the ledger service."""

PENDING = "PENDING"
PROCESSING = "PROCESSING"
COMPLETED = "COMPLETED"
FAILED = "FAILED"
TOKEN_AWARD_FAILED = "TOKEN_AWARD_FAILED"
EXPIRED = "EXPIRED"

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {PROCESSING, COMPLETED, FAILED, EXPIRED},
    PROCESSING: {COMPLETED, FAILED},
    # Payment success stays recorded; only the crediting outcome can change.
    COMPLETED: {TOKEN_AWARD_FAILED},
    FAILED: set(),
    TOKEN_AWARD_FAILED: set(),
    EXPIRED: set(),
}

TERMINAL_FAILURES = frozenset({FAILED, TOKEN_AWARD_FAILED, EXPIRED})


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")
