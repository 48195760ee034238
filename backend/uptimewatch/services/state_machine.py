"""Status state machine - debounces check verdicts into pending/up/down."""
from dataclasses import dataclass

PENDING = "pending"
UP = "up"
DOWN = "down"


@dataclass(frozen=True)
class StatusComputation:
    """New status and consecutive counters after one check."""
    status: str
    failures: int
    successes: int


def compute_status(
    status: str,
    consecutive_failures: int,
    consecutive_successes: int,
    down_retries: int,
    up_retries: int,
    passed: bool,
) -> StatusComputation:
    """Apply one check verdict.

    A failure streak of ``down_retries`` marks the endpoint down. Recovering
    from down takes ``up_retries`` consecutive passes, but the first pass out
    of pending (or while up) is immediately up.
    """
    down_retries = max(1, int(down_retries or 1))
    up_retries = max(1, int(up_retries or 1))
    failures = int(consecutive_failures or 0)
    successes = int(consecutive_successes or 0)
    status = status or PENDING

    if passed:
        successes += 1
        failures = 0
        if status == DOWN:
            if successes >= up_retries:
                status = UP
        else:
            status = UP
    else:
        failures += 1
        successes = 0
        if failures >= down_retries:
            status = DOWN

    return StatusComputation(status=status, failures=failures, successes=successes)
