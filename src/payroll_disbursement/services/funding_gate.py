"""Funds-sufficiency gate.

Pure decision function: given what a batch still owes and what the
funding account holds, either let disbursement proceed or report the
shortfall together with a suggested top-up.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

DEFAULT_TOP_UP_INCREMENT = 1000


class GateOutcome(str, Enum):
    """Gate decision."""

    PROCEED = "PROCEED"
    INSUFFICIENT = "INSUFFICIENT"


@dataclass(frozen=True)
class GateResult:
    """Result of a funding gate evaluation."""

    outcome: GateOutcome
    remaining_amount: int
    balance: int
    shortfall: int = 0
    suggested_top_up: int = 0

    @property
    def passed(self) -> bool:
        """Whether disbursement may proceed."""
        return self.outcome == GateOutcome.PROCEED

    def to_dict(self) -> dict[str, object]:
        return {
            "outcome": self.outcome.value,
            "remaining_amount": self.remaining_amount,
            "balance": self.balance,
            "shortfall": self.shortfall,
            "suggested_top_up": self.suggested_top_up,
        }


def round_up_to(amount: int, increment: int) -> int:
    """Round a positive amount up to the next multiple of increment."""
    if increment <= 1:
        return amount
    return -(-amount // increment) * increment


def evaluate(
    total_amount: int,
    executed_amount: int,
    balance: int,
    *,
    increment: int = DEFAULT_TOP_UP_INCREMENT,
    min_top_up: int | None = None,
    max_top_up: int | None = None,
) -> GateResult:
    """Evaluate whether the funding account covers the remaining obligation.

    Args:
        total_amount: Batch total fixed at creation
        executed_amount: Amount already disbursed
        balance: Current funding-account balance
        increment: Suggested top-ups are rounded up to this multiple
        min_top_up: Lower clamp for the suggestion
        max_top_up: Upper clamp for the suggestion

    Returns:
        GateResult; shortfall and suggestion are zero when proceeding
    """
    remaining = max(0, total_amount - executed_amount)

    if remaining <= balance:
        return GateResult(
            outcome=GateOutcome.PROCEED,
            remaining_amount=remaining,
            balance=balance,
        )

    shortfall = remaining - balance
    suggested = round_up_to(shortfall, increment)
    if min_top_up is not None:
        suggested = max(suggested, min_top_up)
    if max_top_up is not None:
        suggested = min(suggested, max_top_up)

    return GateResult(
        outcome=GateOutcome.INSUFFICIENT,
        remaining_amount=remaining,
        balance=balance,
        shortfall=shortfall,
        suggested_top_up=suggested,
    )
