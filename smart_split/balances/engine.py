"""
Balance Engine

Turns a user's transaction and settlement history into "who owes whom".

DESIGN DECISION: Balances are DERIVED on every read.
Nothing here is cached or persisted; each call is a pure function over
a snapshot of the ledger and returns a fresh mapping. Recomputing is
O(transactions + settlements) per query, which is fine at household
scale and rules out update anomalies in stored running totals.

Sign convention (internal only):
    positive  -> the counterparty owes the subject
    negative  -> the subject owes the counterparty

The boundary shape (BalanceReport) never exposes the sign. It uses
explicit owed_by / owed_to fields instead.

FAIL-SOFT: The engine never raises on malformed history. Missing shares
and amounts count as zero; a record without a payer or payee is skipped
for the side that cannot be attributed. One bad record must not take
down the whole balances page.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

import structlog

from smart_split.models.balance import BalanceReport, BalanceSummary, PairwiseBalance
from smart_split.models.ledger import Settlement, Transaction


# Currency rounding tolerance. A balance within it is settled (inclusive);
# a split is off once its shares miss the amount by it or more (exclusive).
BALANCE_EPSILON = Decimal("0.01")

ZERO = Decimal("0")

logger = structlog.get_logger(__name__)


def to_money(value: Any) -> Decimal:
    """Read an amount, treating anything unusable as zero."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO
    return amount if amount.is_finite() else ZERO


def is_settled(balance: Decimal) -> bool:
    return abs(balance) <= BALANCE_EPSILON


def accumulate_balances(
    subject_id: str,
    transactions: Iterable[Transaction],
    settlements: Iterable[Settlement],
) -> dict[str, Decimal]:
    """
    Signed running balance between the subject and every counterparty.

    Order of the inputs does not matter; every rule is an addition.
    Entries that net out to zero are kept here and dropped later by
    compute_balances().

    A settlement whose payer and payee are the same user is skipped
    entirely, rather than credited and debited against the subject's own
    entry. Such records cannot be created through the flows.
    """
    balances: dict[str, Decimal] = {}

    def add(counterparty_id: str, amount: Decimal) -> None:
        balances[counterparty_id] = balances.get(counterparty_id, ZERO) + amount

    for transaction in transactions:
        payer_id = transaction.paid_by

        if payer_id == subject_id:
            # Everyone else in the split owes the subject their share
            for participant in transaction.participants:
                if participant.user_id and participant.user_id != subject_id:
                    add(participant.user_id, to_money(participant.share))
        elif payer_id:
            share = transaction.share_of(subject_id)
            if share is not None:
                add(payer_id, -to_money(share))

    for settlement in settlements:
        amount = to_money(settlement.amount)
        if settlement.paid_by == settlement.paid_to:
            continue

        if settlement.paid_by == subject_id and settlement.paid_to:
            # Not capped at zero: overpaying flips the direction
            add(settlement.paid_to, amount)
        elif settlement.paid_to == subject_id and settlement.paid_by:
            add(settlement.paid_by, -amount)

    return balances


def compute_balances(
    subject_id: str,
    transactions: Iterable[Transaction],
    settlements: Iterable[Settlement],
) -> BalanceReport:
    """
    Compute the subject's open balances and summary totals.

    Counterparties within BALANCE_EPSILON of zero are considered settled
    and left out of both the list and the totals.
    """
    signed = accumulate_balances(subject_id, transactions, settlements)

    pairwise: list[PairwiseBalance] = []
    total_owed = ZERO
    total_owing = ZERO

    for counterparty_id, balance in signed.items():
        if is_settled(balance):
            continue

        if balance > 0:
            total_owed += balance
            owed_by, owed_to = counterparty_id, subject_id
        else:
            total_owing += -balance
            owed_by, owed_to = subject_id, counterparty_id

        pairwise.append(PairwiseBalance(
            user1=subject_id,
            user2=counterparty_id,
            amount=abs(balance),
            owed_by=owed_by,
            owed_to=owed_to,
        ))

    summary = BalanceSummary(
        total_owed=total_owed,
        total_owing=total_owing,
        net_balance=total_owed - total_owing,
    )

    logger.debug(
        "balances_computed",
        subject_id=subject_id,
        open_balances=len(pairwise),
        settled=len(signed) - len(pairwise),
        total_owed=str(total_owed),
        total_owing=str(total_owing),
    )

    return BalanceReport(
        subject_id=subject_id,
        balances=pairwise,
        summary=summary,
    )
