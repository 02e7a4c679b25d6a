"""
Group Balance Calculator

One number per member, relative to the group as a whole:

    balance[member] = sum(amounts they paid) - sum(shares they owe)

Positive means the group owes the member; negative means the member
owes the group.

NOTE: Settlements are not group-scoped, so they are not applied here.
Two members settling up directly does not change their group balance.
"""

from decimal import Decimal
from typing import Iterable, Optional

from smart_split.balances.engine import ZERO, to_money
from smart_split.models.ledger import GroupMember, Transaction


def group_transactions(
    group_id: Optional[str],
    transactions: Iterable[Transaction],
) -> list[Transaction]:
    """Transactions tagged with the given group id."""
    if not group_id:
        return []
    return [t for t in transactions if t.group_id == group_id]


def calculate_group_balances(
    members: Iterable[GroupMember],
    transactions: Iterable[Transaction],
) -> dict[str, Decimal]:
    """
    Per-member balance over a group's transactions.

    Every member starts at zero so members without any transactions
    still show up. Payers and participants outside the member list
    are ignored.
    """
    balances: dict[str, Decimal] = {member.user_id: ZERO for member in members}

    for transaction in transactions:
        if transaction.paid_by in balances:
            balances[transaction.paid_by] += to_money(transaction.amount)

        for participant in transaction.participants:
            if participant.user_id in balances:
                balances[participant.user_id] -= to_money(participant.share)

    return balances
