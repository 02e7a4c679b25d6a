"""
Balance Models

Derived views computed from transactions and settlements.
None of these are ever persisted.

DESIGN DECISION: Signed balances stay inside the engine. At the boundary
a balance is an unsigned amount plus explicit owed_by/owed_to fields,
so nobody has to remember which sign means what.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field

from smart_split.models.ledger import CamelModel, Group, Transaction, utcnow


class PairwiseBalance(CamelModel):
    """What one user owes another, from the point of view of user1."""

    user1: str = Field(..., description="The user the balances were computed for")
    user2: str = Field(..., description="The counterparty")
    amount: Decimal = Field(..., ge=0, description="Unsigned amount outstanding")
    owed_by: str
    owed_to: str

    @property
    def counterparty_id(self) -> str:
        return self.user2

    @property
    def subject_owes(self) -> bool:
        """True if user1 is the one who has to pay."""
        return self.owed_by == self.user1


class BalanceSummary(CamelModel):
    total_owed: Decimal = Decimal("0")    # Others owe the subject
    total_owing: Decimal = Decimal("0")   # The subject owes others
    net_balance: Decimal = Decimal("0")


class BalanceReport(CamelModel):
    """Everything the balances page needs for one user."""

    subject_id: str
    balances: list[PairwiseBalance] = Field(default_factory=list)
    summary: BalanceSummary = Field(default_factory=BalanceSummary)
    computed_at: datetime = Field(default_factory=utcnow)

    def balance_with(self, user_id: str) -> Optional[PairwiseBalance]:
        """The open balance with a counterparty, or None if settled."""
        for balance in self.balances:
            if balance.user2 == user_id:
                return balance
        return None


class GroupDetail(Group):
    """A group record plus its transactions and per-member balances."""

    transactions: list[Transaction] = Field(default_factory=list)
    balances: dict[str, Decimal] = Field(default_factory=dict)
