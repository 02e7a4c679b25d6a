"""Balance computation package."""

from smart_split.balances.engine import (
    BALANCE_EPSILON,
    accumulate_balances,
    compute_balances,
    is_settled,
    to_money,
)
from smart_split.balances.group import calculate_group_balances, group_transactions

__all__ = [
    "BALANCE_EPSILON",
    "accumulate_balances",
    "calculate_group_balances",
    "compute_balances",
    "group_transactions",
    "is_settled",
    "to_money",
]
