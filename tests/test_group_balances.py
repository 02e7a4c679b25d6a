"""Tests for the group balance calculator."""

from decimal import Decimal

from smart_split.balances import calculate_group_balances, group_transactions
from smart_split.models.ledger import GroupMember, Participant, Transaction


def members(*user_ids):
    return [GroupMember(user_id=user_id) for user_id in user_ids]


def expense(amount, paid_by, shares, group_id="g1") -> Transaction:
    return Transaction(
        amount=Decimal(str(amount)),
        paid_by=paid_by,
        group_id=group_id,
        participants=[
            Participant(user_id=user_id, share=Decimal(str(share)))
            for user_id, share in shares.items()
        ],
    )


class TestCalculateGroupBalances:
    """Tests for calculate_group_balances()."""

    def test_members_without_activity_start_at_zero(self):
        """Test that every member gets an entry."""
        balances = calculate_group_balances(members("a", "b", "c"), [])
        assert balances == {"a": Decimal("0"), "b": Decimal("0"), "c": Decimal("0")}

    def test_paid_minus_owed(self):
        """Test the per-member formula over a couple of expenses."""
        transactions = [
            expense(90, "a", {"a": 30, "b": 30, "c": 30}),
            expense(30, "b", {"a": 15, "b": 15}),
        ]
        balances = calculate_group_balances(members("a", "b", "c"), transactions)

        assert balances["a"] == Decimal("45")     # 90 - 30 - 15
        assert balances["b"] == Decimal("-15")    # 30 - 30 - 15
        assert balances["c"] == Decimal("-30")

    def test_balances_sum_to_zero_when_everyone_is_a_member(self):
        """Test conservation of money inside a closed group."""
        transactions = [
            expense(100, "a", {"a": 25, "b": 25, "c": 50}),
            expense(42, "c", {"b": 21, "c": 21}),
        ]
        balances = calculate_group_balances(members("a", "b", "c"), transactions)
        assert sum(balances.values()) == Decimal("0")

    def test_non_members_are_ignored(self):
        """Test that outsiders never appear in the group view."""
        transactions = [expense(60, "outsider", {"a": 30, "outsider": 30})]
        balances = calculate_group_balances(members("a", "b"), transactions)

        assert "outsider" not in balances
        assert balances["a"] == Decimal("-30")
        assert balances["b"] == Decimal("0")

    def test_missing_share_counts_as_zero(self):
        """Test a malformed participant row."""
        transaction = Transaction.model_validate({
            "amount": 10,
            "paidBy": "a",
            "participants": [{"userId": "b"}],
        })
        balances = calculate_group_balances(members("a", "b"), [transaction])
        assert balances == {"a": Decimal("10"), "b": Decimal("0")}


class TestGroupTransactions:
    """Tests for group_transactions()."""

    def test_filters_by_group_id(self):
        """Test that only the group's own transactions are returned."""
        mine = expense(10, "a", {"a": 10}, group_id="g1")
        other = expense(10, "a", {"a": 10}, group_id="g2")
        loose = expense(10, "a", {"a": 10}, group_id=None)

        assert group_transactions("g1", [mine, other, loose]) == [mine]

    def test_no_group_id_matches_nothing(self):
        """Test that ungrouped transactions are not a group."""
        loose = expense(10, "a", {"a": 10}, group_id=None)
        assert group_transactions(None, [loose]) == []
