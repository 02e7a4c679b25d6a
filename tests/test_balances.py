"""
Tests for the balance engine.

All inputs are in-memory records; nothing touches the ledger file.
"""

import pytest
from decimal import Decimal

from smart_split.balances import accumulate_balances, compute_balances, is_settled, to_money
from smart_split.models.ledger import Participant, Settlement, Transaction


def expense(amount, paid_by, shares, **kwargs) -> Transaction:
    return Transaction(
        description="Expense",
        amount=Decimal(str(amount)),
        paid_by=paid_by,
        participants=[
            Participant(user_id=user_id, share=Decimal(str(share)))
            for user_id, share in shares.items()
        ],
        **kwargs,
    )


def payment(paid_by, paid_to, amount) -> Settlement:
    return Settlement(paid_by=paid_by, paid_to=paid_to, amount=Decimal(str(amount)))


@pytest.fixture
def dinner():
    """300 paid by u1, split three ways."""
    return expense(300, "u1", {"u1": 100, "u2": 100, "u3": 100})


class TestComputeBalances:
    """Tests for compute_balances()."""

    def test_payer_is_owed_by_every_other_participant(self, dinner):
        """Test the three-way split from the payer's point of view."""
        report = compute_balances("u1", [dinner], [])

        assert {b.counterparty_id: b.amount for b in report.balances} == {
            "u2": Decimal("100"),
            "u3": Decimal("100"),
        }
        for balance in report.balances:
            assert balance.owed_to == "u1"
            assert balance.owed_by == balance.user2
        assert report.summary.total_owed == Decimal("200")
        assert report.summary.total_owing == Decimal("0")
        assert report.summary.net_balance == Decimal("200")

    def test_settlement_clears_one_counterparty(self, dinner):
        """Test that a full settlement drops the counterparty from the list."""
        report = compute_balances("u1", [dinner], [payment("u2", "u1", 100)])

        assert report.balance_with("u2") is None
        assert report.balance_with("u3").amount == Decimal("100")
        assert report.summary.total_owed == Decimal("100")

    def test_participant_owes_payer(self, dinner):
        """Test the same split from a participant's point of view."""
        report = compute_balances("u2", [dinner], [])

        assert len(report.balances) == 1
        balance = report.balances[0]
        assert balance.user1 == "u2"
        assert balance.user2 == "u1"
        assert balance.owed_by == "u2"
        assert balance.owed_to == "u1"
        assert balance.subject_owes
        assert report.summary.total_owing == Decimal("100")
        assert report.summary.net_balance == Decimal("-100")

    def test_payer_own_share_cancels(self):
        """Test that the payer never owes themselves."""
        report = compute_balances("u1", [expense(50, "u1", {"u1": 50})], [])
        assert report.balances == []
        assert report.summary.net_balance == Decimal("0")

    def test_views_are_symmetric(self, dinner):
        """Test that u1's view of u2 mirrors u2's view of u1."""
        lunch = expense(60, "u2", {"u1": 30, "u2": 30})
        from_u1 = compute_balances("u1", [dinner, lunch], []).balance_with("u2")
        from_u2 = compute_balances("u2", [dinner, lunch], []).balance_with("u1")

        assert from_u1.amount == from_u2.amount == Decimal("70")
        assert from_u1.owed_by == from_u2.owed_by == "u2"
        assert from_u1.owed_to == from_u2.owed_to == "u1"

    def test_opposite_debts_net_out(self):
        """Test that debts in both directions collapse into one figure."""
        transactions = [
            expense(100, "u1", {"u2": 100}),
            expense(40, "u2", {"u1": 40}),
        ]
        report = compute_balances("u1", transactions, [])
        assert report.balance_with("u2").amount == Decimal("60")
        assert not report.balance_with("u2").subject_owes

    def test_overpayment_flips_direction(self, dinner):
        """Test that paying more than owed makes the payee the debtor."""
        report = compute_balances("u1", [dinner], [payment("u2", "u1", 150)])
        balance = report.balance_with("u2")
        assert balance.amount == Decimal("50")
        assert balance.owed_by == "u1"
        assert balance.owed_to == "u2"

    def test_sub_paisa_residue_is_dropped(self):
        """Test that rounding dust is treated as settled."""
        transactions = [expense(10, "u1", {"u2": Decimal("3.333")})]
        report = compute_balances("u1", transactions, [payment("u2", "u1", Decimal("3.33"))])
        assert report.balances == []
        assert report.summary.total_owed == Decimal("0")

    def test_one_paisa_counts_as_settled(self):
        """Test that a balance of exactly one paisa is dropped."""
        transactions = [expense(Decimal("33.34"), "u1", {"u2": Decimal("33.34")})]
        report = compute_balances("u1", transactions, [payment("u2", "u1", Decimal("33.33"))])
        assert report.balance_with("u2") is None
        assert report.summary.total_owed == Decimal("0")

        owing = compute_balances("u2", [expense(Decimal("0.01"), "u1", {"u2": Decimal("0.01")})], [])
        assert owing.balances == []
        assert owing.summary.total_owing == Decimal("0")

    def test_two_paise_are_still_owed(self):
        """Test the smallest amount just past the settled band."""
        report = compute_balances("u1", [expense(Decimal("0.02"), "u1", {"u2": Decimal("0.02")})], [])
        assert report.balance_with("u2").amount == Decimal("0.02")

    def test_repeated_participant_views_are_symmetric(self):
        """Test that a user listed twice owes the sum of both entries."""
        cab = Transaction(
            description="Cab",
            amount=Decimal("20"),
            paid_by="u1",
            participants=[
                Participant(user_id="u2", share=Decimal("10")),
                Participant(user_id="u2", share=Decimal("10")),
            ],
        )
        from_u1 = compute_balances("u1", [cab], []).balance_with("u2")
        from_u2 = compute_balances("u2", [cab], []).balance_with("u1")

        assert from_u1.amount == from_u2.amount == Decimal("20")
        assert from_u1.owed_by == from_u2.owed_by == "u2"

    def test_repeated_payer_entries_still_cancel(self):
        """Test that the payer's own shares cancel however often they appear."""
        groceries = Transaction(
            description="Groceries",
            amount=Decimal("30"),
            paid_by="u1",
            participants=[
                Participant(user_id="u1", share=Decimal("10")),
                Participant(user_id="u1", share=Decimal("5")),
                Participant(user_id="u2", share=Decimal("15")),
            ],
        )
        report = compute_balances("u1", [groceries], [])
        assert [b.counterparty_id for b in report.balances] == ["u2"]
        assert report.summary.total_owed == Decimal("15")
        assert compute_balances("u2", [groceries], []).summary.total_owing == Decimal("15")

    def test_transactions_not_involving_subject_are_ignored(self):
        """Test that other people's expenses never leak into a balance."""
        report = compute_balances("u9", [expense(80, "u1", {"u2": 80})], [])
        assert report.balances == []

    def test_settlement_is_not_cumulative_across_reads(self, dinner):
        """Test that recomputing gives the same answer every time."""
        settlements = [payment("u3", "u1", 40)]
        first = compute_balances("u1", [dinner], settlements)
        second = compute_balances("u1", [dinner], settlements)
        assert first.balances == second.balances
        assert first.summary == second.summary

    def test_input_order_does_not_matter(self, dinner):
        """Test that balances are independent of record order."""
        transactions = [dinner, expense(20, "u3", {"u1": 20})]
        settlements = [payment("u2", "u1", 30), payment("u1", "u3", 5)]
        forward = compute_balances("u1", transactions, settlements)
        backward = compute_balances("u1", transactions[::-1], settlements[::-1])
        assert (
            {b.counterparty_id: b.amount for b in forward.balances}
            == {b.counterparty_id: b.amount for b in backward.balances}
        )

    def test_empty_history(self):
        """Test a user with no activity."""
        report = compute_balances("u1", [], [])
        assert report.subject_id == "u1"
        assert report.balances == []
        assert report.summary.net_balance == Decimal("0")


class TestFailSoft:
    """Malformed history never raises."""

    def test_missing_share_counts_as_zero(self):
        """Test a participant record without a share."""
        transaction = Transaction.model_validate({
            "amount": 100,
            "paidBy": "u1",
            "participants": [{"userId": "u2"}, {"userId": "u3", "share": 100}],
        })
        report = compute_balances("u1", [transaction], [])
        assert report.balance_with("u2") is None
        assert report.balance_with("u3").amount == Decimal("100")

    def test_transaction_without_payer_is_skipped(self):
        """Test that a payer-less transaction cannot be attributed."""
        transaction = expense(100, None, {"u1": 50, "u2": 50})
        assert accumulate_balances("u1", [transaction], []) == {}

    def test_participant_without_user_is_skipped(self):
        """Test that an anonymous participant does not create a balance."""
        transaction = Transaction(
            amount=Decimal("100"),
            paid_by="u1",
            participants=[Participant(share=Decimal("100"))],
        )
        assert accumulate_balances("u1", [transaction], []) == {}

    def test_settlement_without_counterparty_is_skipped(self):
        """Test settlements missing the other side."""
        settlements = [
            Settlement(paid_by="u1", amount=Decimal("10")),
            Settlement(paid_to="u1", amount=Decimal("10")),
        ]
        assert accumulate_balances("u1", [], settlements) == {}

    def test_self_settlement_is_ignored(self):
        """Test that paying yourself changes nothing."""
        assert accumulate_balances("u1", [], [payment("u1", "u1", 25)]) == {}


class TestHelpers:
    """Tests for to_money() and is_settled()."""

    @pytest.mark.parametrize("value", [None, "", "abc", float("nan"), float("inf")])
    def test_to_money_unusable_values_are_zero(self, value):
        """Test that junk amounts read as zero."""
        assert to_money(value) == Decimal("0")

    def test_to_money_parses_numbers_and_strings(self):
        """Test the common input shapes."""
        assert to_money(10) == Decimal("10")
        assert to_money("12.50") == Decimal("12.50")
        assert to_money(Decimal("3.3")) == Decimal("3.3")

    @pytest.mark.parametrize("balance,settled", [
        (Decimal("0"), True),
        (Decimal("0.009"), True),
        (Decimal("-0.009"), True),
        (Decimal("0.01"), True),
        (Decimal("-0.01"), True),
        (Decimal("0.011"), False),
        (Decimal("-0.02"), False),
        (Decimal("-5"), False),
    ])
    def test_is_settled_uses_epsilon(self, balance, settled):
        """Test that amounts up to one paisa count as settled."""
        assert is_settled(balance) is settled
