"""
Tests for the expense ledger.
"""
import pytest
from decimal import Decimal
from tripboard.core.exceptions import DataIntegrityError
from tripboard.schemas.expense import ExpenseSnapshot, SplitSnapshot
from tripboard.services.ledger_service import (
    split_equally,
    verify_expense_splits,
    calculate_total_expenses,
    calculate_expenses_by_category,
    calculate_balances,
    calculate_settlements,
    get_user_balance,
    has_unsettled_debts,
    splits_to_settle,
)

D = Decimal


def expense(paid_by, amount, shares, category="food", expense_id=None, settled=()):
    """Build an expense snapshot from {user_id: share}."""
    splits = [
        SplitSnapshot(id=(expense_id or 0) * 100 + uid, user_id=uid, amount=D(share), is_settled=uid in settled)
        for uid, share in shares.items()
    ]
    return ExpenseSnapshot(id=expense_id, paid_by=paid_by, amount=D(amount), category=category, splits=splits)


def equal_expense(paid_by, amount, user_ids, **kwargs):
    return expense(paid_by, amount, dict(split_equally(D(amount), user_ids)), **kwargs)


def test_split_first_participant_absorbs_remainder():
    """100.00 between three people gives the extra cent to the first."""
    splits = split_equally(D("100.00"), [7, 8, 9])
    assert splits == [(7, D("33.34")), (8, D("33.33")), (9, D("33.33"))]


def test_split_remainder_can_be_negative():
    """Rounding up per person takes the difference back from the first participant."""
    splits = split_equally(D("0.05"), [1, 2, 3])
    assert [amount for _, amount in splits] == [D("0.01"), D("0.02"), D("0.02")]


@pytest.mark.parametrize("amount", ["0.01", "10.00", "99.99", "100.00", "1234.57", "0.10"])
@pytest.mark.parametrize("n", [1, 2, 3, 6, 7, 11])
def test_split_sums_to_amount(amount, n):
    """Shares always add up to the expense to the cent."""
    splits = split_equally(D(amount), list(range(1, n + 1)))
    assert len(splits) == n
    assert sum(share for _, share in splits) == D(amount)


def test_split_without_participants():
    assert split_equally(D("50.00"), []) == []


def test_verify_rejects_mismatched_splits():
    """A split sum that differs from the amount is a data-integrity error."""
    broken = expense(1, "30.00", {1: "10.00", 2: "10.00"}, expense_id=5)
    with pytest.raises(DataIntegrityError):
        verify_expense_splits([broken])
    with pytest.raises(DataIntegrityError):
        calculate_balances([broken])


def test_totals_include_settled_splits():
    expenses = [
        expense(1, "60.00", {1: "30.00", 2: "30.00"}, category="food", settled=(2,)),
        expense(2, "40.00", {1: "20.00", 2: "20.00"}, category="transport"),
        expense(2, "10.00", {2: "10.00"}, category="food"),
    ]
    assert calculate_total_expenses(expenses) == D("110.00")
    assert calculate_expenses_by_category(expenses) == {"food": D("70.00"), "transport": D("40.00")}


def test_payer_split_counts_against_payer():
    """Paying 90 for three leaves the payer owed 60."""
    expenses = [equal_expense(1, "90.00", [1, 2, 3])]
    balances = calculate_balances(expenses)
    assert balances == {1: D("60.00"), 2: D("-30.00"), 3: D("-30.00")}
    assert get_user_balance(2, expenses) == D("-30.00")
    assert get_user_balance(99, expenses) == D("0")


def test_settled_splits_leave_outstanding_balance():
    expenses = [expense(1, "90.00", {1: "30.00", 2: "30.00", 3: "30.00"}, settled=(2,))]
    balances = calculate_balances(expenses)
    assert balances == {1: D("30.00"), 3: D("-30.00")}


def test_balances_are_conserved():
    """Money is neither created nor destroyed."""
    expenses = [
        equal_expense(1, "100.00", [1, 2, 3]),
        equal_expense(2, "45.50", [2, 3, 4]),
        equal_expense(4, "17.03", [1, 4]),
        expense(3, "12.00", {1: "4.00", 2: "4.00", 3: "4.00"}, settled=(1,)),
    ]
    assert sum(calculate_balances(expenses).values()) == D("0")


def test_settlements_zero_all_balances():
    """Applying the transfers settles everyone with at most n-1 payments."""
    expenses = [
        equal_expense(1, "100.00", [1, 2, 3, 4]),
        equal_expense(2, "33.33", [1, 2, 3]),
        equal_expense(3, "250.10", [2, 3, 4]),
        equal_expense(4, "7.99", [1, 4]),
    ]
    balances = calculate_balances(expenses)
    transfers = calculate_settlements(expenses)

    for transfer in transfers:
        assert transfer.amount > 0
        balances[transfer.from_user_id] += transfer.amount
        balances[transfer.to_user_id] -= transfer.amount

    assert all(balance == 0 for balance in balances.values())
    assert len(transfers) <= len([b for b in calculate_balances(expenses).values() if b != 0]) - 1


def test_settlement_matches_largest_debtor_to_largest_creditor():
    expenses = [equal_expense(1, "90.00", [1, 2, 3])]
    transfers = calculate_settlements(expenses)
    assert [(t.from_user_id, t.to_user_id, t.amount) for t in transfers] == [
        (2, 1, D("30.00")),
        (3, 1, D("30.00")),
    ]


def test_no_settlements_when_even():
    expenses = [
        equal_expense(1, "20.00", [1, 2]),
        equal_expense(2, "20.00", [1, 2]),
    ]
    assert calculate_settlements(expenses) == []


def test_unsettled_debts_and_settle_targets():
    expenses = [
        expense(1, "20.00", {1: "10.00", 2: "10.00"}, expense_id=1),
        expense(3, "20.00", {2: "10.00", 3: "10.00"}, expense_id=2),
        expense(1, "8.00", {2: "8.00"}, expense_id=3, settled=(2,)),
    ]
    assert has_unsettled_debts(2, expenses)
    assert not has_unsettled_debts(4, expenses)
    assert splits_to_settle(expenses, user_id=2, to_user_id=1) == [102]
    assert splits_to_settle(expenses, user_id=2, to_user_id=3) == [202]
