"""
Expense ledger: split generation, balances and settlement calculation.

All functions here are pure. They take expense snapshots (see
``tripboard.schemas.expense``) and never touch the database.
"""
from typing import Dict, Iterable, List, Sequence, Tuple
from decimal import Decimal
from tripboard.core.exceptions import DataIntegrityError
from tripboard.core.utils import CENT, round_cents
from tripboard.schemas.expense import ExpenseSnapshot
from tripboard.schemas.settlement import Transfer

ZERO = Decimal("0")


def split_equally(amount: Decimal, user_ids: Sequence[int]) -> List[Tuple[int, Decimal]]:
    """
    Split an amount equally among users, to the cent.

    Every participant gets ``round(amount / n)``; the first listed participant
    also absorbs the rounding remainder so the shares add up to ``amount``.
    Existing data relies on the first participant being the one adjusted.
    """
    if not user_ids:
        return []

    amount = Decimal(amount)
    n = len(user_ids)
    per_person = round_cents(amount / n)
    remainder = round_cents(amount - per_person * n)

    return [
        (user_id, per_person + remainder if index == 0 else per_person)
        for index, user_id in enumerate(user_ids)
    ]


def verify_expense_splits(expenses: Iterable[ExpenseSnapshot]) -> None:
    """Raise DataIntegrityError if any expense's splits do not sum to its amount."""
    for expense in expenses:
        split_total = sum((split.amount for split in expense.splits), ZERO)
        if split_total != expense.amount:
            raise DataIntegrityError(
                f"Splits of expense {expense.id} sum to {split_total}, expected {expense.amount}"
            )


def calculate_total_expenses(expenses: Iterable[ExpenseSnapshot]) -> Decimal:
    """Total spent, settled or not."""
    return sum((expense.amount for expense in expenses), ZERO)


def calculate_expenses_by_category(expenses: Iterable[ExpenseSnapshot]) -> Dict[str, Decimal]:
    """Total spent per category, settled or not."""
    by_category: Dict[str, Decimal] = {}
    for expense in expenses:
        by_category[expense.category] = by_category.get(expense.category, ZERO) + expense.amount
    return by_category


def calculate_balances(expenses: Sequence[ExpenseSnapshot]) -> Dict[int, Decimal]:
    """
    Net outstanding balance per user (positive = owed, negative = owes).

    A payer is credited with what others still owe on the expense; each
    participant is debited with their unsettled shares, including a payer's
    share of their own expense. Settled splits drop out on both sides, so the
    balances always sum to zero. Crediting the payer with the full amount
    paid would leave a surplus after every settlement, so the payer's credit
    is reduced by the settled shares on purpose.
    """
    verify_expense_splits(expenses)

    balances: Dict[int, Decimal] = {}
    for expense in expenses:
        settled = sum((s.amount for s in expense.splits if s.is_settled), ZERO)
        balances[expense.paid_by] = balances.get(expense.paid_by, ZERO) + expense.amount - settled

        for split in expense.splits:
            if split.is_settled:
                continue
            balances[split.user_id] = balances.get(split.user_id, ZERO) - split.amount

    return balances


def get_user_balance(user_id: int, expenses: Sequence[ExpenseSnapshot]) -> Decimal:
    """Get a single user's net balance."""
    return calculate_balances(expenses).get(user_id, ZERO)


def minimize_transfers(balances: Dict[int, Decimal]) -> List[Transfer]:
    """
    Minimize the number of transfers needed to settle debts.
    Uses a greedy algorithm: largest debtor pays largest creditor.
    """
    # Separate creditors (positive balance) and debtors (negative balance)
    creditors = [[uid, round_cents(bal)] for uid, bal in balances.items() if round_cents(bal) >= CENT]
    debtors = [[uid, -round_cents(bal)] for uid, bal in balances.items() if round_cents(bal) <= -CENT]

    # Sort in descending order; ties keep user id order
    creditors.sort(key=lambda x: (-x[1], x[0]))
    debtors.sort(key=lambda x: (-x[1], x[0]))

    transfers = []
    cred_idx = 0
    debt_idx = 0

    while cred_idx < len(creditors) and debt_idx < len(debtors):
        creditor = creditors[cred_idx]
        debtor = debtors[debt_idx]

        amount = min(creditor[1], debtor[1])
        transfers.append(Transfer(from_user_id=debtor[0], to_user_id=creditor[0], amount=amount))

        creditor[1] -= amount
        debtor[1] -= amount

        if creditor[1] < CENT:
            cred_idx += 1
        if debtor[1] < CENT:
            debt_idx += 1

    return transfers


def calculate_settlements(expenses: Sequence[ExpenseSnapshot]) -> List[Transfer]:
    """Transfers that bring every outstanding balance to zero."""
    return minimize_transfers(calculate_balances(expenses))


def has_unsettled_debts(user_id: int, expenses: Iterable[ExpenseSnapshot]) -> bool:
    """Whether the user still holds any unpaid, non-zero share."""
    for expense in expenses:
        for split in expense.splits:
            if split.user_id == user_id and not split.is_settled and split.amount > 0:
                return True
    return False


def splits_to_settle(expenses: Iterable[ExpenseSnapshot], user_id: int, to_user_id: int) -> List[int]:
    """Unsettled splits the user holds on expenses paid by ``to_user_id``."""
    split_ids = []
    for expense in expenses:
        if expense.paid_by != to_user_id:
            continue
        for split in expense.splits:
            if split.user_id == user_id and not split.is_settled and split.id is not None:
                split_ids.append(split.id)
    return split_ids
