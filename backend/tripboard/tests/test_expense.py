"""
Tests for expense writes and settling up.
"""
import pytest
from decimal import Decimal
from sqlalchemy.exc import SQLAlchemyError
from tripboard.core.exceptions import DataIntegrityError, PhaseTransitionError, StoreError
from tripboard.models import Expense, ExpenseSplit, TripMember, TripPhase, MemberStatus
from tripboard.services import ledger_service
from tripboard.services import trip_store as trip_store_module
from tripboard.services.expense_service import claim_booking, create_expense_with_splits, settle_with_user

D = Decimal


@pytest.fixture
def trio(make_user):
    return make_user("ana"), make_user("ben"), make_user("cai")


@pytest.fixture
def trip(trio, make_trip):
    ana, ben, cai = trio
    return make_trip(ana, ben, cai)


def test_expense_is_split_in_participant_order(db, store, trio, trip):
    ana, ben, cai = trio
    expense_id = create_expense_with_splits(
        store, trip.id, ana.id, D("100.00"), [cai.id, ana.id, ben.id], description="Dinner", category="food"
    )

    expense = db.query(Expense).filter(Expense.id == expense_id).first()
    assert expense.description == "Dinner"
    assert [(s.user_id, s.amount) for s in expense.splits] == [
        (cai.id, D("33.34")),
        (ana.id, D("33.33")),
        (ben.id, D("33.33")),
    ]


def test_payer_pays_all_without_participants(db, store, trio, trip):
    ana, _, _ = trio
    expense_id = create_expense_with_splits(store, trip.id, ana.id, D("12.50"), [])

    splits = db.query(ExpenseSplit).filter(ExpenseSplit.expense_id == expense_id).all()
    assert [(s.user_id, s.amount) for s in splits] == [(ana.id, D("12.50"))]


def test_participants_must_be_active_members(db, store, trio, trip, make_user):
    ana, ben, cai = trio
    outsider = make_user("dee")
    with pytest.raises(DataIntegrityError):
        create_expense_with_splits(store, trip.id, ana.id, D("10.00"), [ana.id, outsider.id])

    membership = db.query(TripMember).filter(TripMember.trip_id == trip.id, TripMember.user_id == cai.id).first()
    membership.status = MemberStatus.REMOVED
    db.commit()
    with pytest.raises(DataIntegrityError):
        create_expense_with_splits(store, trip.id, ana.id, D("10.00"), [ana.id, cai.id])
    with pytest.raises(DataIntegrityError):
        create_expense_with_splits(store, trip.id, cai.id, D("10.00"), [ana.id])

    assert db.query(Expense).count() == 0


def test_duplicate_participants_are_rejected(db, store, trio, trip):
    ana, ben, _ = trio
    with pytest.raises(DataIntegrityError):
        create_expense_with_splits(store, trip.id, ana.id, D("10.00"), [ben.id, ben.id])


def test_failed_splits_remove_the_expense(db, store, trio, trip, monkeypatch):
    """An expense never survives without its splits."""
    ana, ben, _ = trio

    def broken_split(**kwargs):
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(trip_store_module, "ExpenseSplit", broken_split)

    with pytest.raises(StoreError):
        create_expense_with_splits(store, trip.id, ana.id, D("20.00"), [ana.id, ben.id])

    db.expire_all()
    assert db.query(Expense).count() == 0


def test_expense_write_publishes_change(store, notifier, trio, trip):
    ana, ben, _ = trio
    changes = []
    notifier.subscribe(trip.id, changes.append)

    create_expense_with_splits(store, trip.id, ana.id, D("20.00"), [ana.id, ben.id])
    assert changes == [trip.id]


def test_settle_marks_owed_splits(db, store, trio, trip):
    ana, ben, cai = trio
    create_expense_with_splits(store, trip.id, ana.id, D("90.00"), [ana.id, ben.id, cai.id])
    create_expense_with_splits(store, trip.id, cai.id, D("20.00"), [ben.id, cai.id])

    settled = settle_with_user(store, trip.id, ben.id, ana.id)
    assert len(settled) == 1

    expenses = store.get_expenses(trip.id)
    balances = ledger_service.calculate_balances(expenses)
    assert balances[ana.id] == D("30.00")
    assert balances[ben.id] == D("-10.00")
    assert sum(balances.values()) == 0
    assert ledger_service.has_unsettled_debts(ben.id, expenses)

    # Nothing left to settle with ana
    assert settle_with_user(store, trip.id, ben.id, ana.id) == []


def test_claim_booking_shares_with_all_members(db, store, trio, make_trip, make_proposal):
    ana, ben, cai = trio
    trip = make_trip(ana, ben, cai, phase=TripPhase.ITINERARY)
    tram = make_proposal(trip, ben, "Lisbon", is_destination=False, name="Tram 28")

    expense_id = claim_booking(store, trip.id, tram.id, ben.id, D("45.00"))

    expense = db.query(Expense).filter(Expense.id == expense_id).first()
    assert expense.description == "Booking: Tram 28"
    assert expense.proposal_id == tram.id
    assert expense.category == "activity"
    assert expense.paid_by == ben.id
    assert sorted(s.user_id for s in expense.splits) == sorted([ana.id, ben.id, cai.id])
    assert sum(s.amount for s in expense.splits) == D("45.00")


def test_claim_booking_only_during_itinerary(store, trio, trip, make_proposal):
    ana, _, _ = trio
    tram = make_proposal(trip, ana, "Lisbon", is_destination=False, name="Tram 28")
    with pytest.raises(PhaseTransitionError):
        claim_booking(store, trip.id, tram.id, ana.id, D("45.00"))


def test_claim_booking_rejects_destinations(store, trio, make_trip, make_proposal):
    ana, ben, _ = trio
    trip = make_trip(ana, ben, phase=TripPhase.ITINERARY)
    lisbon = make_proposal(trip, ana, "Lisbon")
    with pytest.raises(DataIntegrityError):
        claim_booking(store, trip.id, lisbon.id, ana.id, D("45.00"))
