"""
Tests for automatic locking against the database.
"""
import pytest
from datetime import timedelta
from tripboard.core.utils import utcnow
from tripboard.db.session import SessionLocal
from tripboard.models import Trip, TripMember, TripPhase, MemberStatus, Proposal, VoteType
from tripboard.models.message import Message, MessageType
from tripboard.services.auto_lock_service import AutoLockMonitor
from tripboard.services.commands import apply_lock_intent, apply_transition
from tripboard.services.phase_service import plan_reopen
from tripboard.services.voting_service import plan_auto_lock


@pytest.fixture
def monitor(notifier):
    monitor = AutoLockMonitor(SessionLocal, notifier)
    yield monitor
    monitor.stop()


@pytest.fixture
def trio(make_user):
    return make_user("ana"), make_user("ben"), make_user("cai")


def system_messages(db, trip_id):
    db.expire_all()
    return db.query(Message).filter(
        Message.trip_id == trip_id,
        Message.type == MessageType.SYSTEM
    ).order_by(Message.id).all()


def reload(db, model, pk):
    db.expire_all()
    return db.query(model).filter(model.id == pk).first()


def test_destination_auto_locks_after_deadline(db, trio, make_trip, make_proposal, monitor, past_deadline):
    ana, ben, cai = trio
    trip = make_trip(ana, ben, cai, destination_voting_deadline=past_deadline)
    lisbon = make_proposal(trip, ana, "Lisbon", votes={ana: VoteType.IN, ben: VoteType.IN, cai: VoteType.MAYBE})
    make_proposal(trip, ben, "Oslo", votes={ana: VoteType.OUT, ben: VoteType.OUT, cai: VoteType.IN})

    assert monitor.evaluate(trip.id)

    trip = reload(db, Trip, trip.id)
    assert trip.locked_destination_id == lisbon.id
    assert trip.phase == TripPhase.ITINERARY
    assert reload(db, Proposal, lisbon.id).included
    assert [m.body for m in system_messages(db, trip.id)] == ["Voting complete! Destination auto-locked: Lisbon"]


def test_evaluation_is_idempotent(db, trio, make_trip, make_proposal, monitor, past_deadline):
    ana, ben, cai = trio
    trip = make_trip(ana, ben, cai, destination_voting_deadline=past_deadline)
    make_proposal(trip, ana, "Lisbon", votes={ana: VoteType.IN, ben: VoteType.IN, cai: VoteType.IN})

    assert monitor.evaluate(trip.id)
    assert not monitor.evaluate(trip.id)
    assert not monitor.evaluate(trip.id)

    assert len(system_messages(db, trip.id)) == 1
    assert reload(db, Trip, trip.id).phase == TripPhase.ITINERARY


def test_second_lock_intent_loses_race(db, store, trio, make_trip, make_proposal, past_deadline):
    """Two passes planned from the same snapshot: only the first one writes."""
    ana, ben, cai = trio
    trip = make_trip(ana, ben, cai, destination_voting_deadline=past_deadline)
    make_proposal(trip, ana, "Lisbon", votes={ana: VoteType.IN, ben: VoteType.IN, cai: VoteType.IN})

    snapshot = store.get_trip(trip.id)
    intent = plan_auto_lock(
        snapshot,
        store.get_proposals(trip.id, snapshot.phase),
        store.get_active_members(trip.id),
        utcnow()
    )

    assert apply_lock_intent(store, intent)
    assert not apply_lock_intent(store, intent)
    assert len(system_messages(db, trip.id)) == 1


def test_no_lock_before_deadline(db, trio, make_trip, make_proposal, notifier, future_deadline):
    ana, ben, cai = trio
    trip = make_trip(ana, ben, cai, destination_voting_deadline=future_deadline)
    make_proposal(trip, ana, "Lisbon", votes={ana: VoteType.IN, ben: VoteType.IN, cai: VoteType.IN})

    monitor = AutoLockMonitor(SessionLocal, notifier)
    assert not monitor.evaluate(trip.id)
    assert reload(db, Trip, trip.id).locked_destination_id is None

    later = AutoLockMonitor(SessionLocal, notifier, clock=lambda: future_deadline + timedelta(seconds=1))
    assert later.evaluate(trip.id)
    assert reload(db, Trip, trip.id).phase == TripPhase.ITINERARY


def test_no_lock_until_everyone_voted(db, trio, make_trip, make_proposal, monitor, past_deadline):
    ana, ben, cai = trio
    trip = make_trip(ana, ben, cai, destination_voting_deadline=past_deadline)
    make_proposal(trip, ana, "Lisbon", votes={ana: VoteType.IN, ben: VoteType.IN})

    assert not monitor.evaluate(trip.id)
    assert reload(db, Trip, trip.id).phase == TripPhase.DESTINATION


def test_itinerary_winner_is_included(db, trio, make_trip, make_proposal, monitor, past_deadline):
    ana, ben, cai = trio
    trip = make_trip(ana, ben, cai, phase=TripPhase.ITINERARY, itinerary_voting_deadline=past_deadline)
    destination = make_proposal(trip, ana, "Lisbon", included=True)
    trip.locked_destination_id = destination.id
    db.commit()

    tram = make_proposal(trip, ben, "Lisbon", is_destination=False, name="Tram 28",
                         votes={ana: VoteType.IN, ben: VoteType.IN, cai: VoteType.IN})
    fado = make_proposal(trip, cai, "Lisbon", is_destination=False, name="Fado night",
                         votes={ana: VoteType.OUT})

    assert monitor.evaluate(trip.id)

    assert reload(db, Proposal, tram.id).included
    assert not reload(db, Proposal, fado.id).included
    trip = reload(db, Trip, trip.id)
    assert trip.phase == TripPhase.ITINERARY
    assert trip.itinerary_voting_deadline is None
    assert [m.body for m in system_messages(db, trip.id)] == ['Voting complete! "Tram 28" added to plan.']

    # Deadline cleared, nothing more to do
    assert not monitor.evaluate(trip.id)
    assert len(system_messages(db, trip.id)) == 1


def itinerary_trip(db, trio, make_trip, make_proposal, deadline):
    """Itinerary-phase trip where everyone voted "in" on one item."""
    ana, ben, cai = trio
    trip = make_trip(ana, ben, cai, phase=TripPhase.ITINERARY, itinerary_voting_deadline=deadline)
    destination = make_proposal(trip, ana, "Lisbon", included=True)
    trip.locked_destination_id = destination.id
    db.commit()
    tram = make_proposal(trip, ben, "Lisbon", is_destination=False, name="Tram 28",
                         votes={ana: VoteType.IN, ben: VoteType.IN, cai: VoteType.IN})
    return trip, tram


def test_excluded_winner_stays_excluded(db, store, trio, make_trip, make_proposal, monitor, past_deadline):
    """The itinerary lock fires once; the owner can take the item out afterwards."""
    trip, tram = itinerary_trip(db, trio, make_trip, make_proposal, past_deadline)
    monitor.start([trip.id])
    assert reload(db, Proposal, tram.id).included

    store.update_proposal(tram.id, {"included": False})

    assert not reload(db, Proposal, tram.id).included
    assert len(system_messages(db, trip.id)) == 1


def test_second_itinerary_intent_loses_race(db, store, trio, make_trip, make_proposal, past_deadline):
    trip, tram = itinerary_trip(db, trio, make_trip, make_proposal, past_deadline)

    snapshot = store.get_trip(trip.id)
    intent = plan_auto_lock(
        snapshot,
        store.get_proposals(trip.id, snapshot.phase),
        store.get_active_members(trip.id),
        utcnow()
    )

    assert apply_lock_intent(store, intent)
    store.update_proposal(tram.id, {"included": False})
    assert not apply_lock_intent(store, intent)
    assert not reload(db, Proposal, tram.id).included
    assert len(system_messages(db, trip.id)) == 1


def test_reopened_destination_is_not_locked_again(db, store, trio, make_trip, make_proposal, monitor, past_deadline):
    """Reopening clears the passed deadline, so the old votes do not lock again."""
    ana, ben, cai = trio
    trip = make_trip(ana, ben, cai, destination_voting_deadline=past_deadline)
    make_proposal(trip, ana, "Lisbon", votes={ana: VoteType.IN, ben: VoteType.IN, cai: VoteType.IN})
    monitor.start([trip.id])
    assert reload(db, Trip, trip.id).phase == TripPhase.ITINERARY

    owner = store.get_member(trip.id, ana.id)
    transition = plan_reopen(store.get_trip(trip.id), TripPhase.DESTINATION, owner, confirmed=True)
    apply_transition(store, transition, ana.id)

    trip = reload(db, Trip, trip.id)
    assert trip.phase == TripPhase.DESTINATION
    assert trip.locked_destination_id is None
    assert trip.destination_voting_deadline is None
    assert [m.body for m in system_messages(db, trip.id)] == [
        "Voting complete! Destination auto-locked: Lisbon",
        "Trip reopened for: Choose Destination",
    ]


def test_store_change_triggers_evaluation(db, store, trio, make_trip, make_proposal, monitor, past_deadline):
    """Setting a passed deadline through the store is enough to lock."""
    ana, ben, cai = trio
    trip = make_trip(ana, ben, cai)
    lisbon = make_proposal(trip, ana, "Lisbon", votes={ana: VoteType.IN, ben: VoteType.IN, cai: VoteType.IN})
    monitor.start()

    store.update_trip(trip.id, {"destination_voting_deadline": past_deadline})

    assert reload(db, Trip, trip.id).locked_destination_id == lisbon.id
    assert len(system_messages(db, trip.id)) == 1


def test_removing_a_member_completes_quorum(db, store, trio, make_trip, make_proposal, monitor, past_deadline):
    ana, ben, cai = trio
    trip = make_trip(ana, ben, cai, destination_voting_deadline=past_deadline)
    make_proposal(trip, ana, "Lisbon", votes={ana: VoteType.IN, ben: VoteType.IN})
    monitor.start([trip.id])
    assert reload(db, Trip, trip.id).phase == TripPhase.DESTINATION

    membership = db.query(TripMember).filter(TripMember.trip_id == trip.id, TripMember.user_id == cai.id).first()
    membership.status = MemberStatus.REMOVED
    db.commit()
    store.publish(trip.id)

    assert reload(db, Trip, trip.id).phase == TripPhase.ITINERARY


def test_missing_trip_is_ignored(monitor):
    assert not monitor.evaluate(424242)


def test_stopped_monitor_ignores_changes(db, store, trio, make_trip, make_proposal, monitor, past_deadline):
    ana, ben, cai = trio
    trip = make_trip(ana, ben, cai)
    make_proposal(trip, ana, "Lisbon", votes={ana: VoteType.IN, ben: VoteType.IN, cai: VoteType.IN})
    monitor.start()
    monitor.stop()

    store.update_trip(trip.id, {"destination_voting_deadline": past_deadline})
    assert reload(db, Trip, trip.id).locked_destination_id is None
