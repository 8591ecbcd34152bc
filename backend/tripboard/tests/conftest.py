"""
Shared fixtures. Tests run against a throwaway SQLite database.
"""
import os
import tempfile

_db_dir = tempfile.mkdtemp(prefix="tripboard-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key"

import pytest
from datetime import datetime, timedelta, timezone
from tripboard.core.security import create_access_token
from tripboard.db.base import Base
from tripboard.db.session import SessionLocal, engine, init_db
from tripboard.models import User, Trip, TripMember, MemberRole, Proposal, Vote
from tripboard.services.notifier import ChangeNotifier
from tripboard.services.trip_store import TripStore

init_db()


@pytest.fixture(autouse=True)
def clean_tables():
    """Empty every table after each test."""
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return ChangeNotifier()


@pytest.fixture
def store(db, notifier):
    return TripStore(db, notifier)


@pytest.fixture
def make_user(db):
    """Create a user with the given username."""
    def _make_user(username: str) -> User:
        user = User(username=username, email=f"{username}@example.com", display_name=username.title())
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make_user


@pytest.fixture
def auth_headers():
    """Bearer headers for a user."""
    def _auth_headers(user: User) -> dict:
        token = create_access_token({"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers


@pytest.fixture
def make_trip(db):
    """Create a trip owned by ``owner`` with the other users as members."""
    def _make_trip(owner: User, *members: User, **fields) -> Trip:
        trip = Trip(name=fields.pop("name", "Summer trip"), created_by=owner.id, **fields)
        db.add(trip)
        db.flush()
        db.add(TripMember(trip_id=trip.id, user_id=owner.id, role=MemberRole.OWNER))
        for member in members:
            db.add(TripMember(trip_id=trip.id, user_id=member.id, role=MemberRole.MEMBER))
        db.commit()
        db.refresh(trip)
        return trip
    return _make_trip


@pytest.fixture
def make_proposal(db):
    """Create a proposal, optionally with votes given as {user: vote}."""
    def _make_proposal(trip: Trip, creator: User, destination: str, is_destination=True, votes=None, **fields) -> Proposal:
        proposal = Proposal(
            trip_id=trip.id,
            created_by=creator.id,
            destination=destination,
            is_destination=is_destination,
            **fields
        )
        db.add(proposal)
        db.flush()
        for user, vote in (votes or {}).items():
            db.add(Vote(trip_id=trip.id, proposal_id=proposal.id, user_id=user.id, vote=vote))
        db.commit()
        db.refresh(proposal)
        return proposal
    return _make_proposal


@pytest.fixture
def past_deadline():
    return datetime.now(timezone.utc) - timedelta(hours=1)


@pytest.fixture
def future_deadline():
    return datetime.now(timezone.utc) + timedelta(days=1)
