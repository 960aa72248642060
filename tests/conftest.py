import os

# Must be set before slotswap is imported; the app engine is never used by tests
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")
os.environ.setdefault("SECURITY_HEADERS_ENABLED", "true")

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from slotswap.auth import create_access_token, hash_password  # noqa: E402
from slotswap.database import Base, build_engine, get_db  # noqa: E402
from slotswap.main import app  # noqa: E402
from slotswap.models import Slot, SlotStatus, User  # noqa: E402

DAY = datetime(2026, 10, 20)


def at(hour: int, minute: int = 0) -> datetime:
    """A naive UTC instant on the test day"""
    return DAY + timedelta(hours=hour, minutes=minute)


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'slotswap_test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    def _make_user(name: str) -> User:
        user = User(
            email=f"{name.lower()}@example.com",
            full_name=name,
            hashed_password=hash_password("password123"),
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def alice(make_user):
    return make_user("Alice")


@pytest.fixture
def bob(make_user):
    return make_user("Bob")


@pytest.fixture
def carol(make_user):
    return make_user("Carol")


@pytest.fixture
def make_slot(db):
    """Insert a slot directly, bypassing the registry"""

    def _make_slot(owner: User, start_hour: int, status: SlotStatus = SlotStatus.EXCHANGEABLE, title=None) -> Slot:
        slot = Slot(
            owner_id=owner.id,
            title=title or f"{owner.full_name} {start_hour:02d}:00",
            start_time=at(start_hour),
            end_time=at(start_hour + 1),
            status=status.value,
        )
        db.add(slot)
        db.commit()
        db.refresh(slot)
        return slot

    return _make_slot


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _auth_headers
