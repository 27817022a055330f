import os

os.environ.setdefault("SUBTRACK_DATABASE_URL", "sqlite://")
os.environ.setdefault("SUBTRACK_TIMEZONE", "UTC")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, configure_sqlite
from models import Category, User, UserSettings
from notifications import Notifier


def make_sessionmaker():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def seed_user(session, user_id=1, email="ana@example.com", timezone="Asia/Dhaka", alert_days=3):
    user = User(id=user_id, email=email, name="Ana")
    session.add(user)
    session.add(
        UserSettings(
            user_id=user_id,
            timezone=timezone,
            subscription_alert_days=alert_days,
            default_currency="BDT",
        )
    )
    category = Category(user_id=user_id, name=f"Streaming {user_id}")
    session.add(category)
    session.commit()
    return user, category


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail

    def dispatch(self, recipient, kind, items):
        if self.fail:
            raise RuntimeError("SMTP down")
        self.sent.append((recipient, kind, list(items)))


@pytest.fixture
def session_factory():
    return make_sessionmaker()


@pytest.fixture
def session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def category(session):
    _user, category = seed_user(session)
    return category


@pytest.fixture
def seed(session):
    def _seed(**kwargs):
        return seed_user(session, **kwargs)

    return _seed


@pytest.fixture
def notifier():
    return RecordingNotifier()
