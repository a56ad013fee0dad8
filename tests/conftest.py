"""
PyTest configuration and fixtures.
"""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from replydraft.db import Base
from replydraft.models import SampleRecord


@pytest.fixture
def db_session():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


class FakeGenerator:
    """Stands in for the LLM; returns queued replies and records every call."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    def __call__(self, request, correction=None):
        self.calls.append((request, correction))
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture
def make_generator():
    return FakeGenerator


@pytest.fixture
def sample_records():
    now = datetime(2024, 5, 1, 12, 0, 0)
    texts = [
        "Marco still talks about the lamb shank you ordered on Friday, glad it landed. Next time ask for the mint sauce on the side.",
        "Fair point on the parking, the lot fills up fast after 6pm. The side street behind the bakery is usually free.",
        "Sorry the soup came out lukewarm on Sunday. I had a word with the kitchen and we reheat bowls to order now.",
        "Happy the birthday cake made it to the table in one piece. Priya piped the name herself, she will be thrilled.",
        "The espresso machine was down Tuesday morning, which is on us. Your next flat white is on the house when you swing by.",
        "Thanks for the kind words about the patio. The heaters go back out in October so the evenings stay cozy.",
    ]
    return [
        SampleRecord(id=f"s{i}", text=t, created_at=now - timedelta(days=i))
        for i, t in enumerate(texts)
    ]
