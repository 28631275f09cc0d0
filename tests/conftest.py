"""
Pytest configuration and shared fixtures.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api modules.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.commission import CommissionCalculator  # noqa: E402
from domain.conversation import Conversation, Message, MessageSender  # noqa: E402
from domain.keywords import KeywordDetector  # noqa: E402
from domain.sale import Actor, RepInfo, UserRole  # noqa: E402
from repositories.memory_store import InMemorySalesStore  # noqa: E402
from services.sale_lifecycle_service import SaleLifecycleManager  # noqa: E402
from services.sale_tracking_service import SaleTrackingService  # noqa: E402

T0 = datetime(2025, 3, 14, 15, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic UTC clock; every call advances one second."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = current + timedelta(seconds=1)
        return current


def make_message(message_id: str, content: str, *, minutes: int = 0, sender: MessageSender = MessageSender.USER) -> Message:
    return Message(
        message_id=message_id,
        sender=sender,
        content=content,
        timestamp=T0 + timedelta(minutes=minutes),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemorySalesStore:
    return InMemorySalesStore()


@pytest.fixture
def detector() -> KeywordDetector:
    return KeywordDetector()


@pytest.fixture
def calculator() -> CommissionCalculator:
    return CommissionCalculator()


@pytest.fixture
def manager(store, calculator, detector, clock) -> SaleLifecycleManager:
    return SaleLifecycleManager(store, calculator, detector, clock=clock)


@pytest.fixture
def tracker(store, detector, manager) -> SaleTrackingService:
    return SaleTrackingService(store, detector, manager)


@pytest.fixture
def admin() -> Actor:
    return Actor(uid="admin-1", name="Ada Admin", email="ada@example.com", role=UserRole.SUPER_ADMIN)


@pytest.fixture
def rep_actor() -> Actor:
    return Actor(uid="rep-1", name="Sam Rep", email="sam@example.com", role=UserRole.REP)


@pytest.fixture
def website_conversation(store: InMemorySalesStore) -> Conversation:
    """A website-widget conversation with a known rep and a short history."""

    store.add_rep(RepInfo(name="Sam Rep", phone_number="+15557654321", rep_id="rep_1"))
    conversation = store.add_conversation(
        Conversation(
            conversation_id="conv-web",
            user_mobile_number="+15551234567",
            rep_phone_number="+15557654321",
            customer_first_name="Jane",
            customer_last_name="Doe",
        )
    )
    store.add_message("conv-web", make_message("m1", "Hi, is the blue one still available?", minutes=0))
    store.add_message(
        "conv-web",
        make_message("m2", "Yes it is!", minutes=1, sender=MessageSender.REP),
    )
    return conversation


@pytest.fixture
def instagram_conversation(store: InMemorySalesStore) -> Conversation:
    return store.add_conversation(
        Conversation(
            conversation_id="conv-ig",
            user_mobile_number="instagram-jane.doe",
            rep_phone_number="+15550000000",
            customer_first_name="Jane",
            user_instagram_handle="jane.doe",
        )
    )
