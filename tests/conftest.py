"""
Shared fixtures: in-memory stores, a controllable clock, and an API client
wired to them through dependency overrides
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from bloodlink.database.schemas import DonorInfo, UserIdentity, UserType
from bloodlink.database.storage import InMemoryRequestStore, InMemoryUserDirectory
from bloodlink.services.lifecycle import LifecycleController
from bloodlink.services.matching import Matcher

START = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that only moves when told to"""
    def __init__(self, now: datetime = START):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs):
        self.current = self.current + timedelta(**kwargs)


def make_user(user_id, blood_type, user_type=UserType.DONOR, city=None, available=True,
              active=True, total_donations=0, last_donation=None):
    return UserIdentity(
        id=user_id,
        first_name=user_id.split("-")[0].capitalize(),
        last_name=user_id.split("-")[-1],
        email=f"{user_id}@example.com",
        phone="+1-555-0100",
        blood_type=blood_type,
        user_type=user_type,
        is_active=active,
        city=city,
        donor_info=DonorInfo(
            is_available=available,
            total_donations=total_donations,
            last_donation_date=last_donation,
        ),
        created_at=START,
    )


def request_payload(**overrides):
    payload = {
        "patient_name": "Jane Roe",
        "blood_type": "A+",
        "units_needed": 2,
        "urgency": "critical",
        "hospital": {"name": "City General", "address": "12 Main St, Springfield", "contact_number": "+1-555-0199"},
        "attending_physician": {"name": "Dr. House", "contact": "+1-555-0198"},
        "contact_phone": "+1-555-0123",
        "medical_reason": "Surgery blood loss",
    }
    payload.update(overrides)
    return payload


@pytest.fixture(autouse=True)
def no_llm(monkeypatch):
    """Keep the chatbot on its rule-based path regardless of the developer's env"""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def users():
    return {
        "recipient": make_user("recipient-rita", "O+", UserType.RECIPIENT, city="Springfield"),
        "other_recipient": make_user("recipient-omar", "B+", UserType.RECIPIENT),
        "admin": make_user("admin-ada", "AB+", UserType.ADMIN),
        "o_neg": make_user("donor-oscar", "O-", city="Springfield", total_donations=15),
        "a_pos": make_user("donor-anna", "A+", city="Shelbyville", total_donations=8),
        "b_pos": make_user("donor-bob", "B+", city="Springfield", total_donations=22),
        "ab_neg": make_user("donor-abby", "AB-", city="Springfield"),
        "o_pos_unavailable": make_user("donor-otto", "O+", available=False, total_donations=30),
        "a_neg_inactive": make_user("donor-amy", "A-", active=False),
    }


@pytest.fixture
def directory(users):
    directory = InMemoryUserDirectory()
    for user in users.values():
        directory.save(user)
    return directory


@pytest.fixture
def store():
    return InMemoryRequestStore()


@pytest.fixture
def controller(store, directory, clock):
    return LifecycleController(store, directory, Matcher(directory), clock=clock)


@pytest.fixture
def client(store, directory, controller):
    """Test client backed by the in-memory stores"""
    from bloodlink.main import app
    from bloodlink.api import utils

    app.dependency_overrides[utils.get_request_store] = lambda: store
    app.dependency_overrides[utils.get_user_directory] = lambda: directory
    app.dependency_overrides[utils.get_controller] = lambda: controller
    yield TestClient(app)
    app.dependency_overrides.clear()


def headers_for(user):
    return {"X-User-ID": user.id}
