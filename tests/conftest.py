"""Root conftest for all tests - provides shared fixtures."""

import os

# Keep tests away from real endpoints (must be set before config import)
os.environ.setdefault("VID_TEAMS_NOTIFICATIONS_ENDPOINT", "")
os.environ.setdefault("VID_ORIGIN", "https://vid.example.com")

import pytest

from app.vid.caller_callback import reset_caller_callback_client
from app.vid.dispatch import reset_dispatcher
from app.vid.notifications import reset_notification_center
from app.vid.presentation import reset_presentation_service
from app.vid.request_service import reset_request_service_client
from app.vid.request_store import reset_request_store
from app.vid.token import reset_token_provider


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset all module singletons before and after each test."""
    resets = (
        reset_presentation_service,
        reset_request_store,
        reset_dispatcher,
        reset_notification_center,
        reset_caller_callback_client,
        reset_request_service_client,
        reset_token_provider,
    )
    for reset in resets:
        reset()
    yield
    for reset in resets:
        reset()
