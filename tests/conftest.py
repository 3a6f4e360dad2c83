"""
Pytest configuration and fixtures.
Shared ledger, session and call flow fixtures backed by a temporary ledger file.
"""

from datetime import date

import pytest

from leave_ivr.call_session import CallSessionStore
from leave_ivr.dialogue import CallbackInput, LeaveCallFlow
from leave_ivr.ledger import LeaveLedger
from leave_ivr.ledger_store import JsonLedgerStore

EMPLOYEE_ID = "246433"
EMPLOYEE_ADDRESS = "246433@company.com"
TODAY = date(2025, 9, 1)


class RecordingNotifier:
    """Stands in for EmailNotifier; remembers every confirmation it is asked to send."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def notify(self, address, body):
        if self.fail:
            raise RuntimeError("mail queue unavailable")
        self.sent.append((address, body))
        return None

    def get_state(self):
        return {"configured": True, "state": "closed"}

    def shutdown(self, wait=True):
        pass


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def ledger_path(tmp_path):
    """Path of a ledger file that does not exist yet."""
    return tmp_path / "data" / "leaves.json"


@pytest.fixture
def ledger_store(ledger_path):
    return JsonLedgerStore(ledger_path)


@pytest.fixture
def ledger(ledger_store):
    return LeaveLedger(ledger_store)


@pytest.fixture
def sessions():
    return CallSessionStore(max_sessions=50, ttl_seconds=600)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def flow(ledger, sessions, notifier):
    """Call flow pinned to 1 September 2025 so relative dates are stable."""
    return LeaveCallFlow(
        ledger=ledger,
        sessions=sessions,
        notifier=notifier,
        email_domain="company.com",
        today=TODAY,
    )


@pytest.fixture
def say():
    """Build a CallbackInput for one caller turn."""

    def _say(speech=None, digits=None, call_sid="CA-test-1"):
        return CallbackInput(call_sid=call_sid, speech=speech, digits=digits)

    return _say
