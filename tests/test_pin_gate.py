from datetime import datetime, timedelta, timezone

import pytest

from config import config
from database import SecurityRepository
from services.errors import InvalidPinError, PinLockedError, PinNotSetError, ValidationError
from services.pin_gate import ClientInfo, MediaSessionTimer, PinGate, hint_reveals_pin, validate_pin

START = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
CLIENT = ClientInfo(ip="10.0.0.1", user_agent="Mozilla/5.0 Chrome/120 Safari/537")


class Clock:
    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kw):
        self.now = self.now + timedelta(**kw)


@pytest.fixture(autouse=True)
def _fast_hash(monkeypatch):
    monkeypatch.setattr(config, "PIN_HASH_METHOD", "pbkdf2:sha256:1000")


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def gate(manager, clock):
    return PinGate(SecurityRepository(manager), clock=clock)


def test_validate_pin():
    assert validate_pin(" 1234 ") == "1234"
    for bad in ("12a4", "123", "123456789", "", None):
        with pytest.raises(ValidationError):
            validate_pin(bad)


def test_hint_reveals_pin_variants():
    assert hint_reveals_pin("my code is 1234", "1234")
    assert hint_reveals_pin("1 2 3 4", "1234")
    assert hint_reveals_pin("1-2-3-4!", "1234")
    assert hint_reveals_pin("1.2.3.4", "1234")
    assert not hint_reveals_pin("birthday of mom", "1234")


def test_create_pin_rules(gate):
    with pytest.raises(ValidationError):
        gate.create_pin("u1", "1234", "4321", client=CLIENT)
    with pytest.raises(ValidationError):
        gate.create_pin("u1", "1234", "1234", hint="it's 1-2-3-4", client=CLIENT)

    gate.create_pin("u1", "1234", "1234", hint="first four", client=CLIENT)
    status = gate.status("u1")
    assert status["has_pin"] is True
    assert status["hint"] == "first four"
    assert status["attempts_remaining"] == 5

    with pytest.raises(ValidationError):
        gate.create_pin("u1", "5678", "5678", client=CLIENT)


def test_pin_is_stored_hashed(gate, fake_db):
    gate.create_pin("u1", "1234", "1234", client=CLIENT)
    doc = fake_db["security_settings"].docs[0]
    assert doc["pin_hash"] != "1234"
    assert doc["pin_hash"].startswith("pbkdf2:sha256")


def test_verify_without_pin(gate):
    with pytest.raises(PinNotSetError):
        gate.verify("u1", "1234", CLIENT)


def test_wrong_pin_reports_remaining_attempts(gate):
    gate.create_pin("u1", "1234", "1234", client=CLIENT)
    with pytest.raises(InvalidPinError) as exc:
        gate.verify("u1", "0000", CLIENT)
    assert exc.value.attempts_remaining == 4

    gate.verify("u1", "1234", CLIENT)
    assert gate.status("u1")["recent_failed_attempts"] == 0


def test_lockout_after_five_failures_and_expiry(gate, clock):
    gate.create_pin("u1", "1234", "1234", client=CLIENT)
    for _ in range(4):
        with pytest.raises(InvalidPinError):
            gate.verify("u1", "0000", CLIENT)
    with pytest.raises(PinLockedError) as exc:
        gate.verify("u1", "0000", CLIENT)
    assert exc.value.remaining_seconds == 30 * 60

    # even the right PIN is refused while locked
    clock.advance(minutes=10)
    with pytest.raises(PinLockedError) as exc:
        gate.verify("u1", "1234", CLIENT)
    assert exc.value.remaining_seconds == 20 * 60
    assert gate.status("u1")["locked"] is True

    clock.advance(minutes=21)
    status = gate.status("u1")
    assert status["locked"] is False
    gate.verify("u1", "1234", CLIENT)


def test_failures_outside_window_do_not_count(gate, clock):
    gate.create_pin("u1", "1234", "1234", client=CLIENT)
    for _ in range(4):
        with pytest.raises(InvalidPinError):
            gate.verify("u1", "0000", CLIENT)
    clock.advance(minutes=16)
    with pytest.raises(InvalidPinError) as exc:
        gate.verify("u1", "0000", CLIENT)
    assert exc.value.attempts_remaining == 4


def test_change_pin(gate):
    gate.create_pin("u1", "1234", "1234", client=CLIENT)
    with pytest.raises(InvalidPinError):
        gate.change_pin("u1", "9999", "5678", "5678", client=CLIENT)
    with pytest.raises(ValidationError):
        gate.change_pin("u1", "1234", "5678", "8765", client=CLIENT)

    gate.change_pin("u1", "1234", "5678", "5678", hint="new", client=CLIENT)
    gate.verify("u1", "5678", CLIENT)
    with pytest.raises(InvalidPinError):
        gate.verify("u1", "1234", CLIENT)


def test_security_overview_lists_newest_first(gate):
    gate.create_pin("u1", "1234", "1234", client=CLIENT)
    gate.verify("u1", "1234", CLIENT)
    overview = gate.security_overview("u1")
    assert [e["action"] for e in overview["audit_log"]] == ["PIN Verification Success", "PIN Created"]
    assert overview["active_sessions"] == [
        {"device": "Desktop", "browser": "Chrome", "last_active": START.isoformat(), "ip": "10.0.0.1"}
    ]


def test_client_info_detection():
    assert ClientInfo(user_agent="Mozilla Mobile Safari").device == "Mobile"
    assert ClientInfo(user_agent="Mozilla Edg/120 Chrome/120").browser == "Edge"
    assert ClientInfo(user_agent="curl/8").browser == "Unknown"


def test_session_timer_expires_after_inactivity():
    store = {}
    timer = MediaSessionTimer(store, timeout_minutes=30, warning_minutes=5)
    assert timer.state(START)["unlocked"] is False
    assert timer.touch(START) is False

    timer.unlock(START)
    assert timer.is_active(START + timedelta(minutes=29))
    assert timer.touch(START + timedelta(minutes=20)) is True
    # activity pushed the deadline forward
    assert timer.is_active(START + timedelta(minutes=45))

    state = timer.state(START + timedelta(minutes=46))
    assert state["warning"] is True
    assert state["remaining_seconds"] == 4 * 60

    assert timer.touch(START + timedelta(minutes=51)) is False
    assert store == {}


def test_session_timer_lock():
    store = {}
    timer = MediaSessionTimer(store)
    timer.unlock(START)
    timer.lock()
    assert timer.is_active(START) is False
