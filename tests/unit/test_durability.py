"""Unit tests for DurabilityGuard class."""

import asyncio
from datetime import datetime

import pytest
from pubsub import pub

from scribesync.client.connectivity import ConnectivityMonitor
from scribesync.client.durability import ACTIVE_AT_KEY, RESUME_KEY, SESSION_KEY, DurabilityGuard
from scribesync.client.preferences import PreferenceStore
from scribesync.models.events import RECORDING_INTERRUPTED_TOPIC
from tests.conftest import run_async


@pytest.fixture
def preferences(temp_data_dir):
    return PreferenceStore(f"{temp_data_dir}/prefs.json")


def make_guard(preferences, monitor=None, calls=None, **kwargs):
    calls = calls if calls is not None else []
    return DurabilityGuard(
        preferences=preferences,
        monitor=monitor or ConnectivityMonitor(available=False),
        on_connectivity_available=lambda: calls.append("sweep"),
        **kwargs,
    )


@pytest.mark.unit
class TestDurabilityGuard:
    """Test cases for DurabilityGuard class."""

    def test_activate_persists_intent(self, preferences):
        """Test activation stores the resume intent."""
        guard = make_guard(preferences)

        guard.activate("test_042")

        intent = guard.read_intent()
        assert intent.active is True
        assert intent.session_id == "test_042"
        assert isinstance(intent.last_active_at, datetime)
        assert guard.is_active

    def test_deactivate_clears_intent(self, preferences):
        """Test an explicit stop clears the flag but keeps the session reference."""
        guard = make_guard(preferences)
        guard.activate("test_042")

        guard.deactivate()

        assert preferences.get_bool(RESUME_KEY) is False
        assert preferences.get(SESSION_KEY) == "test_042"
        assert not guard.is_active

    def test_connectivity_triggers_sweep_while_active(self, preferences):
        """Test connectivity is only watched between activate and deactivate."""
        calls = []
        monitor = ConnectivityMonitor(available=False)
        guard = make_guard(preferences, monitor=monitor, calls=calls)

        guard.activate("test_042")
        monitor.set_available(True)
        guard.deactivate()
        monitor.set_available(False)
        monitor.set_available(True)

        assert calls == ["sweep"]
        assert monitor.subscriber_count == 0

    def test_activate_twice_subscribes_once(self, preferences):
        monitor = ConnectivityMonitor(available=False)
        guard = make_guard(preferences, monitor=monitor)

        guard.activate("test_042")
        guard.activate("test_042")

        assert monitor.subscriber_count == 1

    def test_process_reclaimed(self, preferences):
        """Test losing the process clears the intent like a stop."""
        guard = make_guard(preferences)
        guard.activate("test_042")

        guard.on_process_reclaimed()

        assert guard.read_intent().active is False
        assert not guard.is_active

    def test_keepalive_refreshes_timestamp(self, preferences):
        """Test the heartbeat rewrites last_active_at while active."""
        beats = []

        async def fast_sleep(delay):
            beats.append(delay)
            await asyncio.sleep(0)

        guard = make_guard(preferences, keepalive_interval=30, sleep=fast_sleep)

        async def scenario():
            guard.activate("test_042")
            preferences.put(ACTIVE_AT_KEY, "2000-01-01T00:00:00")
            for _ in range(5):
                await asyncio.sleep(0)
            guard.deactivate()
            await asyncio.sleep(0)

        run_async(scenario())

        assert beats and all(delay == 30 for delay in beats)
        assert guard.read_intent().last_active_at.year > 2000

    def test_activate_without_event_loop(self, preferences):
        """Test activation still persists the intent when no loop is running."""
        guard = make_guard(preferences)

        guard.activate("test_042")

        assert guard.read_intent().active is True
        guard.deactivate()


@pytest.mark.unit
class TestBootCheck:
    """Reboot handling."""

    def test_nothing_to_report(self, preferences):
        assert make_guard(preferences).check_on_boot() is None

    def test_clean_stop_reports_nothing(self, preferences):
        guard = make_guard(preferences)
        guard.activate("test_042")
        guard.deactivate()

        assert make_guard(preferences).check_on_boot() is None

    def test_interrupted_recording_reported(self, preferences):
        """Test a recording that was running at shutdown is reported once."""
        preferences.update(**{
            RESUME_KEY: True,
            SESSION_KEY: "test_042",
            ACTIVE_AT_KEY: "2026-10-19T08:30:00",
        })
        notices = []

        def listener(notice):
            notices.append(notice)

        pub.subscribe(listener, RECORDING_INTERRUPTED_TOPIC)
        guard = make_guard(preferences)

        notice = guard.check_on_boot()

        assert notice.session_id == "test_042"
        assert notice.last_active_at == datetime(2026, 10, 19, 8, 30)
        assert notice.message == "Recording test_042 was interrupted at 2026-10-19 08:30:00"
        assert notices == [notice]
        assert preferences.get_bool(RESUME_KEY) is False
        assert not guard.is_active
        assert guard.check_on_boot() is None
