"""
Tests for the per-function call monitor.
"""
from app.services.monitoring import CallMonitor


class TestCallMonitor:

    def test_record_counts_calls_and_failures(self):
        monitor = CallMonitor()

        monitor.record("update-football-cache", ok=True, duration_ms=12.5)
        monitor.record("update-football-cache", ok=False, duration_ms=40.0)

        entry = monitor.snapshot()["functions"]["update-football-cache"]
        assert entry["calls"] == 2
        assert entry["failures"] == 1
        assert entry["last_ms"] == 40.0
        assert monitor.count("update-football-cache") == 2
        assert monitor.count("never-called") == 0

    def test_subscribers_receive_events_until_unsubscribed(self):
        monitor = CallMonitor()
        events = []
        unsubscribe = monitor.subscribe(events.append)

        monitor.record("leave-league")
        unsubscribe()
        monitor.record("leave-league")

        assert [e["name"] for e in events] == ["leave-league"]
        assert events[0]["ok"] is True

    def test_failing_subscriber_does_not_break_recording(self):
        monitor = CallMonitor()

        def broken(event):
            raise RuntimeError("listener gone")

        monitor.subscribe(broken)
        monitor.record("paypal-ipn-handler")

        assert monitor.count("paypal-ipn-handler") == 1

    def test_reset(self):
        monitor = CallMonitor()
        monitor.record("a")
        monitor.record("b")

        monitor.reset()

        assert monitor.snapshot()["total_calls"] == 0
        assert monitor.snapshot()["functions"] == {}


class TestMonitoringEndpoint:

    def test_requires_privileged_caller(self, client, make_profile, auth_headers):
        response = client.get("/monitoring", headers=auth_headers(make_profile()))
        assert response.status_code == 401

    def test_snapshot(self, client, internal_headers):
        client.app.state.monitor.record("update-coparey-cache")

        response = client.get("/monitoring", headers=internal_headers)

        assert response.status_code == 200
        assert response.json()["functions"]["update-coparey-cache"]["calls"] == 1
