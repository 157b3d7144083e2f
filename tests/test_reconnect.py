"""
Reconnector unit tests
"""

import time

import pytest

from ssestream import ClientConfig, Reconnector


class TestReconnector:
    def test_server_retry_hint_wins(self):
        reconnector = Reconnector(ClientConfig(reconnect_base_delay=5.0))
        assert reconnector.next_delay(2500) == pytest.approx(2.5)
        assert reconnector.current_attempt == 1

    def test_backoff_grows_and_is_capped(self):
        reconnector = Reconnector(ClientConfig(reconnect_base_delay=1.0, reconnect_max_delay=5.0))
        delays = [reconnector.next_delay() for _ in range(6)]

        assert 1.0 <= delays[0] <= 1.5
        assert 2.0 <= delays[1] <= 2.5
        assert 4.0 <= delays[2] <= 4.5
        assert all(d <= 5.0 for d in delays)
        assert delays[-1] == 5.0

    def test_unlimited_attempts(self):
        reconnector = Reconnector(ClientConfig(max_reconnect_attempts=0))
        for _ in range(50):
            reconnector.next_delay(0)
        assert reconnector.should_reconnect

    def test_attempts_are_exhausted(self):
        reconnector = Reconnector(ClientConfig(max_reconnect_attempts=2))
        assert reconnector.should_reconnect
        reconnector.next_delay(0)
        reconnector.next_delay(0)
        assert not reconnector.should_reconnect

    def test_long_lived_connection_resets_backoff(self, monkeypatch):
        reconnector = Reconnector(ClientConfig(reconnect_base_delay=1.0))
        reconnector.next_delay()
        reconnector.next_delay()
        reconnector.mark_connected()

        now = time.monotonic()
        monkeypatch.setattr(time, "monotonic", lambda: now + 120)

        assert 1.0 <= reconnector.next_delay() <= 1.5
        assert reconnector.current_attempt == 1


class TestClientConfig:
    def test_defaults(self):
        config = ClientConfig()
        assert config.auto_reconnect is True
        assert config.chunk_size == 8192
        assert config.emit_empty_events is False

    def test_rejects_invalid_values(self):
        with pytest.raises(ValueError):
            ClientConfig(chunk_size=0)
        with pytest.raises(ValueError):
            ClientConfig(max_reconnect_attempts=-1)
