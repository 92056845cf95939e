"""Tests for the background sweep runner loop."""

import asyncio

import pytest
import server
from shared.errors import RetryExhaustedError


class _Stop(Exception):
    pass


class _FlakySweeper:
    def __init__(self, failures):
        self.failures = list(failures)
        self.runs = 0

    def run(self, as_of=None, reconcile=False):
        self.runs += 1
        if self.failures:
            raise self.failures.pop(0)


@pytest.fixture()
def sleeps(monkeypatch):
    """Stop the loop on its third sleep."""
    calls = []

    async def _sleep(interval):
        calls.append(interval)
        if len(calls) == 3:
            raise _Stop()

    monkeypatch.setattr(server.asyncio, "sleep", _sleep)
    return calls


class TestSweepRunner:
    def test_single_run(self, monkeypatch):
        sweeper = _FlakySweeper([])
        monkeypatch.setattr(server, "_get_sweeper", lambda: sweeper)

        asyncio.run(server.run(0.0, once=True))

        assert sweeper.runs == 1

    def test_unexpected_error_does_not_stop_the_loop(self, monkeypatch, sleeps):
        sweeper = _FlakySweeper([ConnectionError("database unreachable")])
        monkeypatch.setattr(server, "_get_sweeper", lambda: sweeper)

        with pytest.raises(_Stop):
            asyncio.run(server.run(5.0))

        assert sweeper.runs == 3
        assert sleeps == [5.0, 5.0, 5.0]

    def test_checkout_error_does_not_stop_the_loop(self, monkeypatch, sleeps):
        sweeper = _FlakySweeper([RetryExhaustedError("prod-001", 5)])
        monkeypatch.setattr(server, "_get_sweeper", lambda: sweeper)

        with pytest.raises(_Stop):
            asyncio.run(server.run(5.0))

        assert sweeper.runs == 3

    def test_failed_single_run_is_logged_not_raised(self, monkeypatch):
        sweeper = _FlakySweeper([ConnectionError("database unreachable")])
        monkeypatch.setattr(server, "_get_sweeper", lambda: sweeper)

        asyncio.run(server.run(0.0, once=True))

        assert sweeper.runs == 1
