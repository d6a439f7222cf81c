"""Tests for the coordinated run."""

from unittest.mock import patch

import pytest

from all_sites_cron.coordination.errors import LockedError, RateLimitedError, StateStoreError
from conftest import LOCK_NAME, MARKER_KEY


class TestExecute:
    """Test a full admitted run."""

    def test_successful_run(self, orchestrator, store, trigger):
        result = orchestrator.execute(now=1000)

        assert result.success is True
        assert result.count == 3
        assert result.message == ""
        assert trigger.fire.call_count == 3
        assert store.values[MARKER_KEY] == 1000
        assert LOCK_NAME not in store.values

    def test_second_run_within_cooldown_is_rate_limited(self, orchestrator, store, trigger):
        orchestrator.execute(now=1000)

        with pytest.raises(RateLimitedError) as exc_info:
            orchestrator.execute(now=1010)

        assert exc_info.value.retry_after == 50
        assert trigger.fire.call_count == 3
        assert LOCK_NAME not in store.values

    def test_run_after_cooldown(self, orchestrator, trigger):
        orchestrator.execute(now=1000)
        result = orchestrator.execute(now=1060)

        assert result.success is True
        assert trigger.fire.call_count == 6

    def test_rate_limit_can_be_skipped(self, orchestrator, trigger):
        orchestrator.execute(now=1000)
        result = orchestrator.execute(now=1001, check_rate_limit=False)

        assert result.success is True
        assert trigger.fire.call_count == 6

    def test_locked_run_changes_nothing(self, orchestrator, store, trigger):
        """A run refused by the lock writes no marker and keeps the holder's lock."""
        store.values[LOCK_NAME] = {"acquired_at": 990, "ttl": 300, "owner": "other:1"}

        with pytest.raises(LockedError):
            orchestrator.execute(now=1000)

        assert store.values[LOCK_NAME]["owner"] == "other:1"
        assert MARKER_KEY not in store.values
        trigger.fire.assert_not_called()

    def test_stale_lock_does_not_block(self, orchestrator, store):
        store.values[LOCK_NAME] = {"acquired_at": 100, "ttl": 300, "owner": "dead:1"}

        result = orchestrator.execute(now=1000)

        assert result.success is True
        assert LOCK_NAME not in store.values

    def test_failed_dispatch_still_marks_and_releases(self, orchestrator, store, site_lister):
        site_lister.sites = []

        result = orchestrator.execute(now=1000)

        assert result.success is False
        assert store.values[MARKER_KEY] == 1000
        assert LOCK_NAME not in store.values


class TestFaultContainment:
    """Test that nothing escapes a run with the lock held."""

    def test_dispatcher_exception_becomes_failed_result(self, orchestrator, store):
        with patch.object(orchestrator.dispatcher, "run", side_effect=RuntimeError("catalog exploded")):
            result = orchestrator.execute(now=1000)

        assert result.success is False
        assert "catalog exploded" in result.message
        assert LOCK_NAME not in store.values
        assert store.values[MARKER_KEY] == 1000

    def test_lister_exception_releases_lock(self, orchestrator, store, site_lister):
        with patch.object(site_lister, "list_sites", side_effect=ConnectionError("db down")):
            result = orchestrator.execute(now=1000)

        assert result.success is False
        assert LOCK_NAME not in store.values

    def test_next_run_admitted_after_fault(self, orchestrator):
        with patch.object(orchestrator.dispatcher, "run", side_effect=RuntimeError("boom")):
            orchestrator.execute(now=1000)

        result = orchestrator.execute(now=1060)
        assert result.success is True

    def test_release_failure_is_logged_not_raised(self, orchestrator):
        with patch.object(orchestrator.lock_manager, "release", side_effect=RuntimeError("gone")):
            result = orchestrator.execute(now=1000)

        assert result.success is True


class TestAdmitAcknowledge:
    """Test the split admit / acknowledge path used for queued runs."""

    def test_admit_holds_lock(self, orchestrator, store):
        now = orchestrator.admit(now=1000)

        assert now == 1000
        assert store.values[LOCK_NAME]["acquired_at"] == 1000

    def test_acknowledge_marks_and_releases(self, orchestrator, store, trigger):
        orchestrator.admit(now=1000)
        orchestrator.acknowledge(now=1000)

        assert LOCK_NAME not in store.values
        assert store.values[MARKER_KEY] == 1000
        trigger.fire.assert_not_called()

    def test_rate_limited_admit_releases_lock(self, orchestrator, store):
        store.values[MARKER_KEY] = 990

        with pytest.raises(RateLimitedError):
            orchestrator.admit(now=1000)

        assert LOCK_NAME not in store.values
        assert store.values[MARKER_KEY] == 990


class TestAdmissionFailure:
    """Test that the lock is released when admission fails after taking it."""

    def _failing_marker_read(self, store):
        original_get = store.get

        def get(key):
            if key == MARKER_KEY:
                raise StateStoreError("State store get failed: Timeout reading from socket")
            return original_get(key)
        return get

    def test_marker_read_failure_releases_lock(self, orchestrator, store, trigger):
        with patch.object(store, "get", side_effect=self._failing_marker_read(store)):
            with pytest.raises(StateStoreError):
                orchestrator.execute(now=1000)

        assert LOCK_NAME not in store.values
        trigger.fire.assert_not_called()

    def test_next_run_admitted_after_marker_read_failure(self, orchestrator, store):
        with patch.object(store, "get", side_effect=self._failing_marker_read(store)):
            with pytest.raises(StateStoreError):
                orchestrator.execute(now=1000)

        result = orchestrator.execute(now=1010)

        assert result.success is True

    def test_corrupt_marker_releases_lock(self, orchestrator, store):
        store.values[MARKER_KEY] = "not-a-timestamp"

        with pytest.raises(ValueError):
            orchestrator.admit(now=1000)

        assert LOCK_NAME not in store.values

    def test_abort_releases_without_marker(self, orchestrator, store, trigger):
        orchestrator.admit(now=1000)
        orchestrator.abort()

        assert LOCK_NAME not in store.values
        assert MARKER_KEY not in store.values
        trigger.fire.assert_not_called()
