"""
Tests for DistributedLock.

Redis is replaced by the ``mock_redis`` fixture; these tests pin down the
commands the lock issues and how it tracks ownership.
"""

import pytest

from payments.exceptions import LockAcquisitionError
from payments.locks import DistributedLock


class TestAcquire:
    def test_sets_prefixed_key_with_nx_and_ttl(self, mock_redis):
        lock = DistributedLock("payments:backfill", ttl=600, blocking=False)

        assert lock.acquire() is True

        args, kwargs = mock_redis.set.call_args
        assert args[0] == "lock:payments:backfill"
        assert kwargs == {"nx": True, "ex": 600}
        assert lock.is_held is True

    def test_each_acquisition_uses_its_own_token(self, mock_redis):
        first = DistributedLock("a", blocking=False)
        second = DistributedLock("b", blocking=False)

        first.acquire()
        second.acquire()

        assert first._token != second._token

    def test_non_blocking_raises_when_held_elsewhere(self, mock_redis):
        mock_redis.set.return_value = False
        lock = DistributedLock("payout:123", blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "already held" in exc_info.value.message
        assert exc_info.value.details == {"key": "lock:payout:123"}
        assert lock.is_held is False

    def test_blocking_polls_until_free(self, mock_redis):
        mock_redis.set.side_effect = [False, False, True]
        lock = DistributedLock("payout:123", blocking=True, timeout=2.0)

        assert lock.acquire() is True
        assert mock_redis.set.call_count == 3

    def test_blocking_gives_up_after_timeout(self, mock_redis):
        mock_redis.set.return_value = False
        lock = DistributedLock("payout:123", blocking=True, timeout=0.1)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert exc_info.value.error_code == "LOCK_ACQUISITION_FAILED"
        assert exc_info.value.details["timeout"] == 0.1
        assert lock.is_held is False


class TestReleaseAndExtend:
    def test_release_runs_owner_checked_script(self, mock_redis):
        lock = DistributedLock("k", blocking=False)
        lock.acquire()
        token = lock._token

        assert lock.release() is True

        script, num_keys, key, sent_token = mock_redis.eval.call_args[0]
        assert script == DistributedLock.RELEASE_SCRIPT
        assert (num_keys, key, sent_token) == (1, "lock:k", token)
        assert lock.is_held is False

    def test_release_reports_lost_ownership(self, mock_redis):
        mock_redis.eval.return_value = 0
        lock = DistributedLock("k", blocking=False)
        lock.acquire()

        assert lock.release() is False

    def test_release_without_acquire_is_noop(self, mock_redis):
        lock = DistributedLock("k", blocking=False)

        assert lock.release() is False
        mock_redis.eval.assert_not_called()

    def test_extend_defaults_to_original_ttl(self, mock_redis):
        lock = DistributedLock("k", ttl=45, blocking=False)
        lock.acquire()

        assert lock.extend() is True
        assert mock_redis.eval.call_args[0][4] == 45

    def test_extend_with_custom_ttl(self, mock_redis):
        lock = DistributedLock("k", ttl=45, blocking=False)
        lock.acquire()

        lock.extend(additional_ttl=120)

        assert mock_redis.eval.call_args[0][0] == DistributedLock.EXTEND_SCRIPT
        assert mock_redis.eval.call_args[0][4] == 120

    def test_extend_without_lock_returns_false(self, mock_redis):
        assert DistributedLock("k").extend() is False
        mock_redis.eval.assert_not_called()


class TestContextManager:
    def test_acquires_and_releases(self, mock_redis):
        with DistributedLock("k", blocking=False) as lock:
            assert lock.is_held is True

        assert lock.is_held is False
        mock_redis.set.assert_called_once()
        mock_redis.eval.assert_called_once()

    def test_releases_and_propagates_on_error(self, mock_redis):
        with pytest.raises(ValueError, match="boom"):
            with DistributedLock("k", blocking=False):
                raise ValueError("boom")

        mock_redis.eval.assert_called_once()

    def test_body_skipped_when_lock_unavailable(self, mock_redis):
        mock_redis.set.return_value = False
        ran = False

        with pytest.raises(LockAcquisitionError):
            with DistributedLock("k", blocking=False):
                ran = True

        assert ran is False
        mock_redis.eval.assert_not_called()
