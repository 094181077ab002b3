"""Tests for per-auction locking.

Covers the in-process lock table used by a single worker and the Redis
lock (SET NX EX with owner-checked release) shared across replicas.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from gembid.core.exceptions import LockTimeoutError
from gembid.core.locks import LocalAuctionLocks, RedisAuctionLocks
from gembid.services.redis_service import RedisService


class TestLocalAuctionLocks:
    """Test the in-process lock table."""

    @pytest.mark.asyncio
    async def test_serializes_same_auction(self, locks):
        """Critical sections for one auction never overlap."""
        auction_id = uuid4()
        inside = 0
        overlaps = 0

        async def worker():
            nonlocal inside, overlaps
            async with locks.hold(auction_id, timeout=1):
                inside += 1
                if inside > 1:
                    overlaps += 1
                await asyncio.sleep(0.01)
                inside -= 1

        await asyncio.gather(*(worker() for _ in range(5)))

        assert overlaps == 0

    @pytest.mark.asyncio
    async def test_timeout_raises(self, locks):
        auction_id = uuid4()

        async with locks.hold(auction_id, timeout=1):
            with pytest.raises(LockTimeoutError) as exc_info:
                async with locks.hold(auction_id, timeout=0.05):
                    pass

        assert exc_info.value.auction_id == auction_id

    @pytest.mark.asyncio
    async def test_lock_entries_pruned_after_release(self, locks):
        auction_id = uuid4()

        async with locks.hold(auction_id, timeout=1):
            assert len(locks) == 1

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_pruned_after_timeout(self, locks):
        auction_id = uuid4()

        async with locks.hold(auction_id, timeout=1):
            with pytest.raises(LockTimeoutError):
                async with locks.hold(auction_id, timeout=0.01):
                    pass

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_auctions_do_not_contend(self):
        locks = LocalAuctionLocks()

        async with locks.hold(uuid4(), timeout=1):
            async with locks.hold(uuid4(), timeout=0.05):
                assert len(locks) == 2


class TestRedisService:
    """Test Redis lock primitives."""

    @pytest.mark.asyncio
    async def test_acquire_lock_uses_set_nx_ex(self, mock_redis):
        service = RedisService(mock_redis)
        auction_id = str(uuid4())

        acquired, owner_id = await service.acquire_lock(auction_id, "owner-1", ttl=5)

        assert acquired is True
        assert owner_id == "owner-1"
        mock_redis.set.assert_called_once_with(
            f"lock:auction:{auction_id}", "owner-1", nx=True, ex=5
        )

    @pytest.mark.asyncio
    async def test_acquire_lock_held_elsewhere(self, mock_redis):
        mock_redis.set = AsyncMock(return_value=None)
        service = RedisService(mock_redis)

        acquired, owner_id = await service.acquire_lock(str(uuid4()))

        assert acquired is False
        assert owner_id

    @pytest.mark.asyncio
    async def test_release_lock_checks_owner(self, mock_redis):
        mock_script = AsyncMock(return_value=1)
        mock_redis.register_script = MagicMock(return_value=mock_script)
        service = RedisService(mock_redis)
        auction_id = str(uuid4())

        released = await service.release_lock(auction_id, "owner-1")

        assert released is True
        mock_script.assert_called_once_with(
            keys=[f"lock:auction:{auction_id}"], args=["owner-1"]
        )

    @pytest.mark.asyncio
    async def test_release_lock_not_owner(self, mock_redis):
        mock_redis.register_script = MagicMock(return_value=AsyncMock(return_value=0))
        service = RedisService(mock_redis)

        assert await service.release_lock(str(uuid4()), "someone-else") is False

    @pytest.mark.asyncio
    async def test_release_script_registered_once(self, mock_redis):
        service = RedisService(mock_redis)

        await service.release_lock("a", "owner")
        await service.release_lock("b", "owner")

        mock_redis.register_script.assert_called_once()


class TestRedisAuctionLocks:
    """Test the polling Redis lock wrapper."""

    @pytest.mark.asyncio
    async def test_polls_until_acquired(self):
        redis_service = MagicMock()
        redis_service.acquire_lock = AsyncMock(
            side_effect=[(False, "x"), (False, "x"), (True, "x")]
        )
        redis_service.release_lock = AsyncMock(return_value=True)
        locks = RedisAuctionLocks(redis_service, ttl=5, poll_interval=0.001)
        auction_id = uuid4()

        async with locks.hold(auction_id, timeout=1):
            pass

        assert redis_service.acquire_lock.await_count == 3
        key, owner_id = redis_service.release_lock.await_args.args
        assert key == str(auction_id)
        assert redis_service.acquire_lock.await_args.args == (key, owner_id)

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        redis_service = MagicMock()
        redis_service.acquire_lock = AsyncMock(return_value=(False, "x"))
        redis_service.release_lock = AsyncMock(return_value=True)
        locks = RedisAuctionLocks(redis_service, poll_interval=0.001)

        with pytest.raises(LockTimeoutError):
            async with locks.hold(uuid4(), timeout=0.02):
                pass

        redis_service.release_lock.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_releases_on_error(self):
        redis_service = MagicMock()
        redis_service.acquire_lock = AsyncMock(return_value=(True, "x"))
        redis_service.release_lock = AsyncMock(return_value=True)
        locks = RedisAuctionLocks(redis_service)

        with pytest.raises(RuntimeError):
            async with locks.hold(uuid4(), timeout=1):
                raise RuntimeError("boom")

        redis_service.release_lock.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_expired_lock_logs_warning(self, caplog):
        redis_service = MagicMock()
        redis_service.acquire_lock = AsyncMock(return_value=(True, "x"))
        redis_service.release_lock = AsyncMock(return_value=False)
        locks = RedisAuctionLocks(redis_service)

        with caplog.at_level("WARNING", logger="gembid.core.locks"):
            async with locks.hold(uuid4(), timeout=1):
                pass

        assert "expired before release" in caplog.text
