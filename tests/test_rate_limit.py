"""Tests for the Redis sliding-window rate limiter."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from fastapi import FastAPI
from redis.exceptions import ConnectionError as RedisConnectionError

from gembid.middleware.rate_limit import RateLimitMiddleware


def _app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, user_limit=2, ip_limit=5)

    @app.get("/api/v1/ping")
    async def ping():
        return {"ok": True}

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


async def _get(app: FastAPI, path: str, **kwargs) -> httpx.Response:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.get(path, **kwargs)


class TestRateLimitMiddleware:
    """Test per-IP and per-bidder limits."""

    @pytest.mark.asyncio
    async def test_allowed_request_passes(self, mock_redis):
        script = AsyncMock(return_value=[1, 0])
        mock_redis.register_script = MagicMock(return_value=script)

        with patch("gembid.middleware.rate_limit.get_redis", AsyncMock(return_value=mock_redis)):
            response = await _get(_app(), "/api/v1/ping")

        assert response.status_code == 200
        assert script.await_args.kwargs["keys"][0].startswith("ratelimit:ip:")

    @pytest.mark.asyncio
    async def test_ip_limit_exceeded(self, mock_redis):
        mock_redis.register_script = MagicMock(return_value=AsyncMock(return_value=[0, 3]))

        with patch("gembid.middleware.rate_limit.get_redis", AsyncMock(return_value=mock_redis)):
            response = await _get(_app(), "/api/v1/ping")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "3"

    @pytest.mark.asyncio
    async def test_bidder_limit_checked_with_header(self, mock_redis):
        script = AsyncMock(side_effect=[[1, 0], [0, 1]])
        mock_redis.register_script = MagicMock(return_value=script)

        with patch("gembid.middleware.rate_limit.get_redis", AsyncMock(return_value=mock_redis)):
            response = await _get(_app(), "/api/v1/ping", headers={"X-Bidder-Id": "b-1"})

        assert response.status_code == 429
        assert script.await_args.kwargs["keys"] == ["ratelimit:bidder:b-1"]
        assert script.await_args.kwargs["args"][2] == 2

    @pytest.mark.asyncio
    async def test_non_api_paths_not_limited(self, mock_redis):
        get_redis = AsyncMock(return_value=mock_redis)

        with patch("gembid.middleware.rate_limit.get_redis", get_redis):
            response = await _get(_app(), "/health")

        assert response.status_code == 200
        get_redis.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redis_down_fails_open(self, mock_redis):
        mock_redis.register_script = MagicMock(
            return_value=AsyncMock(side_effect=RedisConnectionError("refused"))
        )

        with patch("gembid.middleware.rate_limit.get_redis", AsyncMock(return_value=mock_redis)):
            response = await _get(_app(), "/api/v1/ping")

        assert response.status_code == 200
