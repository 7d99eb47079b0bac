"""Tests for the optional Redis connection."""

from __future__ import annotations

import pytest

from job_broker.infrastructure import redis_client


class TestOptionalRedis:
    @pytest.mark.asyncio
    async def test_unreachable_redis_falls_back(self) -> None:
        client = await redis_client.connect_optional("redis://127.0.0.1:1/0")

        assert client is None
        assert await redis_client.redis_status() == "disabled"

    @pytest.mark.asyncio
    async def test_close_without_client_is_a_no_op(self) -> None:
        await redis_client.close_redis()
        assert await redis_client.redis_status() == "disabled"
