"""Unit tests for the in-memory fixed-window rate limiter."""

from __future__ import annotations

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace
from typing import Any, Callable, Iterator
from unittest.mock import Mock

import pytest

from app.adapters.rate_limit.in_memory import (
    DEFAULT_MESSAGE,
    InMemoryFixedWindowRateLimiter,
    client_address_key,
)
from app.core.errors import ConfigurationAppError


def make_request(host: str | None = "127.0.0.1") -> SimpleNamespace:
    client = SimpleNamespace(host=host) if host is not None else None
    return SimpleNamespace(client=client, headers={})


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def make_limiter() -> Iterator[Callable[..., InMemoryFixedWindowRateLimiter]]:
    created: list[InMemoryFixedWindowRateLimiter] = []

    def factory(**kwargs: Any) -> InMemoryFixedWindowRateLimiter:
        limiter = InMemoryFixedWindowRateLimiter(**kwargs)
        created.append(limiter)
        return limiter

    yield factory
    for limiter in created:
        limiter.destroy()


@pytest.fixture
def clock() -> Mock:
    return Mock(return_value=1000.0)


@pytest.fixture
def limiter(make_limiter, clock: Mock) -> InMemoryFixedWindowRateLimiter:
    return make_limiter(window_ms=1000, max_requests=3, clock=clock)


class TestConstruction:
    def test_defaults(self, make_limiter) -> None:
        limiter = make_limiter()

        assert limiter.window_ms == 60_000
        assert limiter.max_requests == 100
        assert limiter.status_code == 429
        assert limiter.message == DEFAULT_MESSAGE == "Too many requests, please try again later"
        assert limiter.sweeper_running is True

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"window_ms": 0},
            {"window_ms": -5},
            {"max_requests": 0},
            {"status_code": 200},
        ],
    )
    def test_invalid_config_fails_fast(self, kwargs: dict) -> None:
        with pytest.raises(ConfigurationAppError) as exc_info:
            InMemoryFixedWindowRateLimiter(**kwargs)

        assert exc_info.value.code == "invalid_rate_limit_config"


class TestDefaultKeyGenerator:
    def test_uses_client_host(self) -> None:
        assert client_address_key(make_request("192.168.1.1")) == "192.168.1.1"

    def test_unknown_when_client_missing(self) -> None:
        assert client_address_key(make_request(None)) == "unknown"
        assert client_address_key(SimpleNamespace()) == "unknown"
        assert client_address_key(make_request("")) == "unknown"


class TestCheck:
    @pytest.mark.asyncio
    async def test_allows_up_to_limit_with_decreasing_remaining(self, limiter) -> None:
        request = make_request()

        remaining = []
        for _ in range(3):
            decision = await limiter.check(request)
            assert decision.allowed is True
            remaining.append(decision.remaining)

        assert remaining == [2, 1, 0]

    @pytest.mark.asyncio
    async def test_denies_request_over_limit(self, limiter) -> None:
        request = make_request()
        for _ in range(3):
            await limiter.check(request)

        denied = await limiter.check(request)

        assert denied.allowed is False
        assert denied.remaining == 0
        assert denied.status_code == 429
        assert denied.retry_after_seconds == 1
        assert denied.body() == {"error": DEFAULT_MESSAGE, "retryAfter": 1}

    @pytest.mark.asyncio
    async def test_denial_is_repeatable(self, limiter, clock: Mock) -> None:
        request = make_request()
        for _ in range(4):
            await limiter.check(request)

        clock.return_value = 1000.4
        again = await limiter.check(request)

        assert again.allowed is False
        assert again.body() == {"error": DEFAULT_MESSAGE, "retryAfter": 1}

    @pytest.mark.asyncio
    async def test_new_window_after_expiry(self, limiter, clock: Mock) -> None:
        request = make_request()
        for _ in range(4):
            await limiter.check(request)

        clock.return_value = 1001.1
        decision = await limiter.check(request)

        assert decision.allowed is True
        assert decision.remaining == 2
        assert decision.reset_at == 1003  # ceil(1001.1 + 1.0)

    @pytest.mark.asyncio
    async def test_request_exactly_at_reset_time_counts_in_old_window(self, limiter, clock: Mock) -> None:
        request = make_request()
        for _ in range(3):
            await limiter.check(request)

        clock.return_value = 1001.0
        decision = await limiter.check(request)

        assert decision.allowed is False
        assert decision.retry_after_seconds == 0

    @pytest.mark.asyncio
    async def test_headers_report_quota(self, limiter) -> None:
        decision = await limiter.check(make_request())

        assert decision.headers() == {
            "X-RateLimit-Limit": "3",
            "X-RateLimit-Remaining": "2",
            "X-RateLimit-Reset": "1001",
        }

    @pytest.mark.asyncio
    async def test_keys_are_isolated(self, limiter) -> None:
        first = make_request("10.0.0.1")
        second = make_request("10.0.0.2")
        for _ in range(4):
            await limiter.check(first)

        decision = await limiter.check(second)

        assert decision.allowed is True
        assert decision.remaining == 2

    @pytest.mark.asyncio
    async def test_skip_bypasses_counting(self, make_limiter, clock: Mock) -> None:
        limiter = make_limiter(window_ms=1000, max_requests=1, clock=clock, skip=lambda req: True)

        for _ in range(5):
            decision = await limiter.check(make_request())
            assert decision.allowed is True
            assert decision.skipped is True
            assert decision.headers() == {}

        assert len(limiter) == 0

    @pytest.mark.asyncio
    async def test_async_hooks_are_awaited(self, make_limiter, clock: Mock) -> None:
        async def key_generator(request: Any) -> str:
            await asyncio.sleep(0)
            return request.headers["x-user"]

        async def skip(request: Any) -> bool:
            await asyncio.sleep(0)
            return request.headers.get("x-internal") == "1"

        limiter = make_limiter(
            window_ms=1000, max_requests=1, clock=clock, key_generator=key_generator, skip=skip
        )

        assert (await limiter.check(SimpleNamespace(headers={"x-user": "alice"}))).allowed is True
        assert (await limiter.check(SimpleNamespace(headers={"x-user": "alice"}))).allowed is False
        assert (await limiter.check(SimpleNamespace(headers={"x-user": "alice", "x-internal": "1"}))).skipped
        assert "alice" in limiter

    @pytest.mark.asyncio
    async def test_empty_key_counts_as_unknown(self, make_limiter, clock: Mock) -> None:
        limiter = make_limiter(window_ms=1000, max_requests=1, clock=clock, key_generator=lambda req: "")

        first = await limiter.check(make_request())
        second = await limiter.check(make_request())

        assert first.allowed is True
        assert second.allowed is False
        assert "unknown" in limiter
        assert "" not in limiter

    @pytest.mark.asyncio
    async def test_key_generator_failure_propagates(self, make_limiter) -> None:
        def broken(request: Any) -> str:
            raise RuntimeError("lookup failed")

        limiter = make_limiter(key_generator=broken)

        with pytest.raises(RuntimeError, match="lookup failed"):
            await limiter.check(make_request())
        assert len(limiter) == 0

    @pytest.mark.asyncio
    async def test_skip_failure_propagates(self, make_limiter) -> None:
        async def broken(request: Any) -> bool:
            raise ConnectionError("allowlist unavailable")

        limiter = make_limiter(skip=broken)

        with pytest.raises(ConnectionError):
            await limiter.check(make_request())


class TestLimitReachedHook:
    @pytest.mark.asyncio
    async def test_called_only_on_denial(self, make_limiter, clock: Mock) -> None:
        hook = Mock()
        limiter = make_limiter(window_ms=1000, max_requests=2, clock=clock, on_limit_reached=hook)
        request = make_request("10.1.1.1")

        await limiter.check(request)
        await limiter.check(request)
        hook.assert_not_called()

        await limiter.check(request)
        await limiter.check(request)

        assert hook.call_count == 2
        hook.assert_called_with(request, "10.1.1.1")

    @pytest.mark.asyncio
    async def test_async_hook_is_awaited(self, make_limiter, clock: Mock) -> None:
        seen: list[str] = []

        async def hook(request: Any, key: str) -> None:
            await asyncio.sleep(0)
            seen.append(key)

        limiter = make_limiter(window_ms=1000, max_requests=1, clock=clock, on_limit_reached=hook)
        await limiter.check(make_request("k"))
        await limiter.check(make_request("k"))

        assert seen == ["k"]

    @pytest.mark.asyncio
    async def test_failing_hook_does_not_change_decision(self, make_limiter, clock: Mock, caplog) -> None:
        def hook(request: Any, key: str) -> None:
            raise RuntimeError("metrics backend down")

        limiter = make_limiter(window_ms=1000, max_requests=1, clock=clock, on_limit_reached=hook)
        await limiter.check(make_request())

        with caplog.at_level(logging.ERROR, logger="app.adapters.rate_limit.in_memory"):
            decision = await limiter.check(make_request())

        assert decision.allowed is False
        assert decision.status_code == 429
        assert any(record.getMessage() == "rate_limit.hook_failed" for record in caplog.records)


class TestReset:
    @pytest.mark.asyncio
    async def test_reset_key_behaves_like_first_request(self, limiter) -> None:
        request = make_request("192.168.1.1")
        first = await limiter.check(request)
        for _ in range(3):
            await limiter.check(request)

        limiter.reset("192.168.1.1")
        assert "192.168.1.1" not in limiter

        after_reset = await limiter.check(request)
        assert after_reset == first

    def test_reset_missing_key_is_noop(self, limiter) -> None:
        limiter.reset("never-seen")

    @pytest.mark.asyncio
    async def test_reset_all_clears_every_key(self, limiter) -> None:
        await limiter.check(make_request("1.1.1.1"))
        await limiter.check(make_request("2.2.2.2"))
        assert len(limiter) == 2

        limiter.reset_all()

        assert len(limiter) == 0

    def test_consume_rejects_empty_key(self, limiter) -> None:
        with pytest.raises(ValueError):
            limiter.consume("")


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_simultaneous_checks_admit_exactly_max(self, make_limiter, clock: Mock) -> None:
        async def key_generator(request: Any) -> str:
            await asyncio.sleep(0)
            return "shared"

        limiter = make_limiter(window_ms=1000, max_requests=10, clock=clock, key_generator=key_generator)

        decisions = await asyncio.gather(*(limiter.check(make_request()) for _ in range(20)))

        assert sum(d.allowed for d in decisions) == 10
        assert sum(not d.allowed for d in decisions) == 10

    def test_threads_admit_exactly_max(self, make_limiter) -> None:
        limiter = make_limiter(window_ms=60_000, max_requests=50)

        with ThreadPoolExecutor(max_workers=8) as pool:
            decisions = list(pool.map(lambda _: limiter.consume("shared"), range(100)))

        assert sum(d.allowed for d in decisions) == 50
        assert sorted(d.remaining for d in decisions if d.allowed) == list(range(50))

    def test_threads_on_distinct_keys_do_not_interfere(self, make_limiter) -> None:
        limiter = make_limiter(window_ms=60_000, max_requests=5)
        keys = [f"client-{i % 10}" for i in range(50)]

        with ThreadPoolExecutor(max_workers=8) as pool:
            decisions = list(pool.map(limiter.consume, keys))

        assert all(d.allowed for d in decisions)
        assert len(limiter) == 10


class TestSweep:
    def test_sweep_evicts_only_expired_records(self, limiter, clock: Mock) -> None:
        limiter.consume("old")
        clock.return_value = 1000.5
        limiter.consume("fresh")

        clock.return_value = 1001.2
        evicted = limiter.sweep()

        assert evicted == 1
        assert "old" not in limiter
        assert "fresh" in limiter

    def test_background_sweeper_evicts_expired_records(self, make_limiter, clock: Mock) -> None:
        limiter = make_limiter(window_ms=20, max_requests=5, clock=clock)
        limiter.consume("scanner")
        assert "scanner" in limiter

        clock.return_value = 1001.0

        assert wait_until(lambda: len(limiter) == 0)
        assert limiter.stats()["evictions"] >= 1

    def test_destroy_stops_sweeper_and_clears_store(self, make_limiter, clock: Mock) -> None:
        limiter = make_limiter(window_ms=20, max_requests=5, clock=clock)
        limiter.consume("a")

        limiter.destroy()

        assert limiter.sweeper_running is False
        assert len(limiter) == 0

        limiter.consume("b")
        sweeps_after_destroy = limiter.stats()["sweeps"]
        clock.return_value = 2000.0
        time.sleep(0.1)

        assert "b" in limiter
        assert limiter.stats()["sweeps"] == sweeps_after_destroy

    def test_destroy_is_idempotent(self, make_limiter) -> None:
        limiter = make_limiter()
        limiter.destroy()
        limiter.destroy()

        assert limiter.sweeper_running is False


def test_stats_track_denials(limiter) -> None:
    for _ in range(5):
        limiter.consume("k")

    stats = limiter.stats()

    assert stats["keys"] == 1
    assert stats["denials"] == 2
    assert stats["max_requests"] == 3
    assert stats["window_ms"] == 1000
    assert stats["sweeper_running"] is True
