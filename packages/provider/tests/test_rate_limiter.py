"""RateLimiter 单元测试 -- 固定窗口请求数 / token 数配额"""

import pytest
from mindgate.provider import RateLimiter, RateLimitExceeded, TokenUsage


class TestCheck:
    """调用前配额检查"""

    async def test_under_quota_passes(self, rate_limiter):
        await rate_limiter.check("openai", "short prompt")

    async def test_request_quota_exhausted(self, memory_store, fake_clock):
        """配额 2 rpm，第 3 次检查被拒，wait_hint 为到下一分钟的秒数"""
        limiter = RateLimiter(memory_store, requests_per_minute=2, clock=fake_clock)
        for _ in range(2):
            await limiter.check("openai", "hi")
            await limiter.record("openai", TokenUsage(total_tokens=10))

        with pytest.raises(RateLimitExceeded) as exc_info:
            await limiter.check("openai", "hi")
        # 假时钟位于第 10 秒
        assert exc_info.value.wait_hint == 50.0
        assert exc_info.value.code == "rate_limited"

    async def test_token_quota_uses_estimate(self, memory_store, fake_clock):
        limiter = RateLimiter(memory_store, tokens_per_minute=100, clock=fake_clock)
        await limiter.record("openai", TokenUsage(total_tokens=90))

        # 20 字符 -> 预估 15 token，90 + 15 > 100
        with pytest.raises(RateLimitExceeded):
            await limiter.check("openai", "x" * 20)
        # 12 字符 -> 预估 9 token，恰好 99
        await limiter.check("openai", "x" * 12)

    async def test_window_rolls_over(self, memory_store, fake_clock):
        limiter = RateLimiter(memory_store, requests_per_minute=1, clock=fake_clock)
        await limiter.record("openai", TokenUsage())
        with pytest.raises(RateLimitExceeded):
            await limiter.check("openai", "")

        fake_clock.advance(50)
        await limiter.check("openai", "")

    async def test_scopes_are_independent(self, memory_store, fake_clock):
        limiter = RateLimiter(memory_store, requests_per_minute=1, clock=fake_clock)
        await limiter.record("openai", TokenUsage())
        await limiter.check("simulated", "")


class TestRecordAndStatus:
    async def test_status_reflects_usage(self, rate_limiter):
        await rate_limiter.record("openai", TokenUsage(prompt_tokens=300, completion_tokens=200, total_tokens=500))
        await rate_limiter.record("openai", TokenUsage(total_tokens=100))

        status = await rate_limiter.status("openai")
        assert status.limit == 60
        assert status.remaining == 58
        assert status.reset == 50
        assert status.token_limit == 90000
        assert status.tokens_remaining == 89400

    async def test_status_fresh_window(self, rate_limiter):
        status = await rate_limiter.status("openai")
        assert status.remaining == 60
        assert status.tokens_remaining == 90000

    async def test_remaining_never_negative(self, memory_store, fake_clock):
        limiter = RateLimiter(memory_store, requests_per_minute=1, clock=fake_clock)
        for _ in range(3):
            await limiter.record("openai", TokenUsage())
        status = await limiter.status("openai")
        assert status.remaining == 0

    async def test_bucket_keys_expire(self, memory_store, rate_limiter, fake_clock):
        await rate_limiter.record("openai", TokenUsage(total_tokens=5))
        assert await memory_store.keys("ratelimit:openai:") != []

        fake_clock.advance(121)
        assert await memory_store.keys("ratelimit:openai:") == []

    def test_estimate_tokens(self):
        assert RateLimiter.estimate_tokens("a" * 100) == 75
        assert RateLimiter.estimate_tokens("") == 0
