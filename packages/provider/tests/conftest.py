"""Provider 包测试 fixtures"""

import random

import pytest
from mindgate.provider import (
    AnalysisRequest,
    AnalysisType,
    ConversationHistoryStore,
    RateLimiter,
    SimulatedProvider,
    UsageLedger,
)


@pytest.fixture
def simulated_provider() -> SimulatedProvider:
    """无延迟、无错误、不随机化的模拟 provider"""
    return SimulatedProvider(
        response_delay_s=0,
        error_rate=0,
        randomize=False,
        rng=random.Random(42),
    )


@pytest.fixture
def episode_request() -> AnalysisRequest:
    """标准 episode_analysis 请求"""
    return AnalysisRequest(
        content={"severity": 5, "triggers": ["work", "sleep"]},
        analysis_type=AnalysisType.EPISODE_ANALYSIS,
        user_id="user-1",
    )


@pytest.fixture
def rate_limiter(memory_store, fake_clock) -> RateLimiter:
    return RateLimiter(memory_store, requests_per_minute=60, tokens_per_minute=90000, clock=fake_clock)


@pytest.fixture
def ledger(memory_store, fake_clock) -> UsageLedger:
    return UsageLedger(memory_store, clock=fake_clock)


@pytest.fixture
def history(memory_store) -> ConversationHistoryStore:
    return ConversationHistoryStore(memory_store)
