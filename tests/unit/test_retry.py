import httpx
import pytest

from fedlink.errors import APIError, AuthenticationError
from fedlink.utils import retry
from fedlink.utils.retry import compute_backoff, with_retry


def test_compute_backoff_is_exponential():
    assert compute_backoff(0, base_delay=1.0) == 1.0
    assert compute_backoff(1, base_delay=1.0) == 2.0
    assert compute_backoff(3, base_delay=0.5) == 4.0


def test_compute_backoff_jitter_stays_in_range():
    for _ in range(20):
        delay = compute_backoff(1, base_delay=1.0, jitter=0.5)
        assert 2.0 <= delay <= 2.5


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []

    async def fake_schedule(attempt, base_delay=1.0, jitter=0.0):
        recorded.append(attempt)

    monkeypatch.setattr(retry, "schedule_retry", fake_schedule)
    return recorded


@pytest.mark.asyncio
async def test_retries_transient_errors_until_success(sleeps):
    attempts = []

    async def operation():
        attempts.append(1)
        if len(attempts) < 3:
            raise APIError("Service Unavailable", status=503)
        return "ok"

    assert await with_retry(operation, attempts=3) == "ok"
    assert len(attempts) == 3
    assert sleeps == [0, 1]


@pytest.mark.asyncio
async def test_reraises_last_error_when_attempts_exhausted(sleeps):
    calls = []

    async def operation():
        calls.append(1)
        raise APIError(f"busy {len(calls)}", status=429)

    with pytest.raises(APIError) as exc_info:
        await with_retry(operation, attempts=3)
    assert exc_info.value.message == "busy 3"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_non_transient_errors_are_not_retried(sleeps):
    calls = []

    async def operation():
        calls.append(1)
        raise AuthenticationError("Token expired", provider="microsoft")

    with pytest.raises(AuthenticationError):
        await with_retry(operation, attempts=3)
    assert len(calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_network_errors_are_retried(sleeps):
    calls = []

    async def operation():
        calls.append(1)
        if len(calls) == 1:
            raise httpx.ConnectError("connection refused")
        return 42

    assert await with_retry(operation, attempts=2) == 42
    assert sleeps == [0]
