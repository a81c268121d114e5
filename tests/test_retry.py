from __future__ import annotations

import pytest

from weatheragg.client.retry import (
    AttemptResult,
    Ok,
    ProtocolFailure,
    TransportFailure,
    WireResponse,
    run_with_retry,
)
from weatheragg.exceptions import ProtocolViolation, WeatherTransportError

OK = Ok(WireResponse(status=200, lamport_clock=3, body="{}"))


def _scripted(*results: AttemptResult):
    calls: list[int] = []
    queue = list(results)

    async def attempt(number: int) -> AttemptResult:
        calls.append(number)
        return queue.pop(0)

    return attempt, calls


@pytest.mark.asyncio
async def test_first_attempt_success_does_not_sleep(recording_sleep) -> None:
    attempt, calls = _scripted(OK)

    outcome = await run_with_retry(attempt, max_attempts=3, delay=1.0, sleep=recording_sleep)

    assert outcome.response.status == 200
    assert (outcome.attempts, outcome.reconnects) == (1, 0)
    assert calls == [1]
    assert recording_sleep.calls == []


@pytest.mark.asyncio
async def test_succeeds_on_third_attempt(recording_sleep) -> None:
    attempt, calls = _scripted(TransportFailure("refused"), TransportFailure("reset"), OK)

    outcome = await run_with_retry(attempt, max_attempts=3, delay=3.0, sleep=recording_sleep)

    assert (outcome.attempts, outcome.reconnects) == (3, 2)
    assert calls == [1, 2, 3]
    assert recording_sleep.calls == [3.0, 3.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts(recording_sleep) -> None:
    attempt, calls = _scripted(*(TransportFailure(f"refused {n}") for n in range(3)))

    with pytest.raises(WeatherTransportError) as excinfo:
        await run_with_retry(attempt, max_attempts=3, delay=1.0, sleep=recording_sleep)

    assert excinfo.value.attempts == 3
    assert "refused 2" in str(excinfo.value)
    assert calls == [1, 2, 3]
    assert recording_sleep.calls == [1.0, 1.0]


@pytest.mark.asyncio
async def test_protocol_failure_is_not_retried(recording_sleep) -> None:
    attempt, calls = _scripted(ProtocolFailure("garbage status line"), OK)

    with pytest.raises(ProtocolViolation):
        await run_with_retry(attempt, max_attempts=3, delay=1.0, sleep=recording_sleep)

    assert calls == [1]
    assert recording_sleep.calls == []


@pytest.mark.asyncio
async def test_rejects_zero_attempts(recording_sleep) -> None:
    attempt, _ = _scripted(OK)
    with pytest.raises(ValueError):
        await run_with_retry(attempt, max_attempts=0, delay=1.0, sleep=recording_sleep)
