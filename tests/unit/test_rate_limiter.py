"""Tests for the fixed-delay request pacer."""

import pytest

from repo_harvester.utils.rate_limiter import RequestPacer


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def pacer(sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return RequestPacer(1.0, name="test", sleep=fake_sleep)


@pytest.mark.asyncio
async def test_first_request_does_not_wait(pacer, sleeps):
    await pacer.acquire()
    assert sleeps == []
    assert pacer.requests == 1


@pytest.mark.asyncio
async def test_every_later_request_waits_full_delay(pacer, sleeps):
    for _ in range(4):
        await pacer.acquire()
    assert sleeps == [1.0, 1.0, 1.0]
    assert pacer.total_wait_seconds == 3.0


@pytest.mark.asyncio
async def test_pause_uses_override(pacer, sleeps):
    await pacer.pause(0.2)
    await pacer.pause()
    assert sleeps == [0.2, 1.0]


@pytest.mark.asyncio
async def test_reset_treats_next_request_as_first(pacer, sleeps):
    await pacer.acquire()
    pacer.reset()
    await pacer.acquire()
    assert sleeps == []


def test_negative_delay_rejected():
    with pytest.raises(ValueError):
        RequestPacer(-1)
