from datetime import timedelta

import pytest

from apexsync.storage.mapper import PROBE_MEASUREMENT
from apexsync.sync.chunked_query import ChunkedQueryHelper

from .fakes import NOW, FakePointStore, fixed_clock, make_settings


def probe_line(moment) -> str:
    ns = int(moment.timestamp()) * 1_000_000_000
    return f"apex_probe,host=TestApex,name=Temp,probe_type=Temp value=78.5 {ns}"


def make_helper(store, **overrides):
    return ChunkedQueryHelper(store, make_settings(**overrides), clock=fixed_clock())


def test_chunk_ranges_most_recent_first():
    helper = make_helper(FakePointStore())
    ranges = helper.chunk_ranges(NOW)

    assert len(ranges) == 13
    assert ranges[0] == (NOW - timedelta(days=7), NOW)
    assert ranges[1] == (NOW - timedelta(days=14), NOW - timedelta(days=7))
    # Last chunk is clipped to the lookback
    assert ranges[-1] == (NOW - timedelta(days=90), NOW - timedelta(days=84))


@pytest.mark.asyncio
async def test_unbounded_query_used_when_accepted():
    store = FakePointStore()
    store.insert_line(probe_line(NOW - timedelta(days=45)))

    found = await make_helper(store).newest_time(PROBE_MEASUREMENT)

    assert found == NOW - timedelta(days=45)
    assert len(store.query_calls) == 1


@pytest.mark.asyncio
async def test_newest_found_in_chunk_under_scan_ceiling():
    store = FakePointStore(ceiling_days=30)
    store.insert_line(probe_line(NOW - timedelta(days=45)))
    store.insert_line(probe_line(NOW - timedelta(days=50)))

    found = await make_helper(store).newest_time(PROBE_MEASUREMENT)

    assert found == NOW - timedelta(days=45)
    # Unbounded attempt, then chunks 1..7 (day 45 lies in (42, 49])
    assert len(store.query_calls) == 8
    assert store.query_calls[0][1] is None


@pytest.mark.asyncio
async def test_oldest_searches_from_far_end():
    store = FakePointStore(ceiling_days=30)
    store.insert_line(probe_line(NOW - timedelta(days=45)))
    store.insert_line(probe_line(NOW - timedelta(days=50)))

    found = await make_helper(store).oldest_time(PROBE_MEASUREMENT)

    assert found == NOW - timedelta(days=50)
    first_chunk = store.query_calls[1]
    assert first_chunk[1] == NOW - timedelta(days=90)
    assert first_chunk[3] is False


@pytest.mark.asyncio
async def test_data_beyond_lookback_is_invisible():
    store = FakePointStore(ceiling_days=30)
    store.insert_line(probe_line(NOW - timedelta(days=120)))

    assert await make_helper(store).newest_time(PROBE_MEASUREMENT) is None
    assert len(store.query_calls) == 14


@pytest.mark.asyncio
async def test_every_chunk_rejected_returns_none():
    store = FakePointStore(ceiling_days=5)
    store.insert_line(probe_line(NOW - timedelta(days=1)))

    assert await make_helper(store).newest_time(PROBE_MEASUREMENT) is None


@pytest.mark.asyncio
async def test_unbounded_attempt_can_be_disabled():
    store = FakePointStore(ceiling_days=30)
    store.insert_line(probe_line(NOW - timedelta(days=2)))

    found = await make_helper(store, store_try_unbounded_first=False).newest_time(PROBE_MEASUREMENT)

    assert found == NOW - timedelta(days=2)
    assert len(store.query_calls) == 1
    assert store.query_calls[0][1] == NOW - timedelta(days=7)


@pytest.mark.asyncio
async def test_other_errors_propagate():
    store = FakePointStore()
    store.query_error = ConnectionError("connection refused")

    with pytest.raises(ConnectionError):
        await make_helper(store).newest_time(PROBE_MEASUREMENT)

    assert len(store.query_calls) == 1


@pytest.mark.asyncio
async def test_fallback_on_unknown_errors():
    store = FakePointStore()
    store.query_error = ConnectionError("connection refused")

    found = await make_helper(store, store_fallback_on_unknown_errors=True).newest_time(PROBE_MEASUREMENT)

    assert found is None
    assert len(store.query_calls) == 14


@pytest.mark.asyncio
async def test_custom_scan_limit_patterns():
    store = FakePointStore()
    store.query_error = RuntimeError("too many files to scan")

    helper = make_helper(store, scan_limit_patterns=["too many files"])

    assert await helper.newest_time(PROBE_MEASUREMENT) is None


@pytest.mark.asyncio
async def test_finds_day_45_under_90_day_ceiling():
    store = FakePointStore(ceiling_days=90)
    store.insert_line(probe_line(NOW - timedelta(days=45)))

    helper = make_helper(store, store_chunk_days=7, store_lookback_days=90)

    assert await helper.newest_time(PROBE_MEASUREMENT) == NOW - timedelta(days=45)
    assert await helper.oldest_time(PROBE_MEASUREMENT) == NOW - timedelta(days=45)
