from datetime import timedelta

import pytest

from apexsync.models import ApexOutletRecord
from apexsync.sync.backfill import GapFillBackfill

from .fakes import NOW, FakeApexSource, apex_date, daily_records, fixed_clock, make_settings


def outlet_records():
    return [
        ApexOutletRecord(date=apex_date(NOW - timedelta(days=3)), name="Heater", value="ON"),
        ApexOutletRecord(date=apex_date(NOW - timedelta(hours=5)), name="CalcRx", value="ON"),
        ApexOutletRecord(date=apex_date(NOW - timedelta(hours=2)), name="CalcRx", value="OFF"),
    ]


def make_backfill(source, store, **overrides):
    return GapFillBackfill(source, store, make_settings(**overrides), clock=fixed_clock())


@pytest.mark.asyncio
async def test_backfills_probes_and_outlets(store):
    source = FakeApexSource(records=daily_records(), outlet_records=outlet_records())

    report = await make_backfill(source, store).run()

    assert source.calls[0] == ("fetch_historical_datalog", NOW - timedelta(days=1), 1)
    assert source.calls[1] == ("fetch_historical_outlog", NOW - timedelta(days=1), 1)
    assert report.probe_records == 1
    assert report.probe_points == 2
    assert report.outlet_records == 2
    assert report.outlet_points == 2
    assert report.points_written == 4
    assert report.errors == 0

    outlet_lines = [line for line in store.written_lines() if line.startswith("apex_outlet")]
    assert "state=1i" in outlet_lines[0]
    assert "state=0i" in outlet_lines[1]


@pytest.mark.asyncio
async def test_nothing_to_backfill(store, caplog):
    source = FakeApexSource()

    with caplog.at_level("INFO"):
        report = await make_backfill(source, store).run()

    assert report.points_written == 0
    assert report.errors == 0
    assert store.write_calls == []
    assert "Backfill: no records found" in caplog.text


@pytest.mark.asyncio
async def test_running_twice_is_idempotent(store):
    source = FakeApexSource(records=daily_records(), outlet_records=outlet_records())
    backfill = make_backfill(source, store, backfill_days=3)

    await backfill.run()
    first = dict(store.points)
    await backfill.run()

    assert store.points == first
    assert len(store.write_calls) == 4


@pytest.mark.asyncio
async def test_stream_failure_does_not_stop_the_other(store):
    source = FakeApexSource(records=daily_records(), outlet_records=outlet_records())
    source.fail_outlog = True

    report = await make_backfill(source, store).run()

    assert report.errors == 1
    assert report.probe_points == 2
    assert report.outlet_points == 0
