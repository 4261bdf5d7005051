import json
import math
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from apexsync.config import ApexSettings, SyncSettings
from apexsync.controllers.apex_client import ApexClient, ApexRequestError

DATALOG_XML = """<?xml version="1.0"?>
<datalog software="5.12_2B25" hardware="1.0">
  <hostname>TestApex</hostname>
  <serial>AC5:12345</serial>
  <timezone>-8.00</timezone>
  <record>
    <date>01/15/2026 12:00:00</date>
    <probe><name>Temp</name><type>Temp</type><value>78.5</value></probe>
    <probe><name>pH</name><type>pH</type><value>8.21</value></probe>
  </record>
  <record>
    <date>01/15/2026 12:10:00</date>
    <probe><name>Temp</name><type>Temp</type><value></value></probe>
  </record>
</datalog>
"""

OUTLOG_XML = """<?xml version="1.0"?>
<outlog software="5.12_2B25" hardware="1.0">
  <hostname>TestApex</hostname>
  <serial>AC5:12345</serial>
  <timezone>-8.00</timezone>
  <record><date>02/03/2026 10:41:07</date><name>CalcRx</name><value>ON</value></record>
  <record><date>02/03/2026 10:51:07</date><name>CalcRx</name><value>OFF</value></record>
</outlog>
"""

STATUS = {
    "istat": {
        "hostname": "TestApex",
        "software": "5.12_2B25",
        "hardware": "1.0",
        "serial": "AC5:12345",
        "type": "AC5",
        "timezone": "-8.00",
        "date": 1770140467,
        "inputs": [
            {"did": "base_Temp", "type": "Temp", "name": "Temp", "value": 78.4},
            {"did": "2_1", "type": "digital", "name": "Sw1", "value": 0},
        ],
        "outputs": [
            {"status": ["AON", "", "OK", ""], "name": "TopOff", "gid": "", "type": "24v", "ID": 22, "did": "6_1"},
            {"status": ["AOF", "", "OK", ""], "name": "Vortech", "gid": "", "type": "MXMPump|Ecotech|Vortech", "ID": 5, "did": "4_1"},
        ],
    }
}


def make_response(text="", ok=True, status_code=200, reason="OK"):
    response = MagicMock()
    response.ok = ok
    response.status_code = status_code
    response.reason = reason
    response.text = text
    return response


def make_client(**overrides):
    values = {"host": "192.168.1.100", "username": "admin", "password": "1234"}
    values.update(overrides)
    return ApexClient(ApexSettings(**values))


@pytest.mark.asyncio
@patch("requests.get")
async def test_fetch_datalog(mock_get):
    mock_get.return_value = make_response(DATALOG_XML)

    datalog = await make_client().fetch_datalog()

    args, kwargs = mock_get.call_args
    assert args[0] == "http://192.168.1.100/cgi-bin/datalog.xml"
    assert kwargs["params"] is None
    assert kwargs["auth"] == ("admin", "1234")
    assert kwargs["timeout"] == 30.0

    assert datalog.hostname == "TestApex"
    assert datalog.software == "5.12_2B25"
    assert datalog.serial == "AC5:12345"
    assert datalog.timezone == -8.0
    assert len(datalog.records) == 2
    assert datalog.records[0].probes[0].value == 78.5
    assert math.isnan(datalog.records[1].probes[0].value)


@pytest.mark.asyncio
@patch("requests.get")
async def test_minimal_datalog_requests_today_only(mock_get):
    mock_get.return_value = make_response(DATALOG_XML)

    await make_client().fetch_datalog(minimal=True)

    assert mock_get.call_args.kwargs["params"] == {"days": 0}


@pytest.mark.asyncio
@patch("requests.get")
async def test_minimal_outlog_requests_today_only(mock_get):
    mock_get.return_value = make_response(OUTLOG_XML)

    outlog = await make_client().fetch_outlog(minimal=True)

    args, kwargs = mock_get.call_args
    assert args[0] == "http://192.168.1.100/cgi-bin/outlog.xml"
    assert kwargs["params"] == {"days": 0}
    assert len(outlog.records) == 2


@pytest.mark.asyncio
@patch("requests.get")
async def test_no_auth_without_credentials(mock_get):
    mock_get.return_value = make_response(DATALOG_XML)

    await make_client(username=None, password=None).fetch_datalog()

    assert mock_get.call_args.kwargs["auth"] is None


@pytest.mark.asyncio
@patch("requests.get")
async def test_historical_outlog_uses_controller_time(mock_get):
    mock_get.return_value = make_response(OUTLOG_XML)
    client = make_client(timezone_offset=-8.0)

    outlog = await client.fetch_historical_outlog(datetime(2026, 2, 3, 18, 30, tzinfo=timezone.utc), 3)

    args, kwargs = mock_get.call_args
    assert args[0] == "http://192.168.1.100/cgi-bin/outlog.xml"
    assert kwargs["params"] == {"sdate": "2602031030", "days": 3}
    assert [(r.name, r.value) for r in outlog.records] == [("CalcRx", "ON"), ("CalcRx", "OFF")]
    assert outlog.records[0].date == "02/03/2026 10:41:07"


@pytest.mark.asyncio
@patch("requests.get")
async def test_timezone_learned_from_responses(mock_get):
    mock_get.return_value = make_response(DATALOG_XML)
    client = make_client()
    assert client.timezone_offset is None

    await client.fetch_datalog()

    assert client.timezone_offset == -8.0
    assert client.format_apex_date(datetime(2026, 1, 15, 20, 0, tzinfo=timezone.utc)) == "2601151200"


def test_naive_dates_are_used_as_is():
    assert make_client().format_apex_date(datetime(2026, 2, 3, 10, 30)) == "2602031030"


@pytest.mark.asyncio
@patch("requests.get")
async def test_error_status_raises(mock_get):
    mock_get.return_value = make_response(ok=False, status_code=401, reason="Unauthorized")

    with pytest.raises(ApexRequestError) as excinfo:
        await make_client().fetch_status()

    assert excinfo.value.status_code == 401
    assert "Failed to fetch Apex status: 401 Unauthorized" in str(excinfo.value)


@pytest.mark.asyncio
@patch("requests.get")
async def test_fetch_status(mock_get):
    mock_get.return_value = make_response(json.dumps(STATUS))

    status = await make_client().fetch_status()

    assert mock_get.call_args.args[0] == "http://192.168.1.100/cgi-bin/status.json"
    assert status.hostname == "TestApex"
    assert status.timezone == -8.0
    assert [i.name for i in status.inputs] == ["Temp", "Sw1"]
    assert status.outputs[0].id == 22
    assert status.outputs[0].status[0] == "AON"
    assert status.outputs[1].type == "MXMPump|Ecotech|Vortech"


def test_parse_status_without_wrapper():
    status = make_client().parse_status(json.dumps(STATUS["istat"]))
    assert status.serial == "AC5:12345"


@pytest.mark.asyncio
@patch("requests.get")
async def test_coverage_scan(mock_get):
    mock_get.return_value = make_response(DATALOG_XML)
    settings = SyncSettings(scan_days=6, scan_chunk_days=3)

    result = await make_client().fetch_coverage_scan(settings=settings)

    assert mock_get.call_count == 2
    assert "sdate" in mock_get.call_args.kwargs["params"]
    assert result.total_records == 4
    assert result.useful_records == 2
    assert result.days_with_data == 1


@pytest.mark.asyncio
@patch("requests.get")
async def test_coverage_scan_uses_default_window(mock_get):
    mock_get.return_value = make_response(DATALOG_XML)

    await make_client().fetch_coverage_scan()

    assert mock_get.call_count == 20
    assert all(call.kwargs["params"]["days"] == 3 for call in mock_get.call_args_list)
