import json

import pytest

from k6report.models import ApiCallRecord, ErrorInfo


def _record(**overrides) -> ApiCallRecord:
    values = {
        "scenario": "create_Case",
        "page": "createCase",
        "api_name": "getADGroup",
        "method": "GET",
        "url": "https://example.test/ad-group/details",
        "status": "200",
        "duration_ms": 100.0,
        "timestamp_ms": 1_700_000_000_000,
        "vu": 1,
        "error": None,
    }
    values.update(overrides)
    if values["error"] is None and str(values["status"]) != "200":
        values["error"] = ErrorInfo(code=values["status"], message="boom")
    return ApiCallRecord(**values)


@pytest.fixture
def make_record():
    return _record


def point_line(value, status="200", url="https://example.test/a", method="GET",
               name="apiA", scenario="create_Case", group="::createCase", vu="1",
               time="2024-01-01T00:00:00.000Z", **tags) -> str:
    tags.update({
        "status": status,
        "url": url,
        "method": method,
        "name": name,
        "scenario": scenario,
        "group": group,
        "vu": vu,
    })
    return json.dumps({
        "type": "Point",
        "metric": "http_req_duration",
        "data": {"time": time, "value": value, "tags": tags},
    })


def batch_line(duration, **fields) -> str:
    payload = {
        "scenario": "create_Case",
        "page": "createCase",
        "apiName": "getADGroup",
        "url": "https://example.test/ad-group/details",
        "method": "GET",
        "status": 200,
        "duration": duration,
        "vu": 1,
        "error": None,
    }
    payload.update(fields)
    return json.dumps(payload)


@pytest.fixture
def write_feed(tmp_path):
    def _write(lines, name="results.json") -> str:
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return str(path)
    return _write


@pytest.fixture
def point():
    return point_line


@pytest.fixture
def batch():
    return batch_line
