"""
Record parser.

Turns a k6 result feed into ``ApiCallRecord`` values. Three input shapes are
understood:

* k6 ``--out json`` points::

    {"type": "Point", "metric": "http_req_duration",
     "data": {"time": "...", "value": 12.3, "tags": {...}}}

* flat records printed by the load scripts::

    {"apiName": "...", "method": "GET", "url": "...", "status": 200,
     "duration": 12, "vu": 3, "scenario": "...", "page": "...",
     "error": null, "timestamp": 1700000000000}

* k6 console log lines wrapping the flat record in ``msg="..."``.

A single bad line never aborts the parse: it is logged and skipped.
"""

import gzip
import json
import logging
import math
import re
import sys
from datetime import datetime, timezone
from typing import IO, Any, Dict, Iterable, Iterator, Optional, Union

from .errors import FeedOpenError
from .models import (
    DEFAULT_ERROR_MESSAGE,
    DEFAULT_METHOD,
    SETUP_SCENARIO,
    UNKNOWN,
    ApiCallRecord,
    ErrorInfo,
    FeedStats,
    SuccessPolicy,
    status_is_200,
)

logger = logging.getLogger(__name__)

DURATION_METRIC = "http_req_duration"

Entry = Union[str, bytes, Dict[str, Any], list]

_CONSOLE_MSG_RE = re.compile(r'msg="((?:[^"\\]|\\.)*)"')
_FRACTION_RE = re.compile(r"\.(\d+)")


class MalformedEntry(ValueError):
    pass


# =========================
# FEED INPUT
# =========================

def _open_feed(path: str) -> IO[str]:
    if path == "-":
        return sys.stdin
    try:
        if path.endswith(".gz"):
            return gzip.open(path, "rt", encoding="utf-8", errors="replace")
        return open(path, "r", encoding="utf-8", errors="replace")
    except OSError as e:
        raise FeedOpenError(path, e.strerror or str(e)) from e


def _array_document(first: str, handle: IO[str]) -> Iterator[str]:
    rest = handle.read()
    document = first + "\n" + rest
    try:
        json.loads(document)
    except (ValueError, RecursionError):
        # Not an array after all: fall back to one entry per line.
        yield first
        for line in rest.splitlines():
            text = line.strip()
            if text:
                yield text
        return
    yield document


def _feed_lines(handle: IO[str]) -> Iterator[str]:
    first = True
    for line in handle:
        text = line.strip()
        if not text:
            continue
        if first and (text == "[" or text.startswith("[{")):
            # A pretty-printed JSON array spans many lines; hand it over whole.
            try:
                json.loads(text)
            except (ValueError, RecursionError):
                yield from _array_document(text, handle)
                return
        first = False
        yield text


def _read_feed(handle: IO[str], close: bool = True) -> Iterator[str]:
    try:
        yield from _feed_lines(handle)
    finally:
        if close:
            handle.close()


def iter_feed_lines(path: str) -> Iterator[str]:
    """Open a feed and lazily yield its non-blank lines.

    The file is opened eagerly so that an unreadable feed raises
    ``FeedOpenError`` here rather than on first iteration.
    """
    handle = _open_feed(path)
    return _read_feed(handle, close=path != "-")


# =========================
# FIELD NORMALIZATION
# =========================

def _text(value: Any, default: str = UNKNOWN) -> str:
    if value is None or value == "":
        return default
    return str(value)


def _status(value: Any):
    if value is None or value == "" or isinstance(value, bool):
        return UNKNOWN
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, (int, str)):
        return value
    return str(value)


def _duration(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        raise MalformedEntry(f"invalid duration {value!r}")
    try:
        duration = float(value)
    except (TypeError, ValueError):
        raise MalformedEntry(f"invalid duration {value!r}") from None
    if not math.isfinite(duration) or duration < 0:
        raise MalformedEntry(f"invalid duration {value!r}")
    return duration


def _vu(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 0


def _timestamp_ms(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else None
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    try:
        number = float(text)
    except ValueError:
        pass
    else:
        return int(number) if math.isfinite(number) else None
    text = _FRACTION_RE.sub(lambda m: "." + (m.group(1) + "000000")[:6], text.replace("Z", "+00:00"))
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp()) * 1000 + dt.microsecond // 1000


def _error_info(value: Any) -> Optional[ErrorInfo]:
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        code = value.get("code")
        message = value.get("message")
        return ErrorInfo(
            code=code if code is not None else UNKNOWN,
            message=_text(message, DEFAULT_ERROR_MESSAGE),
        )
    return ErrorInfo(code=UNKNOWN, message=str(value))


def _page_from_group(group: Any) -> Optional[str]:
    if not isinstance(group, str) or not group.strip(":"):
        return None
    return group.strip(":").split("::")[-1]


# =========================
# SHAPE RECOGNITION
# =========================

def _point_fields(obj: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if obj.get("type") != "Point" or obj.get("metric") != DURATION_METRIC:
        return None
    data = obj.get("data") if isinstance(obj.get("data"), dict) else obj
    tags = data.get("tags") or obj.get("tags") or {}
    if not isinstance(tags, dict):
        tags = {}

    group = tags.get("group")
    scenario = tags.get("scenario")
    if not scenario and _page_from_group(group) == SETUP_SCENARIO:
        scenario = SETUP_SCENARIO

    error = None
    if tags.get("error") or tags.get("error_code"):
        error = ErrorInfo(
            code=tags.get("error_code") or _status(tags.get("status")),
            message=_text(tags.get("error"), DEFAULT_ERROR_MESSAGE),
        )

    return {
        "scenario": scenario,
        "page": tags.get("page") or _page_from_group(group),
        "api_name": tags.get("name"),
        "method": tags.get("method"),
        "url": tags.get("url"),
        "status": tags.get("status"),
        "duration": data.get("value", obj.get("value")),
        "vu": tags.get("vu"),
        "timestamp": data.get("time", obj.get("time")),
        "error": error,
    }


def _batch_fields(obj: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    if "type" in obj or "duration" not in obj:
        return None
    return {
        "scenario": obj.get("scenario"),
        "page": obj.get("page"),
        "api_name": obj.get("apiName") or obj.get("name"),
        "method": obj.get("method"),
        "url": obj.get("url"),
        "status": obj.get("status"),
        "duration": obj.get("duration"),
        "vu": obj.get("vu"),
        "timestamp": obj.get("timestamp", obj.get("time")),
        "error": _error_info(obj.get("error")),
    }


def _decode(text: str) -> Any:
    """Decode one line of text, unwrapping k6 console log lines."""
    if text.startswith(("{", "[")):
        return json.loads(text)
    match = _CONSOLE_MSG_RE.search(text)
    if match is None:
        return json.loads(text)
    message = json.loads(f'"{match.group(1)}"')
    if not message.lstrip().startswith(("{", "[")):
        return None
    return json.loads(message)


def _build_record(fields: Dict[str, Any], policy: SuccessPolicy) -> ApiCallRecord:
    status = _status(fields["status"])
    url = _text(fields["url"])
    error = None
    if not policy(status):
        error = fields["error"] or ErrorInfo(code=status, message=DEFAULT_ERROR_MESSAGE)
    return ApiCallRecord(
        scenario=_text(fields["scenario"]),
        page=_text(fields["page"]),
        api_name=_text(fields["api_name"], url),
        method=_text(fields["method"], DEFAULT_METHOD),
        url=url,
        status=status,
        duration_ms=_duration(fields["duration"]),
        timestamp_ms=_timestamp_ms(fields["timestamp"]),
        vu=_vu(fields["vu"]),
        error=error,
    )


# =========================
# PARSING
# =========================

def parse_entries(entries: Iterable[Entry],
                  policy: SuccessPolicy = status_is_200,
                  stats: Optional[FeedStats] = None) -> Iterator[ApiCallRecord]:
    """Lazily turn raw feed entries (text lines or decoded values) into records."""
    stats = stats if stats is not None else FeedStats()
    for entry in entries:
        if isinstance(entry, bytes):
            entry = entry.decode("utf-8", errors="replace")
        if isinstance(entry, str):
            text = entry.strip()
            if not text:
                continue
            stats.lines += 1
            try:
                value = _decode(text)
            except (ValueError, RecursionError) as e:
                stats.malformed += 1
                logger.warning("Skipping malformed entry %d: %s", stats.lines, e)
                continue
        else:
            stats.lines += 1
            value = entry

        items = value if isinstance(value, list) else [value]
        for item in items:
            if not isinstance(item, dict):
                stats.ignored += 1
                continue
            fields = _point_fields(item) or _batch_fields(item)
            if fields is None:
                stats.ignored += 1
                continue
            if fields["scenario"] == SETUP_SCENARIO:
                stats.setup += 1
                continue
            try:
                record = _build_record(fields, policy)
            except MalformedEntry as e:
                stats.malformed += 1
                logger.warning("Skipping malformed entry %d: %s", stats.lines, e)
                continue
            stats.records += 1
            yield record


def parse_feed(path: str,
               policy: SuccessPolicy = status_is_200,
               stats: Optional[FeedStats] = None) -> Iterator[ApiCallRecord]:
    return parse_entries(iter_feed_lines(path), policy=policy, stats=stats)
