from __future__ import annotations

import pytest

from verifyguard.app.routes.helpers import detect_device, isoformat, record_stats_payload
from verifyguard.app.services.attempt_cache import RecordStats
from verifyguard.app.util import coerce_float, parse_positive_int


def test_isoformat_uses_utc_millis() -> None:
    assert isoformat(1_700_000_000.5) == "2023-11-14T22:13:20.500Z"
    assert isoformat(None) is None


@pytest.mark.parametrize(
    "user_agent, expected",
    [
        (None, None),
        ("Mozilla/5.0 (iPhone; CPU iPhone OS 17_0)", "mobile"),
        ("Mozilla/5.0 (iPad; CPU OS 17_0)", "tablet"),
        ("Mozilla/5.0 (X11; Linux x86_64)", "desktop"),
    ],
)
def test_detect_device(user_agent: str | None, expected: str | None) -> None:
    assert detect_device(user_agent) == expected


def test_record_stats_payload_includes_optional_fields_when_set() -> None:
    stats = RecordStats(total_attempts=1, is_blocked=True, block_until=0.0, last_attempt_at=0.0)

    payload = record_stats_payload(stats)

    assert payload["blockUntil"] == "1970-01-01T00:00:00.000Z"
    assert payload["lastAttempt"] == "1970-01-01T00:00:00.000Z"


@pytest.mark.parametrize(
    "value, expected",
    [("5", 5), (3, 3), ("0", None), (True, None), ("x", None), (None, None)],
)
def test_parse_positive_int(value: object, expected: int | None) -> None:
    assert parse_positive_int(value) == expected


def test_coerce_float_rejects_non_finite() -> None:
    assert coerce_float("nan", default=1.0) == 1.0
    assert coerce_float("inf", default=1.0) == 1.0
    assert coerce_float("2.5") == 2.5
