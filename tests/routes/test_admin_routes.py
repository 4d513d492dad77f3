from __future__ import annotations

import asyncio
import logging
from typing import Any

import pytest

IP = "1.2.3.4"
BASE = "/api/admin/cache"


def _call(app, method: str, path: str, **kwargs: Any):
    async def _run():
        client = app.test_client()
        response = await getattr(client, method)(f"{BASE}{path}", **kwargs)
        return response, await response.get_json()

    return asyncio.run(_run())


def test_ip_stats_for_unknown_ip_have_zero_shape(app) -> None:
    response, payload = _call(app, "get", f"/ip/{IP}")

    assert response.status_code == 200
    assert payload["data"] == {
        "totalAttempts": 0,
        "recentAttempts": 0,
        "failedAttempts": 0,
        "successAttempts": 0,
        "isBlocked": False,
    }


def test_ip_stats_report_attempts(app, services) -> None:
    services.guard.record_outcome(IP, False)
    services.guard.record_outcome(IP, True)

    _, payload = _call(app, "get", f"/ip/{IP}")

    data = payload["data"]
    assert data["totalAttempts"] == 2
    assert data["failedAttempts"] == 1
    assert data["successAttempts"] == 1
    assert data["lastAttempt"] == "2023-11-14T22:13:20.000Z"
    assert "blockUntil" not in data


def test_block_with_duration(app, services) -> None:
    response, payload = _call(app, "post", f"/block/{IP}", json={"durationMinutes": 10})

    assert response.status_code == 200
    assert payload["data"]["blocked"] is True
    assert payload["data"]["blockUntil"] == "2023-11-14T22:23:20.000Z"
    assert services.guard.is_blocked(IP) is True


def test_block_without_body_uses_default_duration(app) -> None:
    _, payload = _call(app, "post", f"/block/{IP}")

    assert payload["data"]["blockUntil"] == "2023-11-14T22:28:20.000Z"


@pytest.mark.parametrize("duration", ["abc", 0, -3, 1.5])
def test_block_rejects_invalid_duration(app, services, duration: object) -> None:
    response, payload = _call(app, "post", f"/block/{IP}", json={"durationMinutes": duration})

    assert response.status_code == 400
    assert payload["error"] == "durationMinutes must be a positive integer"
    assert IP not in services.guard.store


def test_unblock_lifts_block(app, services) -> None:
    services.guard.block_ip(IP)

    response, payload = _call(app, "post", f"/unblock/{IP}")

    assert response.status_code == 200
    assert payload["data"]["blocked"] is False
    assert services.guard.is_blocked(IP) is False


def test_unblock_unknown_ip_succeeds(app, services) -> None:
    response, _ = _call(app, "post", "/unblock/9.9.9.9")

    assert response.status_code == 200
    assert "9.9.9.9" not in services.guard.store


def test_clear_removes_record(app, services) -> None:
    services.guard.record_outcome(IP, False)

    response, payload = _call(app, "delete", f"/ip/{IP}")

    assert response.status_code == 200
    assert payload["data"]["ip"] == IP
    assert IP not in services.guard.store


def test_blocked_list_and_stats(app, services) -> None:
    services.guard.block_ip("a")
    services.guard.block_ip("b")
    services.guard.record_outcome("c", True)

    _, blocked = _call(app, "get", "/blocked")
    _, stats = _call(app, "get", "/stats")

    assert blocked["data"] == {"blocked": ["a", "b"], "count": 2}
    assert stats["data"] == {"totalRecords": 3, "blockedCount": 2, "totalAttempts": 1}


def test_manual_block_is_logged_once(app, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO):
        _call(app, "post", f"/block/{IP}")

    block_logs = [
        record
        for record in caplog.records
        if record.levelno == logging.INFO and IP in record.getMessage()
    ]
    assert len(block_logs) == 1


def test_events_list_recent_key_changes(app, services) -> None:
    services.guard.block_ip(IP)
    services.guard.unblock_ip(IP)
    services.guard.record_outcome("5.6.7.8", True)
    services.guard.clear_record("5.6.7.8")

    response, payload = _call(app, "get", "/events")

    assert response.status_code == 200
    events = payload["data"]["events"]
    assert payload["data"]["count"] == 3
    assert [(event["type"], event["ip"]) for event in events] == [
        ("clear", "5.6.7.8"),
        ("unblock", IP),
        ("block", IP),
    ]
    assert events[2]["reason"] == "manual"
    assert events[2]["blockUntil"] == "2023-11-14T22:28:20.000Z"


def test_events_respect_limit(app, services) -> None:
    services.guard.block_ip("a")
    services.guard.block_ip("b")

    _, payload = _call(app, "get", "/events", query_string={"limit": "1"})

    assert [event["ip"] for event in payload["data"]["events"]] == ["b"]


def test_events_reject_invalid_limit(app) -> None:
    response, payload = _call(app, "get", "/events", query_string={"limit": "zero"})

    assert response.status_code == 400
    assert payload["error"] == "limit must be a positive integer"


def test_sweep_report_before_and_after_a_sweep(app, services) -> None:
    _, before = _call(app, "get", "/sweep")
    services.guard.record_outcome("stale", True, now=1_000.0)
    services.sweeper.sweep()
    _, after = _call(app, "get", "/sweep")

    assert before["data"] is None
    report = after["data"]
    assert report["scanned"] == 1
    assert report["deletedRecords"] == 1
    assert report["reclaimed"] == report["trimmedRecords"] + report["deletedRecords"]
