from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

import orjson
from quart import Request, Response

from verifyguard.app.services.attempt_cache import CacheStats, RecordStats
from verifyguard.app.services.service_pulse import PulseEvent

UNKNOWN_CLIENT_IP = "unknown"


def client_ip(request: Request) -> str:
    """Return the caller's address, preferring the first X-Forwarded-For hop."""

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.remote_addr or UNKNOWN_CLIENT_IP


def detect_device(user_agent: str | None) -> str | None:
    if not user_agent:
        return None
    ua = user_agent.lower()
    if "mobile" in ua or "android" in ua or "iphone" in ua:
        return "mobile"
    if "tablet" in ua or "ipad" in ua:
        return "tablet"
    return "desktop"


def isoformat(timestamp: float | None) -> str | None:
    if timestamp is None:
        return None
    moment = datetime.fromtimestamp(timestamp, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def json_response(
    payload: Mapping[str, Any],
    status: int = 200,
    headers: Mapping[str, str] | None = None,
) -> Response:
    return Response(
        orjson.dumps(payload),
        status=status,
        mimetype="application/json",
        headers=dict(headers or {}),
    )


def success_response(data: Any, message: str, status: int = 200) -> Response:
    return json_response({"success": True, "message": message, "data": data}, status)


def error_response(
    error: str,
    status: int,
    details: Mapping[str, Any] | None = None,
    headers: Mapping[str, str] | None = None,
) -> Response:
    payload: dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        payload["details"] = dict(details)
    return json_response(payload, status, headers)


def record_stats_payload(stats: RecordStats) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "totalAttempts": stats.total_attempts,
        "recentAttempts": stats.recent_attempts,
        "failedAttempts": stats.failed_attempts,
        "successAttempts": stats.succeeded_attempts,
        "isBlocked": stats.is_blocked,
    }
    if stats.block_until is not None:
        payload["blockUntil"] = isoformat(stats.block_until)
    if stats.last_attempt_at is not None:
        payload["lastAttempt"] = isoformat(stats.last_attempt_at)
    return payload


def cache_stats_payload(stats: CacheStats) -> dict[str, Any]:
    return {
        "totalRecords": stats.total_records,
        "blockedCount": stats.blocked_count,
        "totalAttempts": stats.total_attempts,
    }


def guard_event_payload(event: PulseEvent) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "type": event.topic.rsplit(".", 1)[-1],
        "ip": event.payload.get("key"),
        "at": isoformat(event.timestamp),
    }
    if "reason" in event.payload:
        payload["reason"] = event.payload["reason"]
    if event.payload.get("block_until") is not None:
        payload["blockUntil"] = isoformat(event.payload["block_until"])
    if event.payload.get("failed_attempts") is not None:
        payload["failedAttempts"] = event.payload["failed_attempts"]
    return payload


def sweep_report_payload(event: PulseEvent) -> dict[str, Any]:
    report = event.payload
    return {
        "at": isoformat(event.timestamp),
        "scanned": report.get("scanned", 0),
        "trimmedRecords": report.get("trimmed_records", 0),
        "deletedRecords": report.get("deleted_records", 0),
        "expiredBlocks": report.get("expired_blocks", 0),
        "reclaimed": report.get("reclaimed", 0),
    }


__all__ = [
    "cache_stats_payload",
    "client_ip",
    "detect_device",
    "error_response",
    "guard_event_payload",
    "isoformat",
    "json_response",
    "record_stats_payload",
    "success_response",
    "sweep_report_payload",
]
