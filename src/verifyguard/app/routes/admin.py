from quart import Blueprint, request

from verifyguard.app.routes.helpers import (
    cache_stats_payload,
    error_response,
    guard_event_payload,
    isoformat,
    record_stats_payload,
    success_response,
    sweep_report_payload,
)
from verifyguard.app.services.container import get_guard, get_services
from verifyguard.app.services.service_pulse import GUARD_SWEEP_TOPIC
from verifyguard.app.util.number import parse_positive_int

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin/cache")


@admin_bp.get("/stats")
async def cache_stats():
    stats = get_guard().get_cache_stats()
    return success_response(cache_stats_payload(stats), "Cache statistics retrieved")


@admin_bp.get("/blocked")
async def blocked_ips():
    blocked = get_guard().get_blocked_ips()
    return success_response(
        {"blocked": blocked, "count": len(blocked)}, "Blocked IPs retrieved"
    )


@admin_bp.get("/ip/<ip>")
async def ip_stats(ip: str):
    stats = get_guard().get_record_stats(ip)
    return success_response(record_stats_payload(stats), "IP statistics retrieved")


@admin_bp.post("/block/<ip>")
async def block_ip(ip: str):
    body = await request.get_json(silent=True)
    raw_duration = body.get("durationMinutes") if isinstance(body, dict) else None
    duration: int | None = None
    if raw_duration not in (None, ""):
        duration = parse_positive_int(raw_duration)
        if duration is None:
            return error_response("durationMinutes must be a positive integer", 400)

    block_until = get_guard().block_ip(ip, duration)
    return success_response(
        {
            "ip": ip,
            "blocked": True,
            "blockUntil": isoformat(block_until),
            "message": f"IP {ip} has been blocked",
        },
        "IP blocked successfully",
    )


@admin_bp.post("/unblock/<ip>")
async def unblock_ip(ip: str):
    get_guard().unblock_ip(ip)
    return success_response(
        {"ip": ip, "blocked": False, "message": f"IP {ip} has been unblocked"},
        "IP unblocked successfully",
    )


@admin_bp.delete("/ip/<ip>")
async def clear_ip(ip: str):
    get_guard().clear_record(ip)
    return success_response(
        {"ip": ip, "message": f"Record for IP {ip} has been cleared"},
        "IP record cleared successfully",
    )


@admin_bp.get("/events")
async def recent_events():
    raw_limit = request.args.get("limit")
    limit: int | None = None
    if raw_limit not in (None, ""):
        limit = parse_positive_int(raw_limit)
        if limit is None:
            return error_response("limit must be a positive integer", 400)

    events = [guard_event_payload(event) for event in get_services().events.recent(limit)]
    return success_response(
        {"events": events, "count": len(events)}, "Recent guard events retrieved"
    )


@admin_bp.get("/sweep")
async def last_sweep():
    event = get_services().service_pulse.latest(GUARD_SWEEP_TOPIC)
    if event is None:
        return success_response(None, "No sweep has run yet")
    return success_response(sweep_report_payload(event), "Last sweep report retrieved")
