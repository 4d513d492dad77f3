import hashlib
from typing import Any

from quart import Blueprint, current_app, request

from verifyguard.app.routes.helpers import (
    client_ip,
    detect_device,
    error_response,
    isoformat,
    success_response,
)
from verifyguard.app.services.attempt_cache import Deny, DenyReason
from verifyguard.app.services.container import get_guard, get_turnstile

verify_bp = Blueprint("verify", __name__, url_prefix="/api")

MAX_TOKEN_LENGTH = 2048
MAX_PAGE_LENGTH = 255


def _token_ref(token: str) -> str:
    # Tokens are single-use secrets; keep only a short digest for correlation.
    return hashlib.sha256(token.encode("utf-8")).hexdigest()[:16]


async def _read_body() -> dict[str, Any]:
    payload = await request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    form = await request.form
    return {key: form.get(key) for key in form.keys()}


def _denied_response(decision: Deny, now: float):
    if decision.reason is DenyReason.BLOCKED:
        block_until = isoformat(decision.block_until)
        headers = {}
        retry_after = decision.retry_after(now)
        if retry_after is not None:
            headers["Retry-After"] = str(retry_after)
        return error_response(
            "Too many verification attempts. Please try again later.",
            429,
            {
                "blocked": True,
                "blockUntil": block_until,
                "failedAttempts": decision.recent_failed_count,
                "message": (
                    "IP address has been temporarily blocked due to suspicious "
                    f"activity. Block expires at {block_until}"
                ),
            },
            headers,
        )
    return error_response(
        "Rate limit exceeded. Please slow down your requests.",
        429,
        {
            "rateLimited": True,
            "message": (
                "Too many verification attempts in a short time. "
                "Please wait before trying again."
            ),
        },
    )


@verify_bp.post("/verify")
async def verify():
    guard = get_guard()
    ip = client_ip(request)
    now = guard.now()

    decision = guard.admit(ip, now)
    if isinstance(decision, Deny):
        current_app.logger.warning(
            "Rejected verification from %s (%s)", ip, decision.reason.value
        )
        return _denied_response(decision, now)

    body = await _read_body()
    token = str(body.get("token") or "").strip()
    page = body.get("page")
    page = str(page)[:MAX_PAGE_LENGTH] if page else None
    if not token:
        return error_response("Token is required", 400)
    if len(token) > MAX_TOKEN_LENGTH:
        return error_response("Token exceeds max length", 400)

    user_agent = request.headers.get("User-Agent")
    device = detect_device(user_agent)

    result = await get_turnstile().verify(token, ip)
    guard.record_outcome(ip, result.success, token_ref=_token_ref(token), tag=page)
    current_app.logger.info(
        "Verification from %s (page=%s, device=%s): %s",
        ip,
        page,
        device,
        "success" if result.success else "failure",
    )

    if result.success:
        return success_response(result.as_dict(), "Verification successful")
    return error_response(
        "Verification failed",
        400,
        {
            "verification": result.as_dict(),
            "errorCodes": list(result.error_codes),
        },
    )
