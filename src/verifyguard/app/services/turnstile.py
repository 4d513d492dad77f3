from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx
import orjson

logger = logging.getLogger(__name__)

DEFAULT_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"
INTERNAL_ERROR_CODE = "internal-error"


@dataclass(slots=True, frozen=True)
class TurnstileResult:
    """Parsed siteverify response."""

    success: bool
    error_codes: tuple[str, ...] = field(default_factory=tuple)
    challenge_ts: str | None = None
    hostname: str | None = None
    action: str | None = None
    cdata: str | None = None

    @classmethod
    def failure(cls, *codes: str) -> "TurnstileResult":
        return cls(success=False, error_codes=tuple(codes) or (INTERNAL_ERROR_CODE,))

    @classmethod
    def from_payload(cls, payload: Any) -> "TurnstileResult":
        if not isinstance(payload, dict):
            return cls.failure()
        raw_codes = payload.get("error-codes") or []
        return cls(
            success=payload.get("success") is True,
            error_codes=tuple(str(code) for code in raw_codes),
            challenge_ts=payload.get("challenge_ts"),
            hostname=payload.get("hostname"),
            action=payload.get("action"),
            cdata=payload.get("cdata"),
        )

    def as_dict(self) -> dict[str, Any]:
        """Return the result in siteverify's wire shape, omitting empty fields."""

        data: dict[str, Any] = {"success": self.success}
        if self.challenge_ts is not None:
            data["challenge_ts"] = self.challenge_ts
        if self.hostname is not None:
            data["hostname"] = self.hostname
        if self.error_codes:
            data["error-codes"] = list(self.error_codes)
        if self.action is not None:
            data["action"] = self.action
        if self.cdata is not None:
            data["cdata"] = self.cdata
        return data


class TurnstileClient:
    """Verify Cloudflare Turnstile tokens against the siteverify endpoint.

    :meth:`verify` never raises for remote or configuration problems; it
    returns a failed :class:`TurnstileResult` with ``internal-error`` so the
    caller can record the attempt as a failure.
    """

    def __init__(
        self,
        secret_key: str | None,
        *,
        verify_url: str = DEFAULT_VERIFY_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.secret_key = secret_key or ""
        self.verify_url = verify_url
        self._client = httpx.AsyncClient(
            timeout=timeout,
            transport=transport or httpx.AsyncHTTPTransport(retries=0),
        )

    @classmethod
    def from_settings(cls, settings: Any) -> "TurnstileClient":
        return cls(
            settings.get("TURNSTILE.secret_key"),
            verify_url=str(settings.get("TURNSTILE.verify_url") or DEFAULT_VERIFY_URL),
            timeout=float(settings.get("TURNSTILE.timeout_seconds") or 10.0),
        )

    async def verify(self, token: str, remote_ip: str | None = None) -> TurnstileResult:
        if not self.secret_key:
            logger.error("Cannot verify token: Turnstile secret key is not configured")
            return TurnstileResult.failure()

        form = {"secret": self.secret_key, "response": token}
        if remote_ip:
            form["remoteip"] = remote_ip

        try:
            resp = await self._client.post(self.verify_url, data=form)
            resp.raise_for_status()
            payload = orjson.loads(resp.content)
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Turnstile siteverify returned %s", exc.response.status_code
            )
            return TurnstileResult.failure()
        except httpx.HTTPError as exc:
            logger.error("Turnstile siteverify request failed: %s", exc)
            return TurnstileResult.failure()
        except orjson.JSONDecodeError:
            logger.error("Turnstile siteverify returned invalid JSON")
            return TurnstileResult.failure()

        result = TurnstileResult.from_payload(payload)
        if not result.success:
            logger.debug("Turnstile rejected token: %s", list(result.error_codes))
        return result

    async def aclose(self) -> None:
        await self._client.aclose()


__all__ = ["INTERNAL_ERROR_CODE", "TurnstileClient", "TurnstileResult"]
