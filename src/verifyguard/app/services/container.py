"""Application service and lifecycle helpers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from verifyguard.app.services.attempt_cache import GuardConfig, Sweeper, VerificationGuard
from verifyguard.app.services.guard_events import DEFAULT_EVENT_LOG_SIZE, GuardEventLog
from verifyguard.app.services.service_pulse import ServicePulse
from verifyguard.app.services.turnstile import TurnstileClient
from verifyguard.app.util.number import parse_positive_int

logger = logging.getLogger(__name__)

SERVICES_EXTENSION_KEY = "verifyguard"
LIFECYCLE_EXTENSION_KEY = "verifyguard_lifecycle"


@dataclass(slots=True)
class AppServices:
    """Bundle long-lived application services."""

    guard: VerificationGuard
    sweeper: Sweeper
    turnstile: TurnstileClient
    service_pulse: ServicePulse
    events: GuardEventLog

    @classmethod
    def create(cls, settings: Any | None = None) -> "AppServices":
        if settings is None:
            from verifyguard.settings import settings as app_settings

            settings = app_settings

        service_pulse = ServicePulse()
        config = GuardConfig.from_settings(settings)
        guard = VerificationGuard(config, pulse=service_pulse)
        sweeper = Sweeper(guard, pulse=service_pulse)
        turnstile = TurnstileClient.from_settings(settings)
        events = GuardEventLog(
            service_pulse,
            capacity=parse_positive_int(settings.get("GUARD.event_log_size"))
            or DEFAULT_EVENT_LOG_SIZE,
        )
        logger.debug("Attempt cache configured: %s", config.as_dict())
        return cls(
            guard=guard,
            sweeper=sweeper,
            turnstile=turnstile,
            service_pulse=service_pulse,
            events=events,
        )


class AppLifecycle:
    """Manage startup and shutdown of long-lived application services."""

    def __init__(self, services: AppServices) -> None:
        self._services = services
        self._lock = asyncio.Lock()
        self._started = False

    async def __aenter__(self) -> "AppLifecycle":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    async def start(self) -> None:
        """Start the background sweeper."""

        async with self._lock:
            if self._started:
                return
            await self._services.sweeper.start()
            self._started = True
            logger.info("Application lifecycle started")

    async def stop(self) -> None:
        """Stop the sweeper, close outbound clients, detach the event log and release records."""

        async with self._lock:
            if not self._started:
                return
            self._started = False

        logger.debug(
            "Stopping application lifecycle: sweeper.stop -> turnstile.aclose -> guard.shutdown"
        )
        errors: list[Exception] = []

        try:
            await self._services.sweeper.stop()
        except Exception as exc:
            logger.exception("Failed to stop sweeper cleanly")
            errors.append(exc)

        try:
            await self._services.turnstile.aclose()
        except Exception as exc:
            logger.exception("Failed to close Turnstile client cleanly")
            errors.append(exc)

        self._services.events.close()
        released = self._services.guard.shutdown()

        if errors:
            raise errors[0]

        logger.info("Application lifecycle stopped (%s records released)", released)

    @property
    def started(self) -> bool:
        return self._started

    @property
    def services(self) -> AppServices:
        return self._services


def get_services() -> AppServices:
    """Return the :class:`AppServices` container of the current app."""

    from quart import current_app

    services = current_app.extensions.get(SERVICES_EXTENSION_KEY)
    if services is None:
        raise RuntimeError("App services container is not initialised")
    return services


def get_guard() -> VerificationGuard:
    """Convenience accessor for the verification guard."""

    return get_services().guard


def get_turnstile() -> TurnstileClient:
    """Convenience accessor for the Turnstile client."""

    return get_services().turnstile


__all__ = [
    "AppLifecycle",
    "AppServices",
    "get_guard",
    "get_services",
    "get_turnstile",
]
