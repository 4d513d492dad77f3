from __future__ import annotations

import pytest

from verifyguard.app import create_app
from verifyguard.app.services.attempt_cache import GuardConfig, Sweeper, VerificationGuard
from verifyguard.app.services.container import AppServices
from verifyguard.app.services.guard_events import GuardEventLog
from verifyguard.app.services.service_pulse import ServicePulse
from verifyguard.app.services.turnstile import TurnstileResult

T0 = 1_700_000_000.0


class FakeClock:
    def __init__(self, start: float = T0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubTurnstile:
    """Accepts only the tokens in ``valid`` and records every call."""

    def __init__(self, valid: set[str] | None = None) -> None:
        self.valid = set(valid or {"good-token"})
        self.calls: list[tuple[str, str | None]] = []
        self.closed = False

    async def verify(self, token: str, remote_ip: str | None = None) -> TurnstileResult:
        self.calls.append((token, remote_ip))
        if token in self.valid:
            return TurnstileResult(success=True, hostname="example.com")
        return TurnstileResult.failure("invalid-input-response")

    async def aclose(self) -> None:
        self.closed = True


def build_services(
    config: GuardConfig | None = None,
    clock: FakeClock | None = None,
    turnstile: StubTurnstile | None = None,
) -> AppServices:
    pulse = ServicePulse()
    guard = VerificationGuard(config or GuardConfig(), clock=clock or FakeClock(), pulse=pulse)
    return AppServices(
        guard=guard,
        sweeper=Sweeper(guard, pulse=pulse),
        turnstile=turnstile or StubTurnstile(),  # type: ignore[arg-type]
        service_pulse=pulse,
        events=GuardEventLog(pulse),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def turnstile() -> StubTurnstile:
    return StubTurnstile()


@pytest.fixture
def make_services():
    return build_services


@pytest.fixture
def services(clock: FakeClock, turnstile: StubTurnstile) -> AppServices:
    return build_services(clock=clock, turnstile=turnstile)


@pytest.fixture
def app(services: AppServices):
    return create_app(services=services)
