from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from dynaconf import Dynaconf

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = PACKAGE_DIR.parent


def _resolve_config_dir() -> Path | None:
    env_override = os.environ.get("VERIFYGUARD_CONFIG_DIR")
    candidates: list[Path] = []

    if env_override:
        candidates.append(Path(env_override).expanduser())

    candidates.append(PROJECT_ROOT / "config")
    candidates.append(PROJECT_ROOT.parent / "config")

    for candidate in candidates:
        expanded = candidate.expanduser()
        if expanded.is_dir():
            return expanded.resolve()

    searched = ", ".join(str(path) for path in candidates)
    if env_override:
        raise RuntimeError(
            f"Unable to locate configuration directory. Searched: {searched}. "
            "Set VERIFYGUARD_CONFIG_DIR to a valid directory."
        )
    # Built-in defaults are complete, so running without a config directory is fine.
    logger.debug("No configuration directory found (searched %s)", searched)
    return None


CONFIG_DIR = _resolve_config_dir()


DEFAULTS: dict[str, Any] = {
    "APP_NAME": "verifyguard",
    "LOG_LEVEL": "INFO",
    "APP": {
        "host": "127.0.0.1",
        "port": 5000,
    },
    "GUARD": {
        "max_attempts_per_window": 10,
        "window_minutes": 5,
        "max_failed_attempts": 5,
        "block_minutes": 15,
        "cleanup_interval_minutes": 30,
        # Manual blocks default to block_minutes when unset.
        "manual_block_minutes": None,
        "retention_multiplier": 2,
        "event_log_size": 100,
    },
    "TURNSTILE": {
        "secret_key": None,
        "site_key": None,
        "verify_url": "https://challenges.cloudflare.com/turnstile/v0/siteverify",
        "timeout_seconds": 10.0,
    },
}


def _settings_files(config_dir: Path | None) -> list[Path]:
    if config_dir is None:
        return []
    return [
        config_dir / "settings.toml",
        config_dir / ".secrets.toml",
        config_dir / "settings.local.toml",
    ]


settings = Dynaconf(
    envvar_prefix="VERIFYGUARD",
    settings_files=_settings_files(CONFIG_DIR),
    environments=True,
    env_switcher="VERIFYGUARD_ENV",
    load_dotenv=True,
    envvar_parse_values=True,
    merge_enabled=True,
    defaults=DEFAULTS,
)


_MISSING = object()


def _ensure_defaults(prefix: str, defaults: dict[str, Any]) -> None:
    for key, value in defaults.items():
        dotted = f"{prefix}.{key}" if prefix else key
        existing = settings.get(dotted, _MISSING)

        if isinstance(value, dict):
            if existing is _MISSING:
                settings.set(dotted, value.copy())
                existing = settings.get(dotted, _MISSING)
            # Only recurse into mappings so user-provided primitives survive.
            if isinstance(existing, Mapping):
                _ensure_defaults(dotted, value)
            continue

        if existing is _MISSING:
            settings.set(dotted, value)


_ensure_defaults("", DEFAULTS)


def _warn_missing_turnstile_keys() -> None:
    if not settings.get("TURNSTILE.secret_key"):
        logger.warning(
            "TURNSTILE.secret_key is not set; token verification will fail "
            "(set VERIFYGUARD_TURNSTILE__SECRET_KEY)"
        )
    if not settings.get("TURNSTILE.site_key"):
        logger.warning("TURNSTILE.site_key is not set")


_warn_missing_turnstile_keys()

__all__ = ["settings", "DEFAULTS", "CONFIG_DIR"]
