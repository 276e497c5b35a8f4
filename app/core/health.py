from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text

from app.core.settings import settings
from app.db.session import engine

APP_VERSION = "0.1.0"


async def _check_db() -> dict[str, str]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:  # pragma: no cover - exercised in runtime
        return {"status": "error", "error": str(exc)}


async def _check_gateway_config() -> dict[str, str]:
    configured = all(
        (
            settings.daraja_consumer_key,
            settings.daraja_consumer_secret,
            settings.daraja_passkey,
            settings.daraja_callback_url,
        )
    )
    if not configured:
        return {"status": "error", "error": "Daraja credentials are not fully configured"}
    return {"status": "ok", "environment": settings.daraja_environment}


def _overall_status(checks: dict[str, dict[str, Any]]) -> tuple[str, bool]:
    ready = all(check.get("status") == "ok" for check in checks.values())
    return ("ok" if ready else "degraded", ready)


async def health_payload() -> dict[str, str]:
    return {
        "status": "OK",
        "service": settings.service_name,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "environment": settings.daraja_environment,
    }


async def ready_payload() -> dict[str, Any]:
    checks = {
        "database": await _check_db(),
        "gateway": await _check_gateway_config(),
    }
    overall, ready = _overall_status(checks)
    return {
        "status": overall,
        "ready": ready,
        "service": settings.service_name,
        "version": APP_VERSION,
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }
