import logging

from fastapi import FastAPI

from app.core.settings import SANDBOX_SHORTCODE, settings
from app.db.init_db import init_db

logger = logging.getLogger(__name__)


def log_payment_configuration() -> None:
    destination = (
        f"Business account ({settings.daraja_business_shortcode})"
        if settings.is_receiving_payments
        else "Safaricom test account (no money received)"
    )
    logger.info(
        "Payment configuration: business=%s environment=%s shortcode=%s destination=%s callback_url=%s",
        settings.business_name,
        settings.daraja_environment,
        settings.daraja_business_shortcode,
        destination,
        settings.daraja_callback_url or "-",
    )
    if not settings.is_receiving_payments:
        logger.warning(
            "Using sandbox shortcode %s: payments go to Safaricom, not the business",
            SANDBOX_SHORTCODE,
        )
    if not settings.daraja_callback_url:
        logger.warning("DARAJA_CALLBACK_URL is not set; payment results will never be reconciled")


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info("Application startup")
        log_payment_configuration()
        if settings.auto_create_schema:
            await init_db()

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Application shutdown")
