from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.middleware import SlowAPIMiddleware

from app.api.routes import api_router
from app.core.errors import register_exception_handlers
from app.core.limiter import limiter
from app.core.logging import configure_logging
from app.core.settings import Settings, settings
from app.events import register_event_handlers
from app.middlewares.request_context import RequestContextMiddleware
from app.middlewares.security_headers import SecurityHeadersMiddleware
from app.middlewares.trust_proxies import TrustedProxiesMiddleware
from app.services.daraja import DarajaClient, DarajaConfig


def install_middleware(app: FastAPI, config: Settings) -> None:
    # The last middleware added is the outermost. Proxy resolution must wrap the rate limiter.
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(TrustedProxiesMiddleware, proxies_count=config.proxies_count)
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(
        SecurityHeadersMiddleware,
        enable_hsts=config.enable_hsts,
        content_security_policy=config.content_security_policy,
        report_only=config.content_security_policy_report_only,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def create_app(config: Settings = settings) -> FastAPI:
    configure_logging(config.log_level)
    app = FastAPI(title=config.service_name, version="0.1.0")

    # Route handlers reach the gateway through app.state (see app.api.deps).
    app.state.daraja_client = DarajaClient(DarajaConfig.from_settings(config))
    app.state.limiter = limiter

    register_exception_handlers(app)
    install_middleware(app, config)
    app.include_router(api_router)
    register_event_handlers(app)
    return app


app = create_app()
