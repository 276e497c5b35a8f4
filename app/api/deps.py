from fastapi import Request

from app.services.daraja import DarajaClient


def get_daraja_client(request: Request) -> DarajaClient:
    """Return the gateway client built from configuration at application start."""
    return request.app.state.daraja_client
