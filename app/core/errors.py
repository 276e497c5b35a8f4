from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.services import errors

logger = logging.getLogger(__name__)

# Most specific class wins; lookups walk the exception's MRO.
SERVICE_ERROR_STATUS: dict[type[errors.LoanServiceError], int] = {
    errors.ValidationError: 400,
    errors.InvalidPhone: 400,
    errors.AlreadyPaid: 400,
    errors.PaymentInitiationFailed: 400,
    errors.GatewayRejected: 400,
    errors.NotFound: 404,
    errors.UnknownCallback: 404,
    errors.RequestTimeout: 408,
    errors.GatewayTimeout: 408,
    errors.PaymentConflict: 409,
}


def _default_code(status_code: int) -> str:
    mapping = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        405: "method_not_allowed",
        408: "request_timeout",
        409: "conflict",
        429: "rate_limited",
    }
    return mapping.get(status_code, "http_error")


def _default_message(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Request failed"


def _normalize_details(details: Any) -> dict:
    if details is None:
        return {}
    if isinstance(details, dict):
        return details
    if isinstance(details, list):
        return {"errors": details}
    if isinstance(details, str):
        return {"detail": details}
    return {"detail": str(details)}


def _build_response(
    status_code: int,
    code: str,
    message: str,
    details: Any | None = None,
) -> JSONResponse:
    payload = {
        "error": code,
        "message": message,
        "details": _normalize_details(details),
    }
    return JSONResponse(status_code=status_code, content=jsonable_encoder(payload))


def status_for_service_error(exc: errors.LoanServiceError) -> int:
    for cls in type(exc).__mro__:
        if cls in SERVICE_ERROR_STATUS:
            return SERVICE_ERROR_STATUS[cls]
    return 500


async def service_exception_handler(request: Request, exc: errors.LoanServiceError) -> JSONResponse:
    status_code = status_for_service_error(exc)
    if status_code >= 500:
        logger.error("Request to %s failed: %s", request.url.path, exc, exc_info=exc.__cause__)
        return _build_response(status_code, errors.ServerError.code, exc.message, {})
    return _build_response(status_code, exc.code, exc.message, exc.details)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail
    code = _default_code(exc.status_code)
    if isinstance(detail, dict):
        return _build_response(
            exc.status_code,
            detail.get("code") or code,
            detail.get("message") or _default_message(exc.status_code),
            detail.get("details"),
        )
    if exc.status_code == 404 and detail == "Not Found":
        return _build_response(404, code, "The requested resource does not exist.")
    if isinstance(detail, str):
        return _build_response(exc.status_code, code, detail)
    return _build_response(exc.status_code, code, _default_message(exc.status_code), detail)


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors_list = exc.errors()
    message = "Validation failed"
    if errors_list:
        first = errors_list[0] or {}
        loc = first.get("loc") or []
        msg = first.get("msg") or "Validation failed"
        # Drop the request section (body/query/path) from the location
        loc_parts = [str(part) for part in loc if part not in {"body", "query", "path"}]
        if loc_parts:
            message = f"{'.'.join(loc_parts)}: {msg}"
        else:
            message = str(msg)
    return _build_response(
        status_code=400,
        code=errors.ValidationError.code,
        message=message,
        details={"errors": errors_list},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    return _build_response(
        status_code=500,
        code="internal_server_error",
        message="An unexpected error occurred. Please try again later.",
        details={},
    )


async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    response = _build_response(
        status_code=429,
        code="rate_limited",
        message="You have sent too many requests. Please try again later.",
        details=getattr(exc, "detail", None),
    )
    headers = getattr(exc, "headers", None)
    if isinstance(headers, dict):
        response.headers.update(headers)
    return response


def register_exception_handlers(app) -> None:
    app.add_exception_handler(errors.LoanServiceError, service_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
