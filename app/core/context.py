import contextvars

_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")
_checkout_request_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "checkout_request_id", default="-"
)


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_request_id() -> str:
    return _request_id.get()


def set_checkout_request_id(checkout_request_id: str) -> None:
    _checkout_request_id.set(checkout_request_id)


def get_checkout_request_id() -> str:
    return _checkout_request_id.get()


def clear_context() -> None:
    _request_id.set("-")
    _checkout_request_id.set("-")
