from starlette.types import ASGIApp, Receive, Scope, Send, Message

_BASE_HEADERS: tuple[tuple[bytes, bytes], ...] = (
    (b"x-content-type-options", b"nosniff"),
    (b"x-frame-options", b"SAMEORIGIN"),
    (b"referrer-policy", b"no-referrer"),
    (b"x-xss-protection", b"0"),
    (b"cross-origin-opener-policy", b"same-origin"),
    (b"cross-origin-resource-policy", b"same-origin"),
    (b"cache-control", b"no-store"),
)


class SecurityHeadersMiddleware:
    """Apply default security headers, including the content security policy, to HTTP responses."""

    def __init__(
        self,
        app: ASGIApp,
        enable_hsts: bool = True,
        content_security_policy: str | None = None,
        report_only: bool = False,
    ) -> None:
        self.app = app
        defaults = list(_BASE_HEADERS)
        if enable_hsts:
            defaults.append((b"strict-transport-security", b"max-age=15552000; includeSubDomains"))
        if content_security_policy:
            header_name = (
                b"content-security-policy-report-only" if report_only else b"content-security-policy"
            )
            defaults.append((header_name, content_security_policy.encode()))
        self._defaults = defaults

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                new_headers = list(message.get("headers", []))
                existing_keys = {key.lower() for key, _ in new_headers}
                for key, value in self._defaults:
                    if key not in existing_keys:
                        new_headers.append((key, value))
                message["headers"] = new_headers
            await send(message)

        await self.app(scope, receive, send_with_headers)
