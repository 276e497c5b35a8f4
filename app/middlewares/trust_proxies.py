from starlette.types import ASGIApp, Receive, Scope, Send


class TrustedProxiesMiddleware:
    """
    Resolve the client address and scheme behind a known number of reverse proxies.

    Rate limiting keys on the client address, so only the hop appended by our own
    proxies is trusted; anything further left in X-Forwarded-For is client supplied.
    """

    def __init__(self, app: ASGIApp, proxies_count: int = 1) -> None:
        self.app = app
        self.proxies_count = proxies_count

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and self.proxies_count > 0:
            headers = dict(scope.get("headers", []))
            forwarded_for = headers.get(b"x-forwarded-for", b"").decode()
            forwarded_proto = headers.get(b"x-forwarded-proto", b"").decode().strip().lower()

            if forwarded_for:
                ips = [ip.strip() for ip in forwarded_for.split(",") if ip.strip()]
                if len(ips) >= self.proxies_count:
                    real_ip = ips[-self.proxies_count]
                    port = scope["client"][1] if scope.get("client") else 0
                    scope["client"] = (real_ip, port)

            if forwarded_proto in {"http", "https"}:
                scope["scheme"] = forwarded_proto

        await self.app(scope, receive, send)
