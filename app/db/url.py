from __future__ import annotations

from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


def normalize_database_url(url: str) -> str:
    url = (url or "").strip()
    if not url:
        return url

    parts = urlsplit(url)
    scheme = parts.scheme

    # SQLite URLs have an empty netloc that urlunsplit would collapse, so only
    # the driver prefix is swapped.
    if scheme.startswith("sqlite"):
        return "sqlite+aiosqlite" + url[len(scheme):]

    # Hosting providers hand out sync-style URLs; the app always talks asyncpg.
    if scheme in {"postgres", "postgresql", "postgresql+psycopg", "postgresql+psycopg2"}:
        scheme = "postgresql+asyncpg"

    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    if scheme == "postgresql+asyncpg":
        # asyncpg understands ``ssl`` but not libpq's ``sslmode``.
        sslmode = query.pop("sslmode", None)
        if sslmode is not None and "ssl" not in query:
            normalized = sslmode.lower().strip()
            query["ssl"] = "disable" if normalized in {"disable", "allow"} else normalized

    new_query = urlencode(query, doseq=True)
    return urlunsplit((scheme, parts.netloc, parts.path, new_query, parts.fragment))


def is_sqlite_url(url: str) -> bool:
    return urlsplit(url).scheme.startswith("sqlite")
