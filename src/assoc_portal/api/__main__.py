"""
assoc_portal.api.__main__

`python -m assoc_portal.api` runs the portal under uvicorn.

Responsibilities:
- Build the app from environment settings (`ASSOC_*`).
- Hand uvicorn the same log level, leaving formatting to structlog.
"""

from __future__ import annotations

import uvicorn

from assoc_portal.api.app import create_app
from assoc_portal.settings import Settings, get_settings


def uvicorn_options(settings: Settings) -> dict[str, object]:
    options: dict[str, object] = {
        "host": settings.api_host,
        "port": settings.api_port,
        "log_config": None,
        "log_level": settings.log_level.lower(),
        # RequestContextMiddleware already tags every request; skip uvicorn's access lines.
        "access_log": settings.env == "dev",
    }
    if settings.env == "prod":
        # Behind a TLS-terminating proxy the session cookie is marked Secure.
        options["proxy_headers"] = True
        options["forwarded_allow_ips"] = "*"
    return options


def main() -> None:
    settings = get_settings()
    uvicorn.run(create_app(settings=settings), **uvicorn_options(settings))


if __name__ == "__main__":
    main()
