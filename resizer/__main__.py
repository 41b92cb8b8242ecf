"""Run the service: ``python -m resizer``."""

from __future__ import annotations

import uvicorn

from resizer.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "resizer.main:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        ssl_certfile=settings.SSL_CERTFILE,
        ssl_keyfile=settings.SSL_KEYFILE,
        log_config=None,
    )


if __name__ == "__main__":
    main()
