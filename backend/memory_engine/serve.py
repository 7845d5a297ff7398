from __future__ import annotations

import uvicorn

from memory_engine.core.config import get_settings
from memory_engine.main import create_app


def main() -> None:
    """Run the memory engine HTTP server on the configured host and port."""

    settings = get_settings()
    config = uvicorn.Config(
        create_app(),
        host=settings.app_host,
        port=settings.app_port,
        log_level=settings.log_level.lower(),
    )
    uvicorn.Server(config).run()


if __name__ == "__main__":
    main()
