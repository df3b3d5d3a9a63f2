"""Serve the PPCP web interface: ``python -m ppcp_tracker``."""

from __future__ import annotations

import uvicorn

from .config import Settings
from .logging_conf import configure_logging
from .web.app import create_app


def main() -> None:
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
