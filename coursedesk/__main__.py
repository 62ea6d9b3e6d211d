# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Run the CourseDesk API with uvicorn.

Usage:
    python -m coursedesk
"""

import uvicorn

from coursedesk.core.config import get_settings
from coursedesk.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


def main() -> None:
    """Start the API server using the configured host, port and workers."""
    settings = get_settings()
    setup_logging(settings)

    logger.info(
        "starting_api",
        host=settings.api.host,
        port=settings.api.port,
        workers=settings.api.workers,
        environment=settings.environment,
    )

    uvicorn.run(
        "coursedesk.api.app:create_app",
        factory=True,
        host=settings.api.host,
        port=settings.api.port,
        workers=1 if settings.api.reload else settings.api.workers,
        reload=settings.api.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
