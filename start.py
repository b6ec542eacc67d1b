#!/usr/bin/env python3
"""
Startup script for the SupportDesk API
"""
import logging
import os
import sys

import uvicorn

from supportdesk.config import setup_logging

logger = logging.getLogger("start")


def main():
    """Main startup function"""
    setup_logging()
    try:
        # Get port from environment (Railway/Docker sets this)
        port = int(os.environ.get("PORT", 8000))
        host = os.environ.get("HOST", "0.0.0.0")
        logger.info(f"Starting server on {host}:{port}")

        # Import here to ensure all modules are loaded properly
        from supportdesk.main import app

        uvicorn.run(
            app,
            host=host,
            port=port,
            access_log=True,
            log_level="info"
        )

    except Exception:
        logger.exception("Failed to start application")
        sys.exit(1)


if __name__ == "__main__":
    main()
