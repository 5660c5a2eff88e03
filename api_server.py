#!/usr/bin/env python
"""
API server entry point for Review Entitlements
"""
import logging
import os
import sys

# Ensure src directory is in Python path when running from a checkout
src_path = os.path.join(os.path.dirname(__file__), "src")
if os.path.exists(src_path) and src_path not in sys.path:
    sys.path.insert(0, src_path)

from review_entitlements.app import app  # noqa: E402
from review_entitlements.config import config  # noqa: E402


if __name__ == "__main__":
    import uvicorn

    logger = logging.getLogger(__name__)
    logger.info(f"Starting Review Entitlements API on port {config.PORT} (env={config.ENV})")
    logger.info(f"DATABASE_URL: {'SET' if os.getenv('DATABASE_URL') else 'NOT SET (using SQLite)'}")
    logger.info(f"REDIS_URL: {'SET' if config.REDIS_URL else 'NOT SET (in-memory feature cache)'}")

    try:
        uvicorn.run(
            app,
            host="0.0.0.0",
            port=config.PORT,
            log_config=None,
            access_log=True,
        )
    except Exception as e:
        logger.error(f"Failed to start server: {e}", exc_info=True)
        sys.exit(1)
