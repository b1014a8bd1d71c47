#!/usr/bin/env python
"""
SlopShield scoring service launcher without the debug reloader.
"""
import logging
import os

# Flush output immediately
os.environ['PYTHONUNBUFFERED'] = '1'

from core.config import SERVER_PORT
from app import app

logger = logging.getLogger('slopshield.server')


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )
    logger.info("=" * 70)
    logger.info("SlopShield Scoring API Server")
    logger.info("=" * 70)
    logger.info(f"Starting API server on http://localhost:{SERVER_PORT}")
    logger.info("Endpoints available:")
    logger.info("  - GET    /api/health")
    logger.info("  - POST   /api/score")
    logger.info("  - GET    /api/cache/info")
    logger.info("  - DELETE /api/cache")

    try:
        # Run without debug and without reloader
        app.run(
            host='0.0.0.0',
            port=SERVER_PORT,
            debug=False,
            use_reloader=False,
            threaded=True
        )
    except OSError as e:
        logger.error(f"Could not start server: {e}", exc_info=True)
        raise


if __name__ == '__main__':
    main()
