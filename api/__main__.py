"""Command line interface for running the API server.

The order change listener runs inside the API process and is started and
stopped by the app's lifespan.
"""
import logging

import uvicorn

from config import get_settings

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    """Run the API server."""
    settings = get_settings()
    host = settings['api_host']
    port = settings['api_port']
    logger.info(f"Starting API on {host}:{port}")
    uvicorn.run(
        "api:app",
        host=host,
        port=port,
        log_level="info"
    )


if __name__ == "__main__":
    main()
