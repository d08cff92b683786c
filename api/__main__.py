"""Command line interface for running the API server."""
import asyncio
import logging

import uvicorn

from config import settings_conf

# Configure logging
logging.basicConfig(
    level=settings_conf['log_level'],
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class UvicornServer:
    """Wrapper for running uvicorn with proper lifecycle management."""

    def __init__(self, app_path: str = "api:app", host: str = "0.0.0.0", port: int = 5000):
        self.config = uvicorn.Config(
            app_path,
            host=host,
            port=port,
            log_level=settings_conf['log_level'].lower()
        )
        self.server = uvicorn.Server(self.config)

    async def run(self):
        """Serve until uvicorn receives a shutdown signal."""
        await self.server.serve()


async def main():
    """Run the API server. Database setup and the offer sweep run in the app lifespan."""
    server = UvicornServer(host=settings_conf['host'], port=settings_conf['port'])
    logger.info(f"Starting API on {settings_conf['host']}:{settings_conf['port']}")
    try:
        await server.run()
    finally:
        logger.info("API stopped.")


if __name__ == "__main__":
    asyncio.run(main())
