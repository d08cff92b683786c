"""REST API module for the marketplace.

This module provides HTTP endpoints for:
- Identity token verification and the current user
- Browsing, searching and managing products
- Offers and counter offers
- Cart, favorites, profile and admin user management
- Product reviews
- Health checks
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from config import settings_conf
from database import init_db, close as db_close
from offers import OfferManager
from .errors import register_exception_handlers

# Configure logging
logging.basicConfig(
    level=settings_conf['log_level'],
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# Background task for offer expiration
async def expire_offers_task(interval: int):
    """Background task marking stale open offers as expired."""
    manager = OfferManager()
    while True:
        try:
            await asyncio.sleep(interval)
            expired_count = await manager.expire_stale_offers()
            if expired_count > 0:
                logger.info(f"Expired {expired_count} stale offers")
        except Exception as e:
            # Keep the loop alive; the next run retries
            logger.error(f"Error in offer expiration task: {e}")


# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info("Initializing API...")
    await init_db()

    expiration_task = None
    interval = settings_conf['offer_sweep_interval_seconds']
    if interval > 0:
        expiration_task = asyncio.create_task(expire_offers_task(interval))
        logger.info(f"Started offer expiration task (every {interval} seconds)")

    yield

    logger.info("Shutting down API...")
    if expiration_task:
        expiration_task.cancel()
        try:
            await expiration_task
        except asyncio.CancelledError:
            pass
    await db_close()


# Create FastAPI app
app = FastAPI(
    title="Secondhand Marketplace API",
    description="REST API for listing, negotiating and reviewing secondhand goods",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings_conf['cors_origins'],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Uploaded images
os.makedirs(settings_conf['uploads_dir'], exist_ok=True)
app.mount(
    "/uploads",
    StaticFiles(directory=settings_conf['uploads_dir']),
    name="uploads"
)

# Import and include all routers
from .auth import router as auth_router
from .users import router as users_router
from .products import router as products_router
from .offers import router as offers_router
from .reviews import router as reviews_router
from .system import router as system_router

# Include all routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(products_router)
app.include_router(offers_router)
app.include_router(reviews_router)
app.include_router(system_router)
