"""System health endpoint."""

import os
import time
from datetime import datetime, timezone

import psutil
from fastapi import APIRouter
from pydantic import BaseModel

# Create router
router = APIRouter(tags=["System"])

STARTED_AT = time.monotonic()


class Health(BaseModel):
    """Model for liveness data."""
    status: str
    message: str
    timestamp: datetime
    uptime: float
    memory_mb: float


@router.get("/health", response_model=Health)
async def health() -> Health:
    """Liveness probe. Does not check the database or other dependencies."""
    memory = psutil.Process(os.getpid()).memory_info().rss / (1024 * 1024)
    return Health(
        status="success",
        message="Server is running",
        timestamp=datetime.now(timezone.utc),
        uptime=round(time.monotonic() - STARTED_AT, 3),
        memory_mb=round(memory, 1)
    )
