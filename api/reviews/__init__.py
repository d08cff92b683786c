"""Product review endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Security, status
from pydantic import BaseModel

from auth import get_current_user
from reviews import ReviewManager

router = APIRouter(
    prefix="/products",
    tags=["Reviews"]
)


class ReviewRequest(BaseModel):
    """Request model for adding a review."""
    rating: Optional[int] = None
    title: Optional[str] = None
    comment: Optional[str] = None


@router.get("/{product_id}/reviews")
async def get_reviews(product_id: str):
    """Reviews of a product, newest first."""
    return await ReviewManager().list_reviews(product_id)


@router.post("/{product_id}/reviews", status_code=status.HTTP_201_CREATED)
async def add_review(
    product_id: str,
    request: ReviewRequest,
    user: Dict[str, Any] = Security(get_current_user)
):
    """Review a product once."""
    return await ReviewManager().create_review(
        product_id,
        user['id'],
        request.rating,
        request.comment,
        title=request.title
    )
