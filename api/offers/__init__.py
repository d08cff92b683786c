"""Offer endpoints: making offers, seller responses and counter responses."""

from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Security, status
from pydantic import BaseModel, Field

from auth import get_current_user
from offers import OfferManager

router = APIRouter(tags=["Offers"])


class OfferRequest(BaseModel):
    """Request model for making an offer."""
    offer_price: Optional[Decimal] = Field(None, alias="offerPrice")
    message: Optional[str] = None


class RespondRequest(BaseModel):
    """Request model for a seller's response to an offer."""
    action: Optional[str] = None
    counter_price: Optional[Decimal] = Field(None, alias="counterPrice")
    counter_message: Optional[str] = Field(None, alias="counterMessage")


class CounterResponseRequest(BaseModel):
    """Request model for a buyer's response to a counter offer."""
    action: Optional[str] = None


@router.post("/products/{product_id}/offers", status_code=status.HTTP_201_CREATED)
async def make_offer(
    product_id: str,
    request: OfferRequest,
    user: Dict[str, Any] = Security(get_current_user)
):
    """Make an offer on a product."""
    return await OfferManager().create_offer(
        product_id,
        user['id'],
        request.offer_price,
        request.message
    )


@router.get("/products/{product_id}/offers")
async def get_product_offers(
    product_id: str,
    user: Dict[str, Any] = Security(get_current_user)
):
    """Offers on a product (seller only)."""
    return await OfferManager().list_for_product(product_id, user['id'])


@router.get("/offers/{offer_id}")
async def get_offer(offer_id: str, user: Dict[str, Any] = Security(get_current_user)):
    """Get an offer (buyer or seller only)."""
    return await OfferManager().get_offer(offer_id, user['id'])


@router.put("/offers/{offer_id}")
async def respond_to_offer(
    offer_id: str,
    request: RespondRequest,
    user: Dict[str, Any] = Security(get_current_user)
):
    """Seller accepts, rejects or counters an offer."""
    return await OfferManager().respond(
        offer_id,
        user['id'],
        request.action,
        counter_price=request.counter_price,
        counter_message=request.counter_message
    )


@router.put("/offers/{offer_id}/counter-response")
async def respond_to_counter_offer(
    offer_id: str,
    request: CounterResponseRequest,
    user: Dict[str, Any] = Security(get_current_user)
):
    """Buyer accepts or rejects a counter offer."""
    return await OfferManager().counter_response(offer_id, user['id'], request.action)
