"""User endpoints: profile, cart, favorites, listings, offers and admin management."""

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, File, Form, Security, UploadFile
from pydantic import BaseModel

from auth import get_current_user, require_admin
from errors import ValidationError
from offers import OfferManager
from products import ProductManager
from users import UserManager
from users.cart import CartManager
from users.favorites import FavoritesManager

router = APIRouter(
    prefix="/users",
    tags=["Users"]
)


class CartItemRequest(BaseModel):
    """Request model for adding to or updating a cart entry."""
    quantity: Optional[int] = None


class UserUpdateRequest(BaseModel):
    """Request model for admin user updates."""
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None


def parse_address(address: Optional[str]) -> Optional[Dict[str, Any]]:
    """Decode the JSON-encoded address form field."""
    if not address:
        return None
    try:
        value = json.loads(address)
    except ValueError:
        raise ValidationError("Address must be valid JSON")
    if not isinstance(value, dict):
        raise ValidationError("Address must be an object")
    return value


# Profile

@router.get("/me")
async def get_me(user: Dict[str, Any] = Security(get_current_user)):
    """Get the authenticated user's profile."""
    return await UserManager().get_user(user['id'])


@router.put("/me")
async def update_me(
    name: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    profilePicture: Optional[UploadFile] = File(None),
    user: Dict[str, Any] = Security(get_current_user)
):
    """Update the authenticated user's profile."""
    return await UserManager().update_profile(
        user['id'],
        name=name or None,
        phone=phone or None,
        address=parse_address(address),
        profile_picture=profilePicture
    )


# Favorites

@router.get("/favorites")
async def get_favorites(user: Dict[str, Any] = Security(get_current_user)):
    """Get the authenticated user's favorite products."""
    return await FavoritesManager().get_favorites(user['id'])


@router.post("/favorites/{product_id}")
async def add_favorite(product_id: str, user: Dict[str, Any] = Security(get_current_user)):
    """Add a product to favorites."""
    return await FavoritesManager().add(user['id'], product_id)


@router.delete("/favorites/{product_id}")
async def remove_favorite(product_id: str, user: Dict[str, Any] = Security(get_current_user)):
    """Remove a product from favorites."""
    return await FavoritesManager().remove(user['id'], product_id)


# Cart

@router.get("/cart")
async def get_cart(user: Dict[str, Any] = Security(get_current_user)):
    """Get the authenticated user's cart with its total."""
    return await CartManager().get_cart(user['id'])


@router.put("/cart/clear")
async def clear_cart(user: Dict[str, Any] = Security(get_current_user)):
    """Empty the cart."""
    return await CartManager().clear(user['id'])


@router.post("/cart/{product_id}")
async def add_to_cart(
    product_id: str,
    request: Optional[CartItemRequest] = None,
    user: Dict[str, Any] = Security(get_current_user)
):
    """Add a product to the cart (quantity defaults to 1)."""
    quantity = 1
    if request is not None and request.quantity is not None:
        quantity = request.quantity
    return await CartManager().add_item(user['id'], product_id, quantity)


@router.put("/cart/{product_id}")
async def update_cart_item(
    product_id: str,
    request: Optional[CartItemRequest] = None,
    user: Dict[str, Any] = Security(get_current_user)
):
    """Set the quantity of a product in the cart."""
    quantity = request.quantity if request is not None else None
    return await CartManager().update_item(user['id'], product_id, quantity)


@router.delete("/cart/{product_id}")
async def remove_from_cart(product_id: str, user: Dict[str, Any] = Security(get_current_user)):
    """Remove a product from the cart."""
    return await CartManager().remove_item(user['id'], product_id)


# Listings and offers

@router.get("/listings")
async def get_listings(user: Dict[str, Any] = Security(get_current_user)):
    """Get the authenticated user's products, newest first."""
    return await ProductManager().list_by_seller(user['id'])


@router.get("/offers/received")
async def get_received_offers(user: Dict[str, Any] = Security(get_current_user)):
    """Get offers made on the authenticated user's products."""
    return await OfferManager().list_received(user['id'])


@router.get("/offers/sent")
async def get_sent_offers(user: Dict[str, Any] = Security(get_current_user)):
    """Get offers the authenticated user has made."""
    return await OfferManager().list_sent(user['id'])


# Admin

@router.get("")
async def list_users(admin: Dict[str, Any] = Security(require_admin)):
    """List all users (admin only)."""
    return await UserManager().list_users()


@router.get("/{user_id}")
async def get_user(user_id: str, admin: Dict[str, Any] = Security(require_admin)):
    """Get a user by id (admin only)."""
    return await UserManager().get_user(user_id)


@router.put("/{user_id}")
async def update_user(
    user_id: str,
    request: UserUpdateRequest,
    admin: Dict[str, Any] = Security(require_admin)
):
    """Update a user's name, email or role (admin only)."""
    return await UserManager().update_user(
        user_id,
        name=request.name,
        email=request.email,
        role=request.role
    )


@router.delete("/{user_id}")
async def delete_user(user_id: str, admin: Dict[str, Any] = Security(require_admin)):
    """Delete a user (admin only)."""
    await UserManager().delete_user(user_id)
    return {"message": "User deleted successfully"}
