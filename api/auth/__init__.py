"""Authentication API endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Security
from pydantic import BaseModel

from auth import manager, get_current_user, InvalidTokenError
from errors import UnauthenticatedError, ValidationError
from users import identity_summary

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"]
)


class VerifyTokenRequest(BaseModel):
    """Request model for verifying an identity token."""
    token: Optional[str] = None


@router.post("/verify-token")
async def verify_token(request: VerifyTokenRequest):
    """Verify an identity token, creating the local user on first sight."""
    if not request.token:
        raise ValidationError("No token provided")
    try:
        _, user = await manager.authenticate(request.token)
    except InvalidTokenError:
        raise UnauthenticatedError("Invalid token")
    return {
        "message": "Token verified successfully",
        "user": identity_summary(user)
    }


@router.get("/me")
async def get_me(user: Dict[str, Any] = Security(get_current_user)):
    """Get the authenticated user."""
    return user
