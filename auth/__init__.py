"""Authentication module bridging the external identity provider.

This module provides:
1. Token verification against the configured identity provider
2. Create-on-first-seen local user records
3. FastAPI dependencies for protecting routes and admin-only routes
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

import asyncpg
from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import settings_conf
from database import get_pool
from errors import ConflictError, ForbiddenError, UnauthenticatedError
from users import format_user
from .verifiers import (
    FirebaseTokenVerifier, SharedSecretVerifier, TokenVerificationError,
    TokenVerifier, build_verifier
)

# Configure logging
logger = logging.getLogger(__name__)


class InvalidTokenError(UnauthenticatedError):
    """Raised when a bearer token is rejected for any reason."""

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


def display_name(claims: Dict[str, Any]) -> str:
    """Name for a new user: the token's name claim or the email local-part."""
    name = (claims.get('name') or '').strip()
    if name:
        return name
    return claims['email'].split('@')[0]


class IdentityManager:
    """Verifies tokens and maps them to local user records."""

    def __init__(self, pool=None, verifier: Optional[TokenVerifier] = None):
        """Initialize identity manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            verifier: Optional token verifier. Built from settings on first use.
        """
        self.pool = pool
        self.verifier = verifier

    async def ensure_pool(self):
        """Ensure database pool is available."""
        if not self.pool:
            self.pool = await get_pool()

    def get_verifier(self) -> TokenVerifier:
        if self.verifier is None:
            self.verifier = build_verifier(settings_conf)
        return self.verifier

    async def verify_token(self, token: str) -> Dict[str, Any]:
        """Verify a token and return its claims.

        Raises:
            InvalidTokenError: If the provider rejects the token
        """
        verifier = self.get_verifier()
        try:
            # Certificate fetching uses blocking HTTP
            return await asyncio.to_thread(verifier.verify, token)
        except TokenVerificationError as e:
            logger.warning(f"Token rejected: {e}")
            raise InvalidTokenError()

    async def get_or_create_user(self, claims: Dict[str, Any]) -> Dict[str, Any]:
        """Return the local user for verified claims, creating it if needed.

        Concurrent first requests for the same subject converge on one row.

        Raises:
            ConflictError: If the email already belongs to another account
        """
        await self.ensure_pool()
        uid = claims['uid']
        email = claims['email'].strip().lower()

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    'SELECT * FROM users WHERE firebase_uid = $1',
                    uid
                )
                if row:
                    return format_user(row)

                try:
                    inserted = await conn.fetchrow(
                        '''
                        INSERT INTO users (firebase_uid, email, name, profile_picture)
                        VALUES ($1, $2, $3, $4)
                        ON CONFLICT (firebase_uid) DO NOTHING
                        RETURNING *
                        ''',
                        uid,
                        email,
                        display_name(claims),
                        claims.get('picture') or ''
                    )
                except asyncpg.UniqueViolationError:
                    raise ConflictError("Email is already registered to another account")

                if inserted:
                    logger.info(f"Created user {inserted['id']} for {email}")
                    return format_user(inserted)

                row = await conn.fetchrow(
                    'SELECT * FROM users WHERE firebase_uid = $1',
                    uid
                )
                return format_user(row)

        except ConflictError:
            raise
        except Exception as e:
            logger.error(f"Error resolving user for {uid}: {e}")
            raise

    async def authenticate(self, token: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        """Verify a token and resolve the local user.

        Returns:
            Tuple of (claims, user)
        """
        claims = await self.verify_token(token)
        user = await self.get_or_create_user(claims)
        return claims, user


# Create global instance
manager = IdentityManager()

# FastAPI security scheme, documents the bearer header in OpenAPI
auth_scheme = HTTPBearer(
    auto_error=False,
    description="Identity provider ID token"
)


def bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials],
    authorization: Optional[str]
) -> str:
    """Return the token from parsed Bearer credentials.

    HTTPBearer yields None for both a missing and a non-Bearer header, so the
    raw header value picks the error message.

    Raises:
        UnauthenticatedError: If the header is missing or not a Bearer token
    """
    if credentials is None or not credentials.credentials.strip():
        if not authorization:
            raise UnauthenticatedError("No authorization token provided")
        raise UnauthenticatedError("Invalid token format")
    return credentials.credentials.strip()


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(auth_scheme)
) -> Dict[str, Any]:
    """FastAPI dependency for getting the authenticated user.

    Stores the verified claims in ``request.state.claims`` and the local user
    in ``request.state.user``.

    Raises:
        UnauthenticatedError: If the token is missing, malformed or rejected
    """
    token = bearer_token(credentials, request.headers.get('Authorization'))
    claims, user = await manager.authenticate(token)
    request.state.claims = claims
    request.state.user = user
    return user


async def require_admin(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
    """FastAPI dependency allowing only admins through."""
    if user.get('role') != 'admin':
        raise ForbiddenError("Access denied: Admin role required")
    return user


# Export public interface
__all__ = [
    'manager',
    'auth_scheme',
    'get_current_user',
    'require_admin',
    'bearer_token',
    'display_name',
    'IdentityManager',
    'InvalidTokenError',
    'TokenVerifier',
    'TokenVerificationError',
    'FirebaseTokenVerifier',
    'SharedSecretVerifier',
    'build_verifier'
]
