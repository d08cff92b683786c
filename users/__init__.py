"""Users module for local user records.

This module provides functionality for:
- Formatting user records for API responses
- Reading and updating the caller's profile
- Admin user management (list, read, update, delete)

Cart and favorites live in their own tables and are handled by
``users.cart`` and ``users.favorites``.
"""

import logging
from typing import Any, Dict, List, Optional

import asyncpg

from database import get_pool
from errors import ConflictError, NotFoundError, ValidationError, parse_id
from products import ImageStore, to_iso

logger = logging.getLogger(__name__)

ROLES = ('user', 'admin')

ADDRESS_FIELDS = {
    'street': 'street',
    'city': 'city',
    'state': 'state',
    'zipCode': 'zip_code',
    'country': 'country'
}


class UserNotFoundError(NotFoundError):
    """Raised when a user record is not found."""

    def __init__(self, message: str = "User not found"):
        super().__init__(message)


class EmailInUseError(ConflictError):
    """Raised when an email address already belongs to another user."""

    def __init__(self, message: str = "Email is already in use"):
        super().__init__(message)


def format_user(row) -> Dict[str, Any]:
    """Format a users row for API responses."""
    return {
        'id': str(row['id']),
        'firebaseUid': row['firebase_uid'],
        'email': row['email'],
        'name': row['name'],
        'role': row['role'],
        'profilePicture': row['profile_picture'] or '',
        'phone': row['phone'] or '',
        'address': {
            key: row[column] or '' for key, column in ADDRESS_FIELDS.items()
        },
        'createdAt': to_iso(row['created_at']),
        'updatedAt': to_iso(row['updated_at'])
    }


def identity_summary(user: Dict[str, Any]) -> Dict[str, Any]:
    """The subset of a user returned by token verification."""
    return {
        'id': user['id'],
        'firebaseUid': user['firebaseUid'],
        'email': user['email'],
        'name': user['name'],
        'role': user['role']
    }


class UserManager:
    """Manager class for profile and admin user operations."""

    def __init__(self, pool=None, images: Optional[ImageStore] = None):
        """Initialize the user manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            images: Optional image store for profile pictures.
        """
        self.pool = pool
        self.images = images or ImageStore()

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def get_user(self, user_id) -> Dict[str, Any]:
        """Get a user by id.

        Raises:
            UserNotFoundError: If the user doesn't exist
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                'SELECT * FROM users WHERE id = $1',
                parse_id(user_id, "User")
            )
        if not row:
            raise UserNotFoundError()
        return format_user(row)

    async def list_users(self) -> List[Dict[str, Any]]:
        """All users, newest first."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch('SELECT * FROM users ORDER BY created_at DESC')
        return [format_user(row) for row in rows]

    async def update_profile(
        self,
        user_id,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        address: Optional[Dict[str, Any]] = None,
        profile_picture=None
    ) -> Dict[str, Any]:
        """Update the caller's profile.

        A new profile picture replaces the previous one, whose file is deleted.

        Args:
            user_id: The caller's user id
            name: Optional new display name
            phone: Optional new phone number
            address: Optional address fields keyed street/city/state/zipCode/country
            profile_picture: Optional uploaded image file

        Raises:
            UserNotFoundError: If the user doesn't exist
            ValidationError: If a field is invalid
        """
        await self.ensure_pool()
        user_uuid = parse_id(user_id, "User")

        updates: Dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise ValidationError("Name cannot be empty")
            updates['name'] = name.strip()
        if phone is not None:
            updates['phone'] = phone.strip()
        if address is not None:
            if not isinstance(address, dict):
                raise ValidationError("Address must be an object")
            for key, column in ADDRESS_FIELDS.items():
                if key in address:
                    updates[column] = str(address[key] or '').strip()

        async with self.pool.acquire() as conn:
            previous_picture = await conn.fetchval(
                'SELECT profile_picture FROM users WHERE id = $1',
                user_uuid
            )
        if previous_picture is None:
            raise UserNotFoundError()

        new_picture = None
        if profile_picture is not None:
            new_picture = await self.images.save(profile_picture)
            updates['profile_picture'] = new_picture

        if not updates:
            return await self.get_user(user_uuid)

        try:
            row = await self._apply_updates(user_uuid, updates)
        except Exception:
            if new_picture:
                await self.images.delete(new_picture)
            raise

        if new_picture and previous_picture:
            await self.images.delete(previous_picture)

        logger.info(f"Updated profile for user {user_uuid}")
        return format_user(row)

    async def update_user(
        self,
        user_id,
        name: Optional[str] = None,
        email: Optional[str] = None,
        role: Optional[str] = None
    ) -> Dict[str, Any]:
        """Admin update of a user's name, email or role.

        Raises:
            UserNotFoundError: If the user doesn't exist
            ValidationError: If the role is unknown or a value is empty
            EmailInUseError: If the email belongs to another user
        """
        await self.ensure_pool()
        user_uuid = parse_id(user_id, "User")

        updates: Dict[str, Any] = {}
        if name is not None:
            if not name.strip():
                raise ValidationError("Name cannot be empty")
            updates['name'] = name.strip()
        if email is not None:
            if not email.strip():
                raise ValidationError("Email cannot be empty")
            updates['email'] = email.strip().lower()
        if role is not None:
            if role not in ROLES:
                raise ValidationError("Invalid role")
            updates['role'] = role

        if not updates:
            return await self.get_user(user_uuid)

        row = await self._apply_updates(user_uuid, updates)
        logger.info(f"Admin updated user {user_uuid}: {', '.join(updates)}")
        return format_user(row)

    async def delete_user(self, user_id) -> None:
        """Hard-delete a user. Cart and favorites rows go with it.

        Raises:
            UserNotFoundError: If the user doesn't exist
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            deleted = await conn.fetchval(
                'DELETE FROM users WHERE id = $1 RETURNING id',
                parse_id(user_id, "User")
            )
        if not deleted:
            raise UserNotFoundError()
        logger.info(f"Deleted user {deleted}")

    async def _apply_updates(self, user_uuid, updates: Dict[str, Any]):
        assignments = ', '.join(
            f'{column} = ${i}' for i, column in enumerate(updates.keys(), start=2)
        )
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'UPDATE users SET {assignments} WHERE id = $1 RETURNING *',
                    user_uuid,
                    *updates.values()
                )
        except asyncpg.UniqueViolationError:
            raise EmailInUseError()
        except Exception as e:
            logger.error(f"Error updating user {user_uuid}: {e}")
            raise

        if not row:
            raise UserNotFoundError()
        return row


__all__ = [
    'UserManager',
    'UserNotFoundError',
    'EmailInUseError',
    'ROLES',
    'format_user',
    'identity_summary'
]
