"""Reviews module: one rating and comment per user and product."""

import logging
from typing import Any, Dict, List, Optional

import asyncpg

from database import get_pool
from errors import ConflictError, ValidationError, parse_id
from products import ProductNotFoundError, format_party, to_iso

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 100
MAX_COMMENT_LENGTH = 1000


class DuplicateReviewError(ConflictError):
    """Raised when the user already reviewed the product."""

    def __init__(self, message: str = "You have already reviewed this product"):
        super().__init__(message)


def validate_review(rating, title: Optional[str], comment: Optional[str]) -> Dict[str, Any]:
    """Check review fields and return them normalized.

    Raises:
        ValidationError: On the first invalid field
    """
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")

    title = (title or '').strip()
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError("Title cannot exceed 100 characters")

    comment = (comment or '').strip()
    if not comment:
        raise ValidationError("Comment is required")
    if len(comment) > MAX_COMMENT_LENGTH:
        raise ValidationError("Comment cannot exceed 1000 characters")

    return {'rating': rating, 'title': title, 'comment': comment}


def format_review(row) -> Dict[str, Any]:
    row = dict(row)
    return {
        'id': str(row['id']),
        'product': str(row['product_id']),
        'user': format_party(row['user_id'], row.get('user_name'), row.get('user_picture')),
        'rating': row['rating'],
        'title': row.get('title') or '',
        'comment': row['comment'],
        'images': list(row.get('images') or []),
        'createdAt': to_iso(row.get('created_at')),
        'updatedAt': to_iso(row.get('updated_at'))
    }


class ReviewManager:
    """Manager class for handling review operations."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def create_review(
        self,
        product_id,
        user_id,
        rating,
        comment: Optional[str],
        title: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create the caller's review of a product.

        Raises:
            ValidationError: If a field is invalid
            ProductNotFoundError: If the product doesn't exist
            DuplicateReviewError: If the caller already reviewed the product
        """
        await self.ensure_pool()
        fields = validate_review(rating, title, comment)
        product_uuid = parse_id(product_id, "Product")
        user_uuid = parse_id(user_id, "User")

        async with self.pool.acquire() as conn:
            exists = await conn.fetchval(
                'SELECT EXISTS(SELECT 1 FROM products WHERE id = $1)',
                product_uuid
            )
            if not exists:
                raise ProductNotFoundError()

            try:
                row = await conn.fetchrow(
                    '''
                    WITH created AS (
                        INSERT INTO reviews (product_id, user_id, rating, title, comment)
                        VALUES ($1, $2, $3, $4, $5)
                        RETURNING *
                    )
                    SELECT
                        c.*,
                        u.name AS user_name,
                        u.profile_picture AS user_picture
                    FROM created c
                    LEFT JOIN users u ON u.id = c.user_id
                    ''',
                    product_uuid,
                    user_uuid,
                    fields['rating'],
                    fields['title'],
                    fields['comment']
                )
            except asyncpg.UniqueViolationError:
                raise DuplicateReviewError()

        logger.info(f"User {user_uuid} reviewed product {product_uuid}")
        return format_review(row)

    async def list_reviews(self, product_id) -> List[Dict[str, Any]]:
        """Reviews of a product, newest first."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT
                    r.*,
                    u.name AS user_name,
                    u.profile_picture AS user_picture
                FROM reviews r
                LEFT JOIN users u ON u.id = r.user_id
                WHERE r.product_id = $1
                ORDER BY r.created_at DESC
                ''',
                parse_id(product_id, "Product")
            )
        return [format_review(row) for row in rows]


__all__ = [
    'ReviewManager',
    'DuplicateReviewError',
    'validate_review',
    'format_review'
]
