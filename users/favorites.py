"""Per-user favorites: a set of products, one ``user_favorites`` row each."""

import logging
from typing import Any, Dict, List

import asyncpg

from database import get_pool
from errors import parse_id
from products import ProductNotFoundError, product_summary

logger = logging.getLogger(__name__)


class FavoritesManager:
    """Manager class for favorite operations."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def get_favorites(self, user_id) -> List[Dict[str, Any]]:
        """Favorited products, oldest favorite first."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT p.id, p.title, p.price, p.images
                FROM user_favorites f
                JOIN products p ON p.id = f.product_id
                WHERE f.user_id = $1
                ORDER BY f.created_at, p.id
                ''',
                parse_id(user_id, "User")
            )
        return [
            product_summary(row['id'], row['title'], row['price'], row['images'])
            for row in rows
        ]

    async def add(self, user_id, product_id) -> List[Dict[str, Any]]:
        """Favorite a product. Favoriting it again changes nothing.

        Raises:
            ProductNotFoundError: If the product doesn't exist
        """
        await self.ensure_pool()
        user_uuid = parse_id(user_id, "User")
        product_uuid = parse_id(product_id, "Product")

        async with self.pool.acquire() as conn:
            exists = await conn.fetchval(
                'SELECT EXISTS(SELECT 1 FROM products WHERE id = $1)',
                product_uuid
            )
            if not exists:
                raise ProductNotFoundError()

            try:
                await conn.execute(
                    '''
                    INSERT INTO user_favorites (user_id, product_id)
                    VALUES ($1, $2)
                    ON CONFLICT (user_id, product_id) DO NOTHING
                    ''',
                    user_uuid,
                    product_uuid
                )
            except asyncpg.ForeignKeyViolationError:
                raise ProductNotFoundError()

        logger.debug(f"User {user_uuid} favorited product {product_uuid}")
        return await self.get_favorites(user_uuid)

    async def remove(self, user_id, product_id) -> List[Dict[str, Any]]:
        """Unfavorite a product; products not favorited are ignored."""
        await self.ensure_pool()
        user_uuid = parse_id(user_id, "User")
        async with self.pool.acquire() as conn:
            await conn.execute(
                'DELETE FROM user_favorites WHERE user_id = $1 AND product_id = $2',
                user_uuid,
                parse_id(product_id, "Product")
            )
        return await self.get_favorites(user_uuid)
