"""Per-user shopping cart.

Each entry is one ``cart_items`` row keyed by (user, product), so adding,
updating and removing an entry are single atomic statements. Totals use the
live product price at read time.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, List

import asyncpg

from database import get_pool
from errors import NotFoundError, ValidationError, parse_id
from products import ProductNotFoundError, ProductUnavailableError, product_summary

logger = logging.getLogger(__name__)


class CartItemNotFoundError(NotFoundError):
    """Raised when updating a product that is not in the cart."""

    def __init__(self, message: str = "Item not found in cart"):
        super().__init__(message)


def check_quantity(quantity) -> int:
    """Validate a cart quantity."""
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    return quantity


def cart_total(items: Iterable[Dict[str, Any]]) -> float:
    """Sum of price x quantity over formatted cart entries."""
    total = Decimal('0')
    for item in items:
        product = item['product']
        if isinstance(product, dict) and product.get('price') is not None:
            total += Decimal(str(product['price'])) * item['quantity']
    return float(total)


class CartManager:
    """Manager class for cart operations."""

    def __init__(self, pool=None):
        self.pool = pool

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def get_cart(self, user_id) -> Dict[str, Any]:
        """The caller's cart in insertion order with its total.

        Returns:
            Dict containing:
                - items: List of {product, quantity}
                - total: Sum of live price x quantity
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT
                    c.product_id,
                    c.quantity,
                    p.title,
                    p.price,
                    p.images
                FROM cart_items c
                JOIN products p ON p.id = c.product_id
                WHERE c.user_id = $1
                ORDER BY c.created_at, c.product_id
                ''',
                parse_id(user_id, "User")
            )

        items: List[Dict[str, Any]] = [
            {
                'product': product_summary(
                    row['product_id'], row['title'], row['price'], row['images']
                ),
                'quantity': row['quantity']
            }
            for row in rows
        ]
        return {'items': items, 'total': cart_total(items)}

    async def add_item(self, user_id, product_id, quantity: int = 1) -> Dict[str, Any]:
        """Add a product, or increase its quantity when already in the cart.

        Raises:
            ProductNotFoundError: If the product doesn't exist
            ProductUnavailableError: If the product is not available
            ValidationError: If quantity is below 1
        """
        await self.ensure_pool()
        check_quantity(quantity)
        user_uuid = parse_id(user_id, "User")
        product_uuid = parse_id(product_id, "Product")

        async with self.pool.acquire() as conn:
            available = await conn.fetchval(
                'SELECT is_available FROM products WHERE id = $1',
                product_uuid
            )
            if available is None:
                raise ProductNotFoundError()
            if not available:
                raise ProductUnavailableError()

            try:
                await conn.execute(
                    '''
                    INSERT INTO cart_items (user_id, product_id, quantity)
                    VALUES ($1, $2, $3)
                    ON CONFLICT (user_id, product_id)
                    DO UPDATE SET quantity = cart_items.quantity + EXCLUDED.quantity
                    ''',
                    user_uuid,
                    product_uuid,
                    quantity
                )
            except asyncpg.ForeignKeyViolationError:
                # Product was deleted after the availability check
                raise ProductNotFoundError()

        return await self.get_cart(user_uuid)

    async def update_item(self, user_id, product_id, quantity: int) -> Dict[str, Any]:
        """Set the quantity of a product already in the cart.

        Raises:
            CartItemNotFoundError: If the product is not in the cart
            ValidationError: If quantity is below 1
        """
        await self.ensure_pool()
        check_quantity(quantity)
        user_uuid = parse_id(user_id, "User")

        async with self.pool.acquire() as conn:
            updated = await conn.fetchval(
                '''
                UPDATE cart_items
                SET quantity = $3
                WHERE user_id = $1 AND product_id = $2
                RETURNING quantity
                ''',
                user_uuid,
                parse_id(product_id, "Product"),
                quantity
            )
        if updated is None:
            raise CartItemNotFoundError()

        return await self.get_cart(user_uuid)

    async def remove_item(self, user_id, product_id) -> Dict[str, Any]:
        """Remove a product from the cart; absent products are ignored."""
        await self.ensure_pool()
        user_uuid = parse_id(user_id, "User")
        async with self.pool.acquire() as conn:
            await conn.execute(
                'DELETE FROM cart_items WHERE user_id = $1 AND product_id = $2',
                user_uuid,
                parse_id(product_id, "Product")
            )
        return await self.get_cart(user_uuid)

    async def clear(self, user_id) -> Dict[str, Any]:
        """Empty the cart."""
        await self.ensure_pool()
        user_uuid = parse_id(user_id, "User")
        async with self.pool.acquire() as conn:
            await conn.execute('DELETE FROM cart_items WHERE user_id = $1', user_uuid)
        logger.info(f"Cleared cart for user {user_uuid}")
        return {'items': [], 'total': 0}
