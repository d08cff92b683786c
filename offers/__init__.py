"""Offers module for price negotiation between buyers and sellers.

This module provides functionality for:
- Creating offers on available products
- Seller responses (accept, reject, counter) and buyer responses to counters
- Reading offers per product, per buyer and per seller
- Expiring open offers whose expiry time has passed
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

import asyncpg

from config import settings_conf
from database import get_pool
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError, parse_id
from products import (
    ProductNotFoundError, ProductUnavailableError, format_party, product_summary,
    to_float, to_iso
)
from .state import (
    BUYER, COUNTER, EXPECTED_STATUS, EXPIRED, OPEN_STATUSES, SELLER,
    InvalidTransitionError, OfferExpiredError, check_action, effective_status,
    is_effectively_expired, next_status
)

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 500
MIN_OFFER_PRICE = Decimal('1')

OFFER_QUERY = '''
    SELECT
        o.*,
        p.title AS product_title,
        p.price AS product_price,
        p.images AS product_images,
        b.name AS buyer_name,
        b.profile_picture AS buyer_picture,
        s.name AS seller_name,
        s.profile_picture AS seller_picture
    FROM offers o
    LEFT JOIN products p ON p.id = o.product_id
    LEFT JOIN users b ON b.id = o.buyer_id
    LEFT JOIN users s ON s.id = o.seller_id
'''


class OfferNotFoundError(NotFoundError):
    """Raised when an offer is not found."""

    def __init__(self, message: str = "Offer not found"):
        super().__init__(message)


class DuplicateOfferError(ConflictError):
    """Raised when the buyer already has a pending offer on the product."""

    def __init__(self, message: str = "You already have a pending offer on this product"):
        super().__init__(message)


def _to_price(value: Any, label: str) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{label} must be a number")
    if not price.is_finite() or price < MIN_OFFER_PRICE:
        raise ValidationError(f"{label} must be at least 1")
    return price


def check_message(message: Optional[str]) -> str:
    message = (message or '').strip()
    if len(message) > MAX_MESSAGE_LENGTH:
        raise ValidationError("Message cannot exceed 500 characters")
    return message


def format_offer(row, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Format an offers row joined with product and party columns.

    Open offers past their expiry time are reported as expired.
    """
    row = dict(row)
    counter_offer = None
    if row.get('counter_price') is not None:
        counter_offer = {
            'price': to_float(row['counter_price']),
            'message': row.get('counter_message') or ''
        }

    return {
        'id': str(row['id']),
        'product': product_summary(
            row['product_id'],
            row.get('product_title'),
            row.get('product_price'),
            row.get('product_images')
        ),
        'buyer': format_party(row['buyer_id'], row.get('buyer_name'), row.get('buyer_picture')),
        'seller': format_party(row['seller_id'], row.get('seller_name'), row.get('seller_picture')),
        'offerPrice': to_float(row['offer_price']),
        'message': row.get('message') or '',
        'status': effective_status(row['status'], row['expires_at'], now),
        'counterOffer': counter_offer,
        'expiresAt': to_iso(row['expires_at']),
        'createdAt': to_iso(row.get('created_at')),
        'updatedAt': to_iso(row.get('updated_at'))
    }


class OfferManager:
    """Manager class for handling offer operations."""

    def __init__(self, pool=None, expiry_hours: Optional[int] = None):
        """Initialize the offer manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            expiry_hours: Hours until a new offer expires. Defaults to settings.
        """
        self.pool = pool
        self.expiry_hours = expiry_hours or settings_conf['offer_expiry_hours']

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def _fetch_offer(self, conn, offer_id) -> Dict[str, Any]:
        row = await conn.fetchrow(f'{OFFER_QUERY} WHERE o.id = $1', offer_id)
        if not row:
            raise OfferNotFoundError()
        return format_offer(row)

    async def create_offer(
        self,
        product_id,
        buyer_id,
        offer_price,
        message: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create a pending offer on an available product.

        Stale open offers of the same buyer on the product are expired first.
        The partial unique index on pending offers rejects a second one.

        Raises:
            ValidationError: If the price or message is invalid, or the buyer is the seller
            ProductNotFoundError: If the product doesn't exist
            ProductUnavailableError: If the product is not available
            DuplicateOfferError: If a pending offer already exists
        """
        await self.ensure_pool()

        if offer_price is None:
            raise ValidationError("Offer price is required")
        price = _to_price(offer_price, "Offer price")
        message = check_message(message)
        product_uuid = parse_id(product_id, "Product")
        buyer_uuid = parse_id(buyer_id, "User")

        async with self.pool.acquire() as conn:
            product = await conn.fetchrow(
                'SELECT id, seller_id, is_available FROM products WHERE id = $1',
                product_uuid
            )
            if not product:
                raise ProductNotFoundError()
            if not product['is_available']:
                raise ProductUnavailableError()
            if product['seller_id'] == buyer_uuid:
                raise ValidationError("You cannot make an offer on your own product")

            expires_at = datetime.now(timezone.utc) + timedelta(hours=self.expiry_hours)

            try:
                async with conn.transaction():
                    await conn.execute(
                        '''
                        UPDATE offers
                        SET status = 'expired'
                        WHERE product_id = $1
                        AND buyer_id = $2
                        AND status = ANY($3::text[])
                        AND expires_at <= now()
                        ''',
                        product_uuid,
                        buyer_uuid,
                        list(OPEN_STATUSES)
                    )
                    offer_id = await conn.fetchval(
                        '''
                        INSERT INTO offers (
                            product_id, buyer_id, seller_id,
                            offer_price, message, expires_at
                        ) VALUES ($1, $2, $3, $4, $5, $6)
                        RETURNING id
                        ''',
                        product_uuid,
                        buyer_uuid,
                        product['seller_id'],
                        price,
                        message,
                        expires_at
                    )
            except asyncpg.UniqueViolationError:
                raise DuplicateOfferError()
            except Exception as e:
                logger.error(f"Error creating offer: {e}")
                raise

            logger.info(f"Created offer {offer_id} on product {product_uuid} by {buyer_uuid}")
            return await self._fetch_offer(conn, offer_id)

    async def get_offer(self, offer_id, user_id) -> Dict[str, Any]:
        """Get an offer visible to its buyer or seller.

        Raises:
            OfferNotFoundError: If the offer doesn't exist
            ForbiddenError: If the caller is neither buyer nor seller
        """
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            offer = await self._fetch_offer(conn, parse_id(offer_id, "Offer"))

        if str(user_id) not in (_party_id(offer['buyer']), _party_id(offer['seller'])):
            raise ForbiddenError("Not authorized to view this offer")
        return offer

    async def respond(
        self,
        offer_id,
        user_id,
        action: Optional[str],
        counter_price=None,
        counter_message: Optional[str] = None
    ) -> Dict[str, Any]:
        """Seller accepts, rejects or counters a pending offer.

        Raises:
            OfferNotFoundError: If the offer doesn't exist
            ForbiddenError: If the caller is not the seller
            InvalidTransitionError: If the action is invalid for the offer's state
            ValidationError: If a counter has no valid price
            OfferExpiredError: If the offer has expired
        """
        return await self._transition(
            offer_id, user_id, SELLER, action, counter_price, counter_message
        )

    async def counter_response(self, offer_id, user_id, action: Optional[str]) -> Dict[str, Any]:
        """Buyer accepts or rejects a counter offer.

        Raises:
            OfferNotFoundError: If the offer doesn't exist
            ForbiddenError: If the caller is not the buyer
            InvalidTransitionError: If the action is invalid for the offer's state
            OfferExpiredError: If the offer has expired
        """
        return await self._transition(offer_id, user_id, BUYER, action)

    async def _transition(
        self,
        offer_id,
        user_id,
        actor: str,
        action: Optional[str],
        counter_price=None,
        counter_message: Optional[str] = None
    ) -> Dict[str, Any]:
        await self.ensure_pool()
        offer_uuid = parse_id(offer_id, "Offer")

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow('SELECT * FROM offers WHERE id = $1', offer_uuid)
            if not row:
                raise OfferNotFoundError()

            party_id = row['seller_id'] if actor == SELLER else row['buyer_id']
            if str(party_id) != str(user_id):
                if actor == SELLER:
                    raise ForbiddenError("Not authorized to respond to this offer")
                raise ForbiddenError("Not authorized to respond to this counter offer")

            check_action(actor, action)

            price = None
            if action == COUNTER:
                if counter_price is None or counter_price == '':
                    raise ValidationError("Counter offer price is required")
                price = _to_price(counter_price, "Counter offer price")
                counter_message = check_message(counter_message)

            current = row['status']
            new_status = next_status(current, actor, action)

            if is_effectively_expired(current, row['expires_at']):
                await conn.execute(
                    "UPDATE offers SET status = 'expired' WHERE id = $1 AND status = $2",
                    offer_uuid,
                    current
                )
                logger.info(f"Offer {offer_uuid} expired before {actor} could {action}")
                raise OfferExpiredError()

            if price is not None:
                updated = await conn.fetchval(
                    '''
                    UPDATE offers
                    SET status = $3, counter_price = $4, counter_message = $5
                    WHERE id = $1 AND status = $2
                    RETURNING id
                    ''',
                    offer_uuid,
                    EXPECTED_STATUS[actor],
                    new_status,
                    price,
                    counter_message
                )
            else:
                updated = await conn.fetchval(
                    '''
                    UPDATE offers
                    SET status = $3
                    WHERE id = $1 AND status = $2
                    RETURNING id
                    ''',
                    offer_uuid,
                    EXPECTED_STATUS[actor],
                    new_status
                )

            if not updated:
                raise ConflictError("This offer was changed by another request")

            logger.info(f"Offer {offer_uuid}: {current} -> {new_status} ({actor} {action})")
            return await self._fetch_offer(conn, offer_uuid)

    async def list_for_product(self, product_id, user_id) -> List[Dict[str, Any]]:
        """Offers on a product, newest first. Only the seller may read them.

        Raises:
            ProductNotFoundError: If the product doesn't exist
            ForbiddenError: If the caller is not the product's seller
        """
        await self.ensure_pool()
        product_uuid = parse_id(product_id, "Product")

        async with self.pool.acquire() as conn:
            seller_id = await conn.fetchval(
                'SELECT seller_id FROM products WHERE id = $1',
                product_uuid
            )
            if seller_id is None:
                raise ProductNotFoundError()
            if str(seller_id) != str(user_id):
                raise ForbiddenError("Not authorized to view offers on this product")

            rows = await conn.fetch(
                f'{OFFER_QUERY} WHERE o.product_id = $1 ORDER BY o.created_at DESC',
                product_uuid
            )
        return [format_offer(row) for row in rows]

    async def list_received(self, user_id) -> List[Dict[str, Any]]:
        """Offers on the caller's products, newest first."""
        return await self._list_by_party('seller_id', user_id)

    async def list_sent(self, user_id) -> List[Dict[str, Any]]:
        """Offers the caller made, newest first."""
        return await self._list_by_party('buyer_id', user_id)

    async def _list_by_party(self, column: str, user_id) -> List[Dict[str, Any]]:
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f'{OFFER_QUERY} WHERE o.{column} = $1 ORDER BY o.created_at DESC',
                parse_id(user_id, "User")
            )
        return [format_offer(row) for row in rows]

    async def expire_stale_offers(self) -> int:
        """Mark every open offer past its expiry time as expired.

        Returns:
            Number of offers expired
        """
        await self.ensure_pool()
        try:
            async with self.pool.acquire() as conn:
                result = await conn.execute(
                    '''
                    UPDATE offers
                    SET status = $1
                    WHERE status = ANY($2::text[])
                    AND expires_at <= now()
                    ''',
                    EXPIRED,
                    list(OPEN_STATUSES)
                )
        except Exception as e:
            logger.error(f"Error expiring offers: {e}")
            raise

        # asyncpg returns the command tag, e.g. "UPDATE 3"
        return int(result.split()[-1])


def _party_id(party) -> Optional[str]:
    if isinstance(party, dict):
        return party['id']
    return party


__all__ = [
    'OfferManager',
    'OfferNotFoundError',
    'DuplicateOfferError',
    'InvalidTransitionError',
    'OfferExpiredError',
    'format_offer',
    'check_message'
]
