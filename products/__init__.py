"""Products module for managing catalog listings.

This module provides functionality for:
- Creating, updating and deleting products with their images
- Filtering, sorting, paginating and full-text searching the catalog
- Product detail with view counting and related products
- Listing a seller's own products
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from database import get_pool
from errors import ForbiddenError, NotFoundError, ValidationError, parse_id
from .analysis import analyze_image
from .format import (
    discount_percentage, format_party, format_product, product_summary, to_float, to_iso
)
from .images import ImageStore
from .search import build_listing_query, build_search_query, page_count

logger = logging.getLogger(__name__)

CATEGORIES = ['Clothing', 'Footwear', 'Accessory', 'Bag', 'Other']
CONDITIONS = ['New', 'Like New', 'Good', 'Fair']
GENDERS = ['Men', 'Women', 'Unisex', 'Kids', '']

# User-mutable product columns
MUTABLE_FIELDS = {
    'title',
    'description',
    'price',
    'original_price',
    'category',
    'subcategory',
    'brand',
    'condition',
    'size',
    'color',
    'pattern',
    'style',
    'gender',
    'material',
    'location',
    'tags',
    'is_available',
    'shipping_weight',
    'shipping_free',
    'shipping_cost'
}

REQUIRED_FIELDS = ('title', 'description', 'price', 'category', 'condition')

NUMERIC_FIELDS = {
    'price': 'Price',
    'original_price': 'Original price',
    'shipping_weight': 'Shipping weight',
    'shipping_cost': 'Shipping cost'
}

RELATED_LIMIT = 6
MAX_PAGE = 10000


class ProductNotFoundError(NotFoundError):
    """Raised when a product is not found."""

    def __init__(self, message: str = "Product not found"):
        super().__init__(message)


class ProductUnavailableError(ValidationError):
    """Raised when a product is no longer available."""

    def __init__(self, message: str = "Product is not available"):
        super().__init__(message)


def _to_decimal(value: Any, label: str) -> Decimal:
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{label} must be a number")
    if not number.is_finite():
        raise ValidationError(f"{label} must be a number")
    return number


def normalize_tags(tags: Any) -> str:
    """Store tags as a comma-separated string."""
    if tags is None:
        return ''
    if isinstance(tags, str):
        tags = tags.split(',')
    return ','.join(tag.strip() for tag in tags if tag and tag.strip())


def validate_product(data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """Validate and normalize product fields.

    Args:
        data: Column name to value mapping; keys outside MUTABLE_FIELDS are dropped
        partial: True for updates, where required fields may be omitted

    Returns:
        Cleaned dict ready to be written

    Raises:
        ValidationError: On the first invalid field
    """
    cleaned = {
        key: value.strip() if isinstance(value, str) else value
        for key, value in data.items()
        if key in MUTABLE_FIELDS and value is not None
    }

    if not partial:
        for field in REQUIRED_FIELDS:
            if cleaned.get(field) in (None, ''):
                raise ValidationError(f"{field.capitalize()} is required")

    if 'title' in cleaned:
        if len(cleaned['title']) < 3:
            raise ValidationError("Title must be at least 3 characters")
        if len(cleaned['title']) > 100:
            raise ValidationError("Title cannot exceed 100 characters")

    if 'description' in cleaned:
        if len(cleaned['description']) < 10:
            raise ValidationError("Description must be at least 10 characters")
        if len(cleaned['description']) > 2000:
            raise ValidationError("Description cannot exceed 2000 characters")

    for field, label in NUMERIC_FIELDS.items():
        if field in cleaned:
            if cleaned[field] == '':
                del cleaned[field]
                continue
            cleaned[field] = _to_decimal(cleaned[field], label)
            if cleaned[field] < 0:
                raise ValidationError(f"{label} cannot be negative")

    if 'category' in cleaned and cleaned['category'] not in CATEGORIES:
        raise ValidationError("Invalid category")

    if 'condition' in cleaned and cleaned['condition'] not in CONDITIONS:
        raise ValidationError("Invalid condition")

    if 'gender' in cleaned and cleaned['gender'] not in GENDERS:
        raise ValidationError("Invalid gender")

    if 'tags' in cleaned:
        cleaned['tags'] = normalize_tags(cleaned['tags'])

    return cleaned


class ProductManager:
    """Manager class for handling product operations."""

    def __init__(self, pool=None, images: Optional[ImageStore] = None):
        """Initialize the product manager.

        Args:
            pool: Optional database pool. If not provided, will get from database module.
            images: Optional image store. Defaults to the configured uploads directory.
        """
        self.pool = pool
        self.images = images or ImageStore()

    async def ensure_pool(self):
        """Ensure we have a database pool."""
        if not self.pool:
            self.pool = await get_pool()

    async def list_products(
        self,
        category: Optional[str] = None,
        condition: Optional[str] = None,
        seller: Optional[str] = None,
        price_min: Optional[float] = None,
        price_max: Optional[float] = None,
        search: Optional[str] = None,
        sort: Optional[str] = None,
        page: int = 1,
        limit: int = 12
    ) -> Dict[str, Any]:
        """List products matching the filters.

        Returns:
            Dict containing:
                - products: The requested page of products
                - total: Number of products matching the filters
                - page: The requested page
                - pages: Number of pages at this limit
        """
        await self.ensure_pool()

        if page < 1:
            raise ValidationError("Page must be at least 1")
        if page > MAX_PAGE:
            raise ValidationError(f"Page cannot exceed {MAX_PAGE}")
        if limit < 1:
            raise ValidationError("Limit must be at least 1")

        seller_id = parse_id(seller, "Seller") if seller else None
        query, count_query, params = build_listing_query(
            category=category,
            condition=condition,
            seller=seller_id,
            price_min=_to_decimal(price_min, 'Minimum price') if price_min is not None else None,
            price_max=_to_decimal(price_max, 'Maximum price') if price_max is not None else None,
            search=search,
            sort=sort,
            limit=limit,
            offset=(page - 1) * limit
        )

        try:
            async with self.pool.acquire() as conn:
                total = await conn.fetchval(count_query, *params[:-2])
                rows = await conn.fetch(query, *params)
        except Exception as e:
            logger.error(f"Error listing products: {e}")
            raise

        return {
            'products': [format_product(row) for row in rows],
            'total': total,
            'page': page,
            'pages': page_count(total, limit)
        }

    async def search_products(self, text: str) -> List[Dict[str, Any]]:
        """Top text-ranked products for a search phrase."""
        if not text or not text.strip():
            raise ValidationError("Search query is required")

        query, params = build_search_query(text)
        if query is None:
            return []

        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)
        return [format_product(row) for row in rows]

    async def get_categories(self) -> List[str]:
        """Distinct categories currently in use."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                'SELECT DISTINCT category FROM products ORDER BY category'
            )
        return [row['category'] for row in rows]

    async def get_product(self, product_id: str) -> Dict[str, Any]:
        """Get a product with its seller summary and count the view.

        Raises:
            ProductNotFoundError: If the product doesn't exist
        """
        await self.ensure_pool()
        product_uuid = parse_id(product_id, "Product")

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                '''
                WITH viewed AS (
                    UPDATE products
                    SET views = views + 1
                    WHERE id = $1
                    RETURNING *
                )
                SELECT
                    v.*,
                    u.name AS seller_name,
                    u.profile_picture AS seller_picture
                FROM viewed v
                LEFT JOIN users u ON u.id = v.seller_id
                ''',
                product_uuid
            )

        if not row:
            raise ProductNotFoundError()
        return format_product(row)

    async def get_related(self, product_id: str) -> List[Dict[str, Any]]:
        """Newest products in the same category, excluding the product itself."""
        await self.ensure_pool()
        product_uuid = parse_id(product_id, "Product")

        async with self.pool.acquire() as conn:
            category = await conn.fetchval(
                'SELECT category FROM products WHERE id = $1',
                product_uuid
            )
            if category is None:
                raise ProductNotFoundError()

            rows = await conn.fetch(
                f'''
                SELECT
                    p.*,
                    u.name AS seller_name,
                    u.profile_picture AS seller_picture
                FROM products p
                LEFT JOIN users u ON u.id = p.seller_id
                WHERE p.category = $1
                AND p.id <> $2
                ORDER BY p.created_at DESC
                LIMIT {RELATED_LIMIT}
                ''',
                category,
                product_uuid
            )
        return [format_product(row) for row in rows]

    async def list_by_seller(self, seller_id) -> List[Dict[str, Any]]:
        """A seller's products, newest first."""
        await self.ensure_pool()
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                '''
                SELECT * FROM products
                WHERE seller_id = $1
                ORDER BY created_at DESC
                ''',
                parse_id(seller_id, "User")
            )
        return [format_product(row) for row in rows]

    async def get_product_row(self, conn, product_id):
        """Fetch the raw products row or raise ProductNotFoundError."""
        row = await conn.fetchrow(
            'SELECT * FROM products WHERE id = $1',
            parse_id(product_id, "Product")
        )
        if not row:
            raise ProductNotFoundError()
        return row

    async def create_product(
        self,
        seller_id,
        data: Dict[str, Any],
        uploads: List
    ) -> Dict[str, Any]:
        """Create a product from form fields and uploaded images.

        Images are saved before the insert and removed again if it fails.

        Raises:
            ValidationError: If a field is invalid or no image was uploaded
        """
        await self.ensure_pool()

        fields = validate_product(data)
        if not uploads:
            raise ValidationError("At least one image is required")

        images = await self.images.save_all(uploads)
        try:
            columns = list(fields.keys()) + ['seller_id', 'images']
            values = list(fields.values()) + [parse_id(seller_id, "User"), images]
            placeholders = ', '.join(f'${i}' for i in range(1, len(values) + 1))

            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    INSERT INTO products ({', '.join(columns)})
                    VALUES ({placeholders})
                    RETURNING *
                    ''',
                    *values
                )
        except Exception as e:
            logger.error(f"Error creating product: {e}")
            await self.images.delete_all(images)
            raise

        logger.info(f"Created product {row['id']} for seller {seller_id}")
        return format_product(row)

    async def update_product(
        self,
        product_id: str,
        user_id,
        data: Dict[str, Any],
        uploads: Optional[List] = None,
        image_refs: Optional[List[str]] = None,
        delete_images: bool = False,
        is_admin: bool = False
    ) -> Dict[str, Any]:
        """Update a product owned by the caller (or any product for an admin).

        Args:
            product_id: Product to update
            user_id: Caller's user id
            data: Column name to value mapping, filtered to MUTABLE_FIELDS
            uploads: New image files to store
            image_refs: Replacement list, a subset of the product's current images
            delete_images: Replace all existing images with the uploads
            is_admin: Whether the caller is an admin

        Raises:
            ProductNotFoundError: If the product doesn't exist
            ForbiddenError: If the caller may not edit the product
            ValidationError: If a field is invalid
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            current = await self.get_product_row(conn, product_id)

        if str(current['seller_id']) != str(user_id) and not is_admin:
            raise ForbiddenError("Not authorized to update this product")

        fields = validate_product(data, partial=True)

        existing = list(current['images'] or [])
        if image_refs is None:
            kept = existing
        else:
            kept = [ref for ref in image_refs if ref]
            # Refs may only keep or reorder this product's own images
            if any(ref not in existing for ref in kept):
                raise ValidationError("Images must reference this product's existing images")
        new_images = await self.images.save_all(uploads or [])

        if new_images and delete_images:
            images = new_images
        else:
            images = kept + new_images
        removed = [ref for ref in existing if ref not in images]

        if not images:
            await self.images.delete_all(new_images)
            raise ValidationError("At least one image is required")

        fields['images'] = images
        assignments = ', '.join(
            f'{column} = ${i}' for i, column in enumerate(fields.keys(), start=2)
        )

        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    f'''
                    UPDATE products
                    SET {assignments}, updated_at = now()
                    WHERE id = $1
                    RETURNING *
                    ''',
                    current['id'],
                    *fields.values()
                )
        except Exception as e:
            logger.error(f"Error updating product {product_id}: {e}")
            await self.images.delete_all(new_images)
            raise

        if not row:
            await self.images.delete_all(new_images)
            raise ProductNotFoundError()

        await self.images.delete_all(removed)
        logger.info(f"Updated product {product_id}")
        return format_product(row)

    async def delete_product(self, product_id: str, user_id, is_admin: bool = False) -> None:
        """Delete a product and its image files.

        Cart entries and favorites go with it; offers and reviews stay.

        Raises:
            ProductNotFoundError: If the product doesn't exist
            ForbiddenError: If the caller may not delete the product
        """
        await self.ensure_pool()

        async with self.pool.acquire() as conn:
            current = await self.get_product_row(conn, product_id)

            if str(current['seller_id']) != str(user_id) and not is_admin:
                raise ForbiddenError("Not authorized to delete this product")

            deleted = await conn.fetchval(
                'DELETE FROM products WHERE id = $1 RETURNING id',
                current['id']
            )

        if not deleted:
            raise ProductNotFoundError()

        await self.images.delete_all(current['images'] or [])
        logger.info(f"Deleted product {product_id}")


__all__ = [
    'ProductManager',
    'ProductNotFoundError',
    'ProductUnavailableError',
    'ImageStore',
    'CATEGORIES',
    'CONDITIONS',
    'GENDERS',
    'MUTABLE_FIELDS',
    'MAX_PAGE',
    'validate_product',
    'normalize_tags',
    'analyze_image',
    'discount_percentage',
    'format_product',
    'format_party',
    'product_summary',
    'to_float',
    'to_iso'
]
