"""Row to JSON formatting shared by every module that returns products."""
import math
from decimal import Decimal
from typing import Any, Dict, Optional, Union

Number = Union[int, float, Decimal]


def to_float(value: Optional[Number]) -> Optional[float]:
    """Convert a NUMERIC column value into a JSON number."""
    if value is None:
        return None
    return float(value)


def to_iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def discount_percentage(price: Optional[Number], original_price: Optional[Number]) -> int:
    """Percentage saved against the original price, rounded half up.

    Returns 0 when no original price is set.
    """
    if not original_price or price is None:
        return 0
    original = float(original_price)
    return int(math.floor((original - float(price)) / original * 100 + 0.5))


def split_tags(tags: Optional[str]) -> list:
    if not tags:
        return []
    return [tag.strip() for tag in tags.split(',') if tag.strip()]


def format_party(user_id, name: Optional[str], picture: Optional[str]) -> Union[Dict[str, Any], str, None]:
    """Summary of a user taking part in a product, offer or review.

    Falls back to the bare id when the user record no longer exists.
    """
    if user_id is None:
        return None
    if name is None:
        return str(user_id)
    return {
        'id': str(user_id),
        'name': name,
        'profilePicture': picture or ''
    }


def product_summary(product_id, title: Optional[str], price: Optional[Number], images) -> Union[Dict[str, Any], str]:
    """Summary attached to cart entries, favorites and offers."""
    if title is None:
        return str(product_id)
    return {
        'id': str(product_id),
        'title': title,
        'price': to_float(price),
        'images': list(images or [])
    }


def format_product(row) -> Dict[str, Any]:
    """Format a products row, optionally joined with seller columns."""
    row = dict(row)
    if 'seller_name' in row:
        seller = format_party(row['seller_id'], row['seller_name'], row.get('seller_picture'))
    else:
        seller = str(row['seller_id'])

    return {
        'id': str(row['id']),
        'title': row['title'],
        'description': row['description'],
        'price': to_float(row['price']),
        'originalPrice': to_float(row.get('original_price')),
        'discountPercentage': discount_percentage(row['price'], row.get('original_price')),
        'category': row['category'],
        'subcategory': row.get('subcategory') or '',
        'brand': row.get('brand') or '',
        'condition': row['condition'],
        'size': row.get('size') or '',
        'color': row.get('color') or '',
        'pattern': row.get('pattern') or '',
        'style': row.get('style') or '',
        'gender': row.get('gender') or '',
        'material': row.get('material') or '',
        'images': list(row.get('images') or []),
        'seller': seller,
        'location': row.get('location') or '',
        'isAvailable': row.get('is_available', True),
        'isFeatured': row.get('is_featured', False),
        'views': row.get('views', 0),
        'tags': split_tags(row.get('tags')),
        'shipping': {
            'weight': to_float(row.get('shipping_weight')),
            'isFree': row.get('shipping_free', False),
            'cost': to_float(row.get('shipping_cost')) or 0.0
        },
        'createdAt': to_iso(row.get('created_at')),
        'updatedAt': to_iso(row.get('updated_at'))
    }
