"""Query building for the product listing and search endpoints.

Filters are combined with AND. A free-text search uses the generated
``search_vector`` column and ranks matches with ``ts_rank``; without a search
the caller picks one of the SORT_ORDERS.
"""
import re
from decimal import Decimal
from typing import Any, List, Optional, Tuple
from uuid import UUID

SORT_ORDERS = {
    'newest': 'p.created_at DESC',
    'oldest': 'p.created_at ASC',
    'price_low': 'p.price ASC, p.created_at DESC',
    'price_high': 'p.price DESC, p.created_at DESC'
}
DEFAULT_SORT = 'newest'
SEARCH_RESULT_LIMIT = 20

PRODUCT_COLUMNS = '''
    p.*,
    u.name AS seller_name,
    u.profile_picture AS seller_picture
'''


def to_tsquery_text(search: Optional[str]) -> Optional[str]:
    """Turn free text into a tsquery matching any of its words.

    Returns None when the text holds no searchable words.
    """
    if not search:
        return None
    words = re.findall(r'[^\W_]+', search)
    if not words:
        return None
    return ' | '.join(words)


def page_count(total: int, limit: int) -> int:
    """Number of pages needed to show ``total`` rows, ``limit`` per page."""
    if limit <= 0:
        return 0
    return (total + limit - 1) // limit


def build_listing_query(
    category: Optional[str] = None,
    condition: Optional[str] = None,
    seller: Optional[UUID] = None,
    price_min: Optional[Decimal] = None,
    price_max: Optional[Decimal] = None,
    search: Optional[str] = None,
    sort: Optional[str] = None,
    limit: int = 12,
    offset: int = 0
) -> Tuple[str, str, List[Any]]:
    """Build the paged listing query and its matching count query.

    Returns:
        Tuple of (query, count_query, params). The count query uses the
        filter params only; the paged query takes every param.
    """
    conditions = []
    params: List[Any] = []
    param_idx = 1

    if category:
        conditions.append(f"p.category = ${param_idx}")
        params.append(category)
        param_idx += 1

    if condition:
        conditions.append(f"p.condition = ${param_idx}")
        params.append(condition)
        param_idx += 1

    if seller:
        conditions.append(f"p.seller_id = ${param_idx}")
        params.append(seller)
        param_idx += 1

    if price_min is not None:
        conditions.append(f"p.price >= ${param_idx}")
        params.append(price_min)
        param_idx += 1

    if price_max is not None:
        conditions.append(f"p.price <= ${param_idx}")
        params.append(price_max)
        param_idx += 1

    tsquery = to_tsquery_text(search)
    if tsquery:
        conditions.append(f"p.search_vector @@ to_tsquery('english', ${param_idx})")
        order_by = (
            f"ts_rank(p.search_vector, to_tsquery('english', ${param_idx})) DESC, "
            "p.created_at DESC"
        )
        params.append(tsquery)
        param_idx += 1
    else:
        order_by = SORT_ORDERS.get(sort or DEFAULT_SORT, SORT_ORDERS[DEFAULT_SORT])

    where = f"WHERE {' AND '.join(conditions)}" if conditions else ''

    count_query = f"SELECT COUNT(*) FROM products p {where}"
    query = f"""
        SELECT {PRODUCT_COLUMNS}
        FROM products p
        LEFT JOIN users u ON u.id = p.seller_id
        {where}
        ORDER BY {order_by}
        LIMIT ${param_idx} OFFSET ${param_idx + 1}
    """
    return query, count_query, params + [limit, offset]


def build_search_query(text: str) -> Tuple[Optional[str], List[Any]]:
    """Build the ranked top-N text search query.

    Returns (None, []) when the text has no searchable words.
    """
    tsquery = to_tsquery_text(text)
    if not tsquery:
        return None, []
    query = f"""
        SELECT {PRODUCT_COLUMNS}
        FROM products p
        LEFT JOIN users u ON u.id = p.seller_id
        WHERE p.search_vector @@ to_tsquery('english', $1)
        ORDER BY ts_rank(p.search_vector, to_tsquery('english', $1)) DESC, p.created_at DESC
        LIMIT {SEARCH_RESULT_LIMIT}
    """
    return query, [tsquery]
