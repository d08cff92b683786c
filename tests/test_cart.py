"""Tests for the cart and favorites managers."""

import uuid
from decimal import Decimal

import pytest

from errors import ValidationError
from products import ProductNotFoundError, ProductUnavailableError
from users.cart import CartItemNotFoundError, CartManager, cart_total, check_quantity
from users.favorites import FavoritesManager

USER_ID = uuid.uuid4()
SHOE_ID = uuid.uuid4()
BAG_ID = uuid.uuid4()


def cart_row(product_id, title, price, quantity):
    return {
        'product_id': product_id,
        'quantity': quantity,
        'title': title,
        'price': Decimal(price),
        'images': [f'/uploads/{title.lower()}.jpg']
    }


def test_cart_total_uses_price_times_quantity():
    items = [
        {'product': {'id': '1', 'price': 19.99}, 'quantity': 2},
        {'product': {'id': '2', 'price': 5.5}, 'quantity': 1},
    ]
    assert cart_total(items) == pytest.approx(45.48)
    assert cart_total([]) == 0


def test_cart_total_skips_missing_products():
    items = [{'product': 'deleted-id', 'quantity': 3}]
    assert cart_total(items) == 0


@pytest.mark.parametrize("quantity", [0, -1, None, 1.5, True, '2'])
def test_check_quantity_rejects_invalid(quantity):
    with pytest.raises(ValidationError) as exc:
        check_quantity(quantity)
    assert exc.value.message == "Quantity must be at least 1"


@pytest.mark.asyncio
async def test_get_cart_reads_live_prices(pool, conn):
    """Test the cart total follows the current product prices."""
    conn.fetch.return_value = [
        cart_row(SHOE_ID, 'Sneakers', '40.00', 2),
        cart_row(BAG_ID, 'Tote', '15.50', 1),
    ]

    cart = await CartManager(pool).get_cart(USER_ID)

    assert [item['quantity'] for item in cart['items']] == [2, 1]
    assert cart['items'][0]['product']['id'] == str(SHOE_ID)
    assert cart['total'] == pytest.approx(95.5)


@pytest.mark.asyncio
async def test_add_item_upserts_quantity(pool, conn):
    """Test adding increments an existing entry instead of duplicating it."""
    conn.fetchval.return_value = True
    conn.fetch.return_value = [cart_row(SHOE_ID, 'Sneakers', '40.00', 3)]

    cart = await CartManager(pool).add_item(USER_ID, SHOE_ID, 2)

    sql, user_id, product_id, quantity = conn.execute.call_args.args
    assert 'ON CONFLICT (user_id, product_id)' in sql
    assert 'quantity = cart_items.quantity + EXCLUDED.quantity' in sql
    assert (user_id, product_id, quantity) == (USER_ID, SHOE_ID, 2)
    assert cart['items'][0]['quantity'] == 3


@pytest.mark.asyncio
async def test_add_item_defaults_to_one(pool, conn):
    conn.fetchval.return_value = True
    await CartManager(pool).add_item(USER_ID, SHOE_ID)
    assert conn.execute.call_args.args[3] == 1


@pytest.mark.asyncio
async def test_add_missing_product(pool, conn):
    conn.fetchval.return_value = None
    with pytest.raises(ProductNotFoundError):
        await CartManager(pool).add_item(USER_ID, SHOE_ID)
    conn.execute.assert_not_called()


@pytest.mark.asyncio
async def test_add_unavailable_product(pool, conn):
    conn.fetchval.return_value = False
    with pytest.raises(ProductUnavailableError) as exc:
        await CartManager(pool).add_item(USER_ID, SHOE_ID)
    assert exc.value.message == "Product is not available"


@pytest.mark.asyncio
async def test_update_item_not_in_cart(pool, conn):
    conn.fetchval.return_value = None
    with pytest.raises(CartItemNotFoundError) as exc:
        await CartManager(pool).update_item(USER_ID, SHOE_ID, 4)
    assert exc.value.message == "Item not found in cart"
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_update_item_sets_quantity(pool, conn):
    conn.fetchval.return_value = 4
    conn.fetch.return_value = [cart_row(SHOE_ID, 'Sneakers', '40.00', 4)]

    cart = await CartManager(pool).update_item(USER_ID, SHOE_ID, 4)

    assert conn.fetchval.call_args.args[1:] == (USER_ID, SHOE_ID, 4)
    assert cart['total'] == pytest.approx(160.0)


@pytest.mark.asyncio
async def test_update_item_rejects_zero(pool, conn):
    with pytest.raises(ValidationError):
        await CartManager(pool).update_item(USER_ID, SHOE_ID, 0)
    conn.fetchval.assert_not_called()


@pytest.mark.asyncio
async def test_remove_absent_item_is_noop(pool, conn):
    conn.execute.return_value = 'DELETE 0'
    cart = await CartManager(pool).remove_item(USER_ID, SHOE_ID)
    assert cart == {'items': [], 'total': 0}


@pytest.mark.asyncio
async def test_clear_empties_cart(pool, conn):
    cart = await CartManager(pool).clear(USER_ID)
    assert cart == {'items': [], 'total': 0}
    assert conn.execute.call_args.args == ('DELETE FROM cart_items WHERE user_id = $1', USER_ID)


@pytest.mark.asyncio
async def test_add_favorite_is_idempotent(pool, conn):
    """Test favoriting twice relies on ON CONFLICT DO NOTHING."""
    conn.fetchval.return_value = True
    conn.fetch.return_value = [
        {'id': SHOE_ID, 'title': 'Sneakers', 'price': Decimal('40.00'), 'images': []}
    ]
    manager = FavoritesManager(pool)

    first = await manager.add(USER_ID, SHOE_ID)
    second = await manager.add(USER_ID, SHOE_ID)

    assert first == second
    assert len(second) == 1
    assert 'ON CONFLICT (user_id, product_id) DO NOTHING' in conn.execute.call_args.args[0]


@pytest.mark.asyncio
async def test_add_favorite_missing_product(pool, conn):
    conn.fetchval.return_value = False
    with pytest.raises(ProductNotFoundError):
        await FavoritesManager(pool).add(USER_ID, SHOE_ID)


@pytest.mark.asyncio
async def test_remove_favorite_absent_is_noop(pool, conn):
    favorites = await FavoritesManager(pool).remove(USER_ID, SHOE_ID)
    assert favorites == []
