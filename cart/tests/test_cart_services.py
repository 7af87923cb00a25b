from decimal import Decimal

import pytest
from cart.models import Cart, CartItem
from cart.selectors import find_current_cart, get_current_cart
from cart.services import CartError, add_item, cancel_cart, recalculate_total, remove_item, update_item_quantity
from cart.tests.factories import CartFactory, CartItemFactory
from catalog.models import Product
from catalog.tests.factories import ProductFactory
from django.db import IntegrityError, transaction
from django.http import Http404
from users.tests.factories import UserFactory


@pytest.mark.django_db
def test_get_current_cart_creates_once():
    user = UserFactory()
    first = get_current_cart(user=user)
    second = get_current_cart(user=user)
    assert first.id == second.id
    assert first.status == Cart.STATUS_ACTIVE
    assert Cart.objects.filter(user=user).count() == 1


@pytest.mark.django_db
def test_get_current_cart_returns_pending_cart():
    cart = CartFactory(status=Cart.STATUS_PENDING)
    assert get_current_cart(user=cart.user).id == cart.id


@pytest.mark.django_db
def test_purchased_cart_is_not_current():
    cart = CartFactory(status=Cart.STATUS_PURCHASED)
    assert find_current_cart(user=cart.user) is None
    assert get_current_cart(user=cart.user).id != cart.id


@pytest.mark.django_db
def test_one_current_cart_per_user_constraint():
    cart = CartFactory()
    with pytest.raises(IntegrityError):
        with transaction.atomic():
            CartFactory(user=cart.user, status=Cart.STATUS_PENDING)
    CartFactory(user=cart.user, status=Cart.STATUS_PURCHASED)


@pytest.mark.django_db
def test_add_item_takes_stock_and_totals():
    user = UserFactory()
    product = ProductFactory(price=Decimal("25.00"), quantity=5)

    item = add_item(user=user, product_id=product.id, quantity=2)
    add_item(user=user, product_id=product.id, quantity=1)

    item.refresh_from_db()
    product.refresh_from_db()
    assert item.quantity == 3
    assert item.unit_price == Decimal("25.00")
    assert product.quantity == 2
    assert Cart.objects.get(id=item.cart_id).total_price == Decimal("75.00")


@pytest.mark.django_db
def test_add_item_marks_product_unavailable_when_sold_out():
    user = UserFactory()
    product = ProductFactory(quantity=2)
    add_item(user=user, product_id=product.id, quantity=2)
    product.refresh_from_db()
    assert product.quantity == 0
    assert not product.is_available


@pytest.mark.django_db
def test_add_item_rejects_insufficient_stock_and_unavailable_products():
    user = UserFactory()
    low = ProductFactory(quantity=1)
    hidden = ProductFactory(quantity=10, is_available=False)

    with pytest.raises(CartError):
        add_item(user=user, product_id=low.id, quantity=2)
    with pytest.raises(CartError):
        add_item(user=user, product_id=hidden.id, quantity=1)
    assert not CartItem.objects.exists()
    assert Product.objects.get(id=low.id).quantity == 1


@pytest.mark.parametrize("quantity", [0, -1, "2", 1.5, True])
@pytest.mark.django_db
def test_add_item_rejects_bad_quantities(quantity):
    with pytest.raises(CartError):
        add_item(user=UserFactory(), product_id=ProductFactory().id, quantity=quantity)


@pytest.mark.django_db
def test_add_item_unknown_product():
    with pytest.raises(Http404):
        add_item(user=UserFactory(), product_id=999999, quantity=1)


@pytest.mark.django_db
def test_update_quantity_moves_stock_both_ways():
    user = UserFactory()
    product = ProductFactory(price=Decimal("10.00"), quantity=10)
    add_item(user=user, product_id=product.id, quantity=2)

    update_item_quantity(user=user, product_id=product.id, quantity=5)
    product.refresh_from_db()
    assert product.quantity == 5

    item = update_item_quantity(user=user, product_id=product.id, quantity=1)
    product.refresh_from_db()
    assert product.quantity == 9
    assert item.quantity == 1
    assert Cart.objects.get(id=item.cart_id).total_price == Decimal("10.00")


@pytest.mark.django_db
def test_update_quantity_rejects_overdraw_and_keeps_state():
    user = UserFactory()
    product = ProductFactory(quantity=3)
    add_item(user=user, product_id=product.id, quantity=2)

    with pytest.raises(CartError):
        update_item_quantity(user=user, product_id=product.id, quantity=5)

    product.refresh_from_db()
    assert product.quantity == 1
    assert CartItem.objects.get(product=product).quantity == 2


@pytest.mark.django_db
def test_update_quantity_for_missing_line():
    user = UserFactory()
    product = ProductFactory()
    with pytest.raises(CartError):
        update_item_quantity(user=user, product_id=product.id, quantity=1)


@pytest.mark.django_db
def test_remove_item_returns_stock():
    user = UserFactory()
    product = ProductFactory(price=Decimal("10.00"), quantity=4)
    add_item(user=user, product_id=product.id, quantity=4)

    cart = remove_item(user=user, product_id=product.id)

    product.refresh_from_db()
    assert product.quantity == 4
    assert product.is_available
    assert cart.total_price == Decimal("0.00")
    assert not cart.items.exists()

    with pytest.raises(CartError):
        remove_item(user=user, product_id=product.id)


@pytest.mark.django_db
def test_pending_cart_is_locked():
    user = UserFactory()
    product = ProductFactory()
    item = add_item(user=user, product_id=product.id, quantity=1)
    Cart.objects.filter(id=item.cart_id).update(status=Cart.STATUS_PENDING)

    with pytest.raises(CartError):
        add_item(user=user, product_id=product.id, quantity=1)
    with pytest.raises(CartError):
        update_item_quantity(user=user, product_id=product.id, quantity=2)
    with pytest.raises(CartError):
        remove_item(user=user, product_id=product.id)


@pytest.mark.django_db
def test_recalculate_total_uses_line_snapshots():
    cart = CartFactory()
    CartItemFactory(cart=cart, quantity=2, unit_price=Decimal("12.50"))
    CartItemFactory(cart=cart, quantity=1, unit_price=Decimal("5.00"))

    recalculate_total(cart)

    assert Cart.objects.get(id=cart.id).total_price == Decimal("30.00")


@pytest.mark.django_db
def test_cancel_cart_returns_stock():
    user = UserFactory()
    product = ProductFactory(quantity=5)
    item = add_item(user=user, product_id=product.id, quantity=3)

    cart = cancel_cart(cart=item.cart)

    assert cart.status == Cart.STATUS_CANCELLED
    product.refresh_from_db()
    assert product.quantity == 5
    # A fresh active cart is handed out afterwards.
    assert get_current_cart(user=user).id != cart.id


@pytest.mark.parametrize("status", [Cart.STATUS_PENDING, Cart.STATUS_PURCHASED])
@pytest.mark.django_db
def test_cancel_cart_refuses_non_active(status):
    cart = CartFactory(status=status)
    with pytest.raises(CartError):
        cancel_cart(cart=cart)
