from decimal import Decimal

import factory
from cart.models import Cart, CartItem
from catalog.tests.factories import ProductFactory
from factory.django import DjangoModelFactory


class CartFactory(DjangoModelFactory):
    class Meta:
        model = Cart

    user = factory.SubFactory("users.tests.factories.UserFactory")
    status = Cart.STATUS_ACTIVE
    total_price = Decimal("0.00")


class CartItemFactory(DjangoModelFactory):
    """Line item that does not touch product stock; use services for that."""

    class Meta:
        model = CartItem

    cart = factory.SubFactory(CartFactory)
    product = factory.SubFactory(ProductFactory)
    quantity = 1
    unit_price = factory.LazyAttribute(lambda o: o.product.price)


def cart_with_items(*, user=None, status=Cart.STATUS_ACTIVE, lines=((Decimal("25.00"), 2),)):
    """Build a cart whose cached total matches its lines."""

    cart = CartFactory(status=status, **({"user": user} if user is not None else {}))
    total = Decimal("0.00")
    for price, quantity in lines:
        CartItemFactory(cart=cart, product=ProductFactory(price=price), quantity=quantity, unit_price=price)
        total += price * quantity
    cart.total_price = total
    cart.save(update_fields=["total_price"])
    return cart
