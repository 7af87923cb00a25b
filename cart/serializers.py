"""Cart serializers for read and write operations."""

from rest_framework import serializers

from .models import CartItem
from .services import add_item, update_item_quantity


class CartItemReadSerializer(serializers.ModelSerializer):
    """Read serializer for a cart item."""

    product_id = serializers.IntegerField(source="product.id")
    product_name = serializers.CharField(source="product.name")
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = CartItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "quantity",
            "unit_price",
            "line_total",
        ]


class CartReadSerializer(serializers.Serializer):
    """Read serializer for the cart summary and items."""

    id = serializers.IntegerField()
    status = serializers.CharField()
    items = CartItemReadSerializer(many=True)
    total_price = serializers.DecimalField(max_digits=12, decimal_places=2)

    @classmethod
    def from_cart(cls, *, cart):
        return cls(
            {
                "id": cart.id,
                "status": cart.status,
                "items": list(cart.items.select_related("product").all()),
                "total_price": cart.total_price,
            }
        )


class AddItemSerializer(serializers.Serializer):
    """Write serializer for adding a product to the cart."""

    product_id = serializers.IntegerField()
    quantity = serializers.IntegerField(min_value=1, default=1)

    def create(self, validated_data):  # type: ignore[override]
        user = self.context["request"].user
        return add_item(user=user, **validated_data)


class UpdateItemQuantitySerializer(serializers.Serializer):
    """Write serializer for setting a line item's quantity."""

    quantity = serializers.IntegerField(min_value=1)

    def update(self, instance, validated_data):  # type: ignore[override]
        user = self.context["request"].user
        return update_item_quantity(user=user, product_id=instance.product_id, quantity=validated_data["quantity"])
