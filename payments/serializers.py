"""Serializers for payment responses."""

from orders.serializers import OrderSerializer
from rest_framework import serializers

from .gateway import to_minor_units
from .models import Payment


class PaymentSerializer(serializers.ModelSerializer):
    """Caller-facing view of a payment; amounts in major and minor units."""

    cart_id = serializers.IntegerField(read_only=True)
    amount_minor = serializers.SerializerMethodField()

    class Meta:
        model = Payment
        fields = [
            "id",
            "cart_id",
            "pidx",
            "payment_url",
            "status",
            "amount",
            "amount_minor",
            "transaction_id",
            "paid_at",
            "created_at",
        ]
        read_only_fields = fields

    def get_amount_minor(self, obj: Payment) -> int:
        return to_minor_units(obj.amount)


class InitiatePaymentSerializer(serializers.Serializer):
    """Request body for checkout initiation (documentation only)."""

    cart_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)


class VerifyPaymentSerializer(serializers.Serializer):
    """Request body for verification (documentation only)."""

    pidx = serializers.CharField(max_length=64)


class VerificationResponseSerializer(serializers.Serializer):
    success = serializers.BooleanField()
    status = serializers.CharField()
    detail = serializers.CharField(required=False)
    payment = PaymentSerializer(required=False)
    order = OrderSerializer(required=False)
