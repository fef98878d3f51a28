"""
DRF serializers for payments app.

This module provides serializers for:
- Payment display (with its payout)
- Payout display
- Refund requests

Related files:
    - models/: Payment, Payout
    - views.py: Payment API views

Usage:
    serializer = PaymentSerializer(payment)
    data = serializer.data
"""

from __future__ import annotations

from drf_spectacular.utils import extend_schema_field
from rest_framework import serializers

from payments.models import Payment, Payout
from payments.state_machines import PaymentStatus


class PayoutSerializer(serializers.ModelSerializer):
    """Payout serializer for API responses."""

    class Meta:
        model = Payout
        fields = [
            "id",
            "status",
            "amount",
            "currency",
            "external_reference",
            "attempts",
            "submitted_at",
            "completed_at",
            "failed_at",
            "error",
            "created_at",
        ]
        read_only_fields = fields


class PaymentSerializer(serializers.ModelSerializer):
    """
    Payment serializer for API responses.

    Fields:
        authorization_url: Checkout URL while the payment is PENDING
        payout: The payment's payout, or null before release
    """

    authorization_url = serializers.SerializerMethodField()
    payout = serializers.SerializerMethodField()

    class Meta:
        model = Payment
        fields = [
            "id",
            "booking_id",
            "client_id",
            "provider_id",
            "amount",
            "escrow_amount",
            "platform_fee",
            "currency",
            "status",
            "external_reference",
            "authorization_url",
            "paid_at",
            "released_at",
            "refunded_at",
            "failure_reason",
            "payout",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    @extend_schema_field(serializers.URLField(allow_null=True))
    def get_authorization_url(self, obj: Payment) -> str | None:
        if obj.status != PaymentStatus.PENDING:
            return None
        return obj.get_meta("authorization_url")

    @extend_schema_field(PayoutSerializer(allow_null=True))
    def get_payout(self, obj: Payment) -> dict | None:
        payout = Payout.objects.filter(payment_id=obj.id).first()
        return PayoutSerializer(payout).data if payout else None


class RefundRequestSerializer(serializers.Serializer):
    """Request body for POST /payments/<id>/refund/."""

    reason = serializers.CharField(max_length=500)


class ErrorResponseSerializer(serializers.Serializer):
    """Shape of ServiceResult.to_response() for failures (schema only)."""

    success = serializers.BooleanField(default=False)
    error = serializers.CharField()
    error_code = serializers.CharField(required=False)
    details = serializers.DictField(required=False)
