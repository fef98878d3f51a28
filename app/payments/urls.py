"""
URL configuration for the payments app.

Routes:
    - POST bookings/<booking_id>/pay/ - Start checkout
    - GET <payment_id>/ - Payment details
    - POST <payment_id>/release/ - Release escrow and pay out
    - POST <payment_id>/refund/ - Refund escrow (staff)
    - POST webhooks/paystack/ - Paystack webhook endpoint

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.
"""

from django.urls import path

from payments.views import (
    PaymentCheckoutView,
    PaymentDetailView,
    PaymentRefundView,
    PaymentReleaseView,
)
from payments.webhooks.views import paystack_webhook

app_name = "payments"

urlpatterns = [
    path("bookings/<uuid:booking_id>/pay/", PaymentCheckoutView.as_view(), name="checkout"),
    path("<uuid:payment_id>/", PaymentDetailView.as_view(), name="detail"),
    path("<uuid:payment_id>/release/", PaymentReleaseView.as_view(), name="release"),
    path("<uuid:payment_id>/refund/", PaymentRefundView.as_view(), name="refund"),
    # Webhook endpoints
    path("webhooks/paystack/", paystack_webhook, name="paystack-webhook"),
]
