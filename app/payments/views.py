"""
DRF views for payments app.

This module provides API views for:
- Starting checkout for a booking
- Payment details (with payout)
- Releasing escrow to the provider
- Refunding escrow to the client (staff)

Related files:
    - services/: EscrowService, PayoutService
    - serializers.py: Request/response serializers
    - permissions.py: Party-based access checks
    - webhooks/views.py: Paystack webhook endpoint
    - urls.py: URL routing

Endpoints:
    POST /api/v1/payments/bookings/<booking_id>/pay/ - Start checkout
    GET /api/v1/payments/<payment_id>/ - Payment details
    POST /api/v1/payments/<payment_id>/release/ - Release escrow and pay out
    POST /api/v1/payments/<payment_id>/refund/ - Refund escrow (staff only)

Error codes map to HTTP statuses:
    *_NOT_FOUND -> 404, ALREADY_EXISTS / INVALID_TRANSITION -> 409,
    NOT_ELIGIBLE -> 422, GATEWAY_* -> 502, anything else -> 400
"""

from __future__ import annotations

import logging

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.services import ServiceResult

from payments.collaborators import get_booking_directory
from payments.models import Payment
from payments.permissions import IsPaymentClient, IsPaymentParty
from payments.serializers import (
    ErrorResponseSerializer,
    PaymentSerializer,
    RefundRequestSerializer,
)
from payments.services import EscrowService, PayoutService

logger = logging.getLogger(__name__)


ERROR_STATUS = {
    "PAYMENT_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "BOOKING_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "ALREADY_EXISTS": status.HTTP_409_CONFLICT,
    "INVALID_TRANSITION": status.HTTP_409_CONFLICT,
    "AMOUNT_MISMATCH": status.HTTP_409_CONFLICT,
    "LOCK_ACQUISITION_FAILED": status.HTTP_409_CONFLICT,
    "NOT_ELIGIBLE": status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def error_status(error_code: str | None) -> int:
    """HTTP status for a failed ServiceResult's error code."""
    if error_code and error_code.startswith("GATEWAY_"):
        return status.HTTP_502_BAD_GATEWAY
    return ERROR_STATUS.get(error_code, status.HTTP_400_BAD_REQUEST)


def error_response(result: ServiceResult) -> Response:
    return Response(result.to_response(), status=error_status(result.error_code))


ERROR_RESPONSES = {
    404: OpenApiResponse(ErrorResponseSerializer, description="Payment or booking not found"),
    409: OpenApiResponse(ErrorResponseSerializer, description="Conflicts with the payment's state"),
    422: OpenApiResponse(ErrorResponseSerializer, description="Preconditions not met (NOT_ELIGIBLE)"),
    502: OpenApiResponse(ErrorResponseSerializer, description="Payment gateway failure"),
}


class PaymentCheckoutView(APIView):
    """
    Start (or resume) checkout for a booking.

    POST /api/v1/payments/bookings/<booking_id>/pay/

    Returns:
        The PENDING payment; ``authorization_url`` is the gateway checkout
    """

    permission_classes = [IsAuthenticated, IsPaymentClient]

    @extend_schema(
        summary="Pay for a booking",
        description=(
            "Create the booking's payment and initialize the gateway charge. "
            "Calling again while the payment is pending returns the same checkout."
        ),
        tags=["Payments"],
        request=None,
        responses={201: PaymentSerializer, **ERROR_RESPONSES},
    )
    def post(self, request, booking_id):
        booking = get_booking_directory().get_booking(booking_id)
        if booking is None:
            return Response(
                {"success": False, "error": "Booking not found", "error_code": "BOOKING_NOT_FOUND"},
                status=status.HTTP_404_NOT_FOUND,
            )
        self.check_object_permissions(request, booking)

        result = EscrowService.initiate_payment(booking_id)
        if not result:
            return error_response(result)
        return Response(PaymentSerializer(result.data).data, status=status.HTTP_201_CREATED)


class PaymentDetailView(APIView):
    """
    Payment details.

    GET /api/v1/payments/<payment_id>/
    """

    permission_classes = [IsAuthenticated, IsPaymentParty]

    @extend_schema(
        summary="Get a payment",
        description="Payment with its fee split, status and payout.",
        tags=["Payments"],
        responses={200: PaymentSerializer, 404: ERROR_RESPONSES[404]},
    )
    def get(self, request, payment_id):
        payment = get_object_or_404(Payment, id=payment_id)
        self.check_object_permissions(request, payment)
        return Response(PaymentSerializer(payment).data)


class PaymentReleaseView(APIView):
    """
    Release escrow to the provider.

    POST /api/v1/payments/<payment_id>/release/

    Requires job-completion proof for the booking. Moves the payment to
    PROCESSING_RELEASE and submits the payout transfer; a failed transfer
    puts the payment back in ESCROW and is retried in the background.
    """

    permission_classes = [IsAuthenticated, IsPaymentClient]

    @extend_schema(
        summary="Release escrow",
        description="Confirm the job and pay the escrowed amount out to the provider.",
        tags=["Payments"],
        request=None,
        responses={200: PaymentSerializer, **ERROR_RESPONSES},
    )
    def post(self, request, payment_id):
        payment = get_object_or_404(Payment, id=payment_id)
        self.check_object_permissions(request, payment)

        result = PayoutService.release_and_pay(payment.id)
        if not result:
            logger.info(
                f"Release rejected: {result.error_code}",
                extra={"payment_id": str(payment.id), "user_id": str(request.user.pk)},
            )
            return error_response(result)

        payment = Payment.objects.get(id=payment.id)
        return Response(PaymentSerializer(payment).data)


class PaymentRefundView(APIView):
    """
    Refund escrow to the client.

    POST /api/v1/payments/<payment_id>/refund/

    Request body:
        {"reason": "Provider did not show up"}
    """

    permission_classes = [IsAdminUser]

    @extend_schema(
        summary="Refund escrow",
        description="Return escrowed funds to the client. Staff only.",
        tags=["Payments"],
        request=RefundRequestSerializer,
        responses={200: PaymentSerializer, 404: ERROR_RESPONSES[404], 409: ERROR_RESPONSES[409]},
    )
    def post(self, request, payment_id):
        serializer = RefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = EscrowService.refund(payment_id, reason=serializer.validated_data["reason"])
        if not result:
            return error_response(result)

        logger.info(
            "Payment refunded by staff",
            extra={"payment_id": str(payment_id), "user_id": str(request.user.pk)},
        )
        return Response(PaymentSerializer(result.data).data)
