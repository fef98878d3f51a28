"""
Tests for the payments REST API.
"""

import uuid

import pytest
from django.urls import reverse
from rest_framework import status

from authentication.tests.factories import UserFactory
from payments.models import Payment, Payout
from payments.state_machines import PaymentStatus, PayoutStatus
from payments.tests.factories import PaymentFactory
from payments.tests.fakes import ELIGIBLE


@pytest.mark.django_db
class TestCheckout:
    def url(self, booking_id):
        return reverse("payments:checkout", kwargs={"booking_id": booking_id})

    def test_client_starts_checkout(self, api_client, client_user, booking):
        api_client.force_authenticate(client_user)

        response = api_client.post(self.url(booking.booking_id))

        assert response.status_code == status.HTTP_201_CREATED
        payment = Payment.objects.get(booking_id=booking.booking_id)
        assert response.data["id"] == str(payment.id)
        assert response.data["status"] == PaymentStatus.PENDING
        assert response.data["amount"] == "1000.00"
        assert response.data["escrow_amount"] is None
        assert response.data["authorization_url"].startswith("https://checkout.paystack.com/")
        assert response.data["payout"] is None

    def test_provider_cannot_pay(self, api_client, provider_user, booking):
        api_client.force_authenticate(provider_user)

        response = api_client.post(self.url(booking.booking_id))

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert Payment.objects.count() == 0

    def test_unknown_booking(self, api_client, client_user):
        api_client.force_authenticate(client_user)

        response = api_client.post(self.url(uuid.uuid4()))

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["error_code"] == "BOOKING_NOT_FOUND"

    def test_requires_authentication(self, api_client, booking):
        response = api_client.post(self.url(booking.booking_id))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_settled_booking_conflicts(self, api_client, client_user, escrow_payment):
        api_client.force_authenticate(client_user)

        response = api_client.post(self.url(escrow_payment.booking_id))

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "ALREADY_EXISTS"


@pytest.mark.django_db
class TestPaymentDetail:
    def url(self, payment_id):
        return reverse("payments:detail", kwargs={"payment_id": payment_id})

    @pytest.mark.parametrize("party", ["client_user", "provider_user", "staff_user"])
    def test_parties_can_read(self, api_client, escrow_payment, party, request):
        api_client.force_authenticate(request.getfixturevalue(party))

        response = api_client.get(self.url(escrow_payment.id))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["escrow_amount"] == "900.00"
        assert response.data["platform_fee"] == "100.00"
        assert response.data["authorization_url"] is None

    def test_stranger_is_forbidden(self, api_client, escrow_payment):
        api_client.force_authenticate(UserFactory(email="stranger@example.com"))

        response = api_client.get(self.url(escrow_payment.id))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_missing_payment(self, api_client, client_user):
        api_client.force_authenticate(client_user)

        response = api_client.get(self.url(uuid.uuid4()))

        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestRelease:
    def url(self, payment_id):
        return reverse("payments:release", kwargs={"payment_id": payment_id})

    def test_client_releases_completed_job(self, api_client, client_user, escrow_payment, gateway):
        ELIGIBLE.add(escrow_payment.booking_id)
        api_client.force_authenticate(client_user)

        response = api_client.post(self.url(escrow_payment.id))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == PaymentStatus.PROCESSING_RELEASE
        assert response.data["payout"]["status"] == PayoutStatus.PROCESSING
        assert response.data["payout"]["amount"] == "900.00"
        assert gateway.transfers[0]["recipient"] == "RCP_test_provider"

    def test_job_not_completed(self, api_client, client_user, escrow_payment, gateway):
        api_client.force_authenticate(client_user)

        response = api_client.post(self.url(escrow_payment.id))

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY
        assert response.data["error_code"] == "NOT_ELIGIBLE"
        assert Payout.objects.count() == 0
        assert gateway.transfers == []

    def test_provider_cannot_release(self, api_client, provider_user, escrow_payment):
        ELIGIBLE.add(escrow_payment.booking_id)
        api_client.force_authenticate(provider_user)

        response = api_client.post(self.url(escrow_payment.id))

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert Payment.objects.get(id=escrow_payment.id).status == PaymentStatus.ESCROW

    def test_pending_payment_conflicts(self, api_client, client_user, pending_payment):
        ELIGIBLE.add(pending_payment.booking_id)
        api_client.force_authenticate(client_user)

        response = api_client.post(self.url(pending_payment.id))

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "INVALID_TRANSITION"


@pytest.mark.django_db
class TestRefund:
    def url(self, payment_id):
        return reverse("payments:refund", kwargs={"payment_id": payment_id})

    def test_staff_refunds_escrow(self, api_client, staff_user, escrow_payment):
        api_client.force_authenticate(staff_user)

        response = api_client.post(self.url(escrow_payment.id), {"reason": "Provider no-show"}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == PaymentStatus.REFUNDED
        assert response.data["failure_reason"] == "Provider no-show"

    def test_client_cannot_refund(self, api_client, client_user, escrow_payment):
        api_client.force_authenticate(client_user)

        response = api_client.post(self.url(escrow_payment.id), {"reason": "Changed my mind"}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert Payment.objects.get(id=escrow_payment.id).status == PaymentStatus.ESCROW

    def test_released_payment_conflicts(self, api_client, staff_user):
        payment = PaymentFactory(released=True)
        api_client.force_authenticate(staff_user)

        response = api_client.post(self.url(payment.id), {"reason": "Too late"}, format="json")

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "INVALID_TRANSITION"

    def test_reason_is_required(self, api_client, staff_user, escrow_payment):
        api_client.force_authenticate(staff_user)

        response = api_client.post(self.url(escrow_payment.id), {}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
