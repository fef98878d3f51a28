"""
Payments app: escrow for service bookings.

This app handles:
- Collecting a booking's payment through Paystack and holding it in escrow
- Splitting the amount into escrow and platform fee
- Paying the escrow out to the provider once the job is proven complete
- Refunding escrow to the client
- Idempotent ingestion of Paystack webhooks

Related apps:
    - authentication: User model; client/provider ids are user ids
    - Booking side: reached through payments.collaborators and the
      signals in payments.signals

Usage:
    from payments.services import EscrowService, PayoutService

    result = EscrowService.initiate_payment(booking_id)
    result = PayoutService.release_and_pay(payment_id)
"""
