"""
Interfaces to the systems the payment core depends on but does not own.

Bookings and job-completion proof live in other services. The payment core
only needs a read-only view of a booking and a yes/no release gate, both
described here as Protocols and resolved from settings:

    PAYMENTS_BOOKING_DIRECTORY = "bookings.payments.BookingDirectory"
    PAYMENTS_COMPLETION_PROOF = "bookings.payments.CompletionProof"

Notifications go the other way and are sent as Django signals, see
payments.signals.

Usage:
    from payments.collaborators import get_booking_directory

    booking = get_booking_directory().get_booking(booking_id)
    if booking is None:
        ...
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import Protocol, runtime_checkable

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.core.signals import setting_changed
from django.dispatch import receiver
from django.utils.module_loading import import_string


@dataclass(frozen=True)
class BookingSnapshot:
    """
    Read-only view of a booking at payment time.

    Attributes:
        booking_id: Booking identifier
        client_id: Client paying for the booking
        provider_id: Provider doing the job
        amount: Total price to charge
        currency: ISO 4217 code
        client_email: Email the gateway sends the receipt to
        provider_recipient_code: Gateway transfer recipient for payouts
        status: Booking status, informational only
    """

    booking_id: uuid.UUID
    client_id: uuid.UUID | None
    provider_id: uuid.UUID
    amount: Decimal
    currency: str
    client_email: str = ""
    provider_recipient_code: str = ""
    status: str = ""


@runtime_checkable
class BookingDirectory(Protocol):
    """Read-only lookup of bookings."""

    def get_booking(self, booking_id: uuid.UUID) -> BookingSnapshot | None:
        """Return the booking, or None when it does not exist."""
        ...


@runtime_checkable
class CompletionProof(Protocol):
    """Gate deciding whether escrow may be released for a booking."""

    def is_release_eligible(self, booking_id: uuid.UUID) -> bool:
        """True once the job is proven complete (e.g. photo proof accepted)."""
        ...


class UnconfiguredBookingDirectory:
    """Default that fails loudly until a real directory is configured."""

    def get_booking(self, booking_id: uuid.UUID) -> BookingSnapshot | None:
        raise ImproperlyConfigured("PAYMENTS_BOOKING_DIRECTORY is not configured")


class UnconfiguredCompletionProof:
    """Default that fails loudly until a real release gate is configured."""

    def is_release_eligible(self, booking_id: uuid.UUID) -> bool:
        raise ImproperlyConfigured("PAYMENTS_COMPLETION_PROOF is not configured")


def _load(setting_name: str, protocol: type):
    path = getattr(settings, setting_name)
    try:
        implementation = import_string(path)
    except ImportError as e:
        raise ImproperlyConfigured(f"{setting_name}={path!r} could not be imported") from e

    instance = implementation() if isinstance(implementation, type) else implementation
    if not isinstance(instance, protocol):
        raise ImproperlyConfigured(f"{setting_name}={path!r} does not implement {protocol.__name__}")
    return instance


@lru_cache(maxsize=None)
def get_booking_directory() -> BookingDirectory:
    return _load("PAYMENTS_BOOKING_DIRECTORY", BookingDirectory)


@lru_cache(maxsize=None)
def get_completion_proof() -> CompletionProof:
    return _load("PAYMENTS_COMPLETION_PROOF", CompletionProof)


@receiver(setting_changed)
def _reset_collaborators(sender, setting, **kwargs):
    if setting in ("PAYMENTS_BOOKING_DIRECTORY", "PAYMENTS_COMPLETION_PROOF"):
        get_booking_directory.cache_clear()
        get_completion_proof.cache_clear()
