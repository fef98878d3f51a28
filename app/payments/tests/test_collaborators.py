"""
Tests for loading the booking directory and completion proof from settings.
"""

import pytest
from django.core.exceptions import ImproperlyConfigured

from payments.collaborators import get_booking_directory, get_completion_proof
from payments.tests.fakes import FakeBookingDirectory, FakeCompletionProof, make_booking


def test_loads_configured_implementations():
    assert isinstance(get_booking_directory(), FakeBookingDirectory)
    assert isinstance(get_completion_proof(), FakeCompletionProof)


def test_directory_resolves_registered_booking():
    booking = make_booking()

    assert get_booking_directory().get_booking(booking.booking_id) == booking
    assert get_booking_directory().get_booking(str(booking.booking_id)) == booking


def test_unconfigured_defaults_fail_loudly(settings):
    settings.PAYMENTS_BOOKING_DIRECTORY = "payments.collaborators.UnconfiguredBookingDirectory"
    settings.PAYMENTS_COMPLETION_PROOF = "payments.collaborators.UnconfiguredCompletionProof"

    with pytest.raises(ImproperlyConfigured, match="PAYMENTS_BOOKING_DIRECTORY"):
        get_booking_directory().get_booking("6f1c1f5e-8a55-4c8e-9c0e-3d5d4f0b7a11")
    with pytest.raises(ImproperlyConfigured, match="PAYMENTS_COMPLETION_PROOF"):
        get_completion_proof().is_release_eligible("6f1c1f5e-8a55-4c8e-9c0e-3d5d4f0b7a11")


def test_unimportable_path(settings):
    settings.PAYMENTS_BOOKING_DIRECTORY = "bookings.missing.Directory"

    with pytest.raises(ImproperlyConfigured, match="could not be imported"):
        get_booking_directory()


def test_object_without_the_interface(settings):
    settings.PAYMENTS_COMPLETION_PROOF = "payments.tests.fakes.FakeBookingDirectory"

    with pytest.raises(ImproperlyConfigured, match="does not implement CompletionProof"):
        get_completion_proof()
