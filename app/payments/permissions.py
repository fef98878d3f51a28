"""
Permission classes for the payments API.

- IsPaymentParty: client or provider of the payment (read access)
- IsPaymentClient: the paying client (checkout and release)

Staff users pass every check. Ownership is decided by comparing the
authenticated user's id with the party ids stored on the Payment (or the
BookingSnapshot before a Payment exists).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


def _same_id(user, party_id) -> bool:
    return party_id is not None and str(user.pk) == str(party_id)


class IsPaymentParty(permissions.BasePermission):
    """Allows access to the client, the provider, and staff."""

    message = "You are not a party to this payment."

    def has_object_permission(self, request: Request, view: APIView, obj) -> bool:
        user = request.user
        if not user.is_authenticated:
            return False
        if user.is_staff:
            return True
        return _same_id(user, obj.client_id) or _same_id(user, obj.provider_id)


class IsPaymentClient(permissions.BasePermission):
    """
    Allows access to the paying client and staff.

    Works on Payment and BookingSnapshot objects alike.
    """

    message = "Only the client of this booking can perform this action."

    def has_object_permission(self, request: Request, view: APIView, obj) -> bool:
        user = request.user
        if not user.is_authenticated:
            return False
        return user.is_staff or _same_id(user, obj.client_id)
