"""
Tests for UserManager and the User model.

Payments identify clients and providers by user id, so these tests also
pin down that ids are UUIDs assigned before the first save.

Related files:
    - managers.py: Implementation under test
    - models.py: User model that uses this manager
"""

import uuid

import pytest

from authentication.models import User
from authentication.tests.factories import UserFactory


class TestUserManagerCreateUser:
    """Tests for UserManager.create_user() method."""

    def test_creates_user_with_email_and_password(self, db):
        """
        Given valid email and password
        When create_user is called
        Then a user is created with those credentials
        """
        user = User.objects.create_user(email="client@example.com", password="SecurePass123!")

        assert user.pk is not None
        assert user.email == "client@example.com"
        assert user.check_password("SecurePass123!") is True
        assert user.is_staff is False
        assert user.is_superuser is False

    def test_normalizes_email_domain_to_lowercase(self, db):
        user = User.objects.create_user(email="Test.User@EXAMPLE.COM", password="x-Pass-123")

        assert user.email == "Test.User@example.com"

    def test_user_without_password_cannot_log_in(self, db):
        user = User.objects.create_user(email="service@example.com")

        assert user.has_usable_password() is False

    def test_missing_email_raises(self, db):
        with pytest.raises(ValueError, match="Email"):
            User.objects.create_user(email="", password="x-Pass-123")


class TestUserManagerCreateSuperuser:
    """Tests for UserManager.create_superuser() method."""

    def test_creates_staff_superuser(self, db):
        admin = User.objects.create_superuser(email="admin@example.com", password="AdminPass123!")

        assert admin.is_staff is True
        assert admin.is_superuser is True

    def test_rejects_non_staff_superuser(self, db):
        with pytest.raises(ValueError, match="is_staff"):
            User.objects.create_superuser(
                email="admin@example.com", password="AdminPass123!", is_staff=False
            )


class TestUserIdentity:
    """User ids are what payments store as client_id / provider_id."""

    def test_primary_key_is_uuid(self, db):
        user = UserFactory()

        assert isinstance(user.pk, uuid.UUID)
        assert User.objects.get(pk=str(user.pk)) == user

    def test_id_is_assigned_before_save(self):
        user = User(email="unsaved@example.com")

        assert isinstance(user.id, uuid.UUID)

    def test_str_is_email(self, db):
        user = UserFactory(email="provider@example.com")

        assert str(user) == "provider@example.com"
        assert user.get_short_name() == "provider"
