"""
Authentication application.

This app provides the email-based User model. Users authenticate with JWT
access tokens (simplejwt) and are the clients and providers that payments
refer to by id.

Usage:
    from authentication.models import User
"""
