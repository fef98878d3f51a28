"""
Process-wide access to the payment gateway adapter.

Services call ``get_gateway()`` instead of constructing an adapter so tests
can swap in a fake:

    set_gateway(fake_gateway)
    try:
        ...
    finally:
        set_gateway(None)
"""

from __future__ import annotations

from payments.adapters import PaystackAdapter

_gateway = None


def get_gateway():
    """Return the injected gateway, or a PaystackAdapter built from settings."""
    global _gateway
    if _gateway is None:
        _gateway = PaystackAdapter.from_settings()
    return _gateway


def set_gateway(gateway) -> None:
    """Inject a gateway; ``None`` resets to the settings-built adapter."""
    global _gateway
    _gateway = gateway
