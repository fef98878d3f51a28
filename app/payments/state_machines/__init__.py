"""
Status enums for payment models driven by django-fsm.
"""

from payments.state_machines.states import PaymentStatus, PayoutStatus

__all__ = [
    "PaymentStatus",
    "PayoutStatus",
]
