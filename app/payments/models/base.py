"""
Shared helper for models whose status is driven by django-fsm.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django_fsm import TransitionNotAllowed

from payments.exceptions import InvalidTransition

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class TransitionMixin:
    """
    Run named FSM transitions with a domain error instead of django-fsm's.

    ``TransitionNotAllowed`` is raised by django-fsm before the status field
    is touched, so a rejected transition leaves the instance (and the row)
    exactly as it was. The rejection is logged and re-raised as
    ``InvalidTransition`` carrying the current status.

    Note: Does not save - caller must save after a successful transition.
    """

    status_field_name = "status"

    def apply_transition(self, name: str, **kwargs: Any) -> str:
        """
        Apply the transition method ``name`` with ``kwargs``.

        Returns:
            The status before the transition

        Raises:
            InvalidTransition: If the transition is not legal from the
                current status
        """
        previous = getattr(self, self.status_field_name)
        method = getattr(self, name)
        try:
            method(**kwargs)
        except TransitionNotAllowed as e:
            logger.warning(
                f"Rejected {type(self).__name__} transition '{name}' from '{previous}'",
                extra={
                    "model": type(self).__name__,
                    "object_id": str(self.pk),
                    "current_status": previous,
                    "transition": name,
                },
            )
            raise InvalidTransition(
                f"Cannot apply '{name}' to {type(self).__name__} in '{previous}'",
                details={
                    "object_id": str(self.pk),
                    "current_status": previous,
                    "transition": name,
                },
            ) from e
        return previous
