"""
Abstract model mixins combined with core.models.BaseModel.

Available Mixins:
    UUIDPrimaryKeyMixin: UUID primary key
    MetadataMixin: Free-form JSON metadata with small helpers

Usage:
    class Payout(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
        ...
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import models

if TYPE_CHECKING:
    from typing import Any


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use a random UUID as primary key.

    Ids are generated before insert, so they can be logged and sent to an
    external gateway in the same unit of work that creates the row.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class MetadataMixin(models.Model):
    """
    JSON metadata for data that has no column of its own.

    Typical content: gateway responses, authorization URLs, operator notes.
    """

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Flexible key-value metadata storage",
    )

    class Meta:
        abstract = True

    def get_meta(self, key: str, default: Any = None) -> Any:
        """Return ``metadata[key]`` or ``default``."""
        return (self.metadata or {}).get(key, default)

    def update_meta(self, **values: Any) -> None:
        """
        Merge ``values`` into metadata.

        Note: Does not save - caller must save (include "metadata" in
        update_fields when saving selectively).
        """
        merged = dict(self.metadata or {})
        merged.update(values)
        self.metadata = merged
