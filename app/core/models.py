"""
Abstract base for the marketplace's persisted models.

Identity and locking live in core.model_mixins; list mixins before
BaseModel so their fields come first:

    class Earning(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
        ...
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """Adds created_at/updated_at and newest-first ordering."""

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{type(self).__name__} {self.pk}"
