"""
Abstract base models shared by the pos and refunds apps.

    UUIDPrimaryKeyMixin: UUID primary key, assigned before the INSERT
    BaseModel: created_at / updated_at timestamps

Usage:
    from core.models import BaseModel, UUIDPrimaryKeyMixin

    class Branch(UUIDPrimaryKeyMixin, BaseModel):
        name = models.CharField(max_length=120)

List the mixin before BaseModel so its ``id`` wins.
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    UUID primary key generated client-side.

    A refund's id is known before its row is committed, so it can be
    logged and carried in a saga cursor from the first step.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    class Meta:
        abstract = True


class BaseModel(models.Model):
    """
    Creation and modification timestamps.

    ``QuerySet.update()`` bypasses ``auto_now``; the refund services pass
    ``updated_at`` themselves when a bulk update must count as activity
    (reconciliation treats a stale ``updated_at`` as a stuck refund).
    """

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.pk})"
