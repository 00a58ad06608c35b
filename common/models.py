"""Common base models shared across apps.

`TimeStampedModel` adds created/updated timestamps; `AppendOnlyModel` is the
base for audit records that may be inserted but never rewritten.
"""

from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base model adding `created_at` and `updated_at` timestamps."""

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class AppendOnlyModel(models.Model):
    """Abstract base for rows that are written once.

    Saving an already persisted instance or deleting it raises `ValueError`.
    Bulk queryset operations bypass this guard, so audit tables must only be
    written through model instances.
    """

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError(f"{type(self).__name__} rows are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError(f"{type(self).__name__} rows cannot be deleted")
