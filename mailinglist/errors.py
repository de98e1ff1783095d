"""Domain-level failures raised by the repository layer.

Driver exceptions (``sqlite3.Error``) never leak past the repository; they are
re-raised as one of the classes below with the original chained as ``__cause__``.
"""
from __future__ import annotations


class MailingListError(Exception):
    """Base class for every registry failure."""


class SchemaError(MailingListError):
    """Schema initialization failed for a reason other than "already exists".

    Startup must not continue with a broken schema.
    """


class ConstraintError(MailingListError):
    """Unique-key violation, i.e. the address is already subscribed."""


class DecodeError(MailingListError):
    """A result row does not have the shape of an ``emails`` row."""


class StoreError(MailingListError):
    """Any other driver/transport failure. No retries happen here."""


class ValidationError(MailingListError, ValueError):
    """Invalid caller input, e.g. non-positive pagination parameters."""
