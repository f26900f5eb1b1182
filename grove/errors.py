"""
grove.errors — Error Taxonomy
==============================

Every public operation either returns a value or raises one of these.
``retryable`` marks the kinds the write paths may retry with backoff;
validation and authorization failures are surfaced immediately.
"""

from __future__ import annotations


class GroveError(Exception):
    """Base exception for engine errors."""

    retryable: bool = False


class ValidationError(GroveError):
    """Malformed or missing required input (empty reason, bad limit, ...)."""


class AuthorizationError(GroveError):
    """Actor lacks the role required for the action or resource."""


class NotFoundError(GroveError):
    """Referenced uid or record does not exist."""


class ConflictError(GroveError):
    """A concurrent update won the race; the operation may be retried."""

    retryable = True


class UpstreamError(GroveError):
    """The database was unavailable or timed out."""

    retryable = True
