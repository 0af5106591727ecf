"""
Error taxonomy shared by the search core and its request layers.
"""

from __future__ import annotations


class MediaRecallError(Exception):
    """Base class for errors raised by media-recall."""


class NotFound(MediaRecallError, LookupError):
    """Raised when a referenced media item does not exist."""


class ProviderUnavailable(MediaRecallError, RuntimeError):
    """Raised when an embedding, vector-index or LLM dependency is down or unauthenticated."""


class InputError(MediaRecallError, ValueError):
    """Raised for malformed or oversized input passed to a provider."""


class InternalError(MediaRecallError):
    """Raised when search orchestration reaches an inconsistent state."""
