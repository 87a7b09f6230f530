"""Shared error types for availability_core."""


class DownstreamOperationError(RuntimeError):
    """Failure raised by a write sink, event sink or authoritative store."""


class TransientError(DownstreamOperationError):
    """Generic retry-safe transient dependency failure."""
