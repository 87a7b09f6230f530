"""Membership index exceptions."""


class MembershipError(Exception):
    """Base exception for the membership package."""


class FilterNotLoadedError(MembershipError):
    """Raised when a lookup runs before any index has been attached.

    Not retryable: an operator has to build and load a filter first.
    """

    def __init__(self) -> None:
        super().__init__("membership filter is not loaded")


class FilterFormatError(MembershipError, ValueError):
    """Raised when a persisted filter payload cannot be decoded or validated."""
