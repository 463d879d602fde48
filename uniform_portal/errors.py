from __future__ import annotations


class EligibilityError(Exception):
    """Base class for errors raised by the lookup and eligibility layer."""


class NotFoundError(EligibilityError):
    pass


class CipherMismatchError(EligibilityError):
    def __init__(self, scheme: str) -> None:
        super().__init__(f'Unrecognized encryption scheme: {scheme!r}')
        self.scheme = scheme


class UnknownCategoryError(EligibilityError):
    def __init__(self, category: str, reason: str = 'no reissuance cycle is configured') -> None:
        super().__init__(f'Category {category!r}: {reason}')
        self.category = category
        self.reason = reason


class ConsistencyError(EligibilityError):
    """A store invariant is violated. Never resolved by picking a winner."""


class StoreTimeoutError(EligibilityError, TimeoutError):
    """A store call exceeded its deadline. Callers may retry."""
