"""
Custom exceptions for the storefront cart service.
"""
from typing import Optional


class CartException(Exception):
    """Base exception for cart operations"""
    pass


class ValidationError(CartException):
    """Raised when validation fails"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class LimitExceededError(CartException):
    """Raised when cart limits are exceeded"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotAuthenticatedError(CartException):
    """Raised when a cart operation is attempted without an active session"""
    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)


class VariantNotFoundError(CartException):
    """Raised when a variant is unknown to the resolver or the remote store"""
    def __init__(self, variant_id: str, message: Optional[str] = None):
        self.variant_id = variant_id
        super().__init__(message or f"Variant not found: {variant_id}")


class RemoteStoreError(CartException):
    """Raised when the remote store is unreachable or rejects an operation"""
    pass


class CheckoutError(CartException):
    """Raised when order creation is blocked"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class SessionChangedError(CartException):
    """Raised when the session changed before a queued cart update was sent"""
    def __init__(self, variant_id: str):
        self.variant_id = variant_id
        super().__init__(f"Session changed before update for variant {variant_id} was sent")
