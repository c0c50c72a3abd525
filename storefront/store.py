"""
Interface of the remote persistent store and order-creation collaborator.
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from storefront.models import CartLine, Coupon, Order, OrderRequest, Product, Variant


class RemoteStore(ABC):
    """System of record for catalog, carts, coupons and orders.

    Implementations raise RemoteStoreError for transport failures and
    VariantNotFoundError when a write references an unknown variant.
    """

    @abstractmethod
    async def fetch_cart_lines(self, user_id: str) -> List[CartLine]:
        """Full snapshot of a user's cart, with display data assembled."""

    @abstractmethod
    async def upsert_cart_line(self, user_id: str, variant_id: str, quantity: int) -> None:
        """Create or update the single line keyed by (user_id, variant_id)."""

    @abstractmethod
    async def delete_cart_line(self, user_id: str, variant_id: str) -> None:
        """Delete a line; no-op if absent."""

    @abstractmethod
    async def fetch_variant(self, variant_id: str) -> Variant:
        """Near-current variant record. Raises VariantNotFoundError."""

    @abstractmethod
    async def fetch_product(self, product_id: str) -> Optional[Product]:
        ...

    @abstractmethod
    async def fetch_product_variants(self, product_id: str) -> List[Variant]:
        ...

    @abstractmethod
    async def fetch_coupon(self, code: str) -> Optional[Coupon]:
        ...

    @abstractmethod
    async def create_order(self, request: OrderRequest) -> str:
        """Atomically persist an order and clear the cart; returns the order id."""

    @abstractmethod
    async def fetch_orders(self, user_id: str) -> List[Order]:
        ...
