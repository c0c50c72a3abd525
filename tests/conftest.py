"""Shared fixtures: an in-memory RemoteStore and a small catalog."""

import asyncio
from typing import Dict, List, Optional

import pytest

from storefront.auth import AuthSession
from storefront.cart_store import CartStore
from storefront.exceptions import RemoteStoreError, ValidationError, VariantNotFoundError
from storefront.models import (
    CartLine,
    Coupon,
    DiscountKind,
    LineDetails,
    Order,
    OrderRequest,
    Product,
    Variant,
)
from storefront.pricing import PricingEngine
from storefront.store import RemoteStore


class InMemoryStore(RemoteStore):
    """RemoteStore double with failure injection and a gate to hold calls in flight."""

    def __init__(self) -> None:
        self.products: Dict[str, Product] = {}
        self.variants: Dict[str, Variant] = {}
        self.coupons: Dict[str, Coupon] = {}
        self.carts: Dict[str, Dict[str, int]] = {}
        self.orders: Dict[str, Order] = {}
        self.user_orders: Dict[str, List[str]] = {}
        self.calls: List[tuple] = []
        self.fail_upserts = 0
        self.fail_deletes = 0
        self.fail_fetch = False
        self.fail_orders = False
        self.gate: Optional[asyncio.Event] = None

    def add_product(self, product: Product, variants: List[Variant]) -> None:
        self.products[product.id] = product
        for variant in variants:
            self.variants[variant.id] = variant

    async def _wait_gate(self) -> None:
        if self.gate is not None:
            await self.gate.wait()

    async def fetch_cart_lines(self, user_id: str) -> List[CartLine]:
        self.calls.append(("fetch", user_id))
        if self.fail_fetch:
            raise RemoteStoreError("fetch failed")
        cart = self.carts.get(user_id, {})
        lines = []
        for variant_id in sorted(cart):
            variant = self.variants.get(variant_id)
            product = self.products.get(variant.product_id) if variant else None
            if product is None:
                del cart[variant_id]
                continue
            lines.append(CartLine(
                variant_id=variant_id,
                quantity=cart[variant_id],
                details=LineDetails.from_catalog(product, variant),
            ))
        return lines

    async def upsert_cart_line(self, user_id: str, variant_id: str, quantity: int) -> None:
        self.calls.append(("upsert", user_id, variant_id, quantity))
        await self._wait_gate()
        if self.fail_upserts:
            self.fail_upserts -= 1
            raise RemoteStoreError("upsert failed")
        if variant_id not in self.variants:
            raise VariantNotFoundError(variant_id)
        self.carts.setdefault(user_id, {})[variant_id] = quantity

    async def delete_cart_line(self, user_id: str, variant_id: str) -> None:
        self.calls.append(("delete", user_id, variant_id))
        await self._wait_gate()
        if self.fail_deletes:
            self.fail_deletes -= 1
            raise RemoteStoreError("delete failed")
        self.carts.get(user_id, {}).pop(variant_id, None)

    async def fetch_variant(self, variant_id: str) -> Variant:
        if variant_id not in self.variants:
            raise VariantNotFoundError(variant_id)
        return self.variants[variant_id]

    async def fetch_product(self, product_id: str) -> Optional[Product]:
        return self.products.get(product_id)

    async def fetch_product_variants(self, product_id: str) -> List[Variant]:
        return sorted(
            (v for v in self.variants.values() if v.product_id == product_id),
            key=lambda v: v.attribute,
        )

    async def fetch_coupon(self, code: str) -> Optional[Coupon]:
        return self.coupons.get(code.strip().upper())

    async def create_order(self, request: OrderRequest) -> str:
        if self.fail_orders:
            raise RemoteStoreError("order service down")
        for line in request.lines:
            if self.variants[line.variant_id].stock < line.quantity:
                raise ValidationError(f"Insufficient stock for variant {line.variant_id}")
        for line in request.lines:
            variant = self.variants[line.variant_id]
            self.variants[line.variant_id] = variant.model_copy(
                update={"stock": variant.stock - line.quantity}
            )
            self.carts.get(request.user_id, {}).pop(line.variant_id, None)
        order_id = f"order-{len(self.orders) + 1}"
        self.orders[order_id] = Order(id=order_id, **request.model_dump())
        self.user_orders.setdefault(request.user_id, []).insert(0, order_id)
        return order_id

    async def fetch_orders(self, user_id: str) -> List[Order]:
        return [self.orders[o] for o in self.user_orders.get(user_id, [])]


SHOE = Product(id="p-shoe", name="Running Shoe", base_price=299000, prior_price=349000, image="shoe.jpg")
SHIRT = Product(id="p-shirt", name="Training Shirt", base_price="199.000đ")

VARIANT_A = Variant(id="v-a", product_id="p-shoe", attribute="M", stock=10)
VARIANT_B = Variant(id="v-b", product_id="p-shoe", attribute="L", stock=0)
VARIANT_C = Variant(id="v-c", product_id="p-shirt", attribute="S", stock=5, price=150000)

SPORT10 = Coupon(code="SPORT10", kind=DiscountKind.PERCENT, value=10)
FREESHIP = Coupon(code="FREESHIP", kind=DiscountKind.FIXED, value=30000)


@pytest.fixture
def store() -> InMemoryStore:
    s = InMemoryStore()
    s.add_product(SHOE, [VARIANT_A, VARIANT_B])
    s.add_product(SHIRT, [VARIANT_C])
    s.coupons[SPORT10.code] = SPORT10
    s.coupons[FREESHIP.code] = FREESHIP
    return s


@pytest.fixture
def session() -> AuthSession:
    return AuthSession("alice")


@pytest.fixture
def cart(session: AuthSession, store: InMemoryStore) -> CartStore:
    return CartStore(session, store, strict_sync=False, max_quantity=99)


@pytest.fixture
def pricing() -> PricingEngine:
    return PricingEngine(tax_rate="0.08", shipping_fee=30000)
