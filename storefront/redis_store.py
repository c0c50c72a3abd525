"""
Redis-backed remote store: catalog, carts, coupons and orders.
"""
import logging
import uuid
from typing import Dict, List, Optional

from pydantic import ValidationError as ModelValidationError

from storefront.atomic_scripts import AtomicScripts
from storefront.config import Config
from storefront.exceptions import (
    LimitExceededError,
    RemoteStoreError,
    ValidationError,
    VariantNotFoundError
)
from storefront.formatting import hash_identifier
from storefront.models import (
    CartLine,
    Coupon,
    LineDetails,
    Order,
    OrderRequest,
    Product,
    Variant
)
from storefront.redis_client import RedisClient, get_redis_client
from storefront.store import RemoteStore

logger = logging.getLogger(__name__)


class RedisStore(RemoteStore):
    """RemoteStore implementation over Redis"""

    def __init__(self, redis: Optional[RedisClient] = None):
        self.redis = redis or get_redis_client()
        self.scripts = AtomicScripts(self.redis)

    def _cart_key(self, user_id: str) -> str:
        return f"cart:{user_id}"

    def _variant_key(self, variant_id: str) -> str:
        return f"variant:{variant_id}"

    def _product_key(self, product_id: str) -> str:
        return f"product:{product_id}"

    def _product_variants_key(self, product_id: str) -> str:
        return f"product:{product_id}:variants"

    def _coupon_key(self, code: str) -> str:
        return f"coupon:{code.strip().upper()}"

    def _order_key(self, order_id: str) -> str:
        return f"order:{order_id}"

    def _user_orders_key(self, user_id: str) -> str:
        return f"orders:{user_id}"

    # Catalog

    async def fetch_variant(self, variant_id: str) -> Variant:
        raw = await self.redis.get(self._variant_key(variant_id))
        if raw is None:
            raise VariantNotFoundError(variant_id)
        return Variant.model_validate_json(raw)

    async def fetch_product(self, product_id: str) -> Optional[Product]:
        raw = await self.redis.get(self._product_key(product_id))
        if raw is None:
            return None
        return Product.model_validate_json(raw)

    async def fetch_product_variants(self, product_id: str) -> List[Variant]:
        variant_ids = sorted(await self.redis.smembers(self._product_variants_key(product_id)))
        raws = await self.redis.mget([self._variant_key(v) for v in variant_ids])
        variants = [Variant.model_validate_json(raw) for raw in raws if raw is not None]
        return sorted(variants, key=lambda v: v.attribute)

    async def fetch_coupon(self, code: str) -> Optional[Coupon]:
        if not code or not code.strip():
            return None
        raw = await self.redis.get(self._coupon_key(code))
        if raw is None:
            return None
        return Coupon.model_validate_json(raw)

    async def save_product(self, product: Product) -> None:
        await self.redis.set(self._product_key(product.id), product.model_dump_json())

    async def save_variant(self, variant: Variant) -> None:
        await self.redis.set(self._variant_key(variant.id), variant.model_dump_json())
        await self.redis.sadd(self._product_variants_key(variant.product_id), variant.id)

    async def save_coupon(self, coupon: Coupon) -> None:
        await self.redis.set(self._coupon_key(coupon.code), coupon.model_dump_json())

    # Cart

    async def fetch_cart_lines(self, user_id: str) -> List[CartLine]:
        """
        Read the cart hash and assemble display data from the catalog.

        Lines whose variant or product has disappeared are dropped from the
        result and deleted from the cart.
        """
        cart_key = self._cart_key(user_id)
        quantities: Dict[str, str] = await self.redis.hgetall(cart_key)
        if not quantities:
            return []

        variant_ids = sorted(quantities)
        variants: Dict[str, Variant] = {}
        for variant_id, raw in zip(variant_ids, await self.redis.mget(
                [self._variant_key(v) for v in variant_ids])):
            if raw is not None:
                variants[variant_id] = Variant.model_validate_json(raw)

        product_ids = sorted({v.product_id for v in variants.values()})
        products: Dict[str, Product] = {}
        for product_id, raw in zip(product_ids, await self.redis.mget(
                [self._product_key(p) for p in product_ids])):
            if raw is not None:
                products[product_id] = Product.model_validate_json(raw)

        lines: List[CartLine] = []
        stale: List[str] = []
        for variant_id in variant_ids:
            variant = variants.get(variant_id)
            product = products.get(variant.product_id) if variant else None
            try:
                quantity = int(quantities[variant_id])
            except ValueError:
                quantity = 0
            if product is None or quantity <= 0:
                stale.append(variant_id)
                continue
            lines.append(CartLine(
                variant_id=variant_id,
                quantity=quantity,
                details=LineDetails.from_catalog(product, variant)
            ))

        if stale:
            logger.warning(
                f"Dropping {len(stale)} stale cart line(s) for user {hash_identifier(user_id)}: {stale}"
            )
            await self.redis.hdel(cart_key, *stale)

        return lines

    async def upsert_cart_line(self, user_id: str, variant_id: str, quantity: int) -> None:
        result = await self.scripts.upsert_line(
            cart_key=self._cart_key(user_id),
            variant_key=self._variant_key(variant_id),
            variant_id=variant_id,
            quantity=quantity,
            max_quantity=Config.MAX_QUANTITY_PER_ITEM,
            ttl=Config.CART_TTL_SECONDS
        )

        error = result.get("err")
        if error == "VARIANT_NOT_FOUND":
            raise VariantNotFoundError(variant_id)
        elif error == "MAX_QUANTITY_EXCEEDED":
            raise LimitExceededError(
                f"Quantity exceeds maximum {result.get('max', Config.MAX_QUANTITY_PER_ITEM)}"
            )
        elif error == "INVALID_QUANTITY":
            raise ValidationError(f"Invalid quantity: {quantity}")
        elif error:
            raise RemoteStoreError(f"Redis script error: {error}")

        if not result.get("ok"):
            raise RemoteStoreError(f"Redis script did not return success: {result}")

    async def delete_cart_line(self, user_id: str, variant_id: str) -> None:
        await self.redis.hdel(self._cart_key(user_id), variant_id)

    # Orders

    async def create_order(self, request: OrderRequest) -> str:
        order_id = str(uuid.uuid4())
        order = Order(id=order_id, **request.model_dump())

        result = await self.scripts.place_order(
            cart_key=self._cart_key(request.user_id),
            order_key=self._order_key(order_id),
            user_orders_key=self._user_orders_key(request.user_id),
            order_id=order_id,
            order_json=order.model_dump_json(),
            lines=[
                (self._variant_key(line.variant_id), line.variant_id, line.quantity)
                for line in request.lines
            ]
        )

        error = result.get("err")
        if error == "VARIANT_NOT_FOUND":
            raise VariantNotFoundError(result.get("variant_id", ""))
        elif error == "INSUFFICIENT_STOCK":
            raise ValidationError(
                f"Insufficient stock for variant {result.get('variant_id')}: "
                f"requested {result.get('requested')}, available {result.get('available')}"
            )
        elif error:
            raise RemoteStoreError(f"Redis script error: {error}")

        logger.info(
            f"Order created: {order_id} for user {hash_identifier(request.user_id)}, "
            f"total {request.totals.total}"
        )
        return order_id

    async def fetch_orders(self, user_id: str) -> List[Order]:
        order_ids = await self.redis.lrange(self._user_orders_key(user_id), 0, -1)
        raws = await self.redis.mget([self._order_key(o) for o in order_ids])
        orders: List[Order] = []
        for order_id, raw in zip(order_ids, raws):
            if raw is None:
                continue
            try:
                orders.append(Order.model_validate_json(raw))
            except ModelValidationError as e:
                logger.warning(f"Failed to parse order {order_id}: {e}")
        return orders
