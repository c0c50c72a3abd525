"""
FastAPI application exposing the storefront cart, pricing and checkout.
"""
import asyncio
import logging
import time
from collections import OrderedDict
from typing import Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.auth import AuthSession
from storefront.cart_store import CartState, CartStore
from storefront.checkout_service import CheckoutService
from storefront.config import Config
from storefront.exceptions import (
    CheckoutError,
    LimitExceededError,
    NotAuthenticatedError,
    RemoteStoreError,
    SessionChangedError,
    ValidationError,
    VariantNotFoundError
)
from storefront.formatting import hash_identifier
from storefront.middleware import MetricsMiddleware
from storefront.models import (
    CartItemRequest,
    CartSnapshot,
    CheckoutRequest,
    LineDetails,
    Order,
    PriceBreakdown,
    QuantityUpdateRequest,
    Resolution,
    ResolveRequest
)
from storefront.pricing import PricingEngine
from storefront.redis_client import get_redis_client
from storefront.redis_store import RedisStore
from storefront.store import RemoteStore
from storefront.variant_resolver import VariantResolver

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Storefront Cart API",
    description="Cart, pricing and checkout for the storefront",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(MetricsMiddleware)

pricing_engine = PricingEngine()

_store: Optional[RemoteStore] = None


def get_store() -> RemoteStore:
    """Get or create the remote store (singleton)"""
    global _store
    if _store is None:
        _store = RedisStore()
    return _store


class CartRegistry:
    """
    One signed-in session and CartStore per user, for this process.

    Carts idle for longer than idle_seconds are dropped, and so is the least
    recently used one once more than max_users are held. A dropped cart is
    rebuilt from the remote store on the user's next request.
    """

    def __init__(
        self,
        idle_seconds: Optional[int] = None,
        max_users: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.idle_seconds = Config.CART_SESSION_IDLE_SECONDS if idle_seconds is None else idle_seconds
        self.max_users = Config.CART_REGISTRY_MAX_USERS if max_users is None else max_users
        self._clock = clock
        self._carts: "OrderedDict[str, CartStore]" = OrderedDict()
        self._last_seen: Dict[str, float] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def __contains__(self, user_id: str) -> bool:
        return user_id in self._carts

    def __len__(self) -> int:
        return len(self._carts)

    async def get(self, user_id: str, store: RemoteStore) -> CartStore:
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        async with lock:
            cart = self._carts.get(user_id)
            if cart is None:
                cart = CartStore(AuthSession(user_id), store)
                try:
                    await cart.refresh()
                except Exception:
                    cart.close()
                    raise
                self._carts[user_id] = cart
            elif cart.needs_refresh:
                await cart.refresh()
            self._carts.move_to_end(user_id)
            self._last_seen[user_id] = self._clock()

        self._evict(keep=user_id)
        return cart

    def clear(self) -> None:
        for cart in self._carts.values():
            cart.close()
        self._carts.clear()
        self._last_seen.clear()
        self._locks.clear()

    def _evict(self, keep: str) -> None:
        now = self._clock()
        # Oldest first; carts with changes in flight or being rebuilt stay
        for user_id in list(self._carts):
            expired = now - self._last_seen[user_id] > self.idle_seconds
            if not expired and len(self._carts) <= self.max_users:
                break
            cart = self._carts[user_id]
            if user_id == keep or cart.state == CartState.PENDING or self._locks[user_id].locked():
                continue
            cart.close()
            del self._carts[user_id]
            del self._last_seen[user_id]
            del self._locks[user_id]
            logger.info(f"Evicted cart for user {hash_identifier(user_id)}")


cart_registry = CartRegistry()


def get_user_id(
    user_id: Optional[str] = Header(None, alias="X-User-ID", description="User identifier")
) -> str:
    if not user_id or not user_id.strip():
        raise NotAuthenticatedError()
    return user_id.strip()


async def get_cart_store(
    user_id: str = Depends(get_user_id),
    store: RemoteStore = Depends(get_store)
) -> CartStore:
    return await cart_registry.get(user_id, store)


@app.get("/health")
async def health_check():
    """
    Health check endpoint.
    Always returns HTTP 200 if the application is running; reports Redis status.
    """
    redis_status = "healthy"
    redis_latency_ms = None

    try:
        redis_client = get_redis_client()
        ping_start = time.time()
        ping_result = await redis_client.ping()
        redis_latency_ms = round((time.time() - ping_start) * 1000, 2)

        if not ping_result:
            redis_status = "unhealthy"
    except RemoteStoreError:
        redis_status = "unhealthy"

    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "service": "storefront-api",
            "redis": {
                "status": redis_status,
                "latency_ms": redis_latency_ms
            },
            "timestamp": time.time()
        }
    )


# Cart endpoints
@app.get("/cart", response_model=CartSnapshot)
async def get_cart(cart: CartStore = Depends(get_cart_store)):
    """Current cart lines and aggregate count"""
    return cart.get_snapshot()


@app.post("/cart/refresh", response_model=CartSnapshot)
async def refresh_cart(cart: CartStore = Depends(get_cart_store)):
    """Discard local state and re-read the cart from the store"""
    return await cart.refresh()


@app.post("/cart/items", response_model=CartSnapshot)
async def add_cart_item(
    request: CartItemRequest,
    cart: CartStore = Depends(get_cart_store),
    store: RemoteStore = Depends(get_store)
):
    """
    Add a variant to the cart.
    Stock is checked against the quantity the line would have after the add.
    """
    variant = await store.fetch_variant(request.variant_id)
    in_cart = sum(
        line.quantity for line in cart.get_snapshot().lines if line.variant_id == variant.id
    )
    availability = VariantResolver().check_available(variant, in_cart + request.quantity)
    if not availability.ok:
        raise HTTPException(status_code=409, detail=availability.model_dump(mode="json"))

    product = await store.fetch_product(variant.product_id)
    details = LineDetails.from_catalog(product, variant) if product else None
    return await cart.add_to_cart(variant.id, request.quantity, details)


@app.put("/cart/items/{variant_id}", response_model=CartSnapshot)
async def update_cart_item(
    variant_id: str,
    request: QuantityUpdateRequest,
    cart: CartStore = Depends(get_cart_store),
    store: RemoteStore = Depends(get_store)
):
    """Set a line's quantity; 0 or less removes it"""
    if request.quantity > 0:
        availability = await VariantResolver(store).check_stock(variant_id, request.quantity)
        if not availability.ok:
            raise HTTPException(status_code=409, detail=availability.model_dump(mode="json"))
    return await cart.set_quantity(variant_id, request.quantity)


@app.delete("/cart/items/{variant_id}", response_model=CartSnapshot)
async def remove_cart_item(variant_id: str, cart: CartStore = Depends(get_cart_store)):
    """Remove a line; removing an absent line is not an error"""
    return await cart.remove_from_cart(variant_id)


@app.get("/cart/totals", response_model=PriceBreakdown)
async def get_cart_totals(
    coupon: Optional[str] = Query(None, description="Coupon code"),
    cart: CartStore = Depends(get_cart_store),
    store: RemoteStore = Depends(get_store)
):
    """Price the current cart"""
    found = await store.fetch_coupon(coupon) if coupon else None
    return pricing_engine.quote(cart.get_snapshot().lines, found, coupon)


# Catalog endpoints
@app.post("/products/{product_id}/resolve", response_model=Resolution)
async def resolve_variant(
    product_id: str,
    request: ResolveRequest,
    store: RemoteStore = Depends(get_store)
):
    """Resolve a selected attribute to a purchasable variant"""
    product = await store.fetch_product(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product not found: {product_id}")
    variants = await store.fetch_product_variants(product_id)
    return VariantResolver(store).resolve(product, variants, request.attribute)


# Checkout endpoints
@app.post("/checkout", response_model=Order)
async def checkout(
    request: CheckoutRequest,
    cart: CartStore = Depends(get_cart_store),
    store: RemoteStore = Depends(get_store)
):
    """Create an order from the current cart"""
    service = CheckoutService(cart, store, pricing=pricing_engine)
    return await service.place_order(request.shipping, request.coupon_code)


@app.get("/orders", response_model=List[Order])
async def list_orders(
    user_id: str = Depends(get_user_id),
    store: RemoteStore = Depends(get_store)
):
    """Orders placed by the user, newest first"""
    return await store.fetch_orders(user_id)


# Error handlers
@app.exception_handler(ValidationError)
async def validation_error_handler(request, exc):
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "message": str(exc)}
    )


@app.exception_handler(LimitExceededError)
async def limit_exceeded_handler(request, exc):
    return JSONResponse(
        status_code=400,
        content={"error": "Limit exceeded", "message": str(exc)}
    )


@app.exception_handler(NotAuthenticatedError)
async def not_authenticated_handler(request, exc):
    return JSONResponse(
        status_code=401,
        content={"error": "Not authenticated", "message": str(exc)}
    )


@app.exception_handler(VariantNotFoundError)
async def variant_not_found_handler(request, exc):
    return JSONResponse(
        status_code=404,
        content={"error": "Variant not found", "message": str(exc)}
    )


@app.exception_handler(SessionChangedError)
async def session_changed_handler(request, exc):
    return JSONResponse(
        status_code=409,
        content={"error": "Session changed", "message": str(exc)}
    )


@app.exception_handler(CheckoutError)
async def checkout_error_handler(request, exc):
    return JSONResponse(
        status_code=502,
        content={"error": "Checkout failed", "message": str(exc)}
    )


@app.exception_handler(RemoteStoreError)
async def remote_store_error_handler(request, exc):
    return JSONResponse(
        status_code=503,
        content={"error": "Service unavailable", "message": "Remote store unavailable"}
    )


# Generic exception handler for unhandled errors
@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": str(exc),
            "type": type(exc).__name__
        }
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Config.APP_PORT)
