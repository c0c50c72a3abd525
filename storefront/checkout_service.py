"""
Checkout service: hands a synchronised, priced cart snapshot to order creation.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from storefront.cart_store import CartStore
from storefront.exceptions import (
    CheckoutError,
    NotAuthenticatedError,
    RemoteStoreError,
    ValidationError,
    VariantNotFoundError
)
from storefront.formatting import hash_identifier
from storefront.models import Order, OrderRequest, OrderStatus, ShippingDetails
from storefront.pricing import PricingEngine
from storefront.store import RemoteStore
from storefront.variant_resolver import VariantResolver

logger = logging.getLogger(__name__)


class CheckoutService:
    """Service for checkout operations"""

    def __init__(
        self,
        cart_store: CartStore,
        store: RemoteStore,
        pricing: Optional[PricingEngine] = None,
        resolver: Optional[VariantResolver] = None
    ):
        self.cart_store = cart_store
        self.store = store
        self.pricing = pricing or PricingEngine()
        self.resolver = resolver or VariantResolver(store)

    async def place_order(
        self,
        shipping: ShippingDetails,
        coupon_code: Optional[str] = None
    ) -> Order:
        """
        Place an order for the session's cart:
        1. Refresh the cart from the remote store
        2. Validate inventory against fresh variant records
        3. Price the snapshot (with coupon, if any)
        4. Hand the order to the remote store, which clears ordered lines
        5. Refresh the cart again so the count reflects the cleared cart

        Raises:
            NotAuthenticatedError: No active session
            ValidationError: Empty cart or insufficient inventory
            CheckoutError: The cart could not be synchronised or the order
                could not be created
        """
        user_id = self.cart_store.session.current_user()
        if user_id is None:
            raise NotAuthenticatedError()

        try:
            snapshot = await self.cart_store.refresh()
        except RemoteStoreError as e:
            raise CheckoutError(f"Could not synchronise cart before checkout: {e}") from e

        if not snapshot.lines:
            raise ValidationError("Cannot checkout empty cart")

        inventory_issues = []
        try:
            for line in snapshot.lines:
                availability = await self.resolver.check_stock(line.variant_id, line.quantity)
                if not availability.ok:
                    inventory_issues.append({
                        "variant_id": line.variant_id,
                        "status": availability.status.value,
                        "requested": availability.requested,
                        "available": availability.available
                    })
        except VariantNotFoundError as e:
            self.cart_store.needs_refresh = True
            raise CheckoutError(f"Cart references an unknown variant: {e.variant_id}") from e
        except RemoteStoreError as e:
            raise CheckoutError(f"Could not verify inventory: {e}") from e

        if inventory_issues:
            raise ValidationError(
                f"Insufficient inventory for variants: {inventory_issues}"
            )

        try:
            coupon = await self.store.fetch_coupon(coupon_code) if coupon_code else None
        except RemoteStoreError as e:
            raise CheckoutError(f"Could not look up coupon: {e}") from e

        totals = self.pricing.quote(snapshot.lines, coupon, coupon_code)
        request = OrderRequest(
            user_id=user_id,
            lines=snapshot.lines,
            totals=totals,
            shipping=shipping,
            created_at=datetime.now(timezone.utc)
        )

        try:
            order_id = await self.store.create_order(request)
        except VariantNotFoundError as e:
            self.cart_store.needs_refresh = True
            raise CheckoutError(f"Cart references an unknown variant: {e.variant_id}") from e
        except RemoteStoreError as e:
            raise CheckoutError(f"Order creation failed: {e}") from e

        order = Order(id=order_id, status=OrderStatus.PROCESSING, **request.model_dump())
        logger.info(
            f"Order placed: {order_id} for user {hash_identifier(user_id)}, total {totals.total}"
        )

        try:
            await self.cart_store.refresh()
        except RemoteStoreError as e:
            self.cart_store.needs_refresh = True
            logger.warning(f"Cart refresh after order {order_id} failed: {e}")

        return order
