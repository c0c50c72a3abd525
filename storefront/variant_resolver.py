"""
Variant resolution and stock checks ahead of cart mutations.
"""
import logging
from typing import List, Optional

from storefront.exceptions import ValidationError, VariantNotFoundError
from storefront.models import (
    Availability,
    AvailabilityStatus,
    Product,
    Resolution,
    ResolutionStatus,
    Variant
)
from storefront.store import RemoteStore

logger = logging.getLogger(__name__)


class VariantResolver:
    """Maps a product plus selected attribute to a purchasable variant"""

    def __init__(self, store: Optional[RemoteStore] = None):
        self.store = store

    def resolve(
        self,
        product: Product,
        variants: List[Variant],
        selected_attribute: Optional[str]
    ) -> Resolution:
        """
        Resolve the variant for a selected attribute.

        Returns:
            Resolution with status NO_VARIANTS_AVAILABLE when the product has
            no variants yet, NOT_SELECTED when nothing is selected, otherwise
            RESOLVED with the matching variant

        Raises:
            VariantNotFoundError: If the attribute matches no variant
        """
        own_variants = [v for v in variants if v.product_id == product.id]
        if not own_variants:
            return Resolution(status=ResolutionStatus.NO_VARIANTS_AVAILABLE)

        if selected_attribute is None or not selected_attribute.strip():
            return Resolution(status=ResolutionStatus.NOT_SELECTED)

        attribute = selected_attribute.strip()
        matches = [v for v in own_variants if v.attribute == attribute]
        if len(matches) != 1:
            logger.critical(
                f"Attribute {attribute!r} matched {len(matches)} variants of product {product.id}"
            )
            raise VariantNotFoundError(
                f"{product.id}:{attribute}",
                f"No unique variant of product {product.id} for attribute {attribute!r}"
            )

        return Resolution(status=ResolutionStatus.RESOLVED, variant=matches[0])

    def check_available(self, variant: Variant, requested_qty: int) -> Availability:
        """Compare a requested quantity with the variant's stock; never truncates"""
        if requested_qty <= 0:
            raise ValidationError("Quantity must be greater than 0")

        if variant.stock == 0:
            status = AvailabilityStatus.OUT_OF_STOCK
        elif variant.stock < requested_qty:
            status = AvailabilityStatus.INSUFFICIENT_STOCK
        else:
            status = AvailabilityStatus.OK

        return Availability(
            status=status,
            variant_id=variant.id,
            requested=requested_qty,
            available=variant.stock
        )

    async def check_stock(self, variant_id: str, requested_qty: int) -> Availability:
        """Fetch the near-current variant from the store and check it"""
        if self.store is None:
            raise RuntimeError("VariantResolver has no store configured")
        variant = await self.store.fetch_variant(variant_id)
        return self.check_available(variant, requested_qty)
