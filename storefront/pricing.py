"""
Deterministic price computation over cart snapshots, in integer minor units.

Tax is charged on the pre-discount subtotal and rounded half-up to the
nearest minor unit.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from storefront.config import Config
from storefront.models import CartLine, Coupon, DiscountKind, PriceBreakdown


class PricingEngine:
    """Stateless pricing; every call recomputes from its inputs"""

    def __init__(self, tax_rate: Optional[Decimal] = None, shipping_fee: Optional[int] = None):
        self.tax_rate = Decimal(str(Config.TAX_RATE if tax_rate is None else tax_rate))
        self.shipping_fee = Config.SHIPPING_FEE if shipping_fee is None else shipping_fee

    @staticmethod
    def unit_price(line: CartLine) -> int:
        if line.details.variant_price is not None:
            return line.details.variant_price
        return line.details.base_price

    def subtotal(self, lines: Iterable[CartLine]) -> int:
        return sum(self.unit_price(line) * line.quantity for line in lines)

    def discount(self, subtotal: int, coupon: Optional[Coupon], entered_code: Optional[str] = None) -> int:
        """
        Discount for a coupon against a subtotal.

        Absent, inactive, or mismatched coupons give 0. A percentage outside
        [0, 100] is malformed and gives 0. Fixed discounts are capped at the
        subtotal.
        """
        if coupon is None or not coupon.active or subtotal <= 0:
            return 0
        if entered_code is not None and entered_code.strip().upper() != coupon.code:
            return 0

        if coupon.kind == DiscountKind.PERCENT:
            if not 0 <= coupon.value <= 100:
                return 0
            return subtotal * coupon.value // 100

        if coupon.value <= 0:
            return 0
        return min(coupon.value, subtotal)

    def tax(self, subtotal: int) -> int:
        amount = Decimal(subtotal) * self.tax_rate
        return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def shipping(self, lines: Iterable[CartLine]) -> int:
        # Flat fee; cart contents do not affect it
        return self.shipping_fee

    @staticmethod
    def total(subtotal: int, discount: int, tax: int, shipping: int) -> int:
        return max(0, subtotal - discount + tax + shipping)

    def quote(
        self,
        lines: Iterable[CartLine],
        coupon: Optional[Coupon] = None,
        entered_code: Optional[str] = None
    ) -> PriceBreakdown:
        """Full breakdown for a cart snapshot"""
        lines = list(lines)
        subtotal = self.subtotal(lines)
        discount = self.discount(subtotal, coupon, entered_code)
        tax = self.tax(subtotal)
        shipping = self.shipping(lines)
        return PriceBreakdown(
            subtotal=subtotal,
            discount=discount,
            tax=tax,
            shipping=shipping,
            total=self.total(subtotal, discount, tax, shipping),
            coupon_code=coupon.code if discount > 0 else None
        )
