"""Money formatting and model parsing tests."""

import pytest

from storefront.formatting import format_vnd, hash_identifier, parse_vnd
from storefront.models import CartSnapshot, CartLine, Coupon, DiscountKind, Product


class TestParseVnd:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("1.299.000đ", 1299000),
            ("299.000 ₫", 299000),
            ("", 0),
            (None, 0),
            ("liên hệ", 0),
        ],
    )
    def test_parse(self, text, expected) -> None:
        assert parse_vnd(text) == expected


class TestFormatVnd:
    def test_groups_thousands(self) -> None:
        assert format_vnd(1299000) == "1.299.000đ"

    def test_small_and_zero(self) -> None:
        assert format_vnd(500) == "500đ"
        assert format_vnd(0) == "0đ"

    def test_negative(self) -> None:
        assert format_vnd(-30000) == "-30.000đ"


def test_hash_identifier_is_short_and_stable() -> None:
    assert hash_identifier("alice") == hash_identifier("alice")
    assert len(hash_identifier("alice")) == 8
    assert hash_identifier("alice") != hash_identifier("bob")


class TestModels:
    def test_product_accepts_display_prices(self) -> None:
        product = Product(id="p", name="Shoe", base_price="299.000đ", prior_price="349.000đ")
        assert product.base_price == 299000
        assert product.prior_price == 349000

    def test_coupon_code_normalized(self) -> None:
        coupon = Coupon(code=" sport10 ", kind=DiscountKind.PERCENT, value=10)
        assert coupon.code == "SPORT10"

    def test_snapshot_count_is_sum_of_quantities(self) -> None:
        snapshot = CartSnapshot.from_lines([
            CartLine(variant_id="a", quantity=2),
            CartLine(variant_id="b", quantity=3),
        ])
        assert snapshot.count == 5

    def test_cart_line_requires_positive_quantity(self) -> None:
        with pytest.raises(ValueError):
            CartLine(variant_id="a", quantity=0)
