"""RedisStore tests against a mocked RedisClient wrapper."""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import SHOE, SPORT10, VARIANT_A
from storefront.atomic_scripts import PLACE_ORDER_SCRIPT, UPSERT_LINE_SCRIPT, decode_result
from storefront.exceptions import (
    LimitExceededError,
    RemoteStoreError,
    ValidationError,
    VariantNotFoundError,
)
from storefront.models import CartLine, OrderRequest, PriceBreakdown, ShippingDetails
from storefront.redis_store import RedisStore


def make_store():
    redis = MagicMock()
    for name in ("get", "mget", "set", "delete", "hgetall", "hdel", "smembers", "sadd", "lrange", "eval"):
        setattr(redis, name, AsyncMock())
    return RedisStore(redis), redis


class TestFetchCartLines:
    @pytest.mark.asyncio
    async def test_assembles_display_data(self) -> None:
        store, redis = make_store()
        redis.hgetall.return_value = {"v-a": "2"}
        redis.mget.side_effect = [[VARIANT_A.model_dump_json()], [SHOE.model_dump_json()]]

        lines = await store.fetch_cart_lines("alice")

        assert len(lines) == 1
        assert lines[0].variant_id == "v-a"
        assert lines[0].quantity == 2
        assert lines[0].details.product_name == "Running Shoe"
        assert lines[0].details.base_price == 299000
        redis.hgetall.assert_awaited_once_with("cart:alice")
        redis.hdel.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_drops_and_deletes_stale_lines(self) -> None:
        store, redis = make_store()
        redis.hgetall.return_value = {"v-a": "2", "v-gone": "1"}
        redis.mget.side_effect = [[VARIANT_A.model_dump_json(), None], [SHOE.model_dump_json()]]

        lines = await store.fetch_cart_lines("alice")

        assert [line.variant_id for line in lines] == ["v-a"]
        redis.hdel.assert_awaited_once_with("cart:alice", "v-gone")

    @pytest.mark.asyncio
    async def test_empty_cart(self) -> None:
        store, redis = make_store()
        redis.hgetall.return_value = {}

        assert await store.fetch_cart_lines("alice") == []
        redis.mget.assert_not_awaited()


class TestUpsertCartLine:
    @pytest.mark.asyncio
    async def test_runs_script_with_keys(self) -> None:
        store, redis = make_store()
        redis.eval.return_value = json.dumps({"ok": True, "quantity": 3})

        await store.upsert_cart_line("alice", "v-a", 3)

        args = redis.eval.await_args.args
        assert args[0] == UPSERT_LINE_SCRIPT
        assert args[1:6] == (2, "cart:alice", "variant:v-a", "v-a", "3")

    @pytest.mark.asyncio
    async def test_unknown_variant(self) -> None:
        store, redis = make_store()
        redis.eval.return_value = json.dumps({"err": "VARIANT_NOT_FOUND", "variant_id": "v-x"})

        with pytest.raises(VariantNotFoundError):
            await store.upsert_cart_line("alice", "v-x", 1)

    @pytest.mark.asyncio
    async def test_quantity_limit(self) -> None:
        store, redis = make_store()
        redis.eval.return_value = json.dumps({"err": "MAX_QUANTITY_EXCEEDED", "max": 99})

        with pytest.raises(LimitExceededError):
            await store.upsert_cart_line("alice", "v-a", 100)

    @pytest.mark.asyncio
    async def test_unexpected_reply(self) -> None:
        store, redis = make_store()
        redis.eval.return_value = []

        with pytest.raises(RemoteStoreError):
            await store.upsert_cart_line("alice", "v-a", 1)


class TestCreateOrder:
    def _request(self) -> OrderRequest:
        return OrderRequest(
            user_id="alice",
            lines=[CartLine(variant_id="v-a", quantity=2)],
            totals=PriceBreakdown(subtotal=598000, tax=47840, shipping=30000, total=675840),
            shipping=ShippingDetails(full_name="A", phone="1", address="Somewhere"),
            created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        )

    @pytest.mark.asyncio
    async def test_stores_order_through_script(self) -> None:
        store, redis = make_store()
        redis.eval.side_effect = lambda script, n, *rest: json.dumps({"ok": True, "order_id": rest[n]})

        order_id = await store.create_order(self._request())

        args = redis.eval.await_args.args
        assert args[0] == PLACE_ORDER_SCRIPT
        assert args[1] == 4
        assert args[2:6] == ("cart:alice", f"order:{order_id}", "orders:alice", "variant:v-a")
        payload = json.loads(args[7])
        assert payload["id"] == order_id
        assert payload["status"] == "processing"
        assert args[8:] == ("v-a", "2")

    @pytest.mark.asyncio
    async def test_insufficient_stock(self) -> None:
        store, redis = make_store()
        redis.eval.return_value = json.dumps(
            {"err": "INSUFFICIENT_STOCK", "variant_id": "v-a", "available": 1, "requested": 2}
        )

        with pytest.raises(ValidationError, match="available 1"):
            await store.create_order(self._request())


class TestCatalog:
    @pytest.mark.asyncio
    async def test_fetch_variant_missing(self) -> None:
        store, redis = make_store()
        redis.get.return_value = None

        with pytest.raises(VariantNotFoundError):
            await store.fetch_variant("v-x")

    @pytest.mark.asyncio
    async def test_coupon_key_normalized(self) -> None:
        store, redis = make_store()
        redis.get.return_value = SPORT10.model_dump_json()

        coupon = await store.fetch_coupon(" sport10 ")

        assert coupon == SPORT10
        redis.get.assert_awaited_once_with("coupon:SPORT10")

    @pytest.mark.asyncio
    async def test_save_variant_indexes_product(self) -> None:
        store, redis = make_store()

        await store.save_variant(VARIANT_A)

        redis.set.assert_awaited_once_with("variant:v-a", VARIANT_A.model_dump_json())
        redis.sadd.assert_awaited_once_with("product:p-shoe:variants", "v-a")


class TestDecodeResult:
    def test_decodes_json_object(self) -> None:
        assert decode_result('{"ok": true}') == {"ok": True}

    def test_bytes_reply(self) -> None:
        assert decode_result(b'{"ok": true}') == {"ok": True}

    @pytest.mark.parametrize("raw", [None, [], "not json", "[1, 2]"])
    def test_malformed_reply(self, raw) -> None:
        assert decode_result(raw)["err"] == "UNEXPECTED_REPLY"
