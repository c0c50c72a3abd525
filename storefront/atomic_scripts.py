"""
Lua scripts for atomic Redis operations.

Scripts return JSON-encoded strings; Lua tables with string keys do not
survive the Redis reply conversion.
"""
import json
from typing import Any, Dict, List, Tuple

# Upsert one cart line keyed by variant, refusing unknown variants
UPSERT_LINE_SCRIPT = """
local cart_key = KEYS[1]
local variant_key = KEYS[2]
local variant_id = ARGV[1]
local quantity = tonumber(ARGV[2])
local max_quantity = tonumber(ARGV[3])
local ttl = tonumber(ARGV[4])

if redis.call('EXISTS', variant_key) == 0 then
    return cjson.encode({err = 'VARIANT_NOT_FOUND', variant_id = variant_id})
end

if quantity <= 0 then
    return cjson.encode({err = 'INVALID_QUANTITY', quantity = quantity})
end

if quantity > max_quantity then
    return cjson.encode({err = 'MAX_QUANTITY_EXCEEDED', max = max_quantity, requested = quantity})
end

-- Absolute set, so replays are idempotent
redis.call('HSET', cart_key, variant_id, quantity)
redis.call('EXPIRE', cart_key, ttl)

return cjson.encode({ok = true, quantity = quantity})
"""

# Check and decrement stock for every line, store the order, clear ordered lines
PLACE_ORDER_SCRIPT = """
local cart_key = KEYS[1]
local order_key = KEYS[2]
local user_orders_key = KEYS[3]
local order_id = ARGV[1]
local order_json = ARGV[2]
local line_count = (#ARGV - 2) / 2

-- First pass: validate everything before writing anything
local variants = {}
for i = 1, line_count do
    local variant_id = ARGV[1 + 2 * i]
    local quantity = tonumber(ARGV[2 + 2 * i])
    local raw = redis.call('GET', KEYS[3 + i])
    if not raw then
        return cjson.encode({err = 'VARIANT_NOT_FOUND', variant_id = variant_id})
    end
    local variant = cjson.decode(raw)
    local stock = tonumber(variant['stock']) or 0
    if stock < quantity then
        return cjson.encode({
            err = 'INSUFFICIENT_STOCK',
            variant_id = variant_id,
            available = stock,
            requested = quantity
        })
    end
    variants[i] = variant
end

-- Second pass: apply
for i = 1, line_count do
    local variant_id = ARGV[1 + 2 * i]
    local quantity = tonumber(ARGV[2 + 2 * i])
    local variant = variants[i]
    variant['stock'] = tonumber(variant['stock']) - quantity
    redis.call('SET', KEYS[3 + i], cjson.encode(variant))
    redis.call('HDEL', cart_key, variant_id)
end

redis.call('SET', order_key, order_json)
redis.call('LPUSH', user_orders_key, order_id)

return cjson.encode({ok = true, order_id = order_id})
"""


def decode_result(raw: Any) -> Dict[str, Any]:
    """Decode a script reply into a dict; malformed replies become an error dict"""
    if isinstance(raw, bytes):
        raw = raw.decode()
    if not isinstance(raw, str):
        return {"err": "UNEXPECTED_REPLY", "reply": repr(raw)}
    try:
        result = json.loads(raw)
    except json.JSONDecodeError:
        return {"err": "UNEXPECTED_REPLY", "reply": raw}
    if not isinstance(result, dict):
        return {"err": "UNEXPECTED_REPLY", "reply": raw}
    return result


class AtomicScripts:
    """Runs the Lua scripts through the RedisClient wrapper"""

    def __init__(self, redis_wrapper):
        """
        Initialize with RedisClient wrapper (not raw redis.Redis client)
        so every script call goes through the wrapper's retry logic
        """
        self.redis_wrapper = redis_wrapper

    async def upsert_line(
        self,
        cart_key: str,
        variant_key: str,
        variant_id: str,
        quantity: int,
        max_quantity: int,
        ttl: int
    ) -> Dict[str, Any]:
        """Execute upsert line script"""
        raw = await self.redis_wrapper.eval(
            UPSERT_LINE_SCRIPT,
            2,
            cart_key,
            variant_key,
            variant_id,
            str(quantity),
            str(max_quantity),
            str(ttl)
        )
        return decode_result(raw)

    async def place_order(
        self,
        cart_key: str,
        order_key: str,
        user_orders_key: str,
        order_id: str,
        order_json: str,
        lines: List[Tuple[str, str, int]]
    ) -> Dict[str, Any]:
        """
        Execute place order script.

        Args:
            lines: (variant_key, variant_id, quantity) per ordered line
        """
        keys = [cart_key, order_key, user_orders_key] + [key for key, _, _ in lines]
        args = [order_id, order_json]
        for _, variant_id, quantity in lines:
            args.extend([variant_id, str(quantity)])
        raw = await self.redis_wrapper.eval(PLACE_ORDER_SCRIPT, len(keys), *keys, *args)
        return decode_result(raw)
