"""
Client-side cart state with optimistic updates reconciled against the remote store.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from storefront.auth import AuthSession, SessionEvent
from storefront.config import Config
from storefront.exceptions import (
    LimitExceededError,
    NotAuthenticatedError,
    SessionChangedError,
    ValidationError,
    VariantNotFoundError
)
from storefront.formatting import hash_identifier
from storefront.models import CartLine, CartSnapshot, LineDetails
from storefront.store import RemoteStore

logger = logging.getLogger(__name__)


class CartState(str, Enum):
    IDLE = "idle"
    PENDING = "pending"


@dataclass(eq=False)
class _Mutation:
    """A quantity delta applied locally, awaiting remote confirmation"""
    variant_id: str
    delta: int
    template: CartLine
    user_id: str
    generation: int
    dispatched: bool = False


class CartStore:
    """
    Owns the in-memory cart of the active session.

    Every mutation applies its delta to local state before the first await,
    then sends the line's current quantity to the remote store. Remote calls
    run one at a time. On failure the exact delta is reversed, unless the
    session changed in the meantime.
    """

    def __init__(
        self,
        session: AuthSession,
        store: RemoteStore,
        strict_sync: Optional[bool] = None,
        max_quantity: Optional[int] = None
    ):
        self.session = session
        self.store = store
        self.strict_sync = Config.CART_STRICT_SYNC if strict_sync is None else strict_sync
        self.max_quantity = Config.MAX_QUANTITY_PER_ITEM if max_quantity is None else max_quantity
        self.needs_refresh = False

        self._lines: Dict[str, CartLine] = {}
        # Net quantity below zero per variant, kept while mutations on it are pending
        self._deficits: Dict[str, int] = {}
        self._pending: List[_Mutation] = []
        self._generation = 0
        self._lock = asyncio.Lock()
        self._unsubscribe = session.subscribe(self._on_session_event)

    @property
    def state(self) -> CartState:
        return CartState.PENDING if self._pending else CartState.IDLE

    @property
    def count(self) -> int:
        return sum(line.quantity for line in self._lines.values())

    def get_snapshot(self) -> CartSnapshot:
        lines = [self._lines[variant_id] for variant_id in sorted(self._lines)]
        return CartSnapshot.from_lines(lines)

    def close(self) -> None:
        self._unsubscribe()

    # Mutations

    async def add_to_cart(
        self,
        variant_id: str,
        qty: int = 1,
        details: Optional[LineDetails] = None
    ) -> CartSnapshot:
        """Increment the line for variant_id by qty, creating it if absent"""
        user_id = self._require_user()
        if qty <= 0:
            raise ValidationError("Quantity must be greater than 0")

        existing = self._lines.get(variant_id)
        current = existing.quantity if existing else 0
        if current + qty > self.max_quantity:
            raise LimitExceededError(
                f"Quantity {current + qty} exceeds maximum {self.max_quantity}"
            )

        template = existing or self._pending_template(variant_id) or CartLine(
            variant_id=variant_id,
            quantity=qty,
            details=details or LineDetails()
        )
        return await self._mutate(user_id, variant_id, qty, template)

    async def set_quantity(
        self,
        variant_id: str,
        qty: int,
        details: Optional[LineDetails] = None
    ) -> CartSnapshot:
        """Replace the line's quantity; qty <= 0 removes the line"""
        user_id = self._require_user()
        if qty <= 0:
            return await self.remove_from_cart(variant_id)
        if qty > self.max_quantity:
            raise LimitExceededError(f"Quantity {qty} exceeds maximum {self.max_quantity}")

        existing = self._lines.get(variant_id)
        current = self._net_quantity(variant_id)
        if qty == current:
            return self.get_snapshot()

        template = existing or self._pending_template(variant_id) or CartLine(
            variant_id=variant_id,
            quantity=qty,
            details=details or LineDetails()
        )
        return await self._mutate(user_id, variant_id, qty - current, template)

    async def remove_from_cart(self, variant_id: str) -> CartSnapshot:
        """Delete the line for variant_id; no-op when absent"""
        user_id = self._require_user()
        existing = self._lines.get(variant_id)
        if existing is None:
            return self.get_snapshot()
        return await self._mutate(user_id, variant_id, -existing.quantity, existing)

    async def refresh(self) -> CartSnapshot:
        """Replace local state with the remote cart, keeping undispatched deltas"""
        user_id = self.session.current_user()
        if user_id is None:
            self._lines = {}
            self._deficits = {}
            return self.get_snapshot()

        generation = self._generation
        async with self._lock:
            lines = await self.store.fetch_cart_lines(user_id)
            if generation != self._generation:
                # A newer session owns the cart now
                return self.get_snapshot()

            self._lines = {line.variant_id: line for line in lines}
            self._deficits = {}
            for mutation in self._pending:
                if not mutation.dispatched and mutation.generation == generation:
                    self._apply_delta(mutation.variant_id, mutation.delta, mutation.template)
            self.needs_refresh = False

        logger.info(
            f"Cart refreshed for user {hash_identifier(user_id)}: {len(lines)} line(s)"
        )
        return self.get_snapshot()

    # Internals

    def _require_user(self) -> str:
        user_id = self.session.current_user()
        if user_id is None:
            raise NotAuthenticatedError()
        return user_id

    def _net_quantity(self, variant_id: str) -> int:
        line = self._lines.get(variant_id)
        if line is not None:
            return line.quantity
        return -self._deficits.get(variant_id, 0)

    def _has_pending(self, variant_id: str) -> bool:
        return any(m.variant_id == variant_id for m in self._pending)

    def _pending_template(self, variant_id: str) -> Optional[CartLine]:
        """Display data carried by the latest pending mutation on the variant"""
        for mutation in reversed(self._pending):
            if mutation.variant_id == variant_id:
                return mutation.template
        return None

    def _apply_delta(self, variant_id: str, delta: int, template: CartLine) -> None:
        """
        Shift the variant's net quantity by delta.

        Only a positive net quantity is visible as a line. A negative one is
        remembered while other mutations on the variant can still be reversed,
        so that reversing them in any order lands on the original quantity.
        """
        line = self._lines.get(variant_id)
        new_quantity = self._net_quantity(variant_id) + delta
        self._deficits.pop(variant_id, None)
        if new_quantity > 0:
            self._lines[variant_id] = (line or template).model_copy(update={"quantity": new_quantity})
            return

        self._lines.pop(variant_id, None)
        if new_quantity < 0 and self._has_pending(variant_id):
            self._deficits[variant_id] = -new_quantity

    async def _mutate(self, user_id: str, variant_id: str, delta: int, template: CartLine) -> CartSnapshot:
        mutation = _Mutation(
            variant_id=variant_id,
            delta=delta,
            template=template,
            user_id=user_id,
            generation=self._generation
        )
        self._apply_delta(variant_id, delta, template)
        self._pending.append(mutation)

        try:
            await self._dispatch(mutation)
        except Exception as e:
            self._rollback(mutation, e)
            raise
        finally:
            self._pending = [m for m in self._pending if m is not mutation]
            if not self._has_pending(variant_id):
                self._deficits.pop(variant_id, None)

        if self.strict_sync:
            return await self.refresh()
        return self.get_snapshot()

    async def _dispatch(self, mutation: _Mutation) -> None:
        async with self._lock:
            if (mutation.generation != self._generation
                    or self.session.current_user() != mutation.user_id):
                raise SessionChangedError(mutation.variant_id)

            mutation.dispatched = True
            line = self._lines.get(mutation.variant_id)
            if line is None:
                await self.store.delete_cart_line(mutation.user_id, mutation.variant_id)
            else:
                await self.store.upsert_cart_line(mutation.user_id, mutation.variant_id, line.quantity)

    def _rollback(self, mutation: _Mutation, error: Exception) -> None:
        if mutation.generation != self._generation:
            logger.warning(
                f"Skipping rollback for variant {mutation.variant_id}: session changed"
            )
            return

        if isinstance(error, VariantNotFoundError):
            self.needs_refresh = True

        self._apply_delta(mutation.variant_id, -mutation.delta, mutation.template)
        logger.warning(
            f"Rolled back cart update for user {hash_identifier(mutation.user_id)}, "
            f"variant {mutation.variant_id} (delta {mutation.delta}): "
            f"{type(error).__name__}: {error}"
        )

    async def _on_session_event(self, event: SessionEvent, user_id: Optional[str]) -> None:
        self._generation += 1
        self._pending.clear()
        self._lines = {}
        self._deficits = {}
        self.needs_refresh = False
        if event == SessionEvent.SIGNED_IN:
            await self.refresh()
