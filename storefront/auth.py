"""
Session holder standing in for the hosted auth service.
"""
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from storefront.formatting import hash_identifier

logger = logging.getLogger(__name__)


class SessionEvent(str, Enum):
    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"


SessionListener = Callable[[SessionEvent, Optional[str]], Awaitable[None]]


class AuthSession:
    """Current principal plus a stream of session-changed notifications"""

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id
        self._listeners: List[SessionListener] = []

    def current_user(self) -> Optional[str]:
        return self._user_id

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener; returns a function that unsubscribes it"""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def sign_in(self, user_id: str) -> None:
        self._user_id = user_id
        logger.info(f"Session signed in: {hash_identifier(user_id)}")
        await self._notify(SessionEvent.SIGNED_IN, user_id)

    async def sign_out(self) -> None:
        previous = self._user_id
        self._user_id = None
        if previous:
            logger.info(f"Session signed out: {hash_identifier(previous)}")
        await self._notify(SessionEvent.SIGNED_OUT, None)

    async def _notify(self, event: SessionEvent, user_id: Optional[str]) -> None:
        for listener in list(self._listeners):
            await listener(event, user_id)
