"""Signed-in user signal.

The identity provider is external; this module only tracks who is signed in
and tells interested parties when that changes.
"""

import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Union

from tasklanes.models.user import CurrentUser

logger = logging.getLogger(__name__)

SessionListener = Callable[[Optional[CurrentUser]], Union[None, Awaitable[None]]]


class AuthSession:
    """Current user (or None) plus a flag telling whether auth has resolved yet."""

    def __init__(self, user: Optional[CurrentUser] = None, *, resolved: bool = False):
        self._user = user
        self._resolved = resolved or user is not None
        self._listeners: List[SessionListener] = []

    @property
    def current_user(self) -> Optional[CurrentUser]:
        return self._user

    @property
    def resolved(self) -> bool:
        return self._resolved

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        """Register a listener called with the new user on every change.

        Returns:
            Function that unregisters the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def sign_in(self, user: CurrentUser) -> None:
        logger.info(f"User signed in: {user.id}")
        await self._change(user)

    async def sign_out(self) -> None:
        if self._user is not None:
            logger.info(f"User signed out: {self._user.id}")
        await self._change(None)

    async def _change(self, user: Optional[CurrentUser]) -> None:
        self._user = user
        self._resolved = True
        for listener in list(self._listeners):
            result = listener(user)
            if inspect.isawaitable(result):
                await result
