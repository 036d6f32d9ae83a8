from typing import Callable, List, Optional, Protocol

from ledgerlens.logging_setup import get_logger

logger = get_logger(__name__)

AuthCallback = Callable[[Optional[str]], None]


class IdentityProvider(Protocol):
    def current_user_id(self) -> Optional[str]:
        ...

    def on_change(self, callback: AuthCallback) -> Callable[[], None]:
        ...


class StaticIdentity:
    """In-process identity: the app signs a user in and out explicitly.

    Callbacks receive the new user id, or None on sign-out.
    """

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id
        self._callbacks: List[AuthCallback] = []

    def current_user_id(self) -> Optional[str]:
        return self._user_id

    def is_authenticated(self) -> bool:
        return self._user_id is not None

    def on_change(self, callback: AuthCallback) -> Callable[[], None]:
        self._callbacks.append(callback)

        def _remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return _remove

    def sign_in(self, user_id: str) -> None:
        user_id = user_id.strip()
        if not user_id:
            raise ValueError("user id must be non-empty")
        if user_id == self._user_id:
            return
        logger.info("User %s signed in", user_id)
        self._user_id = user_id
        self._notify()

    def sign_out(self) -> None:
        if self._user_id is None:
            return
        logger.info("User %s signed out", self._user_id)
        self._user_id = None
        self._notify()

    def _notify(self) -> None:
        for callback in list(self._callbacks):
            callback(self._user_id)
