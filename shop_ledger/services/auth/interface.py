"""
Abstract Auth Provider Interface

Identity is owned by an external provider. The ledger only reads the
identity it hands out: {id, name, email}.

Providers also push identity changes (sign in on another tab, session
expiry, sign out) to subscribers, which is how the session gate learns
that its user is gone.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from shop_ledger.models.transaction import UserIdentity


IdentityListener = Callable[[Optional[UserIdentity]], None]


class AuthProviderInterface(ABC):
    """Contract of the authentication collaborator."""

    def __init__(self):
        self._listeners: list[IdentityListener] = []

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> UserIdentity:
        """
        Log in with email and password.

        Raises:
            InvalidCredentialsError: If the credentials don't match
        """
        pass

    @abstractmethod
    async def sign_up(
        self,
        email: str,
        password: str,
        display_name: str,
    ) -> UserIdentity:
        """
        Create an account and log in.

        Raises:
            AccountExistsError: If the email is already registered
            AuthError: If the input is unusable
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        """End the current session."""
        pass

    @abstractmethod
    async def get_current_session(self) -> Optional[UserIdentity]:
        """The identity of a still-valid session, if any."""
        pass

    def subscribe(self, listener: IdentityListener) -> Callable[[], None]:
        """
        Register for identity changes.

        Returns:
            A function that removes the listener again
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, identity: Optional[UserIdentity]) -> None:
        for listener in list(self._listeners):
            listener(identity)


class AuthError(Exception):
    """Base exception for credential and session failures."""
    pass


class InvalidCredentialsError(AuthError):
    """Email or password is wrong."""
    pass


class AccountExistsError(AuthError):
    """An account with this email already exists."""
    pass
