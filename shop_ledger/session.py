"""
Session / Identity Gate

The single source of truth for "who is logged in". One SessionContext
exists per client (per browser tab in the Streamlit app) and is passed
explicitly into every flow call; there is no module-level current user.

CRITICAL: After teardown nothing from the previous session may remain
visible: identity, transactions, advice and any open dialogs are all
cleared.
"""

from datetime import date
from typing import Any, Callable, Optional

from shop_ledger.ledger import period_key_for
from shop_ledger.logger import get_logger
from shop_ledger.models.transaction import Transaction, UserIdentity
from shop_ledger.services.auth.interface import AuthError


logger = get_logger(__name__)


class NotAuthenticatedError(AuthError):
    """A ledger operation was attempted with nobody logged in."""
    pass


class SessionContext:
    """Current identity plus the state derived from it."""

    def __init__(self):
        self._identity: Optional[UserIdentity] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        self.transactions: list[Transaction] = []
        self.advisory_text: Optional[str] = None
        self.view_period: str = period_key_for(date.today())
        self.ledger_loaded: bool = False
        # Transient UI state (open dialogs, staged imports, ...)
        self.ui_state: dict[str, Any] = {}

    @property
    def identity(self) -> Optional[UserIdentity]:
        return self._identity

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None

    @property
    def user_id(self) -> Optional[str]:
        return self._identity.id if self._identity else None

    @property
    def is_bound(self) -> bool:
        """Whether an auth provider is pushing identity changes here."""
        return self._unsubscribe is not None

    def bind_listener(self, unsubscribe: Callable[[], None]) -> None:
        """Remember how to stop listening; replaces an earlier binding."""
        self.unbind_listener()
        self._unsubscribe = unsubscribe

    def unbind_listener(self) -> None:
        if self._unsubscribe is not None:
            unsubscribe, self._unsubscribe = self._unsubscribe, None
            unsubscribe()

    def establish(self, identity: UserIdentity, today: Optional[date] = None) -> None:
        """
        Start (or resume) a session.

        Switching users drops the previous user's data first. The
        ledger is marked for loading; LedgerFlow.ensure_loaded does it.
        """
        if self._identity is not None and self._identity.id != identity.id:
            logger.info("session_switched", user_id=self._identity.id)
            self._clear()

        if self._identity is None:
            self._identity = identity
            self.view_period = period_key_for(today or date.today())
            logger.info("session_established", user_id=identity.id)
        else:
            # Same user again (e.g. refreshed identity): keep the ledger
            self._identity = identity

    def teardown(self) -> None:
        """Forget the identity and everything derived from it, and stop listening."""
        user_id = self.user_id
        self._clear()
        self.unbind_listener()
        if user_id:
            logger.info("session_cleared", user_id=user_id)

    def _clear(self) -> None:
        self._identity = None
        self.transactions = []
        self.advisory_text = None
        self.ledger_loaded = False
        self.ui_state.clear()

    def require_user(self) -> str:
        """
        The active user id.

        Raises:
            NotAuthenticatedError: If nobody is logged in
        """
        if self._identity is None:
            raise NotAuthenticatedError("Please log in first.")
        return self._identity.id

    def on_identity_changed(self, identity: Optional[UserIdentity]) -> None:
        """Auth provider callback (sign in elsewhere, expiry, sign out)."""
        if identity is None:
            self.teardown()
        else:
            self.establish(identity)
