"""
Main Orchestrator for Shop Ledger

This module ties together all the components and defines the
end-to-end flows:
1. Auth (sign in / sign up / resume / sign out -> session gate)
2. Ledger (load -> add / delete -> month view)
3. Transfer (export code or file, stage import, confirm, commit)
4. Advisory (month digest -> AI advice)

DESIGN DECISION: The orchestrator is the error boundary. Every flow
method returns (ok, message) style results; storage, transfer and auth
errors are turned into user-facing text here and never escape. On any
failure the in-memory ledger keeps its last-known-good state.

The session is passed into every call. Flows hold no user state.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from pydantic import BaseModel, ValidationError

from shop_ledger.agents import NO_DATA_MESSAGE, AdvisoryAgent
from shop_ledger.config import get_settings
from shop_ledger.ledger import build_view, filter_by_period, sort_newest_first
from shop_ledger.logger import configure_logging, get_logger
from shop_ledger.models.transaction import (
    LedgerView,
    Transaction,
    TransactionType,
    UserIdentity,
)
from shop_ledger.services.auth import (
    AuthError,
    AuthProviderInterface,
    LocalAuthProvider,
)
from shop_ledger.services.storage import (
    GoogleSheetsTable,
    LedgerStorageInterface,
    LocalSnapshotStorage,
    PersistenceError,
    RemoteLedgerStorage,
)
from shop_ledger.session import SessionContext
from shop_ledger.sync import (
    LedgerImporter,
    PendingImport,
    TransferError,
    backup_filename,
    encode_transfer_code,
    export_file_text,
)


logger = get_logger(__name__)

PENDING_IMPORT_KEY = "pending_import"


class ExportFile(BaseModel):
    """A backup ready for download."""

    filename: str
    content: str
    mime_type: str = "application/json"


class AuthFlow:
    """
    Connects the auth provider to a session.

    The provider issues identities; the session holds them. Once a
    session is logged in it is subscribed to the provider, so a logout,
    an expiry or a new login on the same device reaches it too.
    """

    def __init__(self, auth: AuthProviderInterface):
        self._auth = auth

    def bind(self, session: SessionContext) -> None:
        """Subscribe the session to identity changes (once; teardown unsubscribes)."""
        if not session.is_bound:
            session.bind_listener(self._auth.subscribe(session.on_identity_changed))

    def _start(self, session: SessionContext, identity: UserIdentity) -> None:
        session.establish(identity)
        self.bind(session)

    async def sign_in(
        self,
        session: SessionContext,
        email: str,
        password: str,
    ) -> tuple[bool, str]:
        try:
            identity = await self._auth.sign_in(email, password)
        except AuthError as e:
            return False, str(e)
        self._start(session, identity)
        return True, f"Welcome, {identity.name or identity.email}!"

    async def sign_up(
        self,
        session: SessionContext,
        email: str,
        password: str,
        display_name: str,
    ) -> tuple[bool, str]:
        try:
            identity = await self._auth.sign_up(email, password, display_name)
        except AuthError as e:
            return False, str(e)
        self._start(session, identity)
        return True, f"Account created. Welcome, {identity.name}!"

    async def resume(self, session: SessionContext) -> bool:
        """
        Re-check the remembered login.

        Called on every page run: it resumes a still-valid login, and
        tears the session down once the login is gone or has expired.
        """
        try:
            identity = await self._auth.get_current_session()
        except (AuthError, PersistenceError) as e:
            logger.warning("session_resume_failed", error=str(e))
            identity = None

        if identity is None:
            if session.is_authenticated:
                session.teardown()
            return False
        self._start(session, identity)
        return True

    async def sign_out(self, session: SessionContext) -> None:
        try:
            await self._auth.sign_out()
        except (AuthError, PersistenceError) as e:
            # Local state is cleared regardless
            logger.warning("sign_out_failed", error=str(e))
        session.teardown()


class LedgerFlow:
    """
    Loads and mutates the current user's ledger.

    Every mutation is one awaited round trip; the in-memory collection
    changes only after the backend confirmed it.
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._storage = storage

    @property
    def storage(self) -> LedgerStorageInterface:
        return self._storage

    async def load(self, session: SessionContext) -> tuple[bool, str]:
        """(Re)load the ledger from storage."""
        if not session.is_authenticated:
            return False, "Please log in first."
        user_id = session.require_user()

        try:
            transactions = await self._storage.load_all(user_id)
        except PersistenceError as e:
            logger.error("ledger_load_failed", user_id=user_id, error=str(e))
            return False, f"Could not load your transactions: {e}"

        session.transactions = transactions
        session.ledger_loaded = True
        logger.info("ledger_loaded", user_id=user_id, count=len(transactions))
        return True, f"Loaded {len(transactions)} transactions."

    async def ensure_loaded(self, session: SessionContext) -> tuple[bool, str]:
        if session.is_authenticated and not session.ledger_loaded:
            return await self.load(session)
        return True, ""

    async def add_transaction(
        self,
        session: SessionContext,
        description: str,
        amount: Decimal | float | str,
        type: TransactionType | str,
        category: str,
        day: date | str,
    ) -> tuple[bool, str]:
        """Create one transaction from form input."""
        if not session.is_authenticated:
            return False, "Please log in first."
        user_id = session.require_user()

        if not description or not description.strip():
            return False, "Please enter a description."
        try:
            amount = Decimal(str(amount))
        except InvalidOperation:
            return False, "Please enter a valid amount."
        if not amount.is_finite() or amount <= 0:
            return False, "Please enter a valid amount."

        try:
            transaction = Transaction(
                description=description,
                amount=amount,
                type=type,
                category=category or get_settings().app.default_category,
                date=day.isoformat() if isinstance(day, date) else day,
                user_id=user_id,
            )
        except ValidationError as e:
            return False, f"Invalid transaction: {e.errors()[0]['msg']}"

        try:
            stored = await self._storage.insert(user_id, [transaction])
        except PersistenceError as e:
            logger.error("transaction_add_failed", user_id=user_id, error=str(e))
            return False, f"Failed to save: {e}"

        session.transactions = stored + session.transactions
        return True, "Transaction saved."

    async def delete_transaction(
        self,
        session: SessionContext,
        transaction_id: str,
    ) -> tuple[bool, str]:
        """Delete one of the current user's transactions."""
        if not session.is_authenticated:
            return False, "Please log in first."
        user_id = session.require_user()

        try:
            await self._storage.delete_by_id(transaction_id, user_id)
        except PersistenceError as e:
            logger.error("transaction_delete_failed", user_id=user_id, error=str(e))
            return False, f"Failed to delete: {e}"

        # Already gone counts as deleted
        session.transactions = [
            t for t in session.transactions if t.id != transaction_id
        ]
        return True, "Transaction deleted."

    def set_period(self, session: SessionContext, period_key: str) -> None:
        session.view_period = period_key

    def month_view(
        self,
        session: SessionContext,
        today: Optional[date] = None,
    ) -> LedgerView:
        """Derived view of the selected month (empty when logged out)."""
        return build_view(session.transactions, session.view_period, today)


class TransferFlow:
    """
    Manual cross-device transfer.

    Imports are staged on the session and committed only on explicit
    confirmation, for codes and files alike.
    """

    def __init__(self, storage: LedgerStorageInterface):
        self._importer = LedgerImporter(storage)

    def export_code(self, session: SessionContext) -> tuple[bool, str]:
        """(True, code) or (False, message)."""
        if not session.is_authenticated:
            return False, "Please log in first."
        try:
            return True, encode_transfer_code(session.transactions)
        except TransferError as e:
            return False, str(e)

    def export_file(
        self,
        session: SessionContext,
        today: Optional[date] = None,
    ) -> tuple[Optional[ExportFile], str]:
        if not session.is_authenticated:
            return None, "Please log in first."
        try:
            content = export_file_text(session.transactions)
        except TransferError as e:
            return None, str(e)
        return (
            ExportFile(
                filename=backup_filename(today or date.today()),
                content=content,
            ),
            "Backup ready.",
        )

    def stage_code(self, session: SessionContext, code: str) -> tuple[Optional[PendingImport], str]:
        """Decode a pasted code and hold it for confirmation."""
        if not session.is_authenticated:
            return None, "Please log in first."
        try:
            pending = self._importer.stage_code(code, session.require_user())
        except TransferError:
            return None, "Invalid code. Please copy the correct code and try again."
        session.ui_state[PENDING_IMPORT_KEY] = pending
        return pending, pending.confirmation_prompt

    def stage_file(
        self,
        session: SessionContext,
        content: str | bytes,
    ) -> tuple[Optional[PendingImport], str]:
        """Parse an uploaded file and hold it for confirmation."""
        if not session.is_authenticated:
            return None, "Please log in first."
        try:
            pending = self._importer.stage_file(content, session.require_user())
        except TransferError as e:
            return None, str(e)
        session.ui_state[PENDING_IMPORT_KEY] = pending
        return pending, pending.confirmation_prompt

    def pending(self, session: SessionContext) -> Optional[PendingImport]:
        return session.ui_state.get(PENDING_IMPORT_KEY)

    def cancel(self, session: SessionContext) -> None:
        session.ui_state.pop(PENDING_IMPORT_KEY, None)

    async def confirm_import(self, session: SessionContext) -> tuple[bool, str]:
        """Commit the staged import. Existing records are kept."""
        pending = self.pending(session)
        if pending is None:
            return False, "Nothing to import."
        if not session.is_authenticated or pending.user_id != session.user_id:
            # Staged for somebody else (or before a logout)
            self.cancel(session)
            return False, "Please log in first."

        try:
            stored = await self._importer.commit(pending, session.require_user())
        except PersistenceError as e:
            logger.error("import_commit_failed", user_id=session.user_id, error=str(e))
            return False, f"Import failed: {e}"

        self.cancel(session)
        session.transactions = stored + session.transactions
        return True, f"Imported {len(stored)} records successfully!"


class AdvisoryFlow:
    """AI advice for the month being viewed."""

    def __init__(self, agent: Optional[AdvisoryAgent] = None):
        self._agent = agent

    async def insight_for_month(self, session: SessionContext) -> str:
        if not session.is_authenticated:
            return "Please log in first."

        # Newest first, whatever order the backend returned
        in_period = sort_newest_first(
            filter_by_period(session.transactions, session.view_period)
        )
        if not in_period:
            session.advisory_text = NO_DATA_MESSAGE
            return session.advisory_text

        if self._agent is None:
            # Built lazily so a missing API key only affects this feature
            try:
                self._agent = AdvisoryAgent()
            except ValidationError as e:
                logger.warning("advisory_not_configured", error=str(e))
                session.advisory_text = "AI advice is not configured."
                return session.advisory_text

        session.advisory_text = await self._agent.analyze(in_period)
        return session.advisory_text


def create_storage(backend: Optional[str] = None) -> LedgerStorageInterface:
    """Build the ledger backend named in settings (or by the caller)."""
    backend = backend or get_settings().app.storage_backend
    if backend == "sheets":
        return RemoteLedgerStorage(GoogleSheetsTable())
    if backend == "local":
        return LocalSnapshotStorage()
    raise ValueError(f"Unknown storage backend: {backend}")


def create_auth_flow(
    device_id: Optional[str] = None,
    auth: Optional[AuthProviderInterface] = None,
) -> AuthFlow:
    """
    Auth flow for one device (one browser session in the Streamlit app).

    Logins remembered by this flow are only ever resumed by sessions
    using the same device_id.
    """
    return AuthFlow(auth or LocalAuthProvider(device_id=device_id))


def create_ledger_components(
    backend: Optional[str] = None,
    storage: Optional[LedgerStorageInterface] = None,
    agent: Optional[AdvisoryAgent] = None,
) -> tuple[LedgerFlow, TransferFlow, AdvisoryFlow]:
    """
    The flows every session shares: ledger, transfer and advisory.

    They hold no user state, so one set serves all sessions.
    """
    app_settings = get_settings().app
    configure_logging(app_settings.log_level)

    storage = storage or create_storage(backend)
    logger.info("components_created", backend=storage.name)

    return (
        LedgerFlow(storage),
        TransferFlow(storage),
        AdvisoryFlow(agent),
    )


def create_app_components(
    backend: Optional[str] = None,
    storage: Optional[LedgerStorageInterface] = None,
    auth: Optional[AuthProviderInterface] = None,
    agent: Optional[AdvisoryAgent] = None,
    device_id: Optional[str] = None,
) -> tuple[AuthFlow, LedgerFlow, TransferFlow, AdvisoryFlow]:
    """
    Factory function to create all application components.

    Args:
        backend: "local" or "sheets"; defaults to settings
        storage, auth, agent: Pre-built collaborators (tests)
        device_id: Scope of the remembered login

    Returns:
        (auth_flow, ledger_flow, transfer_flow, advisory_flow)
    """
    ledger_flow, transfer_flow, advisory_flow = create_ledger_components(
        backend=backend,
        storage=storage,
        agent=agent,
    )
    return (
        create_auth_flow(device_id=device_id, auth=auth),
        ledger_flow,
        transfer_flow,
        advisory_flow,
    )
