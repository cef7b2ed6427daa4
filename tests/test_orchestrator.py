"""
End-to-end flow tests through the orchestrator.

Storage is a temp-dir snapshot or an in-memory remote table; Gemini
is faked.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from shop_ledger.agents import AdvisoryAgent, FALLBACK_MESSAGE, NO_DATA_MESSAGE
from shop_ledger.models.transaction import TransactionType
from shop_ledger.orchestrator import (
    AdvisoryFlow,
    AuthFlow,
    LedgerFlow,
    TransferFlow,
    create_app_components,
    create_auth_flow,
    create_ledger_components,
    create_storage,
)
from shop_ledger.services.auth import LocalAuthProvider
from shop_ledger.services.storage import (
    LocalSnapshotStorage,
    RemoteLedgerStorage,
)
from shop_ledger.session import SessionContext

from conftest import FakeGeminiModel, make_tx


INCOME = TransactionType.INCOME
EXPENSE = TransactionType.EXPENSE


@pytest.fixture
def ledger(local_storage) -> LedgerFlow:
    return LedgerFlow(local_storage)


@pytest.fixture
def transfer(local_storage) -> TransferFlow:
    return TransferFlow(local_storage)


class TestLedgerFlow:

    @pytest.mark.asyncio
    async def test_june_scenario(self, ledger, session):
        """Sale 100 + Rent 40 -> June summary 100 / 40 / 60."""
        session.view_period = "2024-06"
        ok, _ = await ledger.add_transaction(session, "Sale", "100", INCOME, "sales", date(2024, 6, 1))
        assert ok
        ok, _ = await ledger.add_transaction(session, "Rent", 40, EXPENSE, "rent", "2024-06-02")
        assert ok

        view = ledger.month_view(session, today=date(2024, 6, 2))
        assert (view.summary.income, view.summary.expense, view.summary.profit) == (100, 40, 60)
        assert [t.description for t in view.transactions] == ["Rent", "Sale"]

    @pytest.mark.asyncio
    async def test_added_transaction_is_persisted(self, ledger, session, local_storage):
        await ledger.add_transaction(session, "Sale", "12.50", INCOME, "sales", "2024-06-01")
        stored = await local_storage.load_all("user-alice")
        assert len(stored) == 1
        assert stored[0].amount == Decimal("12.50")
        assert session.transactions[0].id == stored[0].id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("description,amount", [
        ("", "10"),
        ("   ", "10"),
        ("Sale", "0"),
        ("Sale", "-5"),
        ("Sale", "abc"),
        ("Sale", "nan"),
        ("Sale", "inf"),
    ])
    async def test_invalid_form_input_rejected(self, ledger, session, local_storage, description, amount):
        ok, message = await ledger.add_transaction(session, description, amount, INCOME, "sales", "2024-06-01")
        assert not ok
        assert message
        assert session.transactions == []
        assert await local_storage.load_all("user-alice") == []

    @pytest.mark.asyncio
    async def test_empty_category_uses_default(self, ledger, session):
        await ledger.add_transaction(session, "Sale", "10", INCOME, "", "2024-06-01")
        assert session.transactions[0].category == "sales"

    @pytest.mark.asyncio
    async def test_delete(self, ledger, session):
        await ledger.add_transaction(session, "Sale", "10", INCOME, "sales", "2024-06-01")
        tx_id = session.transactions[0].id
        ok, _ = await ledger.delete_transaction(session, tx_id)
        assert ok
        assert session.transactions == []
        # A second delete of the same id is harmless
        ok, _ = await ledger.delete_transaction(session, tx_id)
        assert ok

    @pytest.mark.asyncio
    async def test_load_replaces_in_memory_ledger(self, ledger, session, local_storage):
        await local_storage.insert("user-alice", [make_tx(), make_tx()])
        await local_storage.insert("user-bob", [make_tx(user_id="user-bob")])
        ok, _ = await ledger.ensure_loaded(session)
        assert ok
        assert session.ledger_loaded
        assert len(session.transactions) == 2

    @pytest.mark.asyncio
    async def test_logged_out_operations_rejected(self, ledger, local_storage):
        ctx = SessionContext()
        ok, message = await ledger.add_transaction(ctx, "Sale", "10", INCOME, "sales", "2024-06-01")
        assert not ok
        assert "log in" in message
        ok, _ = await ledger.delete_transaction(ctx, "anything")
        assert not ok
        ok, _ = await ledger.load(ctx)
        assert not ok
        assert ledger.month_view(ctx).is_empty


class TestPersistenceFailures:
    """The in-memory ledger keeps its last-known-good state."""

    @pytest.fixture
    def remote_ledger(self, memory_table) -> LedgerFlow:
        return LedgerFlow(RemoteLedgerStorage(memory_table))

    @pytest.mark.asyncio
    async def test_failed_insert_changes_nothing(self, remote_ledger, session, memory_table):
        await remote_ledger.add_transaction(session, "Sale", "10", INCOME, "sales", "2024-06-01")
        before = list(session.transactions)

        memory_table.fail_next = "insert"
        ok, message = await remote_ledger.add_transaction(session, "Rent", "5", EXPENSE, "rent", "2024-06-02")

        assert not ok
        assert "network unreachable" in message
        assert session.transactions == before

    @pytest.mark.asyncio
    async def test_failed_delete_keeps_record(self, remote_ledger, session, memory_table):
        await remote_ledger.add_transaction(session, "Sale", "10", INCOME, "sales", "2024-06-01")
        memory_table.fail_next = "delete_where"
        ok, _ = await remote_ledger.delete_transaction(session, session.transactions[0].id)
        assert not ok
        assert len(session.transactions) == 1

    @pytest.mark.asyncio
    async def test_failed_load_keeps_previous(self, remote_ledger, session, memory_table):
        session.transactions = [make_tx()]
        memory_table.fail_next = "select"
        ok, _ = await remote_ledger.load(session)
        assert not ok
        assert len(session.transactions) == 1
        assert not session.ledger_loaded


class TestTransferFlow:

    @pytest.mark.asyncio
    async def test_export_requires_data(self, transfer, session):
        ok, message = transfer.export_code(session)
        assert not ok
        assert message == "There is no data to copy."
        export, _ = transfer.export_file(session)
        assert export is None

    @pytest.mark.asyncio
    async def test_code_import_requires_confirmation(self, transfer, session, local_storage):
        ok, code = TransferFlow(local_storage).export_code(
            _session_with(session, [make_tx(description="বিক্রি")])
        )
        assert ok
        session.transactions = []

        pending, prompt = transfer.stage_code(session, code)
        assert prompt == "Found 1 records. Do you want to import them?"
        assert await local_storage.load_all("user-alice") == []
        assert session.transactions == []

        ok, message = await transfer.confirm_import(session)
        assert ok
        assert message == "Imported 1 records successfully!"
        assert session.transactions[0].description == "বিক্রি"
        assert transfer.pending(session) is None

    @pytest.mark.asyncio
    async def test_file_import_requires_confirmation(self, transfer, session, local_storage):
        session.transactions = [make_tx(), make_tx()]
        export, _ = transfer.export_file(session, today=date(2024, 6, 9))
        assert export.filename == "ShopBackup_2024-06-09.json"
        session.transactions = []

        pending, prompt = transfer.stage_file(session, export.content.encode("utf-8"))
        assert pending.count == 2
        assert await local_storage.load_all("user-alice") == []

        transfer.cancel(session)
        ok, message = await transfer.confirm_import(session)
        assert not ok
        assert message == "Nothing to import."
        assert await local_storage.load_all("user-alice") == []

    @pytest.mark.asyncio
    async def test_import_keeps_existing_records(self, ledger, transfer, session):
        for i in range(3):
            await ledger.add_transaction(session, f"mine {i}", "10", INCOME, "sales", "2024-06-01")
        existing_ids = {t.id for t in session.transactions}

        code = transfer.export_code(_session_with(SessionContext(), [make_tx(), make_tx()], owner=session.identity))[1]
        transfer.stage_code(session, code)
        await transfer.confirm_import(session)

        await ledger.load(session)
        assert len(session.transactions) == 5
        assert existing_ids <= {t.id for t in session.transactions}

    @pytest.mark.asyncio
    async def test_invalid_code_message(self, transfer, session):
        pending, message = transfer.stage_code(session, "garbage!!")
        assert pending is None
        assert message == "Invalid code. Please copy the correct code and try again."

    @pytest.mark.asyncio
    async def test_pending_import_dropped_on_logout(self, transfer, session, local_storage):
        session.transactions = [make_tx()]
        code = transfer.export_code(session)[1]
        transfer.stage_code(session, code)

        session.teardown()
        ok, _ = await transfer.confirm_import(session)
        assert not ok
        assert await local_storage.load_all("user-alice") == []

    @pytest.mark.asyncio
    async def test_pending_import_not_committed_for_next_user(self, transfer, session, bob, local_storage):
        session.transactions = [make_tx()]
        pending, _ = transfer.stage_code(session, transfer.export_code(session)[1])

        session.establish(bob)
        session.ui_state["pending_import"] = pending
        ok, _ = await transfer.confirm_import(session)
        assert not ok
        assert await local_storage.load_all("user-bob") == []

    @pytest.mark.asyncio
    async def test_logged_out_export_rejected(self, transfer):
        ok, message = transfer.export_code(SessionContext())
        assert not ok
        assert "log in" in message


def _session_with(ctx: SessionContext, transactions, owner=None) -> SessionContext:
    if owner is not None:
        ctx.establish(owner)
    ctx.transactions = list(transactions)
    return ctx


class TestAdvisoryFlow:

    @pytest.mark.asyncio
    async def test_insight_uses_selected_month_only(self, session):
        model = FakeGeminiModel(text="Keep costs low.")
        flow = AdvisoryFlow(AdvisoryAgent(model=model))
        session.view_period = "2024-06"
        session.transactions = [
            make_tx(description="June sale", date="2024-06-01"),
            make_tx(description="May sale", date="2024-05-31"),
        ]

        assert await flow.insight_for_month(session) == "Keep costs low."
        assert session.advisory_text == "Keep costs low."
        assert "June sale" in model.prompts[0]
        assert "May sale" not in model.prompts[0]

    @pytest.mark.asyncio
    async def test_digest_is_newest_first_for_any_backend_order(self, session):
        """Rows arrive oldest first from the Sheets backend; the digest does not."""
        model = FakeGeminiModel()
        flow = AdvisoryFlow(AdvisoryAgent(model=model))
        session.view_period = "2024-06"
        session.transactions = [
            make_tx(description="first", date="2024-06-01"),
            make_tx(description="middle", date="2024-06-10"),
            make_tx(description="last", date="2024-06-20"),
        ]

        await flow.insight_for_month(session)

        prompt = model.prompts[0]
        assert prompt.index("last") < prompt.index("middle") < prompt.index("first")

    @pytest.mark.asyncio
    async def test_digest_keeps_the_newest_fifty(self, session):
        model = FakeGeminiModel()
        flow = AdvisoryFlow(AdvisoryAgent(model=model))
        session.view_period = "2024-06"
        session.transactions = [
            make_tx(description=f"old-{i}", date="2024-06-01") for i in range(50)
        ] + [make_tx(description="newest", date="2024-06-30")]

        await flow.insight_for_month(session)

        assert "newest" in model.prompts[0]
        assert "old-49" not in model.prompts[0]

    @pytest.mark.asyncio
    async def test_empty_month(self, session):
        model = FakeGeminiModel()
        flow = AdvisoryFlow(AdvisoryAgent(model=model))
        session.view_period = "2024-06"
        assert await flow.insight_for_month(session) == NO_DATA_MESSAGE
        assert model.prompts == []

    @pytest.mark.asyncio
    async def test_model_failure_does_not_touch_ledger(self, session):
        flow = AdvisoryFlow(AdvisoryAgent(model=FakeGeminiModel(error=TimeoutError())))
        session.view_period = "2024-06"
        session.transactions = [make_tx()]
        assert await flow.insight_for_month(session) == FALLBACK_MESSAGE
        assert len(session.transactions) == 1

    @pytest.mark.asyncio
    async def test_missing_api_key(self, session, monkeypatch):
        from shop_ledger.config import get_settings

        monkeypatch.delenv("GEMINI_API_KEY")
        get_settings.cache_clear()
        session.view_period = "2024-06"
        session.transactions = [make_tx()]
        assert await AdvisoryFlow().insight_for_month(session) == "AI advice is not configured."


class TestAuthFlow:

    @pytest.mark.asyncio
    async def test_sign_up_sign_out_clears_session(self, snapshot):
        auth_flow = AuthFlow(LocalAuthProvider(snapshot=snapshot))
        ctx = SessionContext()
        ok, _ = await auth_flow.sign_up(ctx, "rahim@example.com", "secret1", "Rahim")
        assert ok
        ctx.transactions = [make_tx(user_id=ctx.user_id)]

        await auth_flow.sign_out(ctx)
        assert not ctx.is_authenticated
        assert ctx.transactions == []

    @pytest.mark.asyncio
    async def test_bad_credentials_message(self, snapshot):
        auth_flow = AuthFlow(LocalAuthProvider(snapshot=snapshot))
        ok, message = await auth_flow.sign_in(SessionContext(), "x@example.com", "secret1")
        assert not ok
        assert message == "Email or password is incorrect."

    @pytest.mark.asyncio
    async def test_resume_remembered_session(self, snapshot):
        auth = LocalAuthProvider(snapshot=snapshot)
        await AuthFlow(auth).sign_up(SessionContext(), "rahim@example.com", "secret1", "Rahim")

        ctx = SessionContext()
        assert await AuthFlow(LocalAuthProvider(snapshot=snapshot)).resume(ctx)
        assert ctx.identity.email == "rahim@example.com"

    @pytest.mark.asyncio
    async def test_bound_session_follows_provider(self, snapshot, session):
        auth = LocalAuthProvider(snapshot=snapshot)
        AuthFlow(auth).bind(session)
        await auth.sign_out()
        assert not session.is_authenticated


class TestSessionWiring:
    """Sessions wired to the auth provider the way the Streamlit app does it."""

    @pytest.mark.asyncio
    async def test_login_not_resumed_by_another_browser(self):
        auth_a, ledger_flow, _, _ = create_app_components(device_id="browser-a")
        auth_b = create_auth_flow(device_id="browser-b")
        tab_a, tab_b = SessionContext(), SessionContext()

        await auth_a.sign_up(tab_a, "rahim@example.com", "secret1", "Rahim")
        await ledger_flow.add_transaction(tab_a, "Sale", "100", INCOME, "sales", "2024-06-01")

        assert not await auth_b.resume(tab_b)
        assert not tab_b.is_authenticated
        assert tab_b.transactions == []

    @pytest.mark.asyncio
    async def test_logout_in_one_tab_tears_down_the_other(self):
        auth_flow, ledger_flow, _, _ = create_app_components(device_id="browser-a")
        tab1, tab2 = SessionContext(), SessionContext()

        await auth_flow.sign_up(tab1, "rahim@example.com", "secret1", "Rahim")
        await ledger_flow.add_transaction(tab1, "Sale", "100", INCOME, "sales", "2024-06-01")
        assert await auth_flow.resume(tab2)
        await ledger_flow.ensure_loaded(tab2)
        assert len(tab2.transactions) == 1

        await auth_flow.sign_out(tab1)

        assert not tab2.is_authenticated
        assert tab2.transactions == []
        assert not tab2.is_bound

    @pytest.mark.asyncio
    async def test_expiry_reaches_every_open_session(self, snapshot):
        auth = LocalAuthProvider(
            snapshot=snapshot,
            session_ttl=timedelta(seconds=-1),
            device_id="browser-a",
        )
        auth_flow, _, _, _ = create_app_components(auth=auth)
        tab1, tab2 = SessionContext(), SessionContext()
        await auth_flow.sign_up(tab1, "rahim@example.com", "secret1", "Rahim")
        await auth_flow.sign_in(tab2, "rahim@example.com", "secret1")
        tab2.transactions = [make_tx(user_id=tab2.user_id)]

        # The next page run of tab1 re-checks the remembered login
        assert not await auth_flow.resume(tab1)

        assert not tab1.is_authenticated
        assert not tab2.is_authenticated
        assert tab2.transactions == []

    @pytest.mark.asyncio
    async def test_torn_down_session_stops_listening(self):
        auth_flow, _, _, _ = create_app_components(device_id="browser-a")
        tab1, tab2 = SessionContext(), SessionContext()
        await auth_flow.sign_up(tab1, "rahim@example.com", "secret1", "Rahim")
        await auth_flow.resume(tab2)
        await auth_flow.sign_out(tab1)

        await auth_flow.sign_in(tab1, "rahim@example.com", "secret1")

        # tab2 only picks the login up on its own next run
        assert not tab2.is_authenticated
        assert await auth_flow.resume(tab2)

    @pytest.mark.asyncio
    async def test_repeated_runs_bind_once(self, snapshot):
        auth = LocalAuthProvider(snapshot=snapshot, device_id="browser-a")
        auth_flow, _, _, _ = create_app_components(auth=auth)
        tab = SessionContext()
        await auth_flow.sign_up(tab, "rahim@example.com", "secret1", "Rahim")

        for _ in range(3):
            await auth_flow.resume(tab)
        assert len(auth._listeners) == 1

        await auth_flow.sign_out(tab)
        assert auth._listeners == []


class TestComposition:

    def test_create_storage(self):
        assert isinstance(create_storage("local"), LocalSnapshotStorage)
        with pytest.raises(ValueError):
            create_storage("postgres")

    def test_create_app_components_defaults(self):
        auth_flow, ledger_flow, transfer_flow, advisory_flow = create_app_components()
        assert isinstance(auth_flow, AuthFlow)
        assert isinstance(ledger_flow.storage, LocalSnapshotStorage)
        assert isinstance(transfer_flow, TransferFlow)
        assert isinstance(advisory_flow, AdvisoryFlow)

    def test_injected_storage_wins(self, memory_table):
        storage = RemoteLedgerStorage(memory_table)
        _, ledger_flow, _, _ = create_app_components(storage=storage)
        assert ledger_flow.storage is storage

    def test_ledger_components_are_shared_across_sessions(self):
        ledger_flow, transfer_flow, advisory_flow = create_ledger_components()
        assert isinstance(ledger_flow.storage, LocalSnapshotStorage)
        assert isinstance(transfer_flow, TransferFlow)
        assert isinstance(advisory_flow, AdvisoryFlow)

    def test_invalid_device_id_rejected(self):
        with pytest.raises(ValueError):
            create_auth_flow(device_id="../escape")
