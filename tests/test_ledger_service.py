"""Tests for the ledger service.

Covers:
- Transfers move money and append exactly one row
- Rejected transfers write nothing
- Overdraft headroom and external accounts
- Reversals, at most once per transaction
- Concurrent debits against one account
- Filtered, ordered, paginated queries
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from itertools import count

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from payroll_disbursement.database import make_engine, make_session_factory, seed_reference_data
from payroll_disbursement.errors import (
    AccountNotFound,
    InsufficientFunds,
    InvalidAmount,
    InvalidTransfer,
    ReversalNotAllowed,
    TransactionNotFound,
)
from payroll_disbursement.models import Account, Base, LedgerTransaction, OwnerType
from payroll_disbursement.services import LedgerService, TransactionFilter


def _count(session) -> int:
    return session.scalar(select(func.count()).select_from(LedgerTransaction))


def _transfer(ledger, debit, credit, amount, **kwargs):
    return ledger.transfer(
        debit_account_id=debit.account_id,
        credit_account_id=credit.account_id,
        amount=amount,
        transaction_type=kwargs.pop("transaction_type", "TRANSFER"),
        category=kwargs.pop("category", "GENERAL"),
        **kwargs,
    )


class TestTransfer:
    """Basic transfers."""

    def test_transfer_moves_money(self, session, ledger, factory):
        a = factory.account(balance=10_000)
        b = factory.account()

        txn = _transfer(ledger, a, b, 4_000)
        session.commit()

        assert ledger.balance_of(a.account_id) == 6_000
        assert ledger.balance_of(b.account_id) == 4_000
        assert txn.debit_balance_after == 6_000
        assert txn.credit_balance_after == 4_000
        assert txn.transaction_status == "COMPLETED"
        assert txn.transaction_type == "TRANSFER"
        assert txn.category == "GENERAL"

    def test_orm_objects_see_new_balances(self, session, ledger, factory):
        a = factory.account(balance=10_000)
        b = factory.account()

        _transfer(ledger, a, b, 2_500)
        session.commit()

        assert a.current_balance == 7_500
        assert b.current_balance == 2_500

    def test_transfer_of_entire_balance(self, session, ledger, factory):
        a = factory.account(balance=5_000)
        b = factory.account()

        _transfer(ledger, a, b, 5_000)
        assert ledger.balance_of(a.account_id) == 0

    def test_metadata_links(self, session, ledger, factory):
        a = factory.account(balance=5_000)
        b = factory.account()

        txn = _transfer(ledger, a, b, 100, metadata={"description": "bonus"})
        assert txn.description == "bonus"
        assert txn.payroll_batch_id is None

    @pytest.mark.parametrize("amount", [0, -1, True, 1.5, "100"])
    def test_invalid_amount_rejected(self, session, ledger, factory, amount):
        a = factory.account(balance=5_000)
        b = factory.account()
        before = _count(session)

        with pytest.raises(InvalidAmount):
            _transfer(ledger, a, b, amount)
        assert _count(session) == before

    def test_self_transfer_rejected(self, ledger, factory):
        a = factory.account(balance=5_000)
        with pytest.raises(InvalidTransfer):
            _transfer(ledger, a, a, 100)

    @pytest.mark.parametrize(
        "kwargs",
        [{"transaction_type": "BOGUS"}, {"category": "BOGUS"}],
    )
    def test_unknown_type_or_category_moves_nothing(self, session, ledger, factory, kwargs):
        a = factory.account(balance=50_000)
        b = factory.account()
        before = _count(session)

        with pytest.raises(InvalidTransfer):
            _transfer(ledger, a, b, 10_000, **kwargs)
        session.commit()

        assert ledger.balance_of(a.account_id) == 50_000
        assert ledger.balance_of(b.account_id) == 0
        assert _count(session) == before

    def test_unknown_account(self, ledger, factory):
        a = factory.account(balance=5_000)
        with pytest.raises(AccountNotFound) as exc_info:
            ledger.transfer(
                debit_account_id=a.account_id,
                credit_account_id="missing",
                amount=100,
                transaction_type="TRANSFER",
                category="GENERAL",
            )
        assert exc_info.value.account_id == "missing"


class TestInsufficientFunds:
    """Rejected transfers write nothing."""

    def test_overdraw_rejected_without_writes(self, session, ledger, factory):
        a = factory.account(balance=1_000)
        b = factory.account()
        before = _count(session)

        with pytest.raises(InsufficientFunds) as exc_info:
            _transfer(ledger, a, b, 1_001)

        assert exc_info.value.requested == 1_001
        assert exc_info.value.available == 1_000
        assert _count(session) == before
        assert ledger.balance_of(a.account_id) == 1_000
        assert ledger.balance_of(b.account_id) == 0

    def test_overdraft_extends_headroom(self, session, ledger, factory):
        a = factory.account(balance=1_000, overdraft=500)
        b = factory.account()

        _transfer(ledger, a, b, 1_500)
        assert ledger.balance_of(a.account_id) == -500
        assert ledger.available_funds(a.account_id) == 0

        with pytest.raises(InsufficientFunds):
            _transfer(ledger, a, b, 1)

    def test_external_account_may_go_negative(self, session, ledger, factory, settings):
        b = factory.account()
        external = session.get(Account, settings.external_funding_account_id)
        before = ledger.balance_of(external.account_id)

        _transfer(ledger, external, b, 1_000_000, transaction_type="TOP_UP", category="SYSTEM")
        assert ledger.balance_of(external.account_id) == before - 1_000_000

    def test_sequence_never_overdraws(self, session, ledger, factory):
        a = factory.account(balance=10_000)
        b = factory.account()

        paid = 0
        for _ in range(6):
            try:
                _transfer(ledger, a, b, 3_000)
                paid += 3_000
            except InsufficientFunds:
                pass
        session.commit()

        assert paid == 9_000
        assert ledger.balance_of(a.account_id) == 1_000
        assert ledger.balance_of(b.account_id) == 9_000


class TestReverse:
    """Corrections are new offsetting rows."""

    def test_reverse_swaps_accounts(self, session, ledger, factory):
        a = factory.account(balance=10_000)
        b = factory.account()
        original = _transfer(ledger, a, b, 4_000)

        reversal = ledger.reverse(transaction_id=original.transaction_id, reason="duplicate")
        session.commit()

        assert reversal.transaction_type == "REVERSAL"
        assert reversal.debit_account_id == b.account_id
        assert reversal.credit_account_id == a.account_id
        assert reversal.reverses_transaction_id == original.transaction_id
        assert reversal.description == "duplicate"
        assert ledger.balance_of(a.account_id) == 10_000
        assert ledger.balance_of(b.account_id) == 0

        # original untouched
        session.refresh(original)
        assert original.amount == 4_000
        assert original.transaction_type == "TRANSFER"

    def test_reverse_requires_funds(self, session, ledger, factory):
        a = factory.account(balance=10_000)
        b = factory.account()
        c = factory.account()
        original = _transfer(ledger, a, b, 4_000)
        _transfer(ledger, b, c, 4_000)

        with pytest.raises(InsufficientFunds):
            ledger.reverse(transaction_id=original.transaction_id, reason="too late")

    def test_reverse_unknown(self, ledger):
        with pytest.raises(TransactionNotFound):
            ledger.reverse(transaction_id="missing", reason="x")

    def test_reverse_only_once(self, session, ledger, factory):
        a = factory.account(balance=50_000)
        b = factory.account(balance=40_000)
        original = _transfer(ledger, a, b, 10_000)
        ledger.reverse(transaction_id=original.transaction_id, reason="duplicate")
        session.commit()
        before = _count(session)

        with pytest.raises(ReversalNotAllowed) as exc_info:
            ledger.reverse(transaction_id=original.transaction_id, reason="again")

        assert exc_info.value.http_status == 409
        assert ledger.balance_of(a.account_id) == 50_000
        assert ledger.balance_of(b.account_id) == 40_000
        assert _count(session) == before

    def test_reversal_is_final(self, session, ledger, factory):
        a = factory.account(balance=50_000)
        b = factory.account()
        original = _transfer(ledger, a, b, 10_000)
        reversal = ledger.reverse(transaction_id=original.transaction_id, reason="duplicate")
        session.commit()

        with pytest.raises(ReversalNotAllowed):
            ledger.reverse(transaction_id=reversal.transaction_id, reason="undo")
        assert ledger.balance_of(a.account_id) == 50_000

    def test_second_reversal_row_violates_constraint(self, session, ledger, factory):
        a = factory.account(balance=50_000)
        b = factory.account()
        original = _transfer(ledger, a, b, 10_000)
        reversal = ledger.reverse(transaction_id=original.transaction_id, reason="duplicate")
        session.commit()

        session.add(
            LedgerTransaction(
                debit_account_id=b.account_id,
                credit_account_id=a.account_id,
                amount=10_000,
                transaction_type="REVERSAL",
                category=reversal.category,
                reverses_transaction_id=original.transaction_id,
                debit_balance_after=0,
                credit_balance_after=0,
            )
        )
        with pytest.raises(IntegrityError):
            session.flush()
        session.rollback()


class TestConcurrentDebits:
    """Simultaneous debits from separate sessions against one account."""

    @pytest.fixture
    def file_db(self, tmp_path, settings):
        engine = make_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
        Base.metadata.create_all(engine)
        factory = make_session_factory(engine)
        with factory() as db:
            seed_reference_data(db, settings)
            funding = Account(owner_type=OwnerType.COMPANY.value, account_name="Funding", current_balance=0)
            payee_a = Account(owner_type=OwnerType.EMPLOYEE.value, account_name="Payee A", current_balance=0)
            payee_b = Account(owner_type=OwnerType.EMPLOYEE.value, account_name="Payee B", current_balance=0)
            db.add_all([funding, payee_a, payee_b])
            db.flush()
            LedgerService(db).transfer(
                debit_account_id=settings.external_funding_account_id,
                credit_account_id=funding.account_id,
                amount=10_000,
                transaction_type="TOP_UP",
                category="SYSTEM",
            )
            db.commit()
            ids = (funding.account_id, payee_a.account_id, payee_b.account_id)
        yield factory, ids
        engine.dispose()

    def test_only_one_of_two_debits_succeeds(self, file_db):
        factory, (funding_id, payee_a_id, payee_b_id) = file_db
        barrier = threading.Barrier(2)

        def debit(payee_id: str) -> str:
            with factory() as db:
                barrier.wait()
                try:
                    LedgerService(db).transfer(
                        debit_account_id=funding_id,
                        credit_account_id=payee_id,
                        amount=6_000,
                        transaction_type="SALARY_DISBURSEMENT",
                        category="PAYROLL",
                    )
                    db.commit()
                    return "paid"
                except InsufficientFunds:
                    db.rollback()
                    return "rejected"

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcomes = list(pool.map(debit, [payee_a_id, payee_b_id]))

        assert sorted(outcomes) == ["paid", "rejected"]
        with factory() as db:
            ledger = LedgerService(db)
            assert ledger.balance_of(funding_id) == 4_000
            assert ledger.balance_of(payee_a_id) + ledger.balance_of(payee_b_id) == 6_000
            debits = ledger.query(TransactionFilter(debit_account_id=funding_id))
            assert debits.total == 1


class TestQuery:
    """Filtered, ordered and paginated transaction queries."""

    @pytest.fixture
    def clocked(self, session):
        ticks = count()
        start = datetime(2020, 1, 1, tzinfo=timezone.utc)
        return LedgerService(session, clock=lambda: start + timedelta(minutes=next(ticks)))

    def test_newest_first_by_default(self, session, clocked, factory):
        a = factory.account(balance=10_000)
        b = factory.account()
        first = _transfer(clocked, a, b, 100)
        second = _transfer(clocked, a, b, 200)
        third = _transfer(clocked, b, a, 50)

        page = clocked.query(TransactionFilter(account_id=b.account_id))
        assert [t.transaction_id for t in page.items] == [
            third.transaction_id,
            second.transaction_id,
            first.transaction_id,
        ]
        assert page.total == 3

        ascending = clocked.query(TransactionFilter(account_id=b.account_id, descending=False))
        assert [t.amount for t in ascending.items] == [100, 200, 50]

    def test_filters(self, session, clocked, factory):
        a = factory.account(balance=10_000)
        b = factory.account()
        _transfer(clocked, a, b, 100)
        _transfer(clocked, b, a, 50, transaction_type="ADJUSTMENT")

        assert clocked.query(TransactionFilter(debit_account_id=b.account_id)).total == 1
        assert clocked.query(TransactionFilter(credit_account_id=b.account_id)).total == 1
        assert clocked.query(
            TransactionFilter(account_id=a.account_id, transaction_type="ADJUSTMENT")
        ).items[0].amount == 50
        assert clocked.query(TransactionFilter(category="PAYROLL")).total == 0

    def test_date_range(self, session, clocked, factory):
        a = factory.account(balance=10_000)
        b = factory.account()
        for amount in (100, 200, 300):
            _transfer(clocked, a, b, amount)

        start = datetime(2020, 1, 1, tzinfo=timezone.utc)
        page = clocked.query(
            TransactionFilter(
                account_id=b.account_id,
                from_date=start + timedelta(seconds=30),
                to_date=start + timedelta(minutes=2, seconds=30),
            )
        )
        assert sorted(t.amount for t in page.items) == [200, 300]

    def test_pagination(self, session, clocked, factory):
        a = factory.account(balance=10_000)
        b = factory.account()
        for amount in range(1, 6):
            _transfer(clocked, a, b, amount * 100)

        page = clocked.query(TransactionFilter(credit_account_id=b.account_id, page=1, size=2))
        assert page.total == 5
        assert page.total_pages == 3
        assert [t.amount for t in page.items] == [300, 200]

        last = clocked.query(TransactionFilter(credit_account_id=b.account_id, page=2, size=2))
        assert [t.amount for t in last.items] == [100]

    def test_restrict_hook(self, session, factory):
        a = factory.account(balance=10_000)
        b = factory.account()
        c = factory.account(balance=10_000)
        ledger = LedgerService(session)
        _transfer(ledger, a, b, 100)
        _transfer(ledger, c, a, 100)

        restricted = LedgerService(
            session,
            restrict=lambda stmt: stmt.where(LedgerTransaction.credit_account_id == b.account_id),
        )
        page = restricted.query()
        assert page.total == 1
        assert page.items[0].credit_account_id == b.account_id


class TestSummaries:
    def test_summarize(self, session, ledger, factory):
        a = factory.account(balance=10_000)
        b = factory.account()
        _transfer(ledger, a, b, 4_000)
        _transfer(ledger, b, a, 1_000)

        summary = ledger.summarize(a.account_id)
        assert summary.balance == 7_000
        assert summary.total_credited == 11_000  # opening top-up included
        assert summary.total_debited == 4_000
        assert summary.transaction_count == 3

    def test_balance_of_unknown(self, ledger):
        with pytest.raises(AccountNotFound):
            ledger.balance_of("missing")
        with pytest.raises(AccountNotFound):
            ledger.available_funds("missing")

    def test_get_or_create_external_account(self, session, ledger):
        account = ledger.get_or_create_external_account("another-source")
        assert account.owner_type == OwnerType.EXTERNAL
        assert ledger.get_or_create_external_account("another-source") is account
