"""Unit tests for TransactionScope and AsyncTransactionScope."""

from __future__ import annotations

import pytest

from row_materializer.core.enums import IsolationLevel
from row_materializer.core.exceptions import TransactionAlreadyActiveError, TransactionStateError
from row_materializer.core.materializer import SqlMaterializer


class TestTransactionScope:
    def test_commit_on_clean_exit(self, materializer: SqlMaterializer, fake_connection) -> None:
        with materializer.transaction() as tx:
            assert materializer.is_transaction_active
            assert tx.state == "active"

        (fake_tx,) = fake_connection.transactions
        assert fake_tx.committed
        assert tx.state == "committed"
        assert not materializer.is_transaction_active

    def test_auto_rollback_on_exception(self, materializer: SqlMaterializer, fake_connection) -> None:
        with pytest.raises(RuntimeError, match="boom"), materializer.transaction():
            raise RuntimeError("boom")

        (fake_tx,) = fake_connection.transactions
        assert fake_tx.rolled_back
        assert not fake_tx.committed
        assert not materializer.is_transaction_active

    def test_explicit_rollback(self, materializer: SqlMaterializer, fake_connection) -> None:
        with materializer.transaction() as tx:
            tx.rollback()

        (fake_tx,) = fake_connection.transactions
        assert fake_tx.rolled_back
        assert not fake_tx.committed

    def test_commit_after_rollback(self, materializer: SqlMaterializer) -> None:
        with materializer.transaction() as tx:
            tx.rollback()
            with pytest.raises(TransactionStateError) as exc_info:
                tx.commit()
        assert exc_info.value.current_state == "rolled_back"
        assert exc_info.value.attempted_action == "commit"

    def test_double_commit(self, materializer: SqlMaterializer) -> None:
        with materializer.transaction() as tx:
            tx.commit()
            with pytest.raises(TransactionStateError):
                tx.commit()

    def test_scope_is_single_use(self, materializer: SqlMaterializer) -> None:
        scope = materializer.transaction()
        with scope:
            pass
        with pytest.raises(TransactionStateError), scope:
            pass

    def test_isolation_level(self, materializer: SqlMaterializer, fake_connection) -> None:
        with materializer.transaction(IsolationLevel.REPEATABLE_READ):
            pass
        assert fake_connection.transactions[0].isolation_level is IsolationLevel.REPEATABLE_READ

    def test_nested_scope_fails(self, materializer: SqlMaterializer) -> None:
        with materializer.transaction():
            with pytest.raises(TransactionAlreadyActiveError), materializer.transaction():
                pass


class TestAsyncTransactionScope:
    async def test_commit_on_clean_exit(
        self, materializer: SqlMaterializer, fake_connection
    ) -> None:
        async with materializer.transaction_async() as tx:
            assert materializer.is_transaction_active

        assert fake_connection.transactions[0].committed
        assert tx.state == "committed"

    async def test_auto_rollback_on_exception(
        self, materializer: SqlMaterializer, fake_connection
    ) -> None:
        with pytest.raises(ValueError):
            async with materializer.transaction_async():
                raise ValueError("bad")

        assert fake_connection.transactions[0].rolled_back
        assert not materializer.is_transaction_active

    async def test_explicit_commit_then_rollback(self, materializer: SqlMaterializer) -> None:
        async with materializer.transaction_async() as tx:
            await tx.commit()
            with pytest.raises(TransactionStateError):
                await tx.rollback()
