"""Transaction scopes.

Context managers around a materializer's begin/commit/rollback.
Auto-commits on success, auto-rolls-back on exception.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

from row_materializer.core.enums import IsolationLevel
from row_materializer.core.exceptions import TransactionStateError

if TYPE_CHECKING:
    from row_materializer.core.materializer import SqlMaterializer


class _TxState(Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class TransactionScope:
    """Synchronous transaction context manager.

    Commands created by the materializer inside the block join the
    transaction automatically.
    """

    def __init__(
        self,
        materializer: SqlMaterializer,
        isolation_level: IsolationLevel = IsolationLevel.READ_COMMITTED,
    ) -> None:
        self._materializer = materializer
        self._isolation_level = isolation_level
        self._state = _TxState.IDLE

    @property
    def state(self) -> str:
        return self._state.value

    def __enter__(self) -> TransactionScope:
        if self._state != _TxState.IDLE:
            raise TransactionStateError(self._state.value, "begin")
        self._materializer.begin_transaction(self._isolation_level)
        self._state = _TxState.ACTIVE
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if self._state != _TxState.ACTIVE:
            return
        if exc_type is not None:
            self.rollback()
        else:
            self.commit()

    def commit(self) -> None:
        """Explicitly commit the transaction."""
        self._check_active("commit")
        self._materializer.commit_transaction()
        self._state = _TxState.COMMITTED

    def rollback(self) -> None:
        """Explicitly rollback the transaction."""
        self._check_active("rollback")
        self._materializer.rollback_transaction()
        self._state = _TxState.ROLLED_BACK

    def _check_active(self, action: str) -> None:
        if self._state != _TxState.ACTIVE:
            raise TransactionStateError(self._state.value, action)


class AsyncTransactionScope:
    """Asynchronous transaction context manager.

    Begin, commit and rollback go through the materializer's async
    lifecycle, so they never block the event loop.
    """

    def __init__(
        self,
        materializer: SqlMaterializer,
        isolation_level: IsolationLevel = IsolationLevel.READ_COMMITTED,
    ) -> None:
        self._materializer = materializer
        self._isolation_level = isolation_level
        self._state = _TxState.IDLE

    @property
    def state(self) -> str:
        return self._state.value

    async def __aenter__(self) -> AsyncTransactionScope:
        if self._state != _TxState.IDLE:
            raise TransactionStateError(self._state.value, "begin")
        await self._materializer.begin_transaction_async(self._isolation_level)
        self._state = _TxState.ACTIVE
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        if self._state != _TxState.ACTIVE:
            return
        if exc_type is not None:
            await self.rollback()
        else:
            await self.commit()

    async def commit(self) -> None:
        """Explicitly commit the async transaction."""
        self._check_active("commit")
        await self._materializer.commit_transaction_async()
        self._state = _TxState.COMMITTED

    async def rollback(self) -> None:
        """Explicitly rollback the async transaction."""
        self._check_active("rollback")
        await self._materializer.rollback_transaction_async()
        self._state = _TxState.ROLLED_BACK

    def _check_active(self, action: str) -> None:
        if self._state != _TxState.ACTIVE:
            raise TransactionStateError(self._state.value, action)
