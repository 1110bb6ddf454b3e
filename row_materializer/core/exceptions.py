"""row_materializer exception hierarchy.

Lifecycle violations, missing declarations, invalid arguments and
cancellations each surface as their own class. Driver exceptions raised
while executing a command are never wrapped: they reach the caller as-is.
"""

from __future__ import annotations


class MaterializerError(Exception):
    """Base exception for all row_materializer errors."""


# --- Lifecycle ---


class LifecycleError(MaterializerError):
    """Base for operations attempted in the wrong lifecycle state."""


class ObjectDisposedError(LifecycleError):
    """Raised when a disposed materializer is used."""

    def __init__(self, object_name: str = "SqlMaterializer") -> None:
        self.object_name = object_name
        super().__init__(f"Cannot access a disposed object: '{object_name}'")


class ConnectionNotOpenError(LifecycleError):
    """Raised when a command is requested while the connection is closed."""

    def __init__(self, state: str) -> None:
        self.state = state
        super().__init__(f"Database connection is not open (state '{state}')")


# --- Transaction ---


class TransactionError(LifecycleError):
    """Base for transaction errors."""


class TransactionAlreadyActiveError(TransactionError):
    """Raised when beginning a transaction while another one is active."""

    def __init__(self) -> None:
        super().__init__("There is another active transaction")


class NoActiveTransactionError(TransactionError):
    """Raised on commit or rollback without an active transaction."""

    def __init__(self, attempted_action: str) -> None:
        self.attempted_action = attempted_action
        super().__init__(f"Cannot {attempted_action}: there is no active transaction")


class TransactionStateError(TransactionError):
    """Raised on invalid transaction scope state transitions."""

    def __init__(self, current_state: str, attempted_action: str) -> None:
        self.current_state = current_state
        self.attempted_action = attempted_action
        super().__init__(f"Cannot {attempted_action} transaction in state '{current_state}'")


# --- Mapping ---


class MissingDeclarationError(MaterializerError):
    """Raised when a class lacks a required SqlEntity or SqlProcedure declaration."""

    def __init__(self, target_class: str, declaration: str) -> None:
        self.target_class = target_class
        self.declaration = declaration
        super().__init__(f"{target_class} is not decorated with a {declaration} declaration")


class InvalidArgumentError(MaterializerError, ValueError):
    """Raised when an argument is missing or of the wrong shape."""

    def __init__(self, argument: str, detail: str) -> None:
        self.argument = argument
        super().__init__(f"Invalid argument '{argument}': {detail}")


# --- Execution ---


class OperationCancelledError(MaterializerError):
    """Raised when a cancellation signal stops an asynchronous operation."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Operation '{operation}' was cancelled")


# --- Adapter ---


class AdapterError(MaterializerError):
    """Base for driver adapter errors."""


class UnsupportedCommandError(AdapterError):
    """Raised when a driver cannot run the requested command type."""

    def __init__(self, driver: str, command_type: str) -> None:
        self.driver = driver
        self.command_type = command_type
        super().__init__(f"Driver '{driver}' does not support {command_type} commands")


class AsyncOnlyError(AdapterError):
    """Raised when a blocking call is made on a natively asynchronous provider."""

    def __init__(self, driver: str, operation: str) -> None:
        self.driver = driver
        self.operation = operation
        super().__init__(
            f"'{operation}' is not available on an async {driver} connection; "
            f"use '{operation}_async'"
        )
