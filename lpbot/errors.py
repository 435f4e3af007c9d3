"""Exceptions raised by the LP core.

Handlers catch these at the chat-event boundary and turn them into replies.
"""


class LpBotError(Exception):
    """Base class for all LP bot errors."""


class InputValidationError(LpBotError):
    """User input failed validation; the user is re-prompted."""

    def __init__(self, message: str, hint: str = ""):
        super().__init__(message)
        self.hint = hint


class CollaboratorError(LpBotError):
    """A collaborator (pool snapshot, position list) was unavailable. Retryable."""


class PreconditionError(LpBotError):
    """The operation cannot run in the current state."""


class WalletNotProvisionedError(PreconditionError):
    def __init__(self, user_id: str):
        super().__init__(f"No wallet provisioned for user {user_id}")
        self.user_id = user_id


class NoActiveSessionError(PreconditionError):
    """An action needs an LP setup session that does not exist."""

    def __init__(self, message: str, hint: str = ""):
        super().__init__(message)
        self.hint = hint


class PositionsNotListedError(PreconditionError):
    def __init__(self):
        super().__init__("Positions have not been listed yet")


class OrdinalOutOfRangeError(PreconditionError):
    def __init__(self, ordinal: int, count: int):
        super().__init__(f"Position {ordinal} does not exist, {count} listed")
        self.ordinal = ordinal
        self.count = count


class StalePositionError(PreconditionError):
    """The listed position no longer resolves on-chain."""

    def __init__(self, position_handle: str):
        super().__init__(f"Position {position_handle} no longer exists on-chain")
        self.position_handle = position_handle


class ZeroLiquidityError(PreconditionError):
    def __init__(self, position_handle: str):
        super().__init__(f"Position {position_handle} has zero liquidity")
        self.position_handle = position_handle


class ExecutionError(LpBotError):
    """Signing, submission or on-chain rejection of a transaction."""

    def __init__(self, message: str, detail: str = ""):
        super().__init__(message)
        self.detail = detail
