"""
Single-sided LP setup sessions.

A session is one of four frozen models, one per step. Each carries exactly
the fields valid at its step, so a session at a later step always has every
earlier field populated and a session at an earlier step cannot hold later
ones. Advancing a step builds the next model from the previous one.

SessionStore keeps at most one session per user. It is an explicit service
object (held in application.bot_data) rather than module state.
"""

import logging
from decimal import Decimal
from typing import Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict

from .models import TokenInfo

logger = logging.getLogger(__name__)

STEP_TOKEN_SELECTION = "token_selection"
STEP_AMOUNT_INPUT = "amount_input"
STEP_UPPER_PRICE_INPUT = "upper_price_input"
STEP_CONFIRM = "confirm"


class PromptRef(BaseModel):
    """Reference to the last prompt sent for a session."""

    model_config = ConfigDict(frozen=True)

    message_id: Optional[int] = None
    text: str = ""


class _SessionBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    chat_id: int
    pool_id: str
    tokens: Tuple[TokenInfo, TokenInfo]
    last_prompt: Optional[PromptRef] = None

    def with_prompt(self, prompt: PromptRef) -> "WorkflowSession":
        return self.model_copy(update={"last_prompt": prompt})


class TokenSelectionSession(_SessionBase):
    step: Literal["token_selection"] = STEP_TOKEN_SELECTION

    def select_token(self, token: TokenInfo) -> "AmountInputSession":
        return AmountInputSession(
            user_id=self.user_id,
            chat_id=self.chat_id,
            pool_id=self.pool_id,
            tokens=self.tokens,
            token=token,
        )


class AmountInputSession(_SessionBase):
    step: Literal["amount_input"] = STEP_AMOUNT_INPUT
    token: TokenInfo

    def set_amount(self, amount: Decimal) -> "UpperPriceInputSession":
        return UpperPriceInputSession(
            user_id=self.user_id,
            chat_id=self.chat_id,
            pool_id=self.pool_id,
            tokens=self.tokens,
            token=self.token,
            amount=amount,
        )


class UpperPriceInputSession(_SessionBase):
    step: Literal["upper_price_input"] = STEP_UPPER_PRICE_INPUT
    token: TokenInfo
    amount: Decimal

    def set_upper_price(self, upper_price: Decimal) -> "ConfirmSession":
        return ConfirmSession(
            user_id=self.user_id,
            chat_id=self.chat_id,
            pool_id=self.pool_id,
            tokens=self.tokens,
            token=self.token,
            amount=self.amount,
            upper_price=upper_price,
        )


class ConfirmSession(_SessionBase):
    step: Literal["confirm"] = STEP_CONFIRM
    token: TokenInfo
    amount: Decimal
    upper_price: Decimal


WorkflowSession = Union[
    TokenSelectionSession,
    AmountInputSession,
    UpperPriceInputSession,
    ConfirmSession,
]


def restart_token_selection(session: WorkflowSession) -> TokenSelectionSession:
    """Drop every step field and go back to choosing the input token."""
    return TokenSelectionSession(
        user_id=session.user_id,
        chat_id=session.chat_id,
        pool_id=session.pool_id,
        tokens=session.tokens,
    )


class SessionStore:
    """In-memory map of user id -> active workflow session.

    put() always replaces, so a user never has two workflows in flight.
    There is no expiry: an abandoned session stays until the user cancels,
    picks another pool, or the process restarts.
    """

    def __init__(self):
        self._sessions: Dict[str, WorkflowSession] = {}

    def get(self, user_id: str) -> Optional[WorkflowSession]:
        return self._sessions.get(user_id)

    def put(self, user_id: str, session: WorkflowSession) -> None:
        previous = self._sessions.get(user_id)
        if previous is not None and previous.pool_id != session.pool_id:
            logger.info(f"Replacing LP session for user {user_id} (pool {previous.pool_id} -> {session.pool_id})")
        self._sessions[user_id] = session

    def clear(self, user_id: str) -> None:
        self._sessions.pop(user_id, None)

    def update_prompt(self, user_id: str, prompt: PromptRef) -> None:
        """Record the prompt just sent; a no-op if the session is gone."""
        session = self._sessions.get(user_id)
        if session is not None:
            self._sessions[user_id] = session.with_prompt(prompt)
