"""
Single-sided LP setup workflow.

The state machine is the pure function transition(session, event, snapshot):
it never performs I/O and returns the next session together with the
effects to run (replies to send, an open request for the coordinator).
LpWorkflow is the driver: it loads the session, fetches the pool snapshot
when the step needs a fresh price, calls transition() and executes the
effects.

    token_selection --(token chosen)--> amount_input
    amount_input --(amount > 0)--> upper_price_input
    upper_price_input --(price > current price)--> confirm
    confirm --(confirm)--> open position, session cleared on success
    any --(cancel)--> session discarded
    any --(back)--> token_selection
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Awaitable, Callable, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

from .amm import AmmExecutionService, AmmServiceError
from .errors import InputValidationError, LpBotError, NoActiveSessionError
from .models import OpenRequest, OpenResult, PoolSnapshot, TokenInfo
from .sessions import (
    AmountInputSession,
    ConfirmSession,
    PromptRef,
    SessionStore,
    TokenSelectionSession,
    UpperPriceInputSession,
    WorkflowSession,
    restart_token_selection,
)

logger = logging.getLogger(__name__)

ACTION_PREFIX = "lp"
ACTION_SINGLE = f"{ACTION_PREFIX}:single:"
ACTION_TOKEN = f"{ACTION_PREFIX}:token:"
ACTION_CONFIRM = f"{ACTION_PREFIX}:confirm"
ACTION_CANCEL = f"{ACTION_PREFIX}:cancel"
ACTION_BACK = f"{ACTION_PREFIX}:back"

CANCEL_HINT = "Use /cancel to cancel this operation."


# ============================================
# EVENTS
# ============================================

class SelectPool(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["select_pool"] = "select_pool"
    pool_id: str


class SelectToken(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["select_token"] = "select_token"
    mint: str


class TextReply(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["text"] = "text"
    text: str


class Confirm(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["confirm"] = "confirm"


class Cancel(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["cancel"] = "cancel"


class Back(BaseModel):
    model_config = ConfigDict(frozen=True)
    kind: Literal["back"] = "back"


Payload = Union[SelectPool, SelectToken, TextReply, Confirm, Cancel, Back]


class ChatEvent(BaseModel):
    """One inbound chat event, already stripped of transport details."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    chat_id: int
    payload: Payload = Field(discriminator="kind")


# ============================================
# EFFECTS
# ============================================

class Reply(BaseModel):
    """Outbound message. choices are (label, action token) pairs."""

    model_config = ConfigDict(frozen=True)

    title: str
    body: str = ""
    choices: List[Tuple[str, str]] = Field(default_factory=list)
    edit_ref: Optional[int] = None
    is_prompt: bool = False

    @property
    def text(self) -> str:
        return f"{self.title}\n\n{self.body}" if self.body else self.title


class Transition(BaseModel):
    """Result of one step of the state machine.

    handled=False means the event was not meant for this workflow and is
    left for other handlers. When store is False the session in the store
    is left as it is.
    """

    model_config = ConfigDict(frozen=True)

    handled: bool = True
    session: Optional[WorkflowSession] = None
    store: bool = False
    clear: bool = False
    replies: List[Reply] = Field(default_factory=list)
    open_request: Optional[OpenRequest] = None

    @classmethod
    def ignored(cls) -> "Transition":
        return cls(handled=False)

    @classmethod
    def unchanged(cls, *replies: Reply) -> "Transition":
        return cls(replies=list(replies))

    @classmethod
    def advance(cls, session: WorkflowSession, *replies: Reply) -> "Transition":
        return cls(session=session, store=True, replies=list(replies))

    @classmethod
    def discard(cls, *replies: Reply) -> "Transition":
        return cls(clear=True, replies=list(replies))


# ============================================
# INPUT PARSING
# ============================================

def parse_decimal(text: str) -> Optional[Decimal]:
    """Parse a finite decimal, or return None."""
    try:
        value = Decimal(text.strip())
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite():
        return None
    return value


def parse_amount(text: str) -> Decimal:
    value = parse_decimal(text)
    if value is None or value <= 0:
        raise InputValidationError("Please enter a valid positive number.")
    return value


def parse_upper_price(text: str, current_price: Decimal) -> Decimal:
    value = parse_decimal(text)
    if value is None or value <= current_price:
        raise InputValidationError(
            "Invalid upper price.",
            hint=f"Please enter a valid price higher than the current price ({fmt(current_price)}).",
        )
    return value


def is_valid_amount(text: str) -> bool:
    try:
        parse_amount(text)
    except InputValidationError:
        return False
    return True


def fmt(value: Decimal) -> str:
    return format(value, "f")


# ============================================
# PROMPTS
# ============================================

def _pool_label(tokens: Tuple[TokenInfo, TokenInfo]) -> str:
    return f"{tokens[0].symbol}/{tokens[1].symbol}"


def token_selection_prompt(session: TokenSelectionSession, snapshot: Optional[PoolSnapshot] = None) -> Reply:
    lines = [f"Pool: {_pool_label(session.tokens)}"]
    if snapshot is not None:
        lines.append(f"Current pool price: {fmt(snapshot.current_price)}")
    lines.append("")
    lines.append("Choose the token you want to provide as liquidity.")
    lines.append("")
    lines.append(CANCEL_HINT)

    choices = [(f"🪙 {token.symbol}", f"{ACTION_TOKEN}{token.address}") for token in session.tokens]
    choices.append(("❌ Cancel", ACTION_CANCEL))
    return Reply(
        title="💧 Single-Sided LP Setup",
        body="\n".join(lines),
        choices=choices,
        is_prompt=True,
    )


def amount_prompt(session: AmountInputSession, snapshot: PoolSnapshot) -> Reply:
    body = (
        f"Pool: {_pool_label(session.tokens)}\n"
        f"Input token: {session.token.symbol}\n"
        f"Current pool price: {fmt(snapshot.current_price)}\n\n"
        f"Please enter the amount of {session.token.symbol} you want to provide as liquidity.\n\n"
        f"{CANCEL_HINT}"
    )
    return Reply(
        title="💧 Enter Amount",
        body=body,
        choices=[("« Back", ACTION_BACK), ("❌ Cancel", ACTION_CANCEL)],
        is_prompt=True,
    )


def upper_price_prompt(session: UpperPriceInputSession, snapshot: PoolSnapshot) -> Reply:
    body = (
        f"Current price: {fmt(snapshot.current_price)}\n"
        f"Your input amount: {fmt(session.amount)} {session.token.symbol}\n\n"
        f"Please enter the upper price range for your position.\n"
        f"This should be higher than the current price.\n\n"
        f"{CANCEL_HINT}"
    )
    return Reply(
        title="📈 Set Upper Price Range",
        body=body,
        choices=[("« Back", ACTION_BACK), ("❌ Cancel", ACTION_CANCEL)],
        is_prompt=True,
    )


def confirm_prompt(session: ConfirmSession, snapshot: PoolSnapshot) -> Reply:
    body = (
        f"Pool: {_pool_label(session.tokens)}\n"
        f"Input Amount: {fmt(session.amount)} {session.token.symbol}\n"
        f"Current Price: {fmt(snapshot.current_price)}\n"
        f"Upper Price: {fmt(session.upper_price)}\n"
        f"Lower Price: {fmt(snapshot.current_price)} (current price)\n\n"
        f"Please confirm to proceed with creating your position.\n\n"
        f"Use /confirm to proceed or /cancel to cancel."
    )
    return Reply(
        title="✅ Confirm Your Position",
        body=body,
        choices=[("✅ Confirm", ACTION_CONFIRM), ("« Back", ACTION_BACK), ("❌ Cancel", ACTION_CANCEL)],
        is_prompt=True,
    )


def pool_fetch_failed() -> Reply:
    return Reply(
        title="❌ Failed to fetch pool information.",
        body="Please try again in a moment.",
    )


def open_success_reply(result: OpenResult, explorer_tx_url: str = "") -> Reply:
    tx_line = f"{explorer_tx_url}{result.tx_id}" if explorer_tx_url else result.tx_id
    return Reply(
        title="🎉 Position Created Successfully!",
        body=(
            f"Transaction: {tx_line}\n"
            f"NFT: {result.position_handle}\n\n"
            f"Use /positions to view all your positions."
        ),
    )


def open_failed_reply(error: LpBotError) -> Reply:
    detail = getattr(error, "detail", "") or str(error)
    return Reply(
        title="❌ Failed to create position.",
        body=f"{detail}\n\nYour setup is kept: use /confirm to retry or /cancel to discard it.",
    )


# ============================================
# STATE MACHINE
# ============================================

def _is_echo(session: WorkflowSession, text: str) -> bool:
    prompt = session.last_prompt
    return prompt is not None and bool(prompt.text) and text.strip() == prompt.text.strip()


def needs_snapshot(session: Optional[WorkflowSession], event: ChatEvent) -> bool:
    """Whether handling the event requires a fresh pool snapshot."""
    payload = event.payload
    if isinstance(payload, SelectPool):
        return True
    if session is None:
        return False
    if isinstance(payload, SelectToken):
        return isinstance(session, TokenSelectionSession)
    if isinstance(payload, TextReply):
        if _is_echo(session, payload.text):
            return False
        if isinstance(session, AmountInputSession):
            return is_valid_amount(payload.text)
        return isinstance(session, UpperPriceInputSession)
    if isinstance(payload, Confirm):
        return isinstance(session, ConfirmSession)
    return False


def transition(
    session: Optional[WorkflowSession],
    event: ChatEvent,
    snapshot: Optional[PoolSnapshot] = None,
) -> Transition:
    """Advance the caller's setup by one event. Pure: no I/O, no mutation.

    snapshot must be the freshly fetched pool state whenever
    needs_snapshot() is True; None there means the fetch failed.
    Rejected input and missing sessions come back as replies with the
    session left unchanged.
    """
    try:
        return _dispatch(session, event, snapshot)
    except InputValidationError as e:
        return Transition.unchanged(Reply(title=f"❌ {e}", body=e.hint))
    except NoActiveSessionError as e:
        return Transition.unchanged(Reply(title=f"ℹ️ {e}", body=e.hint))


def _dispatch(
    session: Optional[WorkflowSession],
    event: ChatEvent,
    snapshot: Optional[PoolSnapshot],
) -> Transition:
    payload = event.payload

    if isinstance(payload, Cancel):
        if session is None:
            raise NoActiveSessionError("Nothing to cancel.")
        edit_ref = session.last_prompt.message_id if session.last_prompt else None
        return Transition.discard(Reply(title="❌ LP position creation cancelled.", edit_ref=edit_ref))

    if isinstance(payload, SelectPool):
        return _on_select_pool(event, snapshot)

    if isinstance(payload, TextReply):
        return _on_text(session, payload, snapshot)

    if session is None:
        if isinstance(payload, Confirm):
            raise NoActiveSessionError("No LP setup is awaiting confirmation.")
        raise NoActiveSessionError("No LP setup in progress.", hint="Open a pool with /pool <pool_id> to start.")

    if isinstance(payload, Back):
        restarted = restart_token_selection(session)
        return Transition.advance(restarted, token_selection_prompt(restarted))

    if isinstance(payload, SelectToken):
        return _on_select_token(session, payload, snapshot)

    if isinstance(payload, Confirm):
        return _on_confirm(session, snapshot)

    return Transition.ignored()


def _on_select_pool(event: ChatEvent, snapshot: Optional[PoolSnapshot]) -> Transition:
    if snapshot is None:
        return Transition.unchanged(pool_fetch_failed())

    session = TokenSelectionSession(
        user_id=event.user_id,
        chat_id=event.chat_id,
        pool_id=event.payload.pool_id,
        tokens=snapshot.tokens,
    )
    return Transition.advance(session, token_selection_prompt(session, snapshot))


def _on_select_token(
    session: WorkflowSession,
    payload: SelectToken,
    snapshot: Optional[PoolSnapshot],
) -> Transition:
    if not isinstance(session, TokenSelectionSession):
        return Transition.unchanged(
            Reply(title="ℹ️ The input token is already chosen.", body="Use « Back to change it.")
        )

    token = next((t for t in session.tokens if t.address == payload.mint), None)
    if token is None:
        raise InputValidationError("That token is not part of this pool.")

    if snapshot is None:
        return Transition.unchanged(pool_fetch_failed())

    next_session = session.select_token(token)
    return Transition.advance(next_session, amount_prompt(next_session, snapshot))


def _on_text(
    session: Optional[WorkflowSession],
    payload: TextReply,
    snapshot: Optional[PoolSnapshot],
) -> Transition:
    if session is None or _is_echo(session, payload.text):
        return Transition.ignored()

    if isinstance(session, AmountInputSession):
        amount = parse_amount(payload.text)
        if snapshot is None:
            return Transition.unchanged(pool_fetch_failed())
        next_session = session.set_amount(amount)
        return Transition.advance(next_session, upper_price_prompt(next_session, snapshot))

    if isinstance(session, UpperPriceInputSession):
        if snapshot is None:
            return Transition.unchanged(pool_fetch_failed())
        upper_price = parse_upper_price(payload.text, snapshot.current_price)
        next_session = session.set_upper_price(upper_price)
        return Transition.advance(next_session, confirm_prompt(next_session, snapshot))

    return Transition.ignored()


def _on_confirm(session: WorkflowSession, snapshot: Optional[PoolSnapshot]) -> Transition:
    if not isinstance(session, ConfirmSession):
        raise NoActiveSessionError("No LP setup is awaiting confirmation.")

    if snapshot is None:
        return Transition.unchanged(pool_fetch_failed())

    token = snapshot.find_token(session.token.address) or session.token
    request = OpenRequest(
        user_id=session.user_id,
        pool_id=session.pool_id,
        token=token,
        amount=session.amount,
        upper_price=session.upper_price,
        lower_price=snapshot.current_price,
        base=snapshot.base_side(token.address),
    )
    return Transition(open_request=request)


# ============================================
# DRIVER
# ============================================

class WorkflowResult(BaseModel):
    handled: bool = True
    replies: List[Reply] = Field(default_factory=list)
    opened: Optional[OpenResult] = None


class LpWorkflow:
    """Runs transition() against the session store and the collaborators."""

    def __init__(
        self,
        sessions: SessionStore,
        amm: AmmExecutionService,
        coordinator,
        explorer_tx_url: str = "",
    ):
        self.sessions = sessions
        self.amm = amm
        self.coordinator = coordinator
        self.explorer_tx_url = explorer_tx_url

    async def _fetch_snapshot(self, pool_id: str) -> Optional[PoolSnapshot]:
        try:
            return await self.amm.fetch_pool_snapshot(pool_id)
        except AmmServiceError as e:
            logger.warning(f"Pool snapshot fetch failed for {pool_id}: {e.detail}")
            return None

    async def handle(
        self,
        event: ChatEvent,
        progress: Optional[Callable[[Reply], Awaitable[None]]] = None,
    ) -> WorkflowResult:
        """Process one event for its user.

        progress, when given, is awaited with a status reply right before the
        position is opened.
        """
        session = self.sessions.get(event.user_id)

        snapshot = None
        if needs_snapshot(session, event):
            payload = event.payload
            pool_id = payload.pool_id if isinstance(payload, SelectPool) else session.pool_id
            snapshot = await self._fetch_snapshot(pool_id)

        result = transition(session, event, snapshot)
        if not result.handled:
            return WorkflowResult(handled=False)

        if result.clear:
            self.sessions.clear(event.user_id)
        elif result.store and result.session is not None:
            self.sessions.put(event.user_id, result.session)

        replies = list(result.replies)
        opened = None

        if result.open_request is not None:
            if progress is not None:
                await progress(Reply(title="⏳ Creating position...", body="Please wait, this may take a moment."))
            try:
                opened = await self.coordinator.open_position(result.open_request)
            except LpBotError as e:
                logger.error(f"Failed to open position for user {event.user_id}: {e}", exc_info=True)
                replies.append(open_failed_reply(e))
            else:
                self.sessions.clear(event.user_id)
                logger.info(f"Opened position {opened.position_handle} for user {event.user_id} (tx {opened.tx_id})")
                replies.append(open_success_reply(opened, self.explorer_tx_url))

        return WorkflowResult(replies=replies, opened=opened)

    def record_prompt(self, user_id: str, message_id: Optional[int], reply: Reply) -> None:
        """Remember the prompt just delivered so edits and the echo guard can target it."""
        self.sessions.update_prompt(user_id, PromptRef(message_id=message_id, text=reply.text))
