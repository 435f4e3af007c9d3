from decimal import Decimal

import pytest

from lpbot.errors import InputValidationError
from lpbot.sessions import (
    AmountInputSession,
    ConfirmSession,
    TokenSelectionSession,
    UpperPriceInputSession,
)
from lpbot.workflow import (
    ACTION_CANCEL,
    ACTION_TOKEN,
    Back,
    Cancel,
    Confirm,
    SelectPool,
    SelectToken,
    TextReply,
    is_valid_amount,
    needs_snapshot,
    parse_amount,
    parse_upper_price,
    transition,
)

from conftest import POOL_ID, SIGNING_KEY, SOL, USDC, USER_ID, event, make_snapshot


async def _start(workflow):
    return await workflow.handle(event(SelectPool(pool_id=POOL_ID)))


async def _to_confirm(workflow, amount="10", upper="200", mint=SOL.address):
    await _start(workflow)
    await workflow.handle(event(SelectToken(mint=mint)))
    await workflow.handle(event(TextReply(text=amount)))
    return await workflow.handle(event(TextReply(text=upper)))


# ============================================
# PARSING
# ============================================

@pytest.mark.parametrize("text", ["abc", "0", "-5", "NaN", "Infinity", "", "1,5"])
def test_parse_amount_rejects(text):
    with pytest.raises(InputValidationError):
        parse_amount(text)
    assert not is_valid_amount(text)


@pytest.mark.parametrize("text,expected", [("10", Decimal("10")), (" 0.5 ", Decimal("0.5")), ("1e3", Decimal("1000"))])
def test_parse_amount_accepts(text, expected):
    assert parse_amount(text) == expected


def test_parse_upper_price_must_exceed_current():
    for text in ("150", "149.99"):
        with pytest.raises(InputValidationError) as exc_info:
            parse_upper_price(text, Decimal("150"))
        assert "(150)" in exc_info.value.hint
    assert parse_upper_price("150.01", Decimal("150")) == Decimal("150.01")


# ============================================
# POOL SELECTION
# ============================================

@pytest.mark.asyncio
async def test_select_pool_starts_token_selection(workflow, sessions):
    result = await _start(workflow)

    session = sessions.get(USER_ID)
    assert isinstance(session, TokenSelectionSession)
    assert session.tokens == (SOL, USDC)

    prompt = result.replies[0]
    assert prompt.is_prompt
    assert ("🪙 SOL", f"{ACTION_TOKEN}{SOL.address}") in prompt.choices
    assert ("🪙 USDC", f"{ACTION_TOKEN}{USDC.address}") in prompt.choices
    assert ("❌ Cancel", ACTION_CANCEL) in prompt.choices


@pytest.mark.asyncio
async def test_select_pool_fetch_failure_stores_nothing(workflow, sessions, amm, unreachable):
    amm.snapshot_error = unreachable

    result = await _start(workflow)

    assert sessions.get(USER_ID) is None
    assert result.replies[0].title == "❌ Failed to fetch pool information."


@pytest.mark.asyncio
async def test_unknown_pool_stores_nothing(workflow, sessions):
    result = await workflow.handle(event(SelectPool(pool_id="missing")))

    assert sessions.get(USER_ID) is None
    assert "Failed to fetch pool" in result.replies[0].title


@pytest.mark.asyncio
async def test_selecting_another_pool_replaces_session(workflow, sessions, amm):
    amm.pools["pool-b"] = make_snapshot("3", pool_id="pool-b")
    await _start(workflow)
    await workflow.handle(event(SelectToken(mint=SOL.address)))

    await workflow.handle(event(SelectPool(pool_id="pool-b")))

    session = sessions.get(USER_ID)
    assert isinstance(session, TokenSelectionSession)
    assert session.pool_id == "pool-b"


@pytest.mark.asyncio
async def test_failed_pool_switch_keeps_previous_session(workflow, sessions, amm):
    await _start(workflow)
    await workflow.handle(event(SelectToken(mint=SOL.address)))

    await workflow.handle(event(SelectPool(pool_id="missing")))

    session = sessions.get(USER_ID)
    assert isinstance(session, AmountInputSession)
    assert session.pool_id == POOL_ID


# ============================================
# TOKEN / AMOUNT / PRICE STEPS
# ============================================

@pytest.mark.asyncio
async def test_token_choice_advances_to_amount(workflow, sessions):
    await _start(workflow)
    result = await workflow.handle(event(SelectToken(mint=SOL.address)))

    session = sessions.get(USER_ID)
    assert isinstance(session, AmountInputSession)
    assert session.token == SOL
    assert "amount of SOL" in result.replies[0].body


@pytest.mark.asyncio
async def test_foreign_token_is_rejected(workflow, sessions):
    await _start(workflow)
    result = await workflow.handle(event(SelectToken(mint="NotInThisPool111")))

    assert isinstance(sessions.get(USER_ID), TokenSelectionSession)
    assert "not part of this pool" in result.replies[0].title


@pytest.mark.asyncio
async def test_token_choice_after_token_step_is_refused(workflow, sessions):
    await _start(workflow)
    await workflow.handle(event(SelectToken(mint=SOL.address)))
    result = await workflow.handle(event(SelectToken(mint=USDC.address)))

    assert sessions.get(USER_ID).token == SOL
    assert "already chosen" in result.replies[0].title


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["abc", "0", "-1", "NaN"])
async def test_invalid_amount_reprompts_without_fetch(workflow, sessions, amm, text):
    await _start(workflow)
    await workflow.handle(event(SelectToken(mint=SOL.address)))
    before = sessions.get(USER_ID)
    fetches = len(amm.calls_named("fetch_pool_snapshot"))

    result = await workflow.handle(event(TextReply(text=text)))

    assert result.handled
    assert result.replies[0].title == "❌ Please enter a valid positive number."
    assert sessions.get(USER_ID) == before
    assert len(amm.calls_named("fetch_pool_snapshot")) == fetches


@pytest.mark.asyncio
async def test_valid_amount_advances_to_upper_price(workflow, sessions):
    await _start(workflow)
    await workflow.handle(event(SelectToken(mint=SOL.address)))
    result = await workflow.handle(event(TextReply(text="10")))

    session = sessions.get(USER_ID)
    assert isinstance(session, UpperPriceInputSession)
    assert session.amount == Decimal("10")
    assert result.replies[0].title == "📈 Set Upper Price Range"


@pytest.mark.asyncio
async def test_amount_step_fetch_failure_keeps_session(workflow, sessions, amm, unreachable):
    await _start(workflow)
    await workflow.handle(event(SelectToken(mint=SOL.address)))
    amm.snapshot_error = unreachable

    result = await workflow.handle(event(TextReply(text="10")))

    assert isinstance(sessions.get(USER_ID), AmountInputSession)
    assert result.replies[0].title == "❌ Failed to fetch pool information."


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["150", "100", "abc"])
async def test_upper_price_not_above_current_is_rejected(workflow, sessions, text):
    await _start(workflow)
    await workflow.handle(event(SelectToken(mint=SOL.address)))
    await workflow.handle(event(TextReply(text="10")))

    result = await workflow.handle(event(TextReply(text=text)))

    assert isinstance(sessions.get(USER_ID), UpperPriceInputSession)
    assert result.replies[0].title == "❌ Invalid upper price."
    assert "(150)" in result.replies[0].body


@pytest.mark.asyncio
async def test_upper_price_checked_against_fresh_price(workflow, sessions, amm):
    await _start(workflow)
    await workflow.handle(event(SelectToken(mint=SOL.address)))
    await workflow.handle(event(TextReply(text="10")))
    amm.set_price("250")

    result = await workflow.handle(event(TextReply(text="200")))

    assert isinstance(sessions.get(USER_ID), UpperPriceInputSession)
    assert "(250)" in result.replies[0].body


@pytest.mark.asyncio
async def test_valid_upper_price_reaches_confirm(workflow, sessions):
    result = await _to_confirm(workflow)

    session = sessions.get(USER_ID)
    assert isinstance(session, ConfirmSession)
    assert session.upper_price == Decimal("200")
    assert "Lower Price: 150 (current price)" in result.replies[0].body


# ============================================
# FREE TEXT ROUTING
# ============================================

@pytest.mark.asyncio
async def test_text_without_session_is_not_handled(workflow):
    result = await workflow.handle(event(TextReply(text="10")))
    assert not result.handled
    assert result.replies == []


@pytest.mark.asyncio
async def test_text_at_token_selection_is_not_handled(workflow, sessions):
    await _start(workflow)
    result = await workflow.handle(event(TextReply(text="10")))

    assert not result.handled
    assert isinstance(sessions.get(USER_ID), TokenSelectionSession)


@pytest.mark.asyncio
async def test_echo_of_last_prompt_is_ignored(workflow, sessions, amm):
    await _start(workflow)
    result = await workflow.handle(event(SelectToken(mint=SOL.address)))
    prompt = result.replies[0]
    workflow.record_prompt(USER_ID, 77, prompt)
    fetches = len(amm.calls_named("fetch_pool_snapshot"))

    echoed = await workflow.handle(event(TextReply(text=prompt.text)))

    assert not echoed.handled
    session = sessions.get(USER_ID)
    assert isinstance(session, AmountInputSession)
    assert session.last_prompt.message_id == 77
    assert len(amm.calls_named("fetch_pool_snapshot")) == fetches


# ============================================
# BACK / CANCEL
# ============================================

@pytest.mark.asyncio
async def test_back_from_confirm_restarts_token_selection(workflow, sessions):
    await _to_confirm(workflow)

    result = await workflow.handle(event(Back()))

    session = sessions.get(USER_ID)
    assert isinstance(session, TokenSelectionSession)
    assert session.pool_id == POOL_ID
    assert result.replies[0].is_prompt


@pytest.mark.asyncio
async def test_back_without_session(workflow, sessions):
    result = await workflow.handle(event(Back()))

    assert sessions.get(USER_ID) is None
    assert result.replies[0].title == "ℹ️ No LP setup in progress."


@pytest.mark.asyncio
@pytest.mark.parametrize("steps", [0, 1, 2, 3])
async def test_cancel_discards_session_at_any_step(workflow, sessions, amm, steps):
    await _start(workflow)
    inputs = [SelectToken(mint=SOL.address), TextReply(text="10"), TextReply(text="200")]
    for payload in inputs[:steps]:
        await workflow.handle(event(payload))
    calls = len(amm.calls)

    result = await workflow.handle(event(Cancel()))

    assert sessions.get(USER_ID) is None
    assert result.replies[0].title == "❌ LP position creation cancelled."
    assert len(amm.calls) == calls


@pytest.mark.asyncio
async def test_cancel_edits_last_prompt(workflow):
    started = await _start(workflow)
    workflow.record_prompt(USER_ID, 55, started.replies[0])

    result = await workflow.handle(event(Cancel()))

    assert result.replies[0].edit_ref == 55


@pytest.mark.asyncio
async def test_cancel_without_session(workflow):
    result = await workflow.handle(event(Cancel()))
    assert result.replies[0].title == "ℹ️ Nothing to cancel."


# ============================================
# CONFIRM
# ============================================

@pytest.mark.asyncio
async def test_confirm_without_session(workflow, amm):
    result = await workflow.handle(event(Confirm()))

    assert result.replies[0].title == "ℹ️ No LP setup is awaiting confirmation."
    assert amm.calls_named("open_position") == []


@pytest.mark.asyncio
async def test_confirm_before_last_step(workflow, sessions, amm):
    await _start(workflow)
    await workflow.handle(event(SelectToken(mint=SOL.address)))

    result = await workflow.handle(event(Confirm()))

    assert isinstance(sessions.get(USER_ID), AmountInputSession)
    assert result.replies[0].title == "ℹ️ No LP setup is awaiting confirmation."
    assert amm.calls_named("open_position") == []


@pytest.mark.asyncio
async def test_confirm_opens_position_and_clears_session(workflow, sessions, amm, wallet_user):
    await _to_confirm(workflow)
    progress = []

    async def on_progress(reply):
        progress.append(reply)

    result = await workflow.handle(event(Confirm()), progress=on_progress)

    assert result.opened.position_handle == "nft-new"
    assert sessions.get(USER_ID) is None
    assert len(progress) == 1
    assert result.replies[-1].title == "🎉 Position Created Successfully!"
    assert "https://solscan.io/tx/tx-open" in result.replies[-1].body

    (_, pool_id, base, base_raw, lower, upper, other_max, owner_key), = amm.calls_named("open_position")
    assert pool_id == POOL_ID
    assert base == "MintA"
    assert base_raw == 10 * 10 ** 9
    assert (lower, upper) == (15000, 20000)
    assert other_max == amm.other_amount_max
    assert owner_key == SIGNING_KEY


@pytest.mark.asyncio
async def test_confirm_uses_fresh_price_as_lower_bound(workflow, amm, wallet_user):
    await _to_confirm(workflow)
    amm.set_price("160")

    await workflow.handle(event(Confirm()))

    prices = [c[2] for c in amm.calls_named("price_to_tick")]
    assert prices == [Decimal("160"), Decimal("200")]


@pytest.mark.asyncio
async def test_second_token_is_passed_as_mint_b(workflow, amm, wallet_user):
    await _to_confirm(workflow, amount="25", mint=USDC.address)

    await workflow.handle(event(Confirm()))

    (_, _, base, base_raw, *_), = amm.calls_named("open_position")
    assert base == "MintB"
    assert base_raw == 25 * 10 ** 6


@pytest.mark.asyncio
async def test_failed_open_keeps_session_for_retry(workflow, sessions, amm, wallet_user):
    from lpbot.amm import AmmRejectedError

    await _to_confirm(workflow)
    amm.open_error = AmmRejectedError("AMM service returned 400", detail="insufficient funds")

    result = await workflow.handle(event(Confirm()))

    assert result.opened is None
    assert isinstance(sessions.get(USER_ID), ConfirmSession)
    assert result.replies[-1].title == "❌ Failed to create position."
    assert "insufficient funds" in result.replies[-1].body


@pytest.mark.asyncio
async def test_very_large_amount_is_opened_exactly(workflow, sessions, amm, wallet_user):
    await _to_confirm(workflow, amount="100000000000000000000")

    result = await workflow.handle(event(Confirm()))

    assert result.replies[-1].title == "🎉 Position Created Successfully!"
    assert sessions.get(USER_ID) is None
    (_, _, _, base_raw, *_), = amm.calls_named("open_position")
    assert base_raw == 10 ** 29


@pytest.mark.asyncio
async def test_unexpected_open_failure_is_reported(workflow, sessions, amm, wallet_user):
    await _to_confirm(workflow)
    amm.open_error = RuntimeError("signer crashed")

    result = await workflow.handle(event(Confirm()))

    assert result.opened is None
    assert isinstance(sessions.get(USER_ID), ConfirmSession)
    assert result.replies[-1].title == "❌ Failed to create position."
    assert "signer crashed" in result.replies[-1].body


@pytest.mark.asyncio
async def test_confirm_without_wallet_is_refused(workflow, sessions, amm):
    await _to_confirm(workflow)

    result = await workflow.handle(event(Confirm()))

    assert result.opened is None
    assert isinstance(sessions.get(USER_ID), ConfirmSession)
    assert amm.calls_named("price_to_tick") == []
    assert "No wallet provisioned" in result.replies[-1].body


# ============================================
# PURE TRANSITION
# ============================================

def test_transition_is_pure():
    snapshot = make_snapshot()
    result = transition(None, event(SelectPool(pool_id=POOL_ID)), snapshot)

    assert result.store
    assert isinstance(result.session, TokenSelectionSession)

    again = transition(None, event(SelectPool(pool_id=POOL_ID)), snapshot)
    assert again == result


def test_needs_snapshot_only_for_price_sensitive_steps():
    session = TokenSelectionSession(user_id=USER_ID, chat_id=1, pool_id=POOL_ID, tokens=(SOL, USDC))
    amount_step = session.select_token(SOL)

    assert needs_snapshot(None, event(SelectPool(pool_id=POOL_ID)))
    assert not needs_snapshot(None, event(TextReply(text="10")))
    assert not needs_snapshot(session, event(Cancel()))
    assert not needs_snapshot(session, event(Back()))
    assert needs_snapshot(amount_step, event(TextReply(text="10")))
    assert not needs_snapshot(amount_step, event(TextReply(text="zero")))
