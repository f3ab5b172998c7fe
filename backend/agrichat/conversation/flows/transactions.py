# /agrichat/conversation/flows/transactions.py

from agrichat.config import strings
from agrichat.config.catalogue import LIST_PAGE_SIZE
from agrichat.conversation import pagination
from agrichat.conversation.access import requires_org
from agrichat.conversation.context import Turn
from agrichat.conversation.machine import machine
from agrichat.models.session import Flow


@machine.choice("menu_transactions")
async def transactions_menu(turn: Turn):
    if not await requires_org(turn):
        return
    turn.buttons(turn.t("transactions"), [("tx_list_recent", "List recent"), ("tx_check", "Check by ID")])


@machine.choice("tx_list_recent")
async def list_recent(turn: Turn):
    if not await requires_org(turn):
        return
    await turn.reset(Flow.MENU, {"tx_page": 1})
    await list_transactions(turn)


async def list_transactions(turn: Turn):
    page = pagination.page_of(turn.data, "tx_page")
    transactions = await turn.facade.get_transactions(turn.user, page, LIST_PAGE_SIZE)
    if not transactions:
        turn.text(strings.NO_TRANSACTIONS)
        if page > 1:
            turn.buttons("Navigate:", [("tx_prev", "Prev")])
        return
    lines = [
        f"{t.get('transaction_number') or t.get('id')}: {t.get('amount')} {t.get('currency') or ''} • {t.get('status')}"
        for t in transactions
    ]
    turn.text("Recent transactions:\n" + "\n".join(lines))
    nav = pagination.nav_buttons("tx", page, transactions)
    if nav:
        turn.buttons("Navigate:", nav)


@machine.choice("tx_next", "tx_prev")
async def transactions_page(turn: Turn):
    if not await requires_org(turn):
        return
    page = pagination.page_of(turn.data, "tx_page")
    direction = turn.event.choice_id.rsplit("_", 1)[1]
    await turn.update(data={"tx_page": pagination.turned(page, direction)})
    await list_transactions(turn)


@machine.choice("tx_check")
async def start_lookup(turn: Turn):
    if not await requires_org(turn):
        return
    await turn.reset(Flow.TX_CHECK_ID)
    await ask_transaction_id(turn)


@machine.prompt(Flow.TX_CHECK_ID)
async def ask_transaction_id(turn: Turn):
    turn.text(strings.ASK_TRANSACTION_ID)


@machine.on(Flow.TX_CHECK_ID)
async def lookup(turn: Turn):
    transaction_id = turn.event.text.strip()
    if not transaction_id:
        turn.text(strings.INVALID_TRANSACTION_ID)
        return
    transaction = await turn.facade.get_transaction(turn.user, transaction_id)
    if not transaction:
        await turn.done(strings.TRANSACTION_NOT_FOUND)
        return
    await turn.done(
        f"Transaction {transaction.get('transaction_number') or transaction.get('id') or transaction_id}: "
        f"{transaction.get('status')}, {transaction.get('amount')} {transaction.get('currency') or ''}".rstrip()
    )
