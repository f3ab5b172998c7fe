# /agrichat/conversation/flows/quotes.py

from agrichat.config import strings
from agrichat.config.catalogue import CURRENCIES, LIST_PAGE_SIZE
from agrichat.conversation import pagination
from agrichat.conversation.access import requires_org
from agrichat.conversation.context import Turn
from agrichat.conversation.machine import machine
from agrichat.conversation.steps import QUOTE, advance
from agrichat.conversation.validators import compact, is_skip, optional_text, parse_iso_date, parse_positive
from agrichat.models.session import Flow

# Open buyer requests, quoting against them, and acknowledging harvest
# buyer requests.


@machine.choice("menu_requests")
async def start_requests(turn: Turn):
    if not await requires_org(turn):
        return
    await turn.reset(Flow.MENU, {"requests_page": 1})
    await list_open_requests(turn)


async def list_open_requests(turn: Turn):
    page = pagination.page_of(turn.data, "requests_page")
    requests = await turn.facade.get_product_requests(turn.user, page, LIST_PAGE_SIZE)
    if not requests:
        turn.text(strings.NO_OPEN_REQUESTS)
        if page > 1:
            turn.buttons("Navigate:", [("req_prev", "Prev")])
        return
    rows = [
        {
            "id": f"req_{r.get('id')}",
            "title": f"{r.get('product_name') or 'Request'} x{r.get('quantity') or ''}",
            "description": str(r.get("request_number") or ""),
        }
        for r in requests
    ]
    turn.list("Open requests", f"Pick a request to quote (page {page})", "Requests", rows)
    nav = pagination.nav_buttons("req", page, requests)
    if nav:
        turn.buttons("Navigate:", nav)


@machine.choice("req_next", "req_prev")
async def requests_page(turn: Turn):
    if not await requires_org(turn):
        return
    page = pagination.page_of(turn.data, "requests_page")
    direction = turn.event.choice_id.rsplit("_", 1)[1]
    await turn.update(data={"requests_page": pagination.turned(page, direction)})
    await list_open_requests(turn)


@machine.choice_prefix("req_")
async def pick_request(turn: Turn, suffix: str):
    if not await requires_org(turn):
        return
    prefill = turn.data.get("quote_prefill") or {}
    values = {k: v for k, v in prefill.items() if k != "request_id"}
    await advance(turn, QUOTE, {**values, "request_id": suffix}, replace_data=True)


# ---------------- Quote steps ---------------- #

@machine.prompt(Flow.QUOTE_UNIT_PRICE)
async def ask_unit_price(turn: Turn):
    turn.text(strings.ASK_UNIT_PRICE)


@machine.on(Flow.QUOTE_UNIT_PRICE)
async def capture_unit_price(turn: Turn):
    price = parse_positive(turn.event.text)
    if price is None:
        turn.text(strings.INVALID_UNIT_PRICE)
        return
    await advance(turn, QUOTE, {"unit_price": price})


@machine.prompt(Flow.QUOTE_CURRENCY)
async def ask_currency(turn: Turn):
    turn.buttons(strings.ASK_CURRENCY, [(f"cur_{c.lower()}", c) for c in CURRENCIES])


@machine.choice_prefix("cur_")
async def currency_choice(turn: Turn, suffix: str):
    currency = suffix.upper()
    if turn.flow != Flow.QUOTE_CURRENCY or currency not in CURRENCIES:
        await turn.menu()
        return
    await advance(turn, QUOTE, {"currency": currency})


@machine.on(Flow.QUOTE_CURRENCY)
async def currency_text(turn: Turn):
    currency = turn.event.text.strip().upper()
    if currency not in CURRENCIES:
        await ask_currency(turn)
        return
    await advance(turn, QUOTE, {"currency": currency})


@machine.prompt(Flow.QUOTE_AVAILABLE_QTY)
async def ask_available_quantity(turn: Turn):
    turn.text(turn.t("ask_available_qty"))


@machine.on(Flow.QUOTE_AVAILABLE_QTY)
async def capture_available_quantity(turn: Turn):
    quantity = parse_positive(turn.event.text)
    if quantity is None:
        turn.text(strings.INVALID_AVAILABLE_QTY)
        await ask_available_quantity(turn)
        return
    await advance(turn, QUOTE, {"available_quantity": quantity})


@machine.prompt(Flow.QUOTE_DELIVERY_DATE)
async def ask_delivery_date(turn: Turn):
    turn.text(turn.t("ask_delivery"))


@machine.on(Flow.QUOTE_DELIVERY_DATE)
async def capture_delivery_date(turn: Turn):
    if is_skip(turn.event.text):
        await advance(turn, QUOTE, {"delivery_date": None})
        return
    delivery_date = parse_iso_date(turn.event.text)
    if delivery_date is None:
        turn.text(strings.INVALID_DATE)
        await ask_delivery_date(turn)
        return
    await advance(turn, QUOTE, {"delivery_date": delivery_date})


@machine.prompt(Flow.QUOTE_NOTES)
async def ask_notes(turn: Turn):
    turn.text(turn.t("ask_notes"))


@machine.on(Flow.QUOTE_NOTES)
async def capture_notes(turn: Turn):
    await advance(turn, QUOTE, {"notes": optional_text(turn.event.text)})


@machine.finisher("quote")
async def submit_quote(turn: Turn):
    data = turn.data
    request_id = data.get("request_id")
    if not request_id:
        await turn.done("Pick a request from the list to quote.")
        return
    payload = compact({
        "unit_price": data.get("unit_price"),
        "currency": data.get("currency"),
        "available_quantity": data.get("available_quantity"),
        "delivery_date": data.get("delivery_date"),
        "notes": data.get("notes"),
    })
    quote = await turn.facade.create_quote(turn.user, request_id, payload)
    await turn.index_context(
        "request", quote.get("id") or request_id, f"Quote for request {request_id}",
        f"{payload['available_quantity']} at {payload['unit_price']} {payload['currency']}",
    )
    await turn.done(f"Quote submitted for request {request_id} ✅")


# ---------------- Harvest buyer requests ---------------- #

@machine.choice("hbr_yes", "hbr_no")
async def can_fulfill(turn: Turn):
    if not turn.data.get("hbr_id"):
        await turn.menu()
        return
    await turn.update(flow=Flow.HBR_MESSAGE, data={"hbr_can_fulfill": turn.event.choice_id == "hbr_yes"})
    await ask_hbr_message(turn)


@machine.choice_prefix("hbr_")
async def pick_harvest_buyer_request(turn: Turn, suffix: str):
    if not await requires_org(turn):
        return
    await turn.update(data={"hbr_id": suffix})
    turn.buttons(strings.ASK_CAN_FULFILL, [("hbr_yes", "Yes"), ("hbr_no", "No")])


@machine.prompt(Flow.HBR_MESSAGE)
async def ask_hbr_message(turn: Turn):
    turn.text(strings.ASK_HBR_MESSAGE)


@machine.on(Flow.HBR_MESSAGE)
async def acknowledge(turn: Turn):
    request_id = turn.data.get("hbr_id")
    if not request_id:
        await turn.reset()
        await turn.menu()
        return
    payload = compact({
        "can_fulfill": bool(turn.data.get("hbr_can_fulfill")),
        "seller_message": optional_text(turn.event.text),
    })
    await turn.facade.acknowledge_harvest_buyer_request(turn.user, request_id, payload)
    await turn.done("Acknowledged request ✅")
