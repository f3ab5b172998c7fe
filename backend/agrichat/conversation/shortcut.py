# /agrichat/conversation/shortcut.py

import asyncio
import logging

from agrichat.config import strings
from agrichat.config.catalogue import CURRENCIES, HARVEST_UNITS, ORDER_STATUSES, PRODUCT_UNITS
from agrichat.conversation.access import requires_seller
from agrichat.conversation.context import Turn
from agrichat.conversation.flows.orders import list_orders
from agrichat.conversation.flows.quotes import list_open_requests
from agrichat.conversation.steps import HARVEST, ORDER_ACCEPT, ORDER_REJECT, ORDER_UPDATE, PRODUCT, QUOTE, advance
from agrichat.conversation.validators import compact, parse_iso_date
from agrichat.models.extraction import (
    HarvestCandidate,
    OrderActionCandidate,
    ProductCandidate,
    QuoteCandidate,
)
from agrichat.models.session import Flow

# Free text outside the structured steps is offered to four extractors at
# once. The best candidate is acted on only when it recognised at least
# `min_score` independent fields; otherwise the caller falls back to the
# current step's handler.

logger = logging.getLogger(__name__)


async def try_shortcut(turn: Turn, min_score: int) -> bool:
    """True when the message was consumed by the shortcut path."""
    ai = turn.deps.ai
    text = turn.event.text.strip()
    if not text or not ai.enabled:
        return False
    if await ai.moderate(text):
        logger.info(f"Free text from {turn.phone} flagged by moderation; skipping extraction")
        return False

    candidates = await asyncio.gather(
        ai.extract_product(text),
        ai.extract_harvest(text),
        ai.extract_quote(text),
        ai.extract_order_action(text),
    )
    best = max(candidates, key=lambda c: c.score)
    if best.score < min_score:
        return False

    logger.info(f"AI shortcut picked {best.kind} (score {best.score}) for {turn.phone}")
    if not await requires_seller(turn):
        return True
    if isinstance(best, ProductCandidate):
        await _product(turn, best)
    elif isinstance(best, HarvestCandidate):
        await _harvest(turn, best)
    elif isinstance(best, QuoteCandidate):
        return await _quote(turn, best)
    elif isinstance(best, OrderActionCandidate):
        await _order(turn, best)
    return True


def _unit(value, allowed):
    value = (value or "").strip().lower()
    return value if value in allowed else None


async def _product(turn: Turn, c: ProductCandidate):
    if not await turn.guard.is_paired(turn.user.id, turn.phone):
        turn.text(strings.VERIFY_TO_CONTINUE)
        return
    values = compact({
        "productName": c.name,
        "price": c.base_price,
        "unit": _unit(c.unit, PRODUCT_UNITS),
        "category_page": 1,
    })
    await advance(turn, PRODUCT, values, replace_data=True)


async def _harvest(turn: Turn, c: HarvestCandidate):
    values = compact({
        "crop": c.crop,
        "quantity": c.quantity,
        "unit": _unit(c.unit, HARVEST_UNITS) or c.unit,
        "expected_harvest_window": c.expected_harvest_window,
    })
    if c.complete:
        values["notes"] = c.notes
    await advance(turn, HARVEST, values, replace_data=True)


QUOTE_FLOWS = {flow for flow, _ in QUOTE.steps}
QUOTE_KEYS = ("request_id",) + tuple(key for _, key in QUOTE.steps)


async def _quote(turn: Turn, c: QuoteCandidate) -> bool:
    currency = (c.currency or "").upper()
    values = compact({
        "request_id": c.request_id,
        "unit_price": c.unit_price,
        "currency": currency if currency in CURRENCIES else None,
        "available_quantity": c.available_quantity,
    })
    if c.complete and "currency" in values:
        values["delivery_date"] = parse_iso_date(c.delivery_date)
        values["notes"] = c.notes
    if turn.flow in QUOTE_FLOWS:
        # Mid-quote: keep the picked request and the answers given so far.
        earlier = {k: turn.data[k] for k in QUOTE_KEYS if k in turn.data}
        if c.request_id and c.request_id != earlier.get("request_id"):
            earlier = {}
        values = {**earlier, **values}
        if not values.get("request_id"):
            return False
    elif "request_id" not in values:
        # Keep what was recognised until the user picks the request.
        await turn.reset(Flow.MENU, {"quote_prefill": values, "requests_page": 1})
        await list_open_requests(turn)
        return True
    await advance(turn, QUOTE, values, replace_data=True)
    return True


async def _order(turn: Turn, c: OrderActionCandidate):
    if not c.order_id:
        await turn.reset(Flow.ORDERS_LIST, {"orders_page": 1})
        await list_orders(turn)
        return
    base = {"order_id": c.order_id, "orders_page": 1}
    if c.action == "reject":
        await advance(turn, ORDER_REJECT, compact({**base, "reason": c.reason}), replace_data=True)
        return
    if c.action == "accept":
        values = dict(base)
        eta = parse_iso_date(c.estimated_delivery_date)
        if eta:
            values["estimated_delivery_date"] = eta
        await advance(turn, ORDER_ACCEPT, values, replace_data=True)
        return
    values = dict(base)
    status = (c.status or "").lower()
    if status in ORDER_STATUSES:
        values["status"] = status
        if status != "shipped":
            values["tracking_number"] = None
        elif c.tracking_number:
            values["tracking_number"] = c.tracking_number
    await advance(turn, ORDER_UPDATE, values, replace_data=True)

