# /agrichat/conversation/flows/orders.py

from agrichat.config import strings
from agrichat.config.catalogue import LIST_PAGE_SIZE, ORDER_STATUSES
from agrichat.conversation import pagination
from agrichat.conversation.access import requires_org
from agrichat.conversation.context import Turn
from agrichat.conversation.machine import machine
from agrichat.conversation.steps import ORDER_ACCEPT, ORDER_REJECT, ORDER_UPDATE, StepSequence, advance
from agrichat.conversation.validators import compact, is_skip, optional_text, parse_iso_date
from agrichat.models.session import Flow

# Pending orders: accept with an ETA and shipping method, reject with a
# reason, or move an order along with an optional tracking number.

ACTIONS = {"accept": ORDER_ACCEPT, "reject": ORDER_REJECT, "update": ORDER_UPDATE}


@machine.choice("menu_orders")
async def start_orders(turn: Turn):
    if not await requires_org(turn):
        return
    await turn.reset(Flow.ORDERS_LIST, {"orders_page": 1})
    await list_orders(turn)


@machine.prompt(Flow.ORDERS_LIST)
async def list_orders(turn: Turn):
    page = pagination.page_of(turn.data, "orders_page")
    orders = await turn.facade.get_orders(turn.user, "pending", page, LIST_PAGE_SIZE)
    if not orders:
        turn.text(strings.NO_PENDING_ORDERS)
        if page > 1:
            turn.buttons("Navigate:", [("ords_prev", "Prev")])
        return
    rows = [
        {
            "id": f"ord_{o.get('id')}",
            "title": str(o.get("order_number") or o.get("id")),
            "description": (
                f"{o.get('total_amount')} {o.get('currency') or ''} • {o.get('status') or 'pending'}"
                f" • items: {len(o.get('items') or [])}"
            ),
        }
        for o in orders
    ]
    turn.list("Pending orders", f"Pick an order (page {page})", "Orders", rows)
    nav = pagination.nav_buttons("ords", page, orders)
    if nav:
        turn.buttons("Navigate:", nav)


@machine.on(Flow.ORDERS_LIST)
async def orders_list_text(turn: Turn):
    await list_orders(turn)


@machine.choice("ords_next", "ords_prev")
async def orders_page(turn: Turn):
    if not await requires_org(turn):
        return
    page = pagination.page_of(turn.data, "orders_page")
    direction = turn.event.choice_id.rsplit("_", 1)[1]
    await turn.update(flow=Flow.ORDERS_LIST, data={"orders_page": pagination.turned(page, direction)})
    await list_orders(turn)


async def _select_order(turn: Turn, order_id: str):
    """Fresh step data for one order, keeping the list position."""
    page = pagination.page_of(turn.data, "orders_page")
    await turn.reset(Flow.ORDERS_LIST, {"orders_page": page, "order_id": order_id})


@machine.choice("ord_accept", "ord_reject", "ord_update")
async def order_action(turn: Turn):
    if not turn.data.get("order_id"):
        turn.text(strings.MISSING_ORDER_ID)
        await turn.reset()
        await turn.menu()
        return
    action = turn.event.choice_id.split("_", 1)[1]
    await start_action(turn, ACTIONS[action])


@machine.choice_prefix("ord_")
async def pick_order(turn: Turn, suffix: str):
    if not await requires_org(turn):
        return
    await _select_order(turn, suffix)
    turn.buttons(strings.ORDER_ACTIONS, [
        ("ord_accept", "Accept"),
        ("ord_reject", "Reject"),
        ("ord_update", "Update status"),
    ])


@machine.choice_prefix("oa_accept_")
async def quick_accept(turn: Turn, suffix: str):
    if not await requires_org(turn):
        return
    await _select_order(turn, suffix)
    await start_action(turn, ORDER_ACCEPT)


@machine.choice_prefix("oa_reject_")
async def quick_reject(turn: Turn, suffix: str):
    if not await requires_org(turn):
        return
    await _select_order(turn, suffix)
    await start_action(turn, ORDER_REJECT)


async def start_action(turn: Turn, sequence: StepSequence, values=None):
    await advance(turn, sequence, values)


# ---------------- Accept ---------------- #

@machine.prompt(Flow.ORDER_ACCEPT_ETA)
async def ask_eta(turn: Turn):
    turn.text(strings.ASK_ETA)


@machine.on(Flow.ORDER_ACCEPT_ETA)
async def capture_eta(turn: Turn):
    if is_skip(turn.event.text):
        await advance(turn, ORDER_ACCEPT, {"estimated_delivery_date": None})
        return
    eta = parse_iso_date(turn.event.text)
    if eta is None:
        turn.text(strings.INVALID_DATE)
        await ask_eta(turn)
        return
    await advance(turn, ORDER_ACCEPT, {"estimated_delivery_date": eta})


@machine.prompt(Flow.ORDER_ACCEPT_SHIPPING)
async def ask_shipping(turn: Turn):
    turn.text(turn.t("ask_shipping"))


@machine.on(Flow.ORDER_ACCEPT_SHIPPING)
async def capture_shipping(turn: Turn):
    await advance(turn, ORDER_ACCEPT, {"shipping_method": optional_text(turn.event.text)})


@machine.finisher("order_accept")
async def accept_order(turn: Turn):
    order_id = turn.data["order_id"]
    payload = compact({
        "estimated_delivery_date": turn.data.get("estimated_delivery_date"),
        "shipping_method": turn.data.get("shipping_method"),
    })
    order = await turn.facade.accept_order(turn.user, order_id, payload)
    turn.order_update(str(order.get("order_number") or order_id), "accepted")
    await turn.index_context("order", order_id, f"Order {order.get('order_number') or order_id}", "accepted")
    await turn.done("Order accepted ✅")


# ---------------- Reject ---------------- #

@machine.prompt(Flow.ORDER_REJECT_REASON)
async def ask_reject_reason(turn: Turn):
    turn.text(strings.ASK_REJECT_REASON)


@machine.on(Flow.ORDER_REJECT_REASON)
async def capture_reject_reason(turn: Turn):
    await advance(turn, ORDER_REJECT, {"reason": optional_text(turn.event.text) or "No reason provided"})


@machine.finisher("order_reject")
async def reject_order(turn: Turn):
    order_id = turn.data["order_id"]
    reason = turn.data.get("reason") or "No reason provided"
    order = await turn.facade.reject_order(turn.user, order_id, {"reason": reason})
    turn.order_update(str(order.get("order_number") or order_id), "rejected")
    await turn.done("Order rejected ❌")


# ---------------- Status update ---------------- #

@machine.prompt(Flow.ORDER_UPDATE_STATUS)
async def ask_status(turn: Turn):
    turn.buttons(strings.PICK_STATUS, [(f"ost_{s}", s.capitalize()) for s in ORDER_STATUSES])


def status_values(status: str) -> dict:
    """Only shipped orders are asked for a tracking number."""
    if status == "shipped":
        return {"status": status}
    return {"status": status, "tracking_number": None}


@machine.choice_prefix("ost_")
async def status_choice(turn: Turn, suffix: str):
    if suffix not in ORDER_STATUSES or not turn.data.get("order_id"):
        turn.text(strings.MISSING_ORDER_ID)
        await turn.reset()
        await turn.menu()
        return
    await advance(turn, ORDER_UPDATE, status_values(suffix))


@machine.on(Flow.ORDER_UPDATE_STATUS)
async def status_text(turn: Turn):
    if turn.event.lower not in ORDER_STATUSES:
        await ask_status(turn)
        return
    await advance(turn, ORDER_UPDATE, status_values(turn.event.lower))


@machine.prompt(Flow.ORDER_UPDATE_TRACKING)
async def ask_tracking(turn: Turn):
    turn.text(strings.ASK_TRACKING)


@machine.on(Flow.ORDER_UPDATE_TRACKING)
async def capture_tracking(turn: Turn):
    await advance(turn, ORDER_UPDATE, {"tracking_number": optional_text(turn.event.text)})


@machine.finisher("order_update")
async def update_order(turn: Turn):
    order_id = turn.data["order_id"]
    status = turn.data["status"]
    tracking = turn.data.get("tracking_number")
    order = await turn.facade.update_order_status(
        turn.user, order_id, compact({"status": status, "tracking_number": tracking})
    )
    turn.order_update(str(order.get("order_number") or order_id), status, tracking)
    await turn.done(f"Order updated to {status} ✅")
