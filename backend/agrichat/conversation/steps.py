# /agrichat/conversation/steps.py

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from agrichat.conversation.context import Turn
from agrichat.conversation.machine import machine
from agrichat.models.session import Flow

# Ordered step sequences of the structured flows. A step counts as answered
# once its key is present in session data, even when the answer was "skip"
# (stored as None). Resuming a flow always lands on the first unanswered
# step, which is how AI pre-filled values are never asked for again.


@dataclass(frozen=True)
class StepSequence:
    name: str
    steps: Tuple[Tuple[Flow, str], ...]

    def first_missing(self, data: Dict[str, Any]) -> Optional[Flow]:
        for flow, key in self.steps:
            if key not in data:
                return flow
        return None

    def key_for(self, flow: Flow) -> str:
        for step, key in self.steps:
            if step == flow:
                return key
        raise KeyError(flow)


PRODUCT = StepSequence("product", (
    (Flow.UPLOAD_NAME, "productName"),
    (Flow.UPLOAD_CATEGORY, "category"),
    (Flow.UPLOAD_SHORT_DESC, "short_description"),
    (Flow.UPLOAD_DESC, "description"),
    (Flow.UPLOAD_PRICE, "price"),
    (Flow.UPLOAD_QTY, "stock"),
    (Flow.UPLOAD_UNIT, "unit"),
    (Flow.UPLOAD_PHOTO, "images"),
))

HARVEST = StepSequence("harvest", (
    (Flow.HARVEST_CROP, "crop"),
    (Flow.HARVEST_WINDOW, "expected_harvest_window"),
    (Flow.HARVEST_QTY, "quantity"),
    (Flow.HARVEST_UNIT, "unit"),
    (Flow.HARVEST_NOTES, "notes"),
))

QUOTE = StepSequence("quote", (
    (Flow.QUOTE_UNIT_PRICE, "unit_price"),
    (Flow.QUOTE_CURRENCY, "currency"),
    (Flow.QUOTE_AVAILABLE_QTY, "available_quantity"),
    (Flow.QUOTE_DELIVERY_DATE, "delivery_date"),
    (Flow.QUOTE_NOTES, "notes"),
))

ORDER_ACCEPT = StepSequence("order_accept", (
    (Flow.ORDER_ACCEPT_ETA, "estimated_delivery_date"),
    (Flow.ORDER_ACCEPT_SHIPPING, "shipping_method"),
))

ORDER_REJECT = StepSequence("order_reject", (
    (Flow.ORDER_REJECT_REASON, "reason"),
))

ORDER_UPDATE = StepSequence("order_update", (
    (Flow.ORDER_UPDATE_STATUS, "status"),
    (Flow.ORDER_UPDATE_TRACKING, "tracking_number"),
))


async def advance(
    turn: Turn,
    sequence: StepSequence,
    values: Optional[Dict[str, Any]] = None,
    replace_data: bool = False,
):
    """
    Stores `values` and moves to the next unanswered step in one session write,
    so a single undo reverts both. With nothing left to ask, runs the flow's
    finisher.
    """
    values = values or {}
    merged = dict(values) if replace_data else {**turn.data, **values}
    next_flow = sequence.first_missing(merged)
    if next_flow is None:
        await turn.update(data=values, replace_data=replace_data)
        await machine.finisher_for(sequence.name)(turn)
        return
    await turn.update(flow=next_flow, data=values, replace_data=replace_data)
    await turn.prompt(next_flow)
