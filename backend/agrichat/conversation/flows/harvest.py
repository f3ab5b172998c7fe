# /agrichat/conversation/flows/harvest.py

from agrichat.config import strings
from agrichat.config.catalogue import HARVEST_UNITS
from agrichat.conversation.access import requires_org
from agrichat.conversation.context import Turn
from agrichat.conversation.machine import machine
from agrichat.conversation.steps import HARVEST, advance
from agrichat.conversation.validators import compact, optional_text, parse_positive
from agrichat.models.session import Flow

# Posting an upcoming harvest so buyers can reserve it.


@machine.choice("menu_harvest")
async def start_harvest(turn: Turn):
    if not await requires_org(turn):
        return
    await turn.reset(Flow.HARVEST_CROP)
    await ask_crop(turn)


@machine.prompt(Flow.HARVEST_CROP)
async def ask_crop(turn: Turn):
    turn.text(strings.ASK_CROP)


@machine.on(Flow.HARVEST_CROP)
async def capture_crop(turn: Turn):
    crop = turn.event.text.strip()
    if not crop:
        turn.text(strings.INVALID_CROP)
        return
    await advance(turn, HARVEST, {"crop": crop})


@machine.prompt(Flow.HARVEST_WINDOW)
async def ask_window(turn: Turn):
    turn.text(turn.t("ask_harvest_window"))


@machine.on(Flow.HARVEST_WINDOW)
async def capture_window(turn: Turn):
    window = turn.event.text.strip()
    if not window:
        turn.text(strings.INVALID_WINDOW)
        await ask_window(turn)
        return
    await advance(turn, HARVEST, {"expected_harvest_window": window})


@machine.prompt(Flow.HARVEST_QTY)
async def ask_quantity(turn: Turn):
    turn.text(turn.t("ask_quantity"))


@machine.on(Flow.HARVEST_QTY)
async def capture_quantity(turn: Turn):
    quantity = parse_positive(turn.event.text)
    if quantity is None:
        turn.text(strings.INVALID_QUANTITY)
        await ask_quantity(turn)
        return
    await advance(turn, HARVEST, {"quantity": quantity})


@machine.prompt(Flow.HARVEST_UNIT)
async def ask_unit(turn: Turn):
    turn.list("Pick a unit", "Choose unit of measure", "Units",
              [{"id": f"unit_{u}", "title": u} for u in HARVEST_UNITS], section="Units")


@machine.on(Flow.HARVEST_UNIT)
async def unit_text(turn: Turn):
    if turn.event.lower not in HARVEST_UNITS:
        await ask_unit(turn)
        return
    await advance(turn, HARVEST, {"unit": turn.event.lower})


@machine.prompt(Flow.HARVEST_NOTES)
async def ask_notes(turn: Turn):
    turn.text(turn.t("ask_notes"))


@machine.on(Flow.HARVEST_NOTES)
async def capture_notes(turn: Turn):
    await advance(turn, HARVEST, {"notes": optional_text(turn.event.text)})


@machine.finisher("harvest")
async def submit_harvest(turn: Turn):
    data = turn.data
    payload = compact({
        "crop": data.get("crop"),
        "quantity": data.get("quantity"),
        "unit": data.get("unit"),
        "expected_harvest_window": data.get("expected_harvest_window"),
        "notes": data.get("notes"),
    })
    harvest = await turn.facade.create_harvest_request(turn.user, payload)
    summary = f"{payload['crop']} {payload['quantity']} {payload['unit']}, window {payload['expected_harvest_window']}"
    await turn.index_context("harvest", harvest.get("id"), f"Harvest {payload['crop']}", summary)
    await turn.done(f"Harvest posted: {summary} ✅")
