# /agrichat/conversation/flows/products.py

import logging
import math

from rapidfuzz import fuzz, process

from agrichat.config import strings
from agrichat.config.catalogue import (
    CATEGORY_PAGE_SIZE,
    LIST_PAGE_SIZE,
    MAX_PRODUCT_PHOTOS,
    PRODUCT_CATEGORIES,
    PRODUCT_CURRENCY,
    PRODUCT_UNITS,
)
from agrichat.conversation import pagination
from agrichat.conversation.access import requires_seller
from agrichat.conversation.context import Turn
from agrichat.conversation.machine import machine
from agrichat.conversation.steps import HARVEST, PRODUCT, advance
from agrichat.conversation.validators import optional_text, parse_positive, parse_stock
from agrichat.models.inbound import EventKind
from agrichat.models.session import Flow, now_ms

# Seller product upload (name through photos) and the inventory browser.

logger = logging.getLogger(__name__)

CATEGORY_MATCH_THRESHOLD = 85


@machine.command("upload")
@machine.choice("menu_upload")
async def start_upload(turn: Turn):
    if not await requires_seller(turn, paired=True):
        return
    await turn.reset(Flow.UPLOAD_NAME, {"category_page": 1})
    await ask_name(turn)


@machine.prompt(Flow.UPLOAD_NAME)
async def ask_name(turn: Turn):
    turn.text(strings.ASK_PRODUCT_NAME)


@machine.on(Flow.UPLOAD_NAME)
async def capture_name(turn: Turn):
    name = turn.event.text.strip()
    if not name:
        turn.text(strings.INVALID_PRODUCT_NAME)
        await ask_name(turn)
        return
    await advance(turn, PRODUCT, {"productName": name})


# ---------------- Category ---------------- #

@machine.prompt(Flow.UPLOAD_CATEGORY)
async def ask_category(turn: Turn):
    total_pages = max(1, math.ceil(len(PRODUCT_CATEGORIES) / CATEGORY_PAGE_SIZE))
    page = min(pagination.page_of(turn.data, "category_page"), total_pages)
    start = (page - 1) * CATEGORY_PAGE_SIZE
    rows = [
        {"id": f"cat_{name.replace(' ', '_')}", "title": name}
        for name in PRODUCT_CATEGORIES[start:start + CATEGORY_PAGE_SIZE]
    ]
    if page < total_pages:
        rows.append({"id": "cat_more", "title": "More categories"})
    elif page > 1:
        rows.append({"id": "cat_prev", "title": "Back"})
    turn.list("Pick a category", f"Choose a product category (page {page}/{total_pages})", "Categories",
              rows, section="Categories")


@machine.choice("cat_more", "cat_prev")
async def category_page(turn: Turn):
    if turn.flow != Flow.UPLOAD_CATEGORY:
        await turn.menu()
        return
    page = pagination.page_of(turn.data, "category_page")
    direction = "next" if turn.event.choice_id == "cat_more" else "prev"
    await turn.update(data={"category_page": pagination.turned(page, direction)})
    await ask_category(turn)


@machine.choice_prefix("cat_")
async def category_choice(turn: Turn, suffix: str):
    if turn.flow != Flow.UPLOAD_CATEGORY:
        await turn.menu()
        return
    await advance(turn, PRODUCT, {"category": suffix.replace("_", " ")})


@machine.on(Flow.UPLOAD_CATEGORY)
async def category_text(turn: Turn):
    typed = turn.event.text.strip()
    if not typed:
        await ask_category(turn)
        return
    match = process.extractOne(typed, PRODUCT_CATEGORIES, scorer=fuzz.WRatio)
    category = match[0] if match and match[1] >= CATEGORY_MATCH_THRESHOLD else typed
    await advance(turn, PRODUCT, {"category": category})


# ---------------- Descriptions, price, stock, unit ---------------- #

@machine.prompt(Flow.UPLOAD_SHORT_DESC)
async def ask_short_description(turn: Turn):
    turn.text(strings.ASK_SHORT_DESC)


@machine.on(Flow.UPLOAD_SHORT_DESC)
async def capture_short_description(turn: Turn):
    await advance(turn, PRODUCT, {"short_description": optional_text(turn.event.text)})


@machine.prompt(Flow.UPLOAD_DESC)
async def ask_description(turn: Turn):
    turn.text(strings.ASK_FULL_DESC)


@machine.on(Flow.UPLOAD_DESC)
async def capture_description(turn: Turn):
    await advance(turn, PRODUCT, {"description": optional_text(turn.event.text)})


@machine.prompt(Flow.UPLOAD_PRICE)
async def ask_price(turn: Turn):
    turn.text(turn.t("ask_price"))


@machine.on(Flow.UPLOAD_PRICE)
async def capture_price(turn: Turn):
    price = parse_positive(turn.event.text)
    if price is None:
        turn.text(strings.INVALID_PRICE)
        await ask_price(turn)
        return
    await advance(turn, PRODUCT, {"price": price})


@machine.prompt(Flow.UPLOAD_QTY)
async def ask_stock(turn: Turn):
    turn.text(strings.ASK_STOCK)


@machine.on(Flow.UPLOAD_QTY)
async def capture_stock(turn: Turn):
    stock = parse_stock(turn.event.text)
    if stock is None:
        turn.text(strings.INVALID_STOCK)
        await ask_stock(turn)
        return
    await advance(turn, PRODUCT, {"stock": stock})


@machine.prompt(Flow.UPLOAD_UNIT)
async def ask_unit(turn: Turn):
    turn.list("Pick a unit", "Choose unit of measure", "Units",
              [{"id": f"unit_{u}", "title": u} for u in PRODUCT_UNITS], section="Units")


@machine.on(Flow.UPLOAD_UNIT)
async def unit_text(turn: Turn):
    if turn.event.lower not in PRODUCT_UNITS:
        await ask_unit(turn)
        return
    await advance(turn, PRODUCT, {"unit": turn.event.lower})


@machine.choice_prefix("unit_")
async def unit_choice(turn: Turn, suffix: str):
    unit = suffix.replace("_", " ")
    if turn.flow == Flow.UPLOAD_UNIT:
        await advance(turn, PRODUCT, {"unit": unit})
    elif turn.flow == Flow.HARVEST_UNIT:
        await advance(turn, HARVEST, {"unit": unit})
    else:
        await turn.menu()


# ---------------- Photos ---------------- #

@machine.prompt(Flow.UPLOAD_PHOTO)
async def ask_photos(turn: Turn):
    turn.text(strings.ASK_PRODUCT_PHOTOS)


@machine.on(Flow.UPLOAD_PHOTO, kind=EventKind.IMAGE)
async def capture_photo(turn: Turn):
    images = list(turn.data.get("images") or [])
    if len(images) >= MAX_PRODUCT_PHOTOS:
        turn.text(strings.PHOTO_LIMIT)
        return
    object_path = f"products/{turn.phone}/{now_ms()}.jpg"
    url = await turn.deps.media.store(turn.event.media_id, object_path)
    images.append(url)
    await turn.update(data={"images": images})
    if len(images) >= MAX_PRODUCT_PHOTOS:
        turn.text(strings.PHOTO_LIMIT)
        return
    turn.buttons(strings.PHOTO_ADDED, [("photo_add", "Add another"), ("photo_done", "Finish")])


@machine.on(Flow.UPLOAD_PHOTO)
async def photo_step_text(turn: Turn):
    if turn.event.lower in ("finish", "done"):
        await finish_product(turn)
        return
    await ask_photos(turn)


@machine.choice("photo_add")
async def another_photo(turn: Turn):
    if turn.flow != Flow.UPLOAD_PHOTO:
        await turn.menu()
        return
    turn.text(strings.SEND_ANOTHER_PHOTO)


@machine.choice("photo_done")
async def photo_done(turn: Turn):
    if turn.flow != Flow.UPLOAD_PHOTO:
        await turn.menu()
        return
    await finish_product(turn)


@machine.finisher("product")
async def finish_product(turn: Turn):
    data = turn.data
    images = list(data.get("images") or [])
    if not images:
        turn.text(strings.NEED_ONE_PHOTO)
        return
    payload = {
        "name": data.get("productName"),
        "category": data.get("category") or "General",
        "short_description": data.get("short_description"),
        "description": data.get("description"),
        "base_price": data.get("price"),
        "stock_quantity": data.get("stock"),
        "unit_of_measurement": data.get("unit") or "piece",
        "currency": PRODUCT_CURRENCY,
        "status": "active",
        "images": [
            {"image_url": url, "is_primary": idx == 0, "display_order": idx}
            for idx, url in enumerate(images)
        ],
    }
    product = await turn.facade.create_product(turn.user, {k: v for k, v in payload.items() if v is not None})
    await turn.index_context(
        "product", product.get("id"), payload["name"] or "Product",
        f"{payload['name']} ({payload['category']}) {payload['base_price']} {PRODUCT_CURRENCY}/{payload['unit_of_measurement']}",
    )
    lines = [
        "Product created ✅",
        f"Name: {payload['name']}",
        f"Category: {payload['category']}",
    ]
    if payload["short_description"]:
        lines.append(f"Short: {payload['short_description']}")
    if payload["description"]:
        lines.append(f"Desc: {payload['description'][:200]}")
    lines += [
        f"Price: {payload['base_price']} {PRODUCT_CURRENCY}",
        f"Stock: {payload['stock_quantity']} {payload['unit_of_measurement']}",
        f"Images: {len(images)}",
    ]
    await turn.done("\n".join(lines))


# ---------------- Inventory ---------------- #

@machine.choice("menu_inventory")
async def start_inventory(turn: Turn):
    if not await requires_seller(turn):
        return
    await turn.reset(Flow.INVENTORY_BROWSE, {"inv_page": 1})
    await list_inventory(turn)


@machine.prompt(Flow.INVENTORY_BROWSE)
async def list_inventory(turn: Turn):
    page = pagination.page_of(turn.data, "inv_page")
    products = await turn.facade.get_seller_products(turn.user, page, LIST_PAGE_SIZE)
    if not products and page == 1:
        turn.text("You have no products yet. Tap Upload product to add one.")
        return
    rows = [
        {
            "id": f"prod_{p.get('id')}",
            "title": p.get("name") or "Product",
            "description": (
                f"{p.get('base_price')} {p.get('currency') or PRODUCT_CURRENCY}/{p.get('unit_of_measurement') or 'unit'}"
                f" • stock {p.get('stock_quantity', 0)}"
            ),
        }
        for p in products
    ]
    rows += pagination.nav_rows("inv", page, products)
    turn.list("My products", f"Page {page}", "Products", rows)


@machine.choice("inv_next", "inv_prev")
async def inventory_page(turn: Turn):
    if not await requires_seller(turn):
        return
    page = pagination.page_of(turn.data, "inv_page")
    direction = turn.event.choice_id.rsplit("_", 1)[1]
    await turn.update(flow=Flow.INVENTORY_BROWSE, data={"inv_page": pagination.turned(page, direction)})
    await list_inventory(turn)


@machine.on(Flow.INVENTORY_BROWSE)
async def inventory_text(turn: Turn):
    turn.text(strings.INVENTORY_USE_LIST)
    await list_inventory(turn)


@machine.choice_prefix("prod_")
async def product_detail(turn: Turn, suffix: str):
    if not await requires_seller(turn):
        return
    product = await turn.facade.get_seller_product(turn.user, suffix)
    if not product:
        turn.text(strings.PRODUCT_NOT_FOUND)
        return
    images = product.get("images") or []
    primary = next((i for i in images if i.get("is_primary")), images[0] if images else None)
    if primary and primary.get("image_url"):
        turn.image(primary["image_url"], product.get("name"))
    lines = [
        product.get("name") or "Product",
        f"Category: {product.get('category') or '-'}",
        f"Price: {product.get('base_price')} {product.get('currency') or PRODUCT_CURRENCY}"
        f"/{product.get('unit_of_measurement') or 'unit'}",
        f"Stock: {product.get('stock_quantity', 0)}",
        f"Status: {product.get('status') or '-'}",
    ]
    if product.get("short_description"):
        lines.append(product["short_description"])
    turn.text("\n".join(lines))
