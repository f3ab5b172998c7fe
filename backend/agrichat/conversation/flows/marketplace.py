# /agrichat/conversation/flows/marketplace.py

from typing import Any, Dict, Optional

from agrichat.config import strings
from agrichat.config.catalogue import LIST_PAGE_SIZE
from agrichat.conversation import pagination
from agrichat.conversation.access import requires_buyer
from agrichat.conversation.context import Turn
from agrichat.conversation.machine import machine
from agrichat.models.session import Flow

# Buyer side: browsing in-stock products, product and farm details, and
# the cart.


def _clip(value: Optional[str], limit: int = 300) -> str:
    value = str(value or "")
    return value if len(value) <= limit else value[:limit] + "…"


def _price(p: Dict[str, Any]) -> str:
    return f"{p.get('current_price')} {p.get('currency') or ''}/{p.get('unit_of_measurement') or 'unit'}"


@machine.choice("menu_market")
async def start_browse(turn: Turn):
    if not await requires_buyer(turn):
        return
    await turn.reset(Flow.MP_BROWSE, {"mp_page": 1})
    await list_products(turn)


@machine.prompt(Flow.MP_BROWSE)
async def list_products(turn: Turn):
    page = pagination.page_of(turn.data, "mp_page")
    products = await turn.facade.browse_marketplace(turn.user, page, LIST_PAGE_SIZE)
    if not products and page == 1:
        turn.text("No products are available right now.")
        return
    rows = [
        {
            "id": f"mp_{p.get('id')}",
            "title": (p.get("name") or "Product")[:40],
            "description": (
                f"{_price(p)} • stock {p.get('stock_quantity', 0)} • {(p.get('seller') or {}).get('name') or ''}"
            ),
        }
        for p in products
    ]
    rows += pagination.nav_rows("mp", page, products)
    turn.list("Marketplace", f"Page {page}", "Browse", rows, section="Products")


@machine.on(Flow.MP_BROWSE)
async def browse_text(turn: Turn):
    await list_products(turn)


@machine.choice("mp_next", "mp_prev")
async def browse_page(turn: Turn):
    if not await requires_buyer(turn):
        return
    page = pagination.page_of(turn.data, "mp_page")
    direction = turn.event.choice_id.rsplit("_", 1)[1]
    await turn.update(flow=Flow.MP_BROWSE, data={"mp_page": pagination.turned(page, direction)})
    await list_products(turn)


@machine.choice_prefix("mp_")
async def product_detail(turn: Turn, suffix: str):
    if not await requires_buyer(turn):
        return
    p = await turn.facade.get_marketplace_product(turn.user, suffix)
    if not p:
        turn.text(strings.PRODUCT_NOT_FOUND)
        return
    seller = p.get("seller") or {}
    if p.get("image_url"):
        turn.image(p["image_url"], f"{p.get('name')} • {_price(p)}")
    lines = ["Product", f"• Name: {p.get('name')}"]
    if p.get("category"):
        lines.append(f"• Category: {p['category']}")
    if p.get("short_description"):
        lines.append(f"• Short: {p['short_description']}")
    if p.get("description"):
        lines.append(f"• Desc: {_clip(p['description'])}")
    lines += [f"• Price: {_price(p)}", f"• Stock: {p.get('stock_quantity', 0)}"]
    if seller.get("name"):
        lines.append(f"• Seller: {seller['name']}")
    turn.text("\n".join(lines))
    turn.buttons("Actions:", [
        (f"cart_add_{p.get('id') or suffix}", "Add to cart"),
        (f"farm_{seller.get('id') or ''}", "View farm"),
        ("menu_market", "Back to results"),
    ])


@machine.choice_prefix("farm_")
async def farm_profile(turn: Turn, suffix: str):
    if not await requires_buyer(turn):
        return
    org = await turn.facade.get_seller_profile(turn.user, suffix) if suffix else None
    if not org:
        turn.text(strings.SELLER_NOT_FOUND)
        return
    if org.get("logo_url"):
        turn.image(org["logo_url"], org.get("name"))
    lines = ["Farm", f"• Name: {org.get('name')}"]
    if org.get("business_type"):
        lines.append(f"• Type: {org['business_type']}")
    if org.get("country"):
        lines.append(f"• Country: {org['country']}")
    if isinstance(org.get("product_count"), int):
        lines.append(f"• Active products: {org['product_count']}")
    if org.get("description"):
        lines.append(f"• About: {_clip(org['description'])}")
    turn.text("\n".join(lines))
    turn.buttons("Next:", [("menu_market", "Back to marketplace")])


@machine.choice_prefix("cart_add_")
async def add_to_cart(turn: Turn, suffix: str):
    if not await requires_buyer(turn):
        return
    await turn.facade.add_to_cart(turn.user, suffix, 1)
    turn.text(strings.ADDED_TO_CART)
    await turn.update(flow=Flow.MP_BROWSE)
    await list_products(turn)


@machine.choice("menu_cart")
async def show_cart(turn: Turn):
    if not await requires_buyer(turn):
        return
    cart = await turn.facade.get_cart(turn.user)
    if not cart.get("total_items"):
        turn.text(strings.CART_EMPTY)
        await turn.reset(Flow.MP_BROWSE, {"mp_page": 1})
        await list_products(turn)
        return
    currency = cart.get("currency") or ""
    lines = ["Your cart"]
    for group in cart.get("seller_groups") or []:
        items = group.get("items") or []
        lines.append(f"\n{group.get('seller_name')} • {len(items)} item(s)")
        for it in items:
            lines.append(
                f"• {it.get('product_name')} x{it.get('quantity')} - "
                f"{it.get('unit_price')} {it.get('currency') or currency}/{it.get('unit_of_measurement') or 'unit'}"
            )
    lines += [
        f"\nSubtotal: {cart.get('subtotal')} {currency}",
        f"Est. shipping: {cart.get('estimated_shipping')} {currency}",
        f"Est. tax: {cart.get('estimated_tax')} {currency}",
        f"Total: {cart.get('total')} {currency}",
    ]
    turn.text("\n".join(lines))
    turn.buttons("Next:", [("menu_market", "Continue browsing")])
