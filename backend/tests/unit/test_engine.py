# backend/tests/unit/test_engine.py
import pytest
import pytest_asyncio
from unittest.mock import AsyncMock

from agrichat.config import strings
from agrichat.models.extraction import (
    HarvestCandidate,
    OrderActionCandidate,
    ProductCandidate,
    QuoteCandidate,
)
from agrichat.models.inbound import Event, EventKind
from agrichat.models.session import Flow, SessionUser
from agrichat.services.marketplace import BusinessError

PHONE = "14735550101"
SELLER = SessionUser(id="u-seller", org_id="org-1", account_type="seller", name="Ann")
BUYER = SessionUser(id="u-buyer", org_id="org-2", account_type="buyer", name="Bo")


def text(body):
    return Event(kind=EventKind.TEXT, text=body)


def choice(choice_id):
    return Event(kind=EventKind.CHOICE, choice_id=choice_id)


def image(media_id="media-1"):
    return Event(kind=EventKind.IMAGE, media_id=media_id)


def bodies(turn):
    return [r.args.get("body") for r in turn.outbox if r.kind in ("text", "buttons", "list")]


def button_ids(turn):
    return [bid for r in turn.outbox if r.kind == "buttons" for bid, _ in r.args["buttons"]]


@pytest_asyncio.fixture
async def seller(deps, guard):
    await deps.store.set(PHONE, user=SELLER)
    await guard.pair(SELLER.id, PHONE)
    return SELLER


@pytest_asyncio.fixture
async def buyer(deps):
    await deps.store.set(PHONE, user=BUYER)
    return BUYER


async def run(engine, *events):
    turn = None
    for event in events:
        turn = await engine.handle(PHONE, event)
    return turn


# ---------------- Menu and hydration ---------------- #

@pytest.mark.asyncio
async def test_unbound_user_gets_signup_and_login(engine, facade):
    turn = await run(engine, text("hi"))
    facade.find_user_by_phone.assert_awaited_once_with("+" + PHONE)
    assert button_ids(turn) == ["menu_signup", "menu_login"]
    assert turn.flow == Flow.MENU


@pytest.mark.asyncio
async def test_unverified_account_is_sent_an_otp(engine, facade):
    facade.find_user_by_phone.return_value = {"id": "u9", "fullname": "Cy", "email_verified": False}
    facade.get_user_membership.return_value = {"organization_id": "org-9", "account_type": "buyer"}

    turn = await run(engine, text("hello"))

    assert turn.flow == Flow.SIGNUP_OTP
    assert turn.user.org_id == "org-9"
    otp = next(r for r in turn.outbox if r.kind == "otp").args["otp"]
    facade.update_user.assert_awaited_once()
    assert facade.update_user.await_args.args[1]["email_verification_token"] == otp


@pytest.mark.asyncio
async def test_seller_and_buyer_menus_differ(engine, deps):
    await deps.store.set(PHONE, user=SELLER)
    seller_ids = button_ids(await run(engine, text("menu")))
    assert seller_ids[:3] == ["menu_upload", "menu_harvest", "menu_requests"]
    assert "menu_lock" in seller_ids and "menu_logout" in seller_ids

    await deps.store.set(PHONE, user=BUYER)
    buyer_ids = button_ids(await run(engine, text("menu")))
    assert buyer_ids[:3] == ["menu_market", "menu_cart", "menu_orders"]


@pytest.mark.asyncio
async def test_unknown_choice_shows_the_menu(engine, buyer):
    turn = await run(engine, choice("something_stale"))
    assert "menu_market" in button_ids(turn)


@pytest.mark.asyncio
async def test_unexpected_image_is_explained(engine, buyer):
    turn = await run(engine, image())
    assert bodies(turn) == [strings.IMAGE_NOT_EXPECTED]


# ---------------- Product upload ---------------- #

@pytest.mark.asyncio
async def test_product_upload_end_to_end(engine, facade, media, seller):
    facade.create_product.return_value = {"id": "p1"}

    assert (await run(engine, choice("menu_upload"))).flow == Flow.UPLOAD_NAME
    assert (await run(engine, text("Yam"))).flow == Flow.UPLOAD_CATEGORY
    turn = await run(engine, choice("cat_Root_Crops"))
    assert turn.flow == Flow.UPLOAD_SHORT_DESC
    assert turn.data["category"] == "Root Crops"

    turn = await run(engine, text("skip"), text("skip"))
    assert turn.flow == Flow.UPLOAD_PRICE
    assert turn.data["short_description"] is None and turn.data["description"] is None

    turn = await run(engine, text("12.50"), text("40"), choice("unit_kg"))
    assert turn.flow == Flow.UPLOAD_PHOTO

    turn = await run(engine, choice("photo_done"))
    assert bodies(turn) == [strings.NEED_ONE_PHOTO]
    facade.create_product.assert_not_awaited()

    turn = await run(engine, image("m-1"))
    assert button_ids(turn) == ["photo_add", "photo_done"]
    media.store.assert_awaited_once()

    turn = await run(engine, choice("photo_done"))
    assert turn.flow == Flow.MENU
    actor, payload = facade.create_product.await_args.args
    assert actor.id == SELLER.id
    assert payload["name"] == "Yam"
    assert payload["base_price"] == 12.5
    assert payload["stock_quantity"] == 40
    assert payload["unit_of_measurement"] == "kg"
    assert payload["currency"] == "XCD"
    assert payload["images"][0]["is_primary"] is True
    assert "short_description" not in payload
    assert bodies(turn)[0].startswith("Product created")


@pytest.mark.asyncio
async def test_invalid_price_keeps_the_step(engine, deps, seller):
    await deps.store.set(PHONE, flow=Flow.UPLOAD_PRICE, data={"productName": "Yam"})
    turn = await run(engine, text("free"))
    assert turn.flow == Flow.UPLOAD_PRICE
    assert strings.INVALID_PRICE in bodies(turn)
    assert "price" not in turn.data


@pytest.mark.asyncio
async def test_upload_needs_a_paired_number(engine, deps):
    await deps.store.set(PHONE, user=SELLER)
    turn = await run(engine, choice("menu_upload"))
    assert bodies(turn) == [strings.VERIFY_TO_CONTINUE]
    assert turn.flow == Flow.MENU


@pytest.mark.asyncio
async def test_buyers_cannot_upload(engine, buyer):
    turn = await run(engine, text("upload"))
    assert bodies(turn) == [strings.SELLER_ONLY]


@pytest.mark.asyncio
async def test_undo_goes_back_one_step(engine, seller):
    await run(engine, choice("menu_upload"), text("Yam"))
    turn = await run(engine, text("undo"))
    assert turn.flow == Flow.UPLOAD_NAME
    assert "productName" not in turn.data
    assert bodies(turn) == [strings.UNDO_DONE, strings.ASK_PRODUCT_NAME]

    turn = await run(engine, choice("menu_undo"))
    assert bodies(turn) == [strings.NOTHING_TO_UNDO]
    assert turn.flow == Flow.UPLOAD_NAME


# ---------------- Harvests and orders ---------------- #

@pytest.mark.asyncio
async def test_harvest_with_skipped_notes(engine, facade, seller):
    facade.create_harvest_request.return_value = {"id": "h1"}
    turn = await run(
        engine,
        choice("menu_harvest"), text("Cassava"), text("2-3 weeks"), text("300"), choice("unit_sacks"), text("skip"),
    )
    assert turn.flow == Flow.MENU
    payload = facade.create_harvest_request.await_args.args[1]
    assert payload == {"crop": "Cassava", "quantity": 300.0, "unit": "sacks", "expected_harvest_window": "2-3 weeks"}


@pytest.mark.asyncio
async def test_facade_failure_resets_to_menu(engine, deps, facade, seller):
    facade.create_harvest_request.side_effect = BusinessError("create_harvest_request", "boom", 500)
    await deps.store.set(PHONE, flow=Flow.HARVEST_NOTES, data={
        "crop": "Cassava", "expected_harvest_window": "May", "quantity": 3, "unit": "kg",
    })
    turn = await run(engine, text("skip"))
    assert bodies(turn)[0] == strings.GENERIC_RETRY
    assert turn.flow == Flow.MENU
    assert "crop" not in turn.data


@pytest.mark.asyncio
async def test_reject_without_reason(engine, facade, seller):
    facade.reject_order.return_value = {"order_number": "ORD-9"}
    turn = await run(engine, choice("oa_reject_o9"))
    assert turn.flow == Flow.ORDER_REJECT_REASON

    turn = await run(engine, text("skip"))
    facade.reject_order.assert_awaited_once()
    assert facade.reject_order.await_args.args[1:] == ("o9", {"reason": "No reason provided"})
    update = next(r for r in turn.outbox if r.kind == "order_update")
    assert update.args["order_number"] == "ORD-9" and update.args["status"] == "rejected"


@pytest.mark.asyncio
async def test_delivered_status_skips_tracking(engine, facade, seller):
    facade.update_order_status.return_value = {"order_number": "ORD-9"}
    await run(engine, choice("ord_o9"), choice("ord_update"))
    turn = await run(engine, choice("ost_delivered"))
    assert turn.flow == Flow.MENU
    assert facade.update_order_status.await_args.args[1:] == ("o9", {"status": "delivered"})


@pytest.mark.asyncio
async def test_shipped_status_asks_for_tracking(engine, facade, seller):
    facade.update_order_status.return_value = {"order_number": "ORD-9"}
    turn = await run(engine, choice("ord_o9"), choice("ord_update"), choice("ost_shipped"))
    assert turn.flow == Flow.ORDER_UPDATE_TRACKING
    turn = await run(engine, text("TRK-1"))
    assert facade.update_order_status.await_args.args[2] == {"status": "shipped", "tracking_number": "TRK-1"}


# ---------------- Locking ---------------- #

@pytest.mark.asyncio
async def test_locked_account_only_accepts_unlock(engine, facade, guard, seller):
    await guard.lock(SELLER.id)

    for event in (choice("menu_upload"), text("upload"), text("hello"), image()):
        turn = await run(engine, event)
        assert bodies(turn) == [strings.ACCOUNT_LOCKED]
        assert turn.flow == Flow.MENU

    turn = await run(engine, text("unlock"))
    assert turn.flow == Flow.UNLOCK_OTP
    otp = next(r for r in turn.outbox if r.kind == "otp").args["otp"]

    turn = await run(engine, text(otp))
    assert bodies(turn)[0] == strings.ACCOUNT_UNLOCKED
    assert not await guard.is_locked(SELLER.id)
    assert await guard.is_paired(SELLER.id, PHONE)
    audited = [c.args[0] for c in facade.record_audit.await_args_list]
    assert "otp_sent_unlock" in audited and "account_unlocked" in audited


@pytest.mark.asyncio
async def test_idle_account_is_locked_with_notice(engine, facade, fake_redis, seller):
    await fake_redis.set(f"wa:last_active:{SELLER.id}", "1")
    turn = await run(engine, text("hi"))
    assert bodies(turn) == [strings.ACCOUNT_LOCKED_IDLE]
    assert facade.record_audit.await_args_list[0].args[0] == "account_locked_idle"


@pytest.mark.asyncio
async def test_logout_stops_hydration(engine, facade, seller):
    turn = await run(engine, choice("menu_logout"))
    assert bodies(turn) == [strings.LOGGED_OUT]
    assert turn.user is None

    facade.find_user_by_phone.reset_mock()
    await run(engine, text("hi"))
    facade.find_user_by_phone.assert_not_awaited()


# ---------------- AI shortcut ---------------- #

def stub_extractors(ai, product=None, harvest=None, quote=None, order=None):
    ai.enabled = True
    ai.extract_product = AsyncMock(return_value=product or ProductCandidate())
    ai.extract_harvest = AsyncMock(return_value=harvest or HarvestCandidate())
    ai.extract_quote = AsyncMock(return_value=quote or QuoteCandidate())
    ai.extract_order_action = AsyncMock(return_value=order or OrderActionCandidate())


@pytest.mark.asyncio
async def test_weak_extraction_falls_back_to_step_handler(engine, ai, seller):
    stub_extractors(ai, product=ProductCandidate(name="Yam"))
    turn = await run(engine, text("yam"))
    assert turn.flow == Flow.MENU
    assert "menu_upload" in button_ids(turn)


@pytest.mark.asyncio
async def test_strong_extraction_prefills_the_flow(engine, ai, seller):
    stub_extractors(ai, product=ProductCandidate(name="Yam", base_price="12", currency="XCD", unit="KG"))
    turn = await run(engine, text("selling yam 12 XCD per kg"))
    assert turn.flow == Flow.UPLOAD_CATEGORY
    assert turn.data["productName"] == "Yam"
    assert turn.data["price"] == 12.0
    assert turn.data["unit"] == "kg"


@pytest.mark.asyncio
async def test_complete_harvest_extraction_finishes_immediately(engine, ai, facade, seller):
    facade.create_harvest_request.return_value = {"id": "h2"}
    stub_extractors(ai, harvest=HarvestCandidate(
        crop="Cassava", quantity=300, unit="sacks", expected_harvest_window="next month"))
    turn = await run(engine, text("300 sacks of cassava next month"))
    assert turn.flow == Flow.MENU
    facade.create_harvest_request.assert_awaited_once()


@pytest.mark.asyncio
async def test_order_extraction_without_id_lists_orders(engine, ai, facade, seller):
    facade.get_orders.return_value = []
    stub_extractors(ai, order=OrderActionCandidate(action="accept", status="processing"))
    turn = await run(engine, text("accept the order"))
    assert turn.flow == Flow.ORDERS_LIST
    assert strings.NO_PENDING_ORDERS in bodies(turn)


@pytest.mark.asyncio
async def test_strict_steps_never_call_the_extractor(engine, ai, deps, seller):
    stub_extractors(ai, product=ProductCandidate(name="Yam", base_price=12, currency="XCD"))
    await deps.store.set(PHONE, flow=Flow.UPLOAD_PRICE, data={"productName": "Yam"})
    turn = await run(engine, text("12"))
    assert turn.flow == Flow.UPLOAD_QTY
    ai.extract_product.assert_not_awaited()


@pytest.mark.asyncio
async def test_flagged_text_is_not_extracted(engine, ai, seller):
    stub_extractors(ai, product=ProductCandidate(name="Yam", base_price=12, currency="XCD"))
    ai.moderate = AsyncMock(return_value=True)
    turn = await run(engine, text("something nasty"))
    assert turn.flow == Flow.MENU
    ai.extract_product.assert_not_awaited()


@pytest.mark.asyncio
async def test_quote_text_mid_flow_keeps_the_picked_request(engine, ai, deps, seller):
    stub_extractors(ai, quote=QuoteCandidate(unit_price=25, currency="USD"))
    await deps.store.set(PHONE, flow=Flow.QUOTE_UNIT_PRICE, data={"request_id": "r1"})

    turn = await run(engine, text("25 USD"))

    assert turn.flow == Flow.QUOTE_AVAILABLE_QTY
    assert turn.data["request_id"] == "r1"
    assert turn.data["unit_price"] == 25.0 and turn.data["currency"] == "USD"


@pytest.mark.asyncio
async def test_quote_text_mid_flow_keeps_earlier_answers(engine, ai, deps, seller):
    stub_extractors(ai, quote=QuoteCandidate(available_quantity=40, currency="usd"))
    await deps.store.set(PHONE, flow=Flow.QUOTE_AVAILABLE_QTY, data={
        "request_id": "r1", "unit_price": 25, "currency": "USD",
    })

    turn = await run(engine, text("40 available, priced in USD"))

    assert turn.flow == Flow.QUOTE_DELIVERY_DATE
    assert turn.data["unit_price"] == 25 and turn.data["available_quantity"] == 40.0


@pytest.mark.asyncio
async def test_quote_prefill_is_applied_to_the_picked_request(engine, ai, facade, seller):
    facade.get_product_requests.return_value = [{"id": "r1", "product_name": "Yam", "quantity": 10}]
    stub_extractors(ai, quote=QuoteCandidate(unit_price=25, currency="usd"))

    turn = await run(engine, text("I can do 25 USD"))
    assert turn.flow == Flow.MENU
    assert turn.data["quote_prefill"] == {"unit_price": 25.0, "currency": "USD"}

    turn = await run(engine, choice("req_r1"))
    assert turn.flow == Flow.QUOTE_AVAILABLE_QTY
    assert turn.data["request_id"] == "r1" and turn.data["unit_price"] == 25.0
    assert "quote_prefill" not in turn.data


# ---------------- Quotes ---------------- #

@pytest.mark.asyncio
async def test_picking_a_new_request_starts_a_clean_quote(engine, deps, seller):
    await deps.store.set(PHONE, flow=Flow.QUOTE_AVAILABLE_QTY, data={
        "request_id": "old", "unit_price": 10, "currency": "USD",
    })

    turn = await run(engine, choice("req_new"))

    assert turn.flow == Flow.QUOTE_UNIT_PRICE
    assert turn.data["request_id"] == "new"
    assert "unit_price" not in turn.data and "currency" not in turn.data
    assert bodies(turn) == [strings.ASK_UNIT_PRICE]


@pytest.mark.asyncio
async def test_quote_flow_end_to_end(engine, facade, seller):
    facade.get_product_requests.return_value = [
        {"id": "r1", "product_name": "Yam", "quantity": 10, "request_number": "PR-1"},
    ]
    facade.create_quote.return_value = {"id": "q1"}

    turn = await run(engine, choice("menu_requests"))
    rows = next(r for r in turn.outbox if r.kind == "list").args["sections"][0]["rows"]
    assert [row["id"] for row in rows] == ["req_r1"]
    assert button_ids(turn) == []

    assert (await run(engine, choice("req_r1"))).flow == Flow.QUOTE_UNIT_PRICE
    turn = await run(engine, text("cheap"))
    assert turn.flow == Flow.QUOTE_UNIT_PRICE
    assert bodies(turn) == [strings.INVALID_UNIT_PRICE]

    turn = await run(engine, text("25"))
    assert turn.flow == Flow.QUOTE_CURRENCY
    assert button_ids(turn) == ["cur_usd", "cur_xcd", "cur_ngn"]

    assert (await run(engine, choice("cur_usd"))).flow == Flow.QUOTE_AVAILABLE_QTY
    assert (await run(engine, text("100"))).flow == Flow.QUOTE_DELIVERY_DATE

    turn = await run(engine, text("next week"))
    assert turn.flow == Flow.QUOTE_DELIVERY_DATE
    assert strings.INVALID_DATE in bodies(turn)

    turn = await run(engine, text("skip"))
    assert turn.flow == Flow.QUOTE_NOTES
    assert turn.data["delivery_date"] is None

    turn = await run(engine, text("Grade A"))
    assert turn.flow == Flow.MENU
    facade.create_quote.assert_awaited_once()
    assert facade.create_quote.await_args.args[1:] == (
        "r1", {"unit_price": 25.0, "currency": "USD", "available_quantity": 100.0, "notes": "Grade A"},
    )
    assert bodies(turn)[0] == "Quote submitted for request r1 ✅"


# ---------------- Signup, login and OTP ---------------- #

def wrong_code(otp):
    return "111111" if otp != "111111" else "222222"


@pytest.mark.asyncio
async def test_signup_through_otp_verification(engine, facade, guard):
    facade.create_user.return_value = {"id": "u1", "email": "wa@signup.local"}
    facade.create_organization.return_value = {"id": "org-1"}
    facade.verify_user_email.return_value = True

    assert (await run(engine, choice("menu_signup"))).flow == Flow.SIGNUP_NAME
    assert (await run(engine, text("Ann Smith"))).flow == Flow.SIGNUP_ACCOUNT_TYPE
    assert (await run(engine, choice("acct_buyer"))).flow == Flow.SIGNUP_COUNTRY

    turn = await run(engine, choice("country_gd"))
    assert turn.flow == Flow.SIGNUP_OTP
    user_payload = facade.create_user.await_args.args[0]
    assert user_payload["fullname"] == "Ann Smith"
    assert user_payload["phone_number"] == "+" + PHONE
    assert user_payload["country"] == "Grenada"
    assert facade.create_organization.await_args.args[0]["business_type"] == "general"
    facade.ensure_org_admin.assert_awaited_once_with("u1", "org-1")
    otp = next(r for r in turn.outbox if r.kind == "otp").args["otp"]

    turn = await run(engine, text(otp))
    assert bodies(turn)[0].startswith("✅ Verified!")
    assert turn.flow == Flow.MENU
    facade.verify_user_email.assert_awaited_once_with(otp)
    facade.update_organization.assert_awaited_once_with("org-1", {"status": "active"})
    assert await guard.is_paired("u1", PHONE)


@pytest.mark.asyncio
async def test_login_by_otp(engine, facade, guard):
    await guard.mark_logged_out(PHONE)
    facade.find_user_by_phone.return_value = {"id": "u7", "fullname": "Dee", "email_verified": True}
    facade.get_user_membership.return_value = {"organization_id": "org-7", "account_type": "seller"}
    facade.verify_user_email.return_value = True

    turn = await run(engine, text("login"))
    assert turn.flow == Flow.SIGNUP_OTP
    assert not await guard.is_logged_out(PHONE)
    otp = next(r for r in turn.outbox if r.kind == "otp").args["otp"]

    turn = await run(engine, text(otp))
    assert turn.flow == Flow.MENU
    assert turn.user.id == "u7" and turn.user.is_seller
    assert await guard.is_paired("u7", PHONE)


@pytest.mark.asyncio
async def test_otp_attempts_are_bounded(engine, facade, guard):
    await guard.mark_logged_out(PHONE)
    facade.find_user_by_phone.return_value = {"id": "u7", "fullname": "Dee", "email_verified": True}
    facade.get_user_membership.return_value = {"organization_id": "org-7", "account_type": "buyer"}

    turn = await run(engine, text("login"))
    otp = next(r for r in turn.outbox if r.kind == "otp").args["otp"]

    for _ in range(5):
        turn = await run(engine, text(wrong_code(otp)))
        assert bodies(turn) == [strings.OTP_MISMATCH]
        assert turn.flow == Flow.SIGNUP_OTP

    turn = await run(engine, text(otp))
    assert bodies(turn)[0] == strings.TOO_MANY_ATTEMPTS
    assert turn.flow == Flow.MENU
    facade.verify_user_email.assert_not_awaited()


@pytest.mark.asyncio
async def test_unlock_attempts_are_bounded(engine, guard, seller):
    await guard.lock(SELLER.id)
    turn = await run(engine, text("unlock"))
    otp = next(r for r in turn.outbox if r.kind == "otp").args["otp"]

    for _ in range(5):
        assert bodies(await run(engine, text(wrong_code(otp)))) == [strings.OTP_MISMATCH]

    turn = await run(engine, text(otp))
    assert bodies(turn)[0] == strings.TOO_MANY_ATTEMPTS
    assert turn.flow == Flow.MENU
    assert await guard.is_locked(SELLER.id)


# ---------------- Locale ---------------- #

@pytest.mark.asyncio
async def test_spanish_menu_survives_reset(engine, seller):
    turn = await run(engine, choice("lang_es"))
    assert bodies(turn)[0] == strings.LANGUAGE_SET.format(locale="Español")
    assert bodies(turn)[1] == "¡Bienvenido de nuevo, Ann! Elige una acción:"

    turn = await run(engine, text("menu"))
    assert turn.locale == "es"
    assert dict(next(r for r in turn.outbox if r.kind == "buttons").args["buttons"])["menu_upload"] == "Subir producto"


@pytest.mark.asyncio
async def test_unknown_locale_falls_back_to_english(engine, deps, seller):
    await deps.store.set(PHONE, data={"locale": "fr"})
    turn = await run(engine, text("menu"))
    assert bodies(turn)[0] == "Welcome back, Ann! Pick an action:"


def test_missing_translation_falls_back_to_english_then_key():
    from agrichat.services.string_service import StringService

    service = StringService({"en": {"greet": "Hello {name}", "bye": "Bye"}, "es": {"greet": "Hola {name}"}})
    assert service.translate("es", "greet", name="Ann") == "Hola Ann"
    assert service.translate("es", "bye") == "Bye"
    assert service.translate("es", "unknown_key") == "unknown_key"


# ---------------- Transactions and pagination ---------------- #

def transactions(count, start=0):
    return [
        {"transaction_number": f"TX-{i}", "amount": 10, "currency": "XCD", "status": "paid"}
        for i in range(start, start + count)
    ]


@pytest.mark.asyncio
async def test_transactions_paginate_with_next_only_on_full_page(engine, facade, seller):
    facade.get_transactions.side_effect = lambda actor, page, limit: transactions(limit) if page == 1 else transactions(2, 5)

    turn = await run(engine, choice("tx_list_recent"))
    assert button_ids(turn) == ["tx_next"]
    assert bodies(turn)[0].startswith("Recent transactions:\nTX-0:")

    turn = await run(engine, choice("tx_next"))
    assert button_ids(turn) == ["tx_prev"]
    assert facade.get_transactions.await_args.args[1:] == (2, 5)
    assert "TX-5" in bodies(turn)[0]

    turn = await run(engine, choice("tx_prev"))
    assert facade.get_transactions.await_args.args[1] == 1


@pytest.mark.asyncio
async def test_transaction_detail(engine, facade, seller):
    facade.get_transaction.return_value = {"transaction_number": "TX-1", "status": "paid", "amount": 50, "currency": "XCD"}

    turn = await run(engine, choice("tx_check"))
    assert turn.flow == Flow.TX_CHECK_ID
    assert bodies(turn) == [strings.ASK_TRANSACTION_ID]

    turn = await run(engine, text("TX-1"))
    assert facade.get_transaction.await_args.args[1] == "TX-1"
    assert bodies(turn)[0] == "Transaction TX-1: paid, 50 XCD"
    assert turn.flow == Flow.MENU


# ---------------- Marketplace ---------------- #

PRODUCT = {
    "id": "p1", "name": "Yam", "current_price": 3, "currency": "XCD", "unit_of_measurement": "kg",
    "stock_quantity": 10, "seller": {"id": "s1", "name": "Green Farm"},
}


@pytest.mark.asyncio
async def test_marketplace_browse_and_add_to_cart(engine, facade, buyer):
    facade.browse_marketplace.return_value = [PRODUCT]
    facade.get_marketplace_product.return_value = PRODUCT
    facade.add_to_cart.return_value = {}

    turn = await run(engine, choice("menu_market"))
    assert turn.flow == Flow.MP_BROWSE
    rows = next(r for r in turn.outbox if r.kind == "list").args["sections"][0]["rows"]
    assert [row["id"] for row in rows] == ["mp_p1"]

    turn = await run(engine, choice("mp_p1"))
    assert button_ids(turn) == ["cart_add_p1", "farm_s1", "menu_market"]
    assert "• Seller: Green Farm" in bodies(turn)[0]

    turn = await run(engine, choice("cart_add_p1"))
    facade.add_to_cart.assert_awaited_once()
    assert facade.add_to_cart.await_args.args[1:] == ("p1", 1)
    assert bodies(turn)[0] == strings.ADDED_TO_CART
    assert turn.flow == Flow.MP_BROWSE


@pytest.mark.asyncio
async def test_marketplace_next_page_only_after_full_page(engine, facade, buyer):
    facade.browse_marketplace.side_effect = lambda actor, page, limit: [
        {**PRODUCT, "id": f"p{page}{i}"} for i in range(limit if page == 1 else 1)
    ]

    turn = await run(engine, choice("menu_market"))
    ids = [row["id"] for row in next(r for r in turn.outbox if r.kind == "list").args["sections"][0]["rows"]]
    assert ids[-1] == "mp_next"

    turn = await run(engine, choice("mp_next"))
    ids = [row["id"] for row in next(r for r in turn.outbox if r.kind == "list").args["sections"][0]["rows"]]
    assert ids == ["mp_p20", "mp_prev"]
