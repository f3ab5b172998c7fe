# /agrichat/conversation/flows/menu.py

import logging

from agrichat.config import strings
from agrichat.config.strings import SUPPORTED_LOCALES
from agrichat.conversation.access import requires_org
from agrichat.conversation.context import Turn, brand
from agrichat.conversation.machine import machine
from agrichat.models.extraction import RagAnswer
from agrichat.models.session import Flow

# The resting state: menus per account type, language, undo, FAQ and the
# free-form help command.

logger = logging.getLogger(__name__)


@machine.prompt(Flow.MENU)
async def show_menu(turn: Turn):
    user = turn.user
    if not user:
        turn.buttons(strings.WELCOME_UNBOUND.format(brand=brand()), [
            ("menu_signup", turn.t("sign_up")),
            ("menu_login", turn.t("login")),
        ])
        return

    welcome = turn.t("welcome_back", name=user.name or "there")
    if user.is_seller:
        turn.buttons(welcome, [
            ("menu_upload", turn.t("upload_product")),
            ("menu_harvest", turn.t("post_harvest")),
            ("menu_requests", turn.t("requests_quotes")),
        ])
        turn.list(turn.t("more"), turn.t("more"), "Options", [
            {"id": "menu_inventory", "title": turn.t("my_products")},
            {"id": "menu_orders", "title": turn.t("orders")},
            {"id": "menu_transactions", "title": turn.t("transactions")},
            {"id": "menu_faq", "title": turn.t("faq")},
        ])
    else:
        turn.buttons(welcome, [
            ("menu_market", turn.t("browse_products")),
            ("menu_cart", turn.t("my_cart")),
            ("menu_orders", turn.t("orders")),
        ])
        turn.buttons(turn.t("more"), [
            ("menu_transactions", turn.t("transactions")),
            ("menu_faq", turn.t("faq")),
        ])

    turn.buttons(turn.t("settings"), [
        ("menu_lang", turn.t("change_language")),
        ("menu_undo", turn.t("undo")),
    ])
    if await turn.guard.is_locked(user.id):
        lock_button = ("menu_unlock", turn.t("unlock_account"))
    else:
        lock_button = ("menu_lock", turn.t("lock_account"))
    turn.buttons(turn.t("account"), [lock_button, ("menu_logout", turn.t("logout"))])


@machine.command("menu", "hi")
@machine.on(Flow.MENU)
async def back_to_menu(turn: Turn):
    await turn.reset()
    await turn.menu()


# ---------------- Language ---------------- #

@machine.choice("menu_lang")
async def pick_language(turn: Turn):
    turn.list("Language", turn.t("change_language"), "Languages", [
        {"id": f"lang_{code}", "title": name} for code, name in SUPPORTED_LOCALES.items()
    ])


@machine.choice_prefix("lang_")
async def set_language(turn: Turn, suffix: str):
    if suffix not in SUPPORTED_LOCALES:
        await turn.menu()
        return
    await turn.update(data={"locale": suffix})
    turn.text(strings.LANGUAGE_SET.format(locale=SUPPORTED_LOCALES[suffix]))
    await turn.menu()


# ---------------- Undo ---------------- #

@machine.command("undo")
@machine.choice("menu_undo")
async def undo(turn: Turn):
    restored = await turn.store.undo(turn.phone)
    if restored is None:
        turn.text(strings.NOTHING_TO_UNDO)
        return
    turn.session = restored
    turn.text(strings.UNDO_DONE)
    await turn.prompt()


# ---------------- FAQ and help ---------------- #

def render_answer(answer: RagAnswer) -> str:
    if not answer.citations:
        return answer.answer
    titles = [c.get("title") or "context" for c in answer.citations[:3]]
    return f"{answer.answer}\n\nSources: {', '.join(titles)}"


@machine.choice("menu_faq")
async def faq_topics(turn: Turn):
    if not await requires_org(turn):
        return
    turn.list("FAQ", "Pick a topic", "Topics", [
        {"id": "faq_harvest", "title": "Post a harvest"},
        {"id": "faq_quotes", "title": "Send a quote"},
        {"id": "faq_orders", "title": "Manage orders"},
        {"id": "faq_transactions", "title": "Transactions"},
    ])


@machine.choice_prefix("faq_")
async def faq_answer(turn: Turn, suffix: str):
    if not await requires_org(turn):
        return
    question = strings.FAQ_QUESTIONS.get(f"faq_{suffix}")
    if not question:
        await faq_topics(turn)
        return
    try:
        answer = await turn.deps.ai.answer_with_rag(turn.user.org_id, question, ["faq"])
    except Exception as e:
        logger.error(f"FAQ answer failed for {turn.phone}: {e}")
        turn.text(strings.FAQ_FAILED)
        return
    turn.text(render_answer(answer))


@machine.command("help", "how", prefix=True)
async def help_command(turn: Turn):
    if not turn.user or not turn.user.org_id:
        turn.text(strings.SIGN_UP_TO_BEGIN)
        return
    question = turn.event.text.strip()
    if turn.event.lower == "help":
        question = strings.DEFAULT_HELP_QUESTION.format(brand=brand())
    try:
        answer = await turn.deps.ai.answer_with_rag(turn.user.org_id, question)
    except Exception as e:
        logger.error(f"Help answer failed for {turn.phone}: {e}")
        turn.text(strings.HELP_FAILED)
        return
    turn.text(render_answer(answer))
