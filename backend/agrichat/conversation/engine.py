# /agrichat/conversation/engine.py

import logging
from typing import Iterable, Optional

import structlog

from agrichat.config import strings
from agrichat.config.settings import settings
from agrichat.conversation.context import Collaborators, Turn
from agrichat.conversation.machine import machine
from agrichat.conversation.shortcut import try_shortcut
from agrichat.models.inbound import Event, EventKind
from agrichat.models.session import Flow, Session
from agrichat.services.account_guard import account_guard
from agrichat.services.ai_service import ai_service
from agrichat.services.marketplace import BusinessError, marketplace
from agrichat.services.media_service import media_service
from agrichat.services.session_store import session_store
from agrichat.services.string_service import string_service
from agrichat.utils.metrics import facade_errors_counter, locked_rejections_counter, transitions_counter

# Flow modules register their handlers on import.
from agrichat.conversation.flows import account, harvest, marketplace as marketplace_flow, menu, orders  # noqa: F401
from agrichat.conversation.flows import products, quotes, transactions  # noqa: F401

logger = logging.getLogger(__name__)


class ConversationEngine:
    """
    Runs one inbound event against the session: idle lock, phone hydration,
    the account lock gate, then the transition table. Replies are collected
    on the returned turn's outbox.
    """

    def __init__(self, deps: Collaborators, strict_flows: Iterable[str], min_score: int = 2):
        self.deps = deps
        self.strict_flows = set(strict_flows)
        self.min_score = min_score

    async def handle(self, phone: str, event: Event, session: Optional[Session] = None) -> Turn:
        if session is None:
            session = await self.deps.store.get(phone)
        turn = Turn(phone, session, event, self.deps)
        with structlog.contextvars.bound_contextvars(**turn.log_context()):
            try:
                await self._run(turn)
            except BusinessError as e:
                facade_errors_counter.labels(operation=e.operation).inc()
                logger.error(f"{e.operation} failed for {phone} in flow {turn.flow.value}: {e}")
                await self._recover(turn)
            except Exception as e:
                logger.exception(f"Unhandled error for {phone} in flow {turn.flow.value}: {e}")
                await self._recover(turn)
        return turn

    async def _recover(self, turn: Turn):
        turn.text(strings.GENERIC_RETRY)
        try:
            await turn.reset()
            await turn.menu()
        except Exception as e:
            logger.error(f"Could not return {turn.phone} to the menu: {e}")

    async def _run(self, turn: Turn):
        guard = self.deps.guard
        if turn.user:
            just_locked = await guard.lock_if_idle(turn.user.id)
            await guard.touch(turn.user.id)
            if just_locked:
                await turn.audit("account_locked_idle")
                turn.text(strings.ACCOUNT_LOCKED_IDLE)
                if turn.event.lower != "unlock":
                    return

        await turn.audit("inbound_message", type=turn.event.kind.value)

        if not turn.user and not await guard.is_logged_out(turn.phone):
            if await account.hydrate(turn):
                return

        await self.route(turn)

    def _reject_locked(self, turn: Turn):
        locked_rejections_counter.inc()
        turn.text(strings.ACCOUNT_LOCKED)

    async def route(self, turn: Turn):
        event = turn.event
        locked = bool(turn.user) and await self.deps.guard.is_locked(turn.user.id)
        transitions_counter.labels(flow=turn.flow.value, kind=event.kind.value).inc()

        if event.kind == EventKind.CHOICE:
            if locked and event.choice_id != "menu_unlock":
                self._reject_locked(turn)
                return
            handler, suffix = machine.choice_handler(event.choice_id or "")
            if handler is None:
                logger.info(f"Unknown choice '{event.choice_id}' from {turn.phone}")
                await turn.menu()
            elif suffix is None:
                await handler(turn)
            else:
                await handler(turn, suffix)
            return

        if locked:
            if event.kind == EventKind.TEXT and event.lower == "unlock":
                await machine.command_handler("unlock")(turn)
            elif event.kind == EventKind.TEXT and turn.flow == Flow.UNLOCK_OTP:
                await machine.step_handler(Flow.UNLOCK_OTP, EventKind.TEXT)(turn)
            else:
                self._reject_locked(turn)
            return

        if event.kind == EventKind.IMAGE:
            handler = machine.step_handler(turn.flow, EventKind.IMAGE)
            if handler:
                await handler(turn)
            elif turn.flow == Flow.INVENTORY_BROWSE:
                turn.text(strings.IMAGE_IN_INVENTORY)
            else:
                turn.text(strings.IMAGE_NOT_EXPECTED)
            return

        if event.kind == EventKind.OTHER:
            turn.text(strings.UNSUPPORTED_MESSAGE)
            return

        command = machine.command_handler(event.lower)
        if command:
            await command(turn)
            return
        if turn.flow.value not in self.strict_flows and await try_shortcut(turn, self.min_score):
            return
        handler = machine.step_handler(turn.flow, EventKind.TEXT) or machine.step_handler(Flow.MENU, EventKind.TEXT)
        await handler(turn)


# Globally accessible instance
conversation_engine = ConversationEngine(
    Collaborators(
        store=session_store,
        facade=marketplace,
        guard=account_guard,
        ai=ai_service,
        media=media_service,
        strings=string_service,
    ),
    strict_flows=settings.strict_flows,
    min_score=settings.ai_shortcut_min_score,
)
