# /agrichat/conversation/context.py

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from agrichat.config.settings import settings
from agrichat.conversation.machine import machine
from agrichat.models.inbound import Event
from agrichat.models.session import Flow, Session, SessionUser
from agrichat.services.account_guard import AccountGuard
from agrichat.services.ai_service import AIService
from agrichat.services.marketplace import MarketplaceFacade
from agrichat.services.media_service import MediaService
from agrichat.services.security_service import SecurityService
from agrichat.services.session_store import SessionStore
from agrichat.services.string_service import StringService

# One inbound event being handled. Handlers read the session and event from
# here, write session changes through the store, and queue replies on the
# outbox. Nothing is sent until the dispatcher flushes the outbox, so a turn
# can be run and inspected without a live queue.

logger = logging.getLogger(__name__)


@dataclass
class Collaborators:
    store: SessionStore
    facade: MarketplaceFacade
    guard: AccountGuard
    ai: AIService
    media: MediaService
    strings: StringService


@dataclass
class Reply:
    """A reply to flush. `kind` is a send service helper name, or `otp` / `order_update`."""
    kind: str
    args: Dict[str, Any] = field(default_factory=dict)


class Turn:
    def __init__(self, phone: str, session: Session, event: Event, deps: Collaborators):
        self.phone = phone
        self.session = session
        self.event = event
        self.deps = deps
        self.outbox: List[Reply] = []

    # ---------------- Accessors ---------------- #

    @property
    def user(self) -> Optional[SessionUser]:
        return self.session.user

    @property
    def data(self) -> Dict[str, Any]:
        return self.session.data

    @property
    def flow(self) -> Flow:
        return self.session.flow

    @property
    def locale(self) -> str:
        return self.session.locale

    @property
    def phone_e164(self) -> str:
        return SecurityService.to_e164(self.phone)

    @property
    def store(self) -> SessionStore:
        return self.deps.store

    @property
    def facade(self) -> MarketplaceFacade:
        return self.deps.facade

    @property
    def guard(self) -> AccountGuard:
        return self.deps.guard

    def t(self, key: str, **params: Any) -> str:
        return self.deps.strings.translate(self.locale, key, **params)

    # ---------------- Replies ---------------- #

    def text(self, body: str):
        self.outbox.append(Reply("text", {"body": body}))

    def buttons(self, body: str, buttons: Sequence[Tuple[str, str]]):
        self.outbox.append(Reply("buttons", {"body": body, "buttons": list(buttons)}))

    def list(self, header: str, body: str, button: str, rows: List[Dict[str, Any]], section: Optional[str] = None):
        sections = [{"title": section or header, "rows": rows}]
        self.outbox.append(Reply("list", {"header": header, "body": body, "button": button, "sections": sections}))

    def image(self, link: str, caption: Optional[str] = None):
        self.outbox.append(Reply("image", {"link": link, "caption": caption}))

    def otp(self, code: str):
        self.outbox.append(Reply("otp", {"otp": code, "locale": self.locale}))

    def order_update(self, order_number: str, status: str, tracking: Optional[str] = None):
        self.outbox.append(Reply("order_update", {
            "order_number": order_number, "status": status, "tracking": tracking, "locale": self.locale,
        }))

    # ---------------- Session changes ---------------- #

    async def update(
        self,
        flow: Optional[Flow] = None,
        data: Optional[Dict[str, Any]] = None,
        user: Optional[SessionUser] = None,
        replace_data: bool = False,
    ) -> Session:
        self.session = await self.store.set(self.phone, flow=flow, data=data, user=user, replace_data=replace_data)
        return self.session

    async def reset(self, flow: Flow = Flow.MENU, data: Optional[Dict[str, Any]] = None) -> Session:
        """Moves to `flow` with fresh step data. The locale survives."""
        return await self.update(flow=flow, data=data or {}, replace_data=True)

    async def prompt(self, flow: Optional[Flow] = None):
        handler = machine.prompt_handler(flow or self.flow)
        if handler is None:
            handler = machine.prompt_handler(Flow.MENU)
        await handler(self)

    async def menu(self):
        await self.prompt(Flow.MENU)

    async def done(self, message: str):
        """Confirms a finished flow and returns to the menu."""
        self.text(message)
        await self.reset()
        await self.menu()

    async def audit(self, event: str, **meta: Any):
        payload = {"phone": self.phone, **meta}
        if self.user:
            payload.setdefault("user_id", self.user.id)
        try:
            await self.facade.record_audit(event, payload)
        except Exception as e:
            logger.warning(f"Audit '{event}' not recorded for {self.phone}: {e}")

    async def index_context(self, scope: str, ref_id: Optional[str], title: str, content: str,
                            metadata: Optional[Dict[str, Any]] = None):
        if not self.user or not self.user.org_id:
            return
        try:
            await self.facade.index_context(self.user.org_id, scope, ref_id, title, content, metadata)
        except Exception as e:
            logger.warning(f"Could not index {scope} {ref_id} for help answers: {e}")

    def log_context(self) -> Dict[str, Any]:
        return {
            "phone": self.phone,
            "flow": self.flow.value,
            "user_id": self.user.id if self.user else None,
        }


def brand() -> str:
    return settings.brand_name
