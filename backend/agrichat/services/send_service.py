# /agrichat/services/send_service.py

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from agrichat.utils.queue import OutboundQueue, outbound_queue

# Builds WhatsApp Cloud API message payloads and hands them to the outbound
# queue. Nothing here talks to the Graph API directly; callers only wait for
# durable acceptance.

logger = logging.getLogger(__name__)

MENU_TIP = 'Tip: Type "menu" anytime for options.'
MAX_TEXT_LENGTH = 4096
MAX_BUTTONS = 3
BUTTON_TITLE_LIMIT = 20
LIST_TITLE_LIMIT = 24
LIST_DESCRIPTION_LIMIT = 60


def truncate(value: str, limit: int) -> str:
    value = str(value or "")
    if len(value) <= limit:
        return value
    return value[: limit - 1] + "…"


def with_menu_tip(body: str) -> str:
    if 'type "menu"' in body.lower():
        return body
    return f"{body}\n\n{MENU_TIP}"


class SendService:
    def __init__(self, queue: OutboundQueue):
        self.queue = queue

    async def _enqueue(self, payload: Dict[str, Any], kind: str, **meta: Any) -> str:
        job_id = await self.queue.enqueue(payload, {"kind": kind, **meta})
        logger.debug(f"Queued {kind} message {job_id} for {str(payload.get('to', ''))[:4]}...")
        return job_id

    async def text(self, to: str, body: str, **meta: Any) -> str:
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": with_menu_tip(body)[:MAX_TEXT_LENGTH]},
        }
        return await self._enqueue(payload, "text", **meta)

    async def buttons(self, to: str, body: str, buttons: Sequence[Tuple[str, str]], **meta: Any) -> str:
        """`buttons` is a sequence of (id, title); only the first three are sent."""
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "interactive",
            "interactive": {
                "type": "button",
                "body": {"text": body[:1024]},
                "action": {
                    "buttons": [
                        {"type": "reply", "reply": {"id": bid, "title": truncate(title, BUTTON_TITLE_LIMIT)}}
                        for bid, title in list(buttons)[:MAX_BUTTONS]
                    ]
                },
            },
        }
        return await self._enqueue(payload, "buttons", **meta)

    async def list(
        self,
        to: str,
        header: str,
        body: str,
        button: str,
        sections: List[Dict[str, Any]],
        **meta: Any,
    ) -> str:
        """
        `sections` items look like {"title": str, "rows": [{"id", "title", "description"?}]}.
        """
        shaped = []
        for section in sections:
            rows = []
            for row in section.get("rows", []):
                item = {"id": row["id"], "title": truncate(row["title"], LIST_TITLE_LIMIT)}
                if row.get("description"):
                    item["description"] = truncate(row["description"], LIST_DESCRIPTION_LIMIT)
                rows.append(item)
            shaped.append({"title": truncate(section.get("title", ""), LIST_TITLE_LIMIT), "rows": rows})

        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "interactive",
            "interactive": {
                "type": "list",
                "header": {"type": "text", "text": truncate(header, 60)},
                "body": {"text": body[:1024]},
                "action": {"button": truncate(button, BUTTON_TITLE_LIMIT), "sections": shaped},
            },
        }
        return await self._enqueue(payload, "list", **meta)

    async def image(self, to: str, link: str, caption: Optional[str] = None, **meta: Any) -> str:
        image: Dict[str, Any] = {"link": link}
        if caption:
            image["caption"] = caption[:1024]
        payload = {"messaging_product": "whatsapp", "to": to, "type": "image", "image": image}
        return await self._enqueue(payload, "image", **meta)

    async def template(
        self,
        to: str,
        name: str,
        parameters: Sequence[Any] = (),
        language: str = "en_US",
        **meta: Any,
    ) -> str:
        """Positional body parameters are substituted in the order given."""
        template: Dict[str, Any] = {"name": name, "language": {"code": language}}
        if parameters:
            template["components"] = [
                {
                    "type": "body",
                    "parameters": [{"type": "text", "text": str(p)} for p in parameters],
                }
            ]
        payload = {"messaging_product": "whatsapp", "to": to, "type": "template", "template": template}
        return await self._enqueue(payload, "template", template=name, **meta)


# Globally accessible instance
send_service = SendService(outbound_queue)
