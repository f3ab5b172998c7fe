# /agrichat/models/inbound.py

from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel

# Parsed form of a WhatsApp Cloud API webhook delivery. Only the first
# message of the first change is considered, matching how the provider
# batches user messages (one per delivery).


class EventKind(str, Enum):
    TEXT = "text"
    CHOICE = "choice"
    IMAGE = "image"
    OTHER = "other"


class Event(BaseModel):
    """One inbound signal as the state machine sees it."""
    kind: EventKind
    text: str = ""
    choice_id: Optional[str] = None
    media_id: Optional[str] = None

    @property
    def lower(self) -> str:
        return self.text.strip().lower()


class InboundMessage(BaseModel):
    id: Optional[str] = None
    from_number: str
    type: str
    text: str = ""
    choice_id: Optional[str] = None
    media_id: Optional[str] = None
    profile_name: Optional[str] = None
    phone_number_id: Optional[str] = None

    @classmethod
    def from_webhook(cls, body: Dict[str, Any]) -> Optional["InboundMessage"]:
        """Returns None for deliveries without a user message (status callbacks)."""
        try:
            value = body["entry"][0]["changes"][0]["value"]
        except (KeyError, IndexError, TypeError):
            return None
        if not isinstance(value, dict):
            return None
        messages = value.get("messages") or []
        if not messages:
            return None
        msg = messages[0]
        if not msg.get("from"):
            return None

        interactive = msg.get("interactive") or {}
        button_reply = interactive.get("button_reply") or {}
        list_reply = interactive.get("list_reply") or {}
        text = (
            (msg.get("text") or {}).get("body")
            or (msg.get("button") or {}).get("text")
            or button_reply.get("title")
            or ""
        )
        contacts = value.get("contacts") or [{}]
        return cls(
            id=msg.get("id"),
            from_number=str(msg["from"]).lstrip("+"),
            type=msg.get("type") or "unknown",
            text=text,
            choice_id=button_reply.get("id") or list_reply.get("id"),
            media_id=(msg.get("image") or {}).get("id"),
            profile_name=((contacts[0] or {}).get("profile") or {}).get("name"),
            phone_number_id=(value.get("metadata") or {}).get("phone_number_id"),
        )

    def to_event(self) -> Event:
        if self.choice_id:
            return Event(kind=EventKind.CHOICE, text=self.text, choice_id=self.choice_id)
        if self.type == "image" and self.media_id:
            return Event(kind=EventKind.IMAGE, media_id=self.media_id)
        if self.type in ("text", "button") or self.text:
            return Event(kind=EventKind.TEXT, text=self.text)
        return Event(kind=EventKind.OTHER)
