# /agrichat/models/outbound.py

import uuid
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from agrichat.models.session import now_ms


class OutboundJob(BaseModel):
    """One Graph API message send, as stored on the outbound queue."""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    payload: Dict[str, Any]
    meta: Dict[str, Any] = Field(default_factory=dict)
    attempts: int = 0
    enqueued_at: int = Field(default_factory=now_ms)
    last_error: Optional[str] = None
    finished_at: Optional[int] = None
