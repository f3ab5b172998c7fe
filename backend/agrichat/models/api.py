# /agrichat/models/api.py

from pydantic import BaseModel, Field
from typing import Dict, Optional
from datetime import datetime, timezone

# Request and response bodies for the HTTP surface (admin and health).


class APIResponse(BaseModel):
    success: bool
    message: str
    data: Optional[Dict] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str


class TokenRotationRequest(BaseModel):
    token: str = Field(..., min_length=10, max_length=1024)


class OptOutRequest(BaseModel):
    phone: str = Field(..., min_length=6, max_length=20)
    opted_out: bool = True


class NewOrderNotification(BaseModel):
    user_id: str
    phone: str
    order_number: str
    buyer_name: str
    total_amount: float
    currency: str
    manage_url: Optional[str] = None
    locale: str = "en"


class OrderUpdateNotification(BaseModel):
    user_id: str
    phone: str
    order_number: str
    status: str
    tracking_number: Optional[str] = None
    locale: str = "en"
