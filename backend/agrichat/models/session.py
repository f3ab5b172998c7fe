# /agrichat/models/session.py

import time
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

# Conversation state kept per WhatsApp number. The JSON form (camelCase keys)
# is what the durable store persists.


class Flow(str, Enum):
    MENU = "menu"
    # Signup, login and verification
    SIGNUP_NAME = "signup_name"
    SIGNUP_ACCOUNT_TYPE = "signup_account_type"
    SIGNUP_COUNTRY = "signup_country"
    SIGNUP_FARMERS_ID = "signup_farmers_id"
    SIGNUP_OTP = "signup_otp"
    UNLOCK_OTP = "unlock_otp"
    # Product upload and inventory
    UPLOAD_NAME = "upload_name"
    UPLOAD_CATEGORY = "upload_category"
    UPLOAD_SHORT_DESC = "upload_short_desc"
    UPLOAD_DESC = "upload_desc"
    UPLOAD_PRICE = "upload_price"
    UPLOAD_QTY = "upload_qty"
    UPLOAD_UNIT = "upload_unit"
    UPLOAD_PHOTO = "upload_photo"
    INVENTORY_BROWSE = "inventory_browse"
    # Harvests
    HARVEST_CROP = "harvest_crop"
    HARVEST_WINDOW = "harvest_window"
    HARVEST_QTY = "harvest_qty"
    HARVEST_UNIT = "harvest_unit"
    HARVEST_NOTES = "harvest_notes"
    # Requests and quotes
    QUOTE_UNIT_PRICE = "quote_unit_price"
    QUOTE_CURRENCY = "quote_currency"
    QUOTE_AVAILABLE_QTY = "quote_available_qty"
    QUOTE_DELIVERY_DATE = "quote_delivery_date"
    QUOTE_NOTES = "quote_notes"
    HBR_MESSAGE = "hbr_message"
    # Orders
    ORDERS_LIST = "orders_list"
    ORDER_ACCEPT_ETA = "order_accept_eta"
    ORDER_ACCEPT_SHIPPING = "order_accept_shipping"
    ORDER_REJECT_REASON = "order_reject_reason"
    ORDER_UPDATE_STATUS = "order_update_status"
    ORDER_UPDATE_TRACKING = "order_update_tracking"
    # Transactions and marketplace
    TX_CHECK_ID = "tx_check_id"
    MP_BROWSE = "mp_browse"

    @classmethod
    def parse(cls, value: Any) -> "Flow":
        """Unknown or stale step names fall back to the menu."""
        if isinstance(value, Flow):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.MENU


def now_ms() -> int:
    return int(time.time() * 1000)


class SessionUser(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: Optional[str] = None
    org_id: Optional[str] = Field(default=None, alias="organizationId")
    account_type: Optional[str] = Field(default=None, alias="accountType")
    name: Optional[str] = None

    @property
    def is_seller(self) -> bool:
        return self.account_type == "seller"

    @property
    def is_buyer(self) -> bool:
        return self.account_type == "buyer"


class Session(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    flow: Flow = Flow.MENU
    data: Dict[str, Any] = Field(default_factory=dict)
    user: Optional[SessionUser] = None
    updated_at: int = Field(default_factory=now_ms, alias="updatedAt")

    @field_validator("flow", mode="before")
    @classmethod
    def fallback_unknown_flow(cls, v):
        return Flow.parse(v)

    @property
    def locale(self) -> str:
        return self.data.get("locale") or "en"

    @property
    def previous(self) -> Optional[Dict[str, Any]]:
        prev = self.data.get("_prev")
        return prev if isinstance(prev, dict) and prev.get("flow") else None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)
