# /agrichat/models/extraction.py

from typing import Any, List, Optional
from pydantic import BaseModel, ConfigDict, field_validator

# Candidate structures the AI extractor may recognise in free text. Each
# candidate scores one point per populated field that counts as a strong
# signal for its flow.


def clean_number(v: Any) -> Optional[float]:
    if v is None or v == "" or isinstance(v, bool):
        return None
    try:
        n = float(str(v).replace(",", ""))
    except ValueError:
        return None
    return n if n > 0 else None


def clean_text(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


class Candidate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: str = ""

    def signals(self) -> List[Any]:
        return []

    @property
    def score(self) -> int:
        return sum(1 for s in self.signals() if s)


class ProductCandidate(Candidate):
    kind: str = "product"
    name: Optional[str] = None
    base_price: Optional[float] = None
    currency: Optional[str] = None
    unit: Optional[str] = None

    @field_validator("base_price", mode="before")
    @classmethod
    def numbers(cls, v):
        return clean_number(v)

    @field_validator("name", "currency", "unit", mode="before")
    @classmethod
    def texts(cls, v):
        return clean_text(v)

    def signals(self):
        return [self.name, self.base_price, self.currency]


class HarvestCandidate(Candidate):
    kind: str = "harvest"
    crop: Optional[str] = None
    quantity: Optional[float] = None
    unit: Optional[str] = None
    expected_harvest_window: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("quantity", mode="before")
    @classmethod
    def numbers(cls, v):
        return clean_number(v)

    @field_validator("crop", "unit", "expected_harvest_window", "notes", mode="before")
    @classmethod
    def texts(cls, v):
        return clean_text(v)

    def signals(self):
        return [self.crop, self.quantity, self.unit, self.expected_harvest_window]

    @property
    def complete(self) -> bool:
        return all(self.signals())


class QuoteCandidate(Candidate):
    kind: str = "quote"
    request_id: Optional[str] = None
    unit_price: Optional[float] = None
    currency: Optional[str] = None
    available_quantity: Optional[float] = None
    delivery_date: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("unit_price", "available_quantity", mode="before")
    @classmethod
    def numbers(cls, v):
        return clean_number(v)

    @field_validator("request_id", "currency", "delivery_date", "notes", mode="before")
    @classmethod
    def texts(cls, v):
        return clean_text(v)

    def signals(self):
        return [self.request_id, self.unit_price, self.currency, self.available_quantity]

    @property
    def complete(self) -> bool:
        return all(self.signals())


class OrderActionCandidate(Candidate):
    kind: str = "order"
    action: Optional[str] = None
    order_id: Optional[str] = None
    status: Optional[str] = None
    reason: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_delivery_date: Optional[str] = None

    @field_validator(
        "order_id", "status", "reason", "tracking_number", "estimated_delivery_date", mode="before"
    )
    @classmethod
    def texts(cls, v):
        return clean_text(v)

    @field_validator("action", mode="before")
    @classmethod
    def known_action(cls, v):
        v = clean_text(v)
        if v is None:
            return None
        v = v.lower()
        return v if v in ("accept", "reject", "update") else None

    def signals(self):
        return [self.action, self.order_id, self.status]


class RagAnswer(BaseModel):
    answer: str
    citations: List[dict] = []
