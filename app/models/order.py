from typing import List

from pydantic import BaseModel, Field


class OrderLineItem(BaseModel):
    customer: str
    po: str
    style: str
    description: str
    qty: int
    unit_price: float
    total_amount: float


class ParsedOrder(BaseModel):
    customer: str = ""
    po: str = ""
    items: List[OrderLineItem] = Field(default_factory=list)


class ParseRequest(BaseModel):
    text: str = Field(..., description="Plain text of a purchase order.")
