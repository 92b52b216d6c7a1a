"""Stock Transaction Schemas"""

from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from stockledger.models.transaction import TransactionStatus, TransactionType


# Line Schemas
class TransactionLineBase(BaseModel):
    item_id: int = Field(..., gt=0)
    quantity: int = Field(..., description="At least 1; signed and non-zero for adjustments")
    unit_price: Decimal = Field(Decimal("0"), ge=0)
    location_note: Optional[str] = Field(None, max_length=50)


class TransactionLineCreate(TransactionLineBase):
    pass


class TransactionLine(TransactionLineBase):
    id: int
    line_no: int

    model_config = ConfigDict(from_attributes=True)


# Transaction Schemas
class TransactionCreate(BaseModel):
    type: TransactionType
    items: List[TransactionLineCreate] = Field(default_factory=list)
    from_location_id: Optional[int] = None
    to_location_id: Optional[int] = None
    counterparty_name: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "type": "delivery",
            "from_location_id": 1,
            "counterparty_name": "Harbour Tackle Ltd",
            "items": [{"item_id": 7, "quantity": 30, "unit_price": "12.50"}],
        }
    })


class StatusChange(BaseModel):
    status: TransactionStatus


class Transaction(BaseModel):
    id: int
    reference: str
    type: TransactionType
    status: TransactionStatus
    from_location_id: Optional[int] = None
    to_location_id: Optional[int] = None
    counterparty_name: Optional[str] = None
    notes: Optional[str] = None
    created_by: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    lines: List[TransactionLine] = []

    model_config = ConfigDict(from_attributes=True)
