from datetime import date, datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import BillingCycle


class SubscriptionIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    amount_cents: int = Field(..., ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    billing_cycle: BillingCycle
    next_renewal_date: date
    category_id: int
    alert_days: Optional[int] = Field(default=None, ge=0, le=365)
    description: Optional[str] = Field(default=None, max_length=500)


class SubscriptionUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    billing_cycle: Optional[BillingCycle] = None
    next_renewal_date: Optional[date] = None
    category_id: Optional[int] = None
    alert_days: Optional[int] = Field(default=None, ge=0, le=365)
    description: Optional[str] = Field(default=None, max_length=500)
    is_active: Optional[bool] = None


class SubscriptionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    amount_cents: int
    currency: Optional[str]
    billing_cycle: BillingCycle
    next_renewal_date: date
    category_id: int
    alert_days: Optional[int]
    is_active: bool
    description: Optional[str]


class IdsIn(BaseModel):
    ids: list[int] = Field(..., min_length=1)

    @field_validator("ids", mode="before")
    @classmethod
    def _wrap_single_id(cls, value: Union[int, list[int]]):
        if isinstance(value, int):
            return [value]
        return value


class TriggerChecksIn(BaseModel):
    target_hour: Optional[int] = Field(default=None, ge=0, le=23)
    target_minute: Optional[int] = Field(default=None, ge=0, le=59)
    custom_date: Optional[datetime] = None
