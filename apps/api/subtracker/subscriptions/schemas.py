from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SubscriptionCreate(BaseModel):
    service_name: str = Field(min_length=1, max_length=100)
    price: int
    user_id: UUID
    start_date: str
    end_date: str | None = None

    @field_validator("service_name")
    @classmethod
    def _strip_service_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("service_name must not be blank")
        return stripped


class SubscriptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    service_name: str
    price: int
    user_id: UUID
    start_date: str
    end_date: str | None = None
    created_at: datetime
    updated_at: datetime


class SubscriptionFilter(BaseModel):
    service_name: str | None = None
    min_price: int = Field(default=0, ge=0)
    max_price: int = Field(default=0, ge=0)
    limit: int = Field(default=10, ge=1)
    offset: int = Field(default=0, ge=0)


class ExtendSubscriptionRequest(BaseModel):
    end_date: str
    price: int


class CostPeriod(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(alias="from")
    to: str


class TotalCostRead(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_cost: int
    period: CostPeriod
    details: list[str] = Field(default_factory=list)
    is_forecast: bool = False
    warning: str | None = None
