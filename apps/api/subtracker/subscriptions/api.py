from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

from fastapi import APIRouter, Depends, Path, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from subtracker.context import get_correlation_id
from subtracker.core.config import get_settings
from subtracker.core.database import get_db
from subtracker.subscriptions.errors import ErrorKind, SubscriptionError
from subtracker.subscriptions.months import current_bucket
from subtracker.subscriptions.schemas import (
    CostPeriod,
    ExtendSubscriptionRequest,
    SubscriptionCreate,
    SubscriptionFilter,
    SubscriptionRead,
    TotalCostRead,
)
from subtracker.subscriptions.service import subscription_service


router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])

FORECAST_WARNING = "Period includes future dates - this is a forecast based on active subscriptions"

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.STORAGE_FAILURE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(request: Request, exc: SubscriptionError) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    status_code = _STATUS_BY_KIND.get(exc.kind, status.HTTP_400_BAD_REQUEST)
    # storage internals stay out of client responses
    message = "internal error" if exc.kind is ErrorKind.STORAGE_FAILURE else exc.message
    payload = ErrorEnvelope(
        code=exc.kind.value,
        message=message,
        details=None,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


@router.post("", response_model=SubscriptionRead, status_code=status.HTTP_201_CREATED)
def create_subscription(
    request: Request,
    payload: SubscriptionCreate,
    db: Session = Depends(get_db),
) -> SubscriptionRead | JSONResponse:
    try:
        return subscription_service.create(db, payload)
    except SubscriptionError as exc:
        return error_response(request, exc)


@router.get("/total", response_model=TotalCostRead, response_model_exclude_none=True)
def get_total_cost(
    request: Request,
    user_id: uuid.UUID = Query(),
    period_from: str = Query(alias="from"),
    period_to: str = Query(alias="to"),
    service_name: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> TotalCostRead | JSONResponse:
    try:
        breakdown = subscription_service.compute_total_cost(db, user_id, service_name, period_from, period_to)
    except SubscriptionError as exc:
        return error_response(request, exc)

    is_forecast = breakdown.period_to > current_bucket(subscription_service.now())
    return TotalCostRead(
        total_cost=breakdown.total_cost,
        period=CostPeriod(from_=str(breakdown.period_from), to=str(breakdown.period_to)),
        details=breakdown.line_items,
        is_forecast=is_forecast,
        warning=FORECAST_WARNING if is_forecast else None,
    )


@router.get("", response_model=list[SubscriptionRead])
def list_subscriptions(
    request: Request,
    user_id: uuid.UUID = Query(),
    service_name: str | None = Query(default=None),
    min_price: int = Query(default=0, ge=0),
    max_price: int = Query(default=0, ge=0),
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
) -> list[SubscriptionRead] | JSONResponse:
    filters = SubscriptionFilter(
        service_name=service_name,
        min_price=min_price,
        max_price=max_price,
        limit=limit or get_settings().list_default_limit,
        offset=offset,
    )
    try:
        return subscription_service.list(db, user_id, filters)
    except SubscriptionError as exc:
        return error_response(request, exc)


@router.get("/{subscription_id}", response_model=SubscriptionRead)
def get_subscription(
    request: Request,
    subscription_id: int = Path(gt=0),
    db: Session = Depends(get_db),
) -> SubscriptionRead | JSONResponse:
    try:
        return subscription_service.get_by_id(db, subscription_id)
    except SubscriptionError as exc:
        return error_response(request, exc)


@router.delete("/{subscription_id}", response_model=None)
def delete_subscription(
    request: Request,
    subscription_id: int = Path(gt=0),
    db: Session = Depends(get_db),
) -> dict[str, str] | JSONResponse:
    try:
        subscription_service.delete(db, subscription_id)
    except SubscriptionError as exc:
        return error_response(request, exc)
    return {"status": "deleted"}


@router.put("/{subscription_id}/extend", response_model=SubscriptionRead)
def extend_subscription(
    request: Request,
    payload: ExtendSubscriptionRequest,
    subscription_id: int = Path(gt=0),
    db: Session = Depends(get_db),
) -> SubscriptionRead | JSONResponse:
    try:
        return subscription_service.extend(db, subscription_id, payload.end_date, payload.price)
    except SubscriptionError as exc:
        return error_response(request, exc)
