from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone

from opentelemetry import trace
from sqlalchemy.orm import Session

from subtracker.core.config import get_settings
from subtracker.metrics import observe_months_billed, observe_subscription_operation
from subtracker.subscriptions.errors import ErrorKind, SubscriptionError
from subtracker.subscriptions.models import Subscription
from subtracker.subscriptions.months import (
    MonthBucket,
    current_bucket,
    earlier_of,
    inclusive_month_span,
    later_of,
    parse_bucket,
)
from subtracker.subscriptions.repository import (
    RepositoryError,
    SqlAlchemySubscriptionRepository,
    SubscriptionRepositoryPort,
)
from subtracker.subscriptions.schemas import SubscriptionCreate, SubscriptionFilter, SubscriptionRead


logger = logging.getLogger("subtracker.subscriptions")
tracer = trace.get_tracer("subtracker.subscriptions")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class CostBreakdown:
    total_cost: int
    line_items: list[str]
    period_from: MonthBucket
    period_to: MonthBucket


@dataclass(slots=True)
class SubscriptionService:
    repository: SubscriptionRepositoryPort = field(default_factory=SqlAlchemySubscriptionRepository)
    now: Callable[[], datetime] = utcnow

    def create(self, session: Session, payload: SubscriptionCreate) -> SubscriptionRead:
        if payload.price < 0:
            raise self._reject("create", ErrorKind.NEGATIVE_PRICE, "price cannot be negative")

        start = parse_bucket(payload.start_date)
        end = parse_bucket(payload.end_date) if payload.end_date else None
        if end is not None and end < start:
            raise self._reject("create", ErrorKind.END_BEFORE_START, "end_date must be after or equal to start_date")

        active_from = current_bucket(self.now())
        already_active = self._call(
            "create",
            self.repository.exists,
            session,
            payload.user_id,
            payload.service_name,
            active_from=active_from.to_date(),
        )
        if already_active:
            raise self._reject(
                "create",
                ErrorKind.ALREADY_EXISTS,
                f"active subscription to {payload.service_name!r} already exists for this user",
            )

        subscription = Subscription(
            service_name=payload.service_name,
            price=payload.price,
            user_id=payload.user_id,
            start_date=start.to_date(),
            end_date=end.to_date() if end is not None else None,
        )
        created = self._call("create", self.repository.create, session, subscription)

        observe_subscription_operation("create", "success")
        logger.info(
            "subscription.created",
            extra={"subscription_id": created.id, "user_id": str(created.user_id), "service_name": created.service_name},
        )
        return self._to_subscription_read(created)

    def get_by_id(self, session: Session, subscription_id: int) -> SubscriptionRead:
        return self._to_subscription_read(self._get_subscription(session, "get", subscription_id))

    def delete(self, session: Session, subscription_id: int) -> None:
        affected = self._call("delete", self.repository.delete, session, subscription_id)
        if not affected:
            raise self._reject("delete", ErrorKind.NOT_FOUND, f"subscription {subscription_id} not found")

        observe_subscription_operation("delete", "success")
        logger.info("subscription.deleted", extra={"subscription_id": subscription_id})

    def list(self, session: Session, user_id: uuid.UUID, filters: SubscriptionFilter) -> list[SubscriptionRead]:
        if filters.min_price > 0 and filters.max_price > 0 and filters.min_price > filters.max_price:
            raise self._reject("list", ErrorKind.INVALID_FILTER, "min_price cannot be greater than max_price")

        max_limit = get_settings().list_max_limit
        if filters.limit > max_limit:
            filters = filters.model_copy(update={"limit": max_limit})

        rows = self._call("list", self.repository.list, session, user_id, filters)
        return [self._to_subscription_read(row) for row in rows]

    def compute_total_cost(
        self,
        session: Session,
        user_id: uuid.UUID,
        service_name: str | None,
        period_from: str,
        period_to: str,
    ) -> CostBreakdown:
        """Total spend of ``user_id`` across ``[period_from, period_to]``.

        Each overlapping subscription is billed in whole months for the part of
        its validity that falls inside the window. Open-ended subscriptions are
        billed through ``period_to``, so a window reaching past the current
        month is a forecast.
        """
        with tracer.start_as_current_span("subscription.total_cost") as span:
            query_from = parse_bucket(period_from)
            query_to = parse_bucket(period_to)
            if query_to < query_from:
                raise self._reject("total_cost", ErrorKind.INVALID_DATE_RANGE, "'to' must not precede 'from'")

            span.set_attribute("subscription.user_id", str(user_id))
            span.set_attribute("subscription.period_from", str(query_from))
            span.set_attribute("subscription.period_to", str(query_to))

            candidates = self._call(
                "total_cost",
                self.repository.get_overlapping,
                session,
                user_id,
                service_name or None,
                query_from.to_date(),
                query_to.to_date(),
            )

            total_cost = 0
            months_total = 0
            line_items: list[str] = []
            for subscription in candidates:
                sub_start = MonthBucket.from_date(subscription.start_date)
                sub_end = MonthBucket.from_date(subscription.end_date) if subscription.end_date is not None else query_to

                months = inclusive_month_span(later_of(query_from, sub_start), earlier_of(query_to, sub_end))
                if months <= 0:
                    continue

                cost = subscription.price * months
                total_cost += cost
                months_total += months
                line_items.append(f"{subscription.service_name}: {cost}")

            span.set_attribute("subscription.total_cost", total_cost)

        observe_months_billed(months_total)
        observe_subscription_operation("total_cost", "success")
        logger.info(
            "subscription.total_cost",
            extra={
                "user_id": str(user_id),
                "service_name": service_name,
                "period_from": str(query_from),
                "period_to": str(query_to),
                "total_cost": total_cost,
                "line_count": len(line_items),
            },
        )
        return CostBreakdown(
            total_cost=total_cost,
            line_items=line_items,
            period_from=query_from,
            period_to=query_to,
        )

    def extend(self, session: Session, subscription_id: int, new_end_date: str, new_price: int) -> SubscriptionRead:
        with tracer.start_as_current_span("subscription.extend") as span:
            span.set_attribute("subscription.id", subscription_id)

            new_end = parse_bucket(new_end_date)
            if new_price < 0:
                raise self._reject("extend", ErrorKind.NEGATIVE_PRICE, "price cannot be negative")

            subscription = self._get_subscription(session, "extend", subscription_id)

            if new_end < current_bucket(self.now()):
                raise self._reject("extend", ErrorKind.PAST_EXTENSION, "cannot extend into a month that has already passed")
            if new_end < MonthBucket.from_date(subscription.start_date):
                raise self._reject("extend", ErrorKind.END_BEFORE_START, "new end_date is before start_date")
            if subscription.end_date is not None and new_end <= MonthBucket.from_date(subscription.end_date):
                raise self._reject(
                    "extend",
                    ErrorKind.NON_ADVANCING_EXTENSION,
                    "new end_date must be after the current end_date",
                )

            affected = self._call(
                "extend",
                self.repository.update_extension,
                session,
                subscription_id,
                new_end.to_date(),
                new_price,
            )
            if not affected:
                raise self._reject("extend", ErrorKind.NOT_FOUND, f"subscription {subscription_id} not found")

        observe_subscription_operation("extend", "success")
        logger.info("subscription.extended", extra={"subscription_id": subscription_id, "end_date": str(new_end)})
        return self.get_by_id(session, subscription_id)

    def _get_subscription(self, session: Session, operation: str, subscription_id: int) -> Subscription:
        subscription = self._call(operation, self.repository.get_by_id, session, subscription_id)
        if subscription is None:
            raise self._reject(operation, ErrorKind.NOT_FOUND, f"subscription {subscription_id} not found")
        return subscription

    @staticmethod
    def _call(operation: str, method: Callable[..., object], *args: object, **kwargs: object):  # type: ignore[no-untyped-def]
        try:
            return method(*args, **kwargs)
        except RepositoryError as exc:
            observe_subscription_operation(operation, ErrorKind.STORAGE_FAILURE.value)
            logger.error(
                "subscription.storage_failed",
                extra={"operation": operation, "error_kind": ErrorKind.STORAGE_FAILURE.value, "error": str(exc)},
            )
            raise SubscriptionError(ErrorKind.STORAGE_FAILURE, f"{operation}: storage failure") from exc

    @staticmethod
    def _reject(operation: str, kind: ErrorKind, message: str) -> SubscriptionError:
        observe_subscription_operation(operation, kind.value)
        logger.warning("subscription.rejected", extra={"operation": operation, "error_kind": kind.value, "error": message})
        return SubscriptionError(kind, message)

    @staticmethod
    def _to_subscription_read(subscription: Subscription) -> SubscriptionRead:
        return SubscriptionRead(
            id=subscription.id,
            service_name=subscription.service_name,
            price=subscription.price,
            user_id=subscription.user_id,
            start_date=str(MonthBucket.from_date(subscription.start_date)),
            end_date=str(MonthBucket.from_date(subscription.end_date)) if subscription.end_date is not None else None,
            created_at=subscription.created_at,
            updated_at=subscription.updated_at,
        )


subscription_service = SubscriptionService()
