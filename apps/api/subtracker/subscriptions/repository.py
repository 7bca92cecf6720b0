from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Protocol

from sqlalchemy import delete, exists, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from subtracker.subscriptions.models import Subscription, utcnow
from subtracker.subscriptions.schemas import SubscriptionFilter


logger = logging.getLogger("subtracker.subscriptions.repository")


class RepositoryError(Exception):
    """Raised by repository adapters when the backing store fails."""

    def __init__(self, operation: str, cause: Exception) -> None:
        super().__init__(f"{operation}: {cause}")
        self.operation = operation
        self.cause = cause


class SubscriptionRepositoryPort(Protocol):
    """Persistence operations the subscription service depends on."""

    def create(self, session: Session, subscription: Subscription) -> Subscription:
        ...

    def get_by_id(self, session: Session, subscription_id: int) -> Subscription | None:
        ...

    def delete(self, session: Session, subscription_id: int) -> int:
        ...

    def list(self, session: Session, user_id: uuid.UUID, filters: SubscriptionFilter) -> list[Subscription]:
        ...

    def exists(self, session: Session, user_id: uuid.UUID, service_name: str, *, active_from: date) -> bool:
        ...

    def get_overlapping(
        self,
        session: Session,
        user_id: uuid.UUID,
        service_name: str | None,
        period_from: date,
        period_to: date,
    ) -> list[Subscription]:
        ...

    def update_extension(self, session: Session, subscription_id: int, end_date: date, price: int) -> int:
        ...


class SqlAlchemySubscriptionRepository:
    def create(self, session: Session, subscription: Subscription) -> Subscription:
        session.add(subscription)
        try:
            session.commit()
            session.refresh(subscription)
        except SQLAlchemyError as exc:
            raise self._failure(session, "create", exc) from exc
        return subscription

    def get_by_id(self, session: Session, subscription_id: int) -> Subscription | None:
        try:
            return session.get(Subscription, subscription_id)
        except SQLAlchemyError as exc:
            raise self._failure(session, "get_by_id", exc) from exc

    def delete(self, session: Session, subscription_id: int) -> int:
        try:
            result = session.execute(delete(Subscription).where(Subscription.id == subscription_id))
            session.commit()
        except SQLAlchemyError as exc:
            raise self._failure(session, "delete", exc) from exc
        return result.rowcount or 0

    def list(self, session: Session, user_id: uuid.UUID, filters: SubscriptionFilter) -> list[Subscription]:
        query = select(Subscription).where(Subscription.user_id == user_id)
        if filters.service_name:
            query = query.where(Subscription.service_name.icontains(filters.service_name, autoescape=True))
        if filters.min_price > 0:
            query = query.where(Subscription.price >= filters.min_price)
        if filters.max_price > 0:
            query = query.where(Subscription.price <= filters.max_price)
        query = query.order_by(Subscription.id).limit(filters.limit).offset(filters.offset)

        try:
            return list(session.scalars(query))
        except SQLAlchemyError as exc:
            raise self._failure(session, "list", exc) from exc

    def exists(self, session: Session, user_id: uuid.UUID, service_name: str, *, active_from: date) -> bool:
        query = select(
            exists().where(
                Subscription.user_id == user_id,
                Subscription.service_name == service_name,
                or_(Subscription.end_date.is_(None), Subscription.end_date >= active_from),
            )
        )
        try:
            return bool(session.scalar(query))
        except SQLAlchemyError as exc:
            raise self._failure(session, "exists", exc) from exc

    def get_overlapping(
        self,
        session: Session,
        user_id: uuid.UUID,
        service_name: str | None,
        period_from: date,
        period_to: date,
    ) -> list[Subscription]:
        query = select(Subscription).where(
            Subscription.user_id == user_id,
            Subscription.start_date <= period_to,
            or_(Subscription.end_date.is_(None), Subscription.end_date >= period_from),
        )
        if service_name:
            query = query.where(Subscription.service_name == service_name)
        query = query.order_by(Subscription.id)

        try:
            return list(session.scalars(query))
        except SQLAlchemyError as exc:
            raise self._failure(session, "get_overlapping", exc) from exc

    def update_extension(self, session: Session, subscription_id: int, end_date: date, price: int) -> int:
        statement = (
            update(Subscription)
            .where(Subscription.id == subscription_id)
            .values(end_date=end_date, price=price, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        try:
            result = session.execute(statement)
            session.commit()
        except SQLAlchemyError as exc:
            raise self._failure(session, "update_extension", exc) from exc
        return result.rowcount or 0

    @staticmethod
    def _failure(session: Session, operation: str, exc: SQLAlchemyError) -> RepositoryError:
        session.rollback()
        logger.error("repository.failed", extra={"operation": operation, "error": str(exc)[:500]})
        return RepositoryError(operation, exc)
