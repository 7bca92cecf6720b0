from subtracker.subscriptions.api import router
from subtracker.subscriptions.errors import ErrorKind, SubscriptionError
from subtracker.subscriptions.models import Subscription
from subtracker.subscriptions.months import MonthBucket, inclusive_month_span, parse_bucket
from subtracker.subscriptions.repository import (
    RepositoryError,
    SqlAlchemySubscriptionRepository,
    SubscriptionRepositoryPort,
)
from subtracker.subscriptions.schemas import (
    ExtendSubscriptionRequest,
    SubscriptionCreate,
    SubscriptionFilter,
    SubscriptionRead,
    TotalCostRead,
)
from subtracker.subscriptions.service import CostBreakdown, SubscriptionService, subscription_service

__all__ = [
    "router",
    "ErrorKind",
    "SubscriptionError",
    "Subscription",
    "MonthBucket",
    "inclusive_month_span",
    "parse_bucket",
    "RepositoryError",
    "SqlAlchemySubscriptionRepository",
    "SubscriptionRepositoryPort",
    "ExtendSubscriptionRequest",
    "SubscriptionCreate",
    "SubscriptionFilter",
    "SubscriptionRead",
    "TotalCostRead",
    "CostBreakdown",
    "SubscriptionService",
    "subscription_service",
]
