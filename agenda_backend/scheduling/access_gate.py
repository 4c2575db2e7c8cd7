"""Derive agenda access from a professional's subscription record."""

import math
from datetime import datetime, timedelta

from agenda_backend.core.clock import utcnow
from agenda_backend.models.subscription import AgendaSubscription

ACTIVE_STATUS = 'active'
EXPIRED_STATUS = 'expired'
NO_SUBSCRIPTION_STATUS = 'none'

ONE_DAY = timedelta(days=1)


def can_use_agenda(subscription: AgendaSubscription | None, now: datetime | None = None) -> bool:
    if subscription is None or subscription.expires_at is None:
        return False
    now = now or utcnow()
    return subscription.status == ACTIVE_STATUS and subscription.expires_at > now


def days_remaining(subscription: AgendaSubscription | None, now: datetime | None = None) -> int:
    if subscription is None or subscription.expires_at is None:
        return 0
    now = now or utcnow()
    return max(0, math.ceil((subscription.expires_at - now) / ONE_DAY))


def effective_status(subscription: AgendaSubscription | None, now: datetime | None = None) -> str:
    """Stored status, except that a lapsed ``active`` grant reads as ``expired``."""
    if subscription is None:
        return NO_SUBSCRIPTION_STATUS
    if subscription.status == ACTIVE_STATUS and not can_use_agenda(subscription, now):
        return EXPIRED_STATUS
    return subscription.status
