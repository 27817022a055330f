from typing import Optional, Protocol

from config import get_settings


MAX_SUBSCRIPTIONS = "max_subscriptions"


class QuotaCheck(Protocol):
    def allows(self, user_id: int, resource_key: str, proposed_count: int) -> bool:
        ...


class PlanQuota:
    """Quota check backed by configured plan limits. ``None`` means unlimited."""

    def __init__(self, limits: Optional[dict[str, Optional[int]]] = None) -> None:
        if limits is None:
            limits = {MAX_SUBSCRIPTIONS: get_settings().max_subscriptions}
        self.limits = limits

    def allows(self, user_id: int, resource_key: str, proposed_count: int) -> bool:
        limit = self.limits.get(resource_key)
        if limit is None:
            return True
        return proposed_count <= limit
