from abc import ABC, abstractmethod
from typing import Any, Dict, List

CREDIT_TYPE = "CR"
STATIC_CHANNEL = "static"


class SettlementFeed(ABC):
    """Abstract source of recent inbound credits on the merchant account."""

    @abstractmethod
    async def fetch_recent_credits(self) -> List[Dict[str, Any]]:
        """
        Return the raw credit records from the feed.

        Raises CollisionFeedError when the feed is unreachable or the
        response cannot be used. Callers decide whether to degrade.
        """
        pass

    @property
    @abstractmethod
    def feed_name(self) -> str:
        pass


def static_credit_amounts(records: List[Dict[str, Any]]) -> List[int]:
    """
    Amounts of confirmed inbound credits received through the static QR.

    Other record types (debits) and channels are dropped, as are entries
    that are not objects and records whose amount is not a whole number.
    """
    amounts = []
    for record in records:
        if not isinstance(record, dict):
            continue
        if record.get("type") != CREDIT_TYPE or record.get("qris") != STATIC_CHANNEL:
            continue
        try:
            amounts.append(int(str(record.get("amount")).strip()))
        except (TypeError, ValueError):
            continue
    return amounts
