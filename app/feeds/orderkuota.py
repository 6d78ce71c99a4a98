import logging
from typing import Any, Dict, List, Optional

import httpx

from app.errors import CollisionFeedError
from app.feeds.base import SettlementFeed

logger = logging.getLogger(__name__)

USER_AGENT = "QRIS-Gateway/1.0"


class OrderKuotaFeed(SettlementFeed):
    """
    OrderKuota QRIS mutation feed.
    Endpoint: GET {base_url}/api/mutasi/qris/{merchant_id}/{api_key}
    Envelope: {"status": "success", "data": [{"type", "qris", "amount", ...}]}
    Anything but status == "success" is treated as a feed error.
    """

    def __init__(
        self,
        merchant_id: str,
        api_key: str,
        base_url: str = "https://gateway.okeconnect.com",
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._merchant_id = merchant_id
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def feed_name(self) -> str:
        return "orderkuota"

    @property
    def url(self) -> str:
        return f"{self._base_url}/api/mutasi/qris/{self._merchant_id}/{self._api_key}"

    async def fetch_recent_credits(self) -> List[Dict[str, Any]]:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(self.url, headers=headers)
                resp.raise_for_status()
                body = resp.json()
        except httpx.HTTPError as e:
            raise CollisionFeedError(f"OrderKuota: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise CollisionFeedError("OrderKuota: response is not JSON") from e

        if not isinstance(body, dict) or body.get("status") != "success":
            status = body.get("status") if isinstance(body, dict) else None
            raise CollisionFeedError(f"OrderKuota: unexpected response status {status!r}")

        records = body.get("data") or []
        if not isinstance(records, list):
            raise CollisionFeedError("OrderKuota: data is not a list")
        if not all(isinstance(record, dict) for record in records):
            raise CollisionFeedError("OrderKuota: data contains non-object records")

        logger.info("Settlement feed returned %d records", len(records), extra={"count": len(records)})
        return records
