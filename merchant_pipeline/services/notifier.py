"""
Service de notification de changement de statut

Fire-and-forget POST vers le service externe (emails marchands) quand une
carte change de colonne. Best-effort:
- jamais de retry automatique
- un échec ne remet JAMAIS en cause le batch déjà committé

Format attendu par le service:
- Endpoint: POST {NOTIFY_STATUS_CHANGE_URL}
- Body: {"merchantId": "...", "oldStatus": "lead", "newStatus": "phone"}
"""

import logging
from typing import Optional

import httpx

from merchant_pipeline.config import NOTIFY_STATUS_CHANGE_URL, NOTIFY_TIMEOUT_SECONDS
from merchant_pipeline.models import PipelineStage

logger = logging.getLogger("notifier")


class NotificationError(Exception):
    """Raised when the status change call failed (transport or non-2xx)"""
    pass


class StatusChangeNotifier:
    """Outbound status-change call. Disabled when no URL is configured."""

    def __init__(
        self,
        url: Optional[str] = None,
        timeout: float = NOTIFY_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = NOTIFY_STATUS_CHANGE_URL if url is None else url
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def notify_status_change(
        self,
        record_id: str,
        old_stage: PipelineStage,
        new_stage: PipelineStage,
    ) -> bool:
        """
        Returns True when the call was made and accepted, False when the
        notifier is disabled.

        Raises:
            NotificationError on timeout, connection error or non-2xx status
        """
        if not self.enabled:
            logger.debug(f"Notifier disabled, skipping {record_id} {old_stage.value} -> {new_stage.value}")
            return False

        payload = {
            "merchantId": record_id,
            "oldStatus": old_stage.value,
            "newStatus": new_stage.value,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    self.url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
        except httpx.TimeoutException as e:
            raise NotificationError(f"Timeout calling {self.url}") from e
        except httpx.HTTPError as e:
            raise NotificationError(f"Error calling {self.url}: {e}") from e

        if resp.status_code >= 300:
            raise NotificationError(f"Status change endpoint answered {resp.status_code}: {resp.text[:200]}")

        logger.info(f"Status change notified: {record_id} {old_stage.value} -> {new_stage.value}")
        return True
