"""Webhook delivery of the row batch.

The batch goes out in a single JSON POST. Any transport failure or
non-2xx response is a DeliveryError; nothing is retried and no partial
or row-level delivery is attempted.
"""

import httpx

from config.settings import GlobalConfig, get_config
from src.exceptions import ConfigValidationError, DeliveryError
from src.logger import get_logger, redact_url
from src.models import Batch

log = get_logger(__name__)

MAX_BODY_CHARS = 500


class WebhookDelivery:
    """Posts a Batch to the configured webhook.

    Attributes:
        config: GlobalConfig with the endpoint and timeout.
    """

    def __init__(
        self,
        config: GlobalConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config or get_config()
        if not self.config.webhook_url:
            raise ConfigValidationError(
                field="webhook_url", value=None, reason="Delivery endpoint is not set"
            )
        self.endpoint = self.config.webhook_url
        self._transport = transport

    async def deliver(self, batch: Batch) -> str:
        """Send the whole batch.

        Returns:
            The sink's response body.

        Raises:
            DeliveryError: If the sink is unreachable or rejects the batch.
        """
        redacted = redact_url(self.endpoint)
        payload = batch.to_payload()

        log.info("Delivering batch", endpoint=redacted, rows=len(batch.rows))

        try:
            async with httpx.AsyncClient(
                timeout=self.config.webhook_timeout_sec,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    self.endpoint,
                    json=payload,
                    headers={"User-Agent": f"{self.config.app_name}/1.0"},
                )
        except httpx.HTTPError as exc:
            raise DeliveryError(
                endpoint=redacted, reason=f"{type(exc).__name__}: {exc}"
            ) from exc

        if not response.is_success:
            body = response.text[:MAX_BODY_CHARS]
            log.error(
                "Webhook rejected batch",
                endpoint=redacted,
                status_code=response.status_code,
                body=body,
            )
            raise DeliveryError(
                endpoint=redacted,
                reason=f"HTTP {response.status_code}: {body}",
                status_code=response.status_code,
            )

        log.info(
            "Batch delivered",
            endpoint=redacted,
            status_code=response.status_code,
            rows=len(batch.rows),
            response=response.text[:MAX_BODY_CHARS],
        )
        return response.text
