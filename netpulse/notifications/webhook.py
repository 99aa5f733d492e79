"""Webhook notification sender — POSTs the alert payload as JSON."""

import httpx

from ..utils.logging import get_logger

logger = get_logger("notifications.webhook")


class WebhookSender:
    """Sends alert payloads to generic HTTP webhooks."""

    def __init__(self, timeout: float = 10.0):
        self._timeout = timeout

    async def send(self, url: str, payload: dict, headers: dict | None = None) -> bool:
        """POST ``payload`` to ``url``.

        Returns:
            True if the webhook responded successfully, False otherwise.
        """
        send_headers = {"Content-Type": "application/json"}
        if headers:
            send_headers.update(headers)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload, headers=send_headers)
                response.raise_for_status()
                logger.info("webhook_sent", url=url, status=response.status_code)
                return True
        except httpx.HTTPStatusError as exc:
            logger.error(
                "webhook_http_error",
                url=url,
                status=exc.response.status_code,
                body=exc.response.text[:500],
            )
            return False
        except Exception as exc:
            logger.error("webhook_send_error", url=url, error=str(exc))
            return False
