"""Discord notification sender — posts a formatted embed to a Discord webhook."""

import httpx

from ..utils.logging import get_logger

logger = get_logger("notifications.discord")

METRIC_COLORS = {
    "latency": 0xFF9800,      # orange
    "jitter": 0xFF9800,       # orange
    "packet_loss": 0xF44336,  # red
    "dns": 0x2196F3,          # blue
    "bufferbloat": 0x9C27B0,  # purple
}
DEFAULT_COLOR = 0xFF0000


def build_embed(payload: dict) -> dict:
    """Build the Discord embed for an alert payload."""
    metric = payload.get("metric", "")
    return {
        "title": f"⚠️ NetPulse Alert: {metric}",
        "description": payload.get("message", ""),
        "color": METRIC_COLORS.get(metric, DEFAULT_COLOR),
        "fields": [
            {"name": "Metric", "value": metric, "inline": True},
            {"name": "Current Value", "value": f"{payload.get('current_value', 0.0):.2f}", "inline": True},
            {"name": "Threshold", "value": f"{payload.get('comparison', '')} {payload.get('threshold', '')}", "inline": True},
            {"name": "Duration", "value": f"{payload.get('duration_min', '')} min", "inline": True},
        ],
        "timestamp": payload.get("fired_at"),
        "footer": {"text": "NetPulse ISP Monitor"},
    }


class DiscordSender:
    """Sends alert embeds to Discord incoming webhooks."""

    def __init__(self, timeout: float = 10.0):
        self._timeout = timeout

    async def send(self, url: str, payload: dict) -> bool:
        body = {"embeds": [build_embed(payload)]}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=body)
                response.raise_for_status()
                logger.info("discord_sent", status=response.status_code, metric=payload.get("metric"))
                return True
        except httpx.HTTPStatusError as exc:
            logger.error(
                "discord_http_error",
                status=exc.response.status_code,
                body=exc.response.text[:500],
            )
            return False
        except Exception as exc:
            logger.error("discord_send_error", error=str(exc))
            return False
