"""Notification dispatcher — routes a fired alert to its configured channel."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from ..exceptions import ChannelConfigError
from ..metrics import utcnow
from ..store.contracts import AlertConfigRecord
from ..utils.logging import get_logger
from .discord import DiscordSender
from .schemas import (
    AlertPayload,
    DiscordChannelConfig,
    EmailChannelConfig,
    WebhookChannelConfig,
    parse_channel_config,
)
from .smtp import SMTPSender, build_email_body, build_email_subject
from .webhook import WebhookSender

logger = get_logger("notifications.dispatcher")

SUPPORTED_CHANNELS = {"webhook", "discord", "email"}


def build_payload(
    config: AlertConfigRecord,
    current_value: float,
    message: str,
    fired_at: Optional[datetime] = None,
) -> dict:
    return AlertPayload(
        alert_id=config.id,
        probe_id=config.probe_id,
        metric=config.metric,
        threshold=config.threshold,
        current_value=current_value,
        comparison=config.comparison,
        duration_min=config.duration_min,
        message=message,
        fired_at=(fired_at or utcnow()).isoformat(),
    ).model_dump()


class NotificationDispatcher:
    """Sends alert notifications over webhook, Discord, or email.

    Delivery failures are logged and reported as False; they never raise
    into the caller.
    """

    def __init__(self, smtp_settings: Optional[dict] = None, timeout: float = 10.0) -> None:
        self._smtp_settings = smtp_settings or {}
        self._webhook_sender = WebhookSender(timeout=timeout)
        self._discord_sender = DiscordSender(timeout=timeout)
        self._smtp_sender = SMTPSender(timeout=timeout)

    async def send_alert(
        self,
        config: AlertConfigRecord,
        current_value: float,
        message: str,
        fired_at: Optional[datetime] = None,
        channel_config: Optional[BaseModel] = None,
    ) -> bool:
        """Deliver one alert through the config's channel.

        ``channel_config`` may carry an already-validated channel model;
        otherwise ``config.channel_config`` is validated here.
        """
        if config.channel not in SUPPORTED_CHANNELS:
            logger.warning("notification_unknown_channel", channel=config.channel, alert_id=config.id)
            return False

        payload = build_payload(config, current_value, message, fired_at)
        try:
            target = channel_config or parse_channel_config(config.channel, config.channel_config)
            return await self._send_to_channel(config.channel, target, payload)
        except ChannelConfigError as exc:
            logger.error("notification_bad_config", alert_id=config.id, channel=config.channel, error=exc.reason)
            return False
        except Exception as exc:
            logger.error("notification_channel_error", alert_id=config.id, channel=config.channel, error=str(exc))
            return False

    async def _send_to_channel(self, channel: str, target: BaseModel, payload: dict) -> bool:
        if channel == "webhook" and isinstance(target, WebhookChannelConfig):
            return await self._webhook_sender.send(target.url, payload, headers=target.headers)

        if channel == "discord" and isinstance(target, DiscordChannelConfig):
            return await self._discord_sender.send(target.url, payload)

        if channel == "email" and isinstance(target, EmailChannelConfig):
            return await self._smtp_sender.send(
                self._smtp_settings,
                build_email_subject(payload),
                build_email_body(payload),
                target.email,
            )

        raise ChannelConfigError(channel, f"config type {type(target).__name__} does not match channel")
