"""Channel configuration and alert payload models."""

from __future__ import annotations

import re
from typing import Optional

from pydantic import BaseModel, ValidationError, field_validator

from ..exceptions import ChannelConfigError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class WebhookChannelConfig(BaseModel):
    url: str
    headers: Optional[dict[str, str]] = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must be an http(s) URL")
        return v


class DiscordChannelConfig(BaseModel):
    url: str

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("url must be an http(s) URL")
        return v


class EmailChannelConfig(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not _EMAIL_RE.match(v):
            raise ValueError("email must be a valid address")
        return v


CHANNEL_SCHEMAS: dict[str, type[BaseModel]] = {
    "webhook": WebhookChannelConfig,
    "discord": DiscordChannelConfig,
    "email": EmailChannelConfig,
}


def parse_channel_config(channel: str, channel_config: dict | None) -> BaseModel:
    """Validate a known channel's config; raise ChannelConfigError otherwise."""
    schema = CHANNEL_SCHEMAS.get(channel)
    if schema is None:
        raise ChannelConfigError(channel, "unknown channel")
    try:
        return schema.model_validate(channel_config or {})
    except ValidationError as exc:
        reasons = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'config'}: {err['msg']}" for err in exc.errors()
        )
        raise ChannelConfigError(channel, reasons) from exc


class AlertPayload(BaseModel):
    """Structured body shared by every channel."""

    alert_id: str
    probe_id: Optional[str] = None
    metric: str
    threshold: float
    current_value: float
    comparison: str
    duration_min: int
    message: str
    fired_at: str
