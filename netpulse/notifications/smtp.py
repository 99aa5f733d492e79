"""SMTP notification sender — sends HTML alert emails through a relay."""

import asyncio
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape

from ..utils.logging import get_logger

logger = get_logger("notifications.smtp")

_EMAIL_TEMPLATE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body>
<div style="font-family: sans-serif; max-width: 600px;">
  <h2 style="color: #f44336;">&#9888;&#65039; NetPulse Alert</h2>
  <p style="font-size: 16px;">{message}</p>
  <table style="border-collapse: collapse; width: 100%; margin-top: 16px;">
{rows}
  </table>
  <p style="margin-top: 16px; color: #666; font-size: 12px;">
    Sent by NetPulse ISP Monitor
  </p>
</div>
</body>
</html>"""

_ROW_TEMPLATE = (
    '    <tr style="border-bottom: 1px solid #eee;">'
    '<td style="padding: 8px; font-weight: bold;">{label}</td>'
    '<td style="padding: 8px;">{value}</td></tr>'
)


def build_email_subject(payload: dict) -> str:
    return f"[NetPulse] Alert: {payload.get('metric', 'metric')} threshold exceeded"


def build_email_body(payload: dict) -> str:
    """Render the HTML body for an alert payload."""
    rows = [
        ("Metric", payload.get("metric", "")),
        ("Current Value", f"{payload.get('current_value', 0.0):.2f}"),
        ("Threshold", f"{payload.get('comparison', '')} {payload.get('threshold', '')}"),
        ("Duration", f"{payload.get('duration_min', '')} minutes"),
        ("Fired At", payload.get("fired_at", "")),
    ]
    if payload.get("probe_id"):
        rows.insert(0, ("Probe", payload["probe_id"]))
    return _EMAIL_TEMPLATE.format(
        message=escape(str(payload.get("message", ""))),
        rows="\n".join(_ROW_TEMPLATE.format(label=label, value=escape(str(value))) for label, value in rows),
    )


class SMTPSender:
    """Sends HTML email notifications via SMTP.

    The blocking SMTP conversation runs in a thread executor so the event
    loop keeps serving other jobs.
    """

    def __init__(self, timeout: float = 10.0):
        self._timeout = timeout

    async def send(self, config: dict, subject: str, body_html: str, to: str) -> bool:
        """Send an HTML email via SMTP.

        Args:
            config: SMTP relay settings with keys:
                - host, port: relay address
                - username, password: optional auth
                - from_addr: sender address
                - use_tls: issue STARTTLS before auth
            subject: Email subject line.
            body_html: Complete HTML document.
            to: Recipient email address.

        Returns:
            True if the email was sent successfully, False otherwise.
        """
        host = config.get("host", "")
        port = config.get("port", 587)
        username = config.get("username", "")
        password = config.get("password", "")
        from_addr = config.get("from_addr") or username
        use_tls = config.get("use_tls", True)

        if not host or not to:
            logger.error("smtp_missing_config", host=host, to=to)
            return False

        loop = asyncio.get_event_loop()
        try:
            await asyncio.wait_for(
                loop.run_in_executor(
                    None,
                    self._send_sync,
                    host,
                    port,
                    username,
                    password,
                    from_addr,
                    to,
                    subject,
                    body_html,
                    use_tls,
                ),
                timeout=self._timeout,
            )
            logger.info("smtp_email_sent", to=to, subject=subject)
            return True
        except Exception as exc:
            logger.error("smtp_send_error", to=to, error=str(exc) or type(exc).__name__)
            return False

    def _send_sync(
        self,
        host: str,
        port: int,
        username: str,
        password: str,
        from_addr: str,
        to: str,
        subject: str,
        html_body: str,
        use_tls: bool,
    ) -> None:
        """Synchronous SMTP send — executed in a thread pool."""
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = from_addr
        msg["To"] = to
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        with smtplib.SMTP(host, port, timeout=self._timeout) as server:
            server.ehlo()
            if use_tls and port != 25:
                server.starttls()
                server.ehlo()
            if username and password:
                server.login(username, password)
            server.sendmail(from_addr, [to], msg.as_string())
