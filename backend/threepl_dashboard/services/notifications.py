"""Outbound e-mail for critical KPI alerts."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from html import escape

from threepl_dashboard.config import AppSettings
from threepl_dashboard.db.base import utcnow
from threepl_dashboard.kpis import format_value, get_definition
from threepl_dashboard.models import Alert
from threepl_dashboard.schemas.kpis import KpiSnapshot

logger = logging.getLogger(__name__)


class AlertNotifier:
    """Best-effort SMTP notifier; delivery problems are logged, never raised."""

    def __init__(self, settings: AppSettings):
        self._settings = settings

    @property
    def enabled(self) -> bool:
        return bool(self._settings.smtp_user and self._settings.alert_email_to)

    def build_message(self, alert: Alert, snapshot: KpiSnapshot) -> EmailMessage:
        definition = get_definition(snapshot.code)
        current = format_value(definition, snapshot.value)
        target = format_value(definition, snapshot.target)
        deviation = format_value(definition, snapshot.delta)
        sent_at = utcnow().strftime("%Y-%m-%d %H:%M UTC")

        message = EmailMessage()
        message["Subject"] = f"Critical alert: {snapshot.label}"
        message["From"] = self._settings.smtp_user
        message["To"] = self._settings.alert_email_to
        message.set_content(
            "\n".join(
                [
                    "Critical alert - 3PL Dashboard",
                    "",
                    f"KPI: {snapshot.label} ({snapshot.code})",
                    f"Current value: {current}",
                    f"Target: {target}",
                    f"Deviation: {deviation}",
                    f"Date: {sent_at}",
                    "",
                    alert.message,
                    "Please review the dashboard for details.",
                ]
            )
        )
        message.add_alternative(
            f"""\
<h2>Critical alert - 3PL Dashboard</h2>
<p><strong>KPI:</strong> {escape(snapshot.label)} ({escape(snapshot.code)})</p>
<p><strong>Current value:</strong> {escape(current)}</p>
<p><strong>Target:</strong> {escape(target)}</p>
<p><strong>Deviation:</strong> {escape(deviation)}</p>
<p><strong>Date:</strong> {sent_at}</p>
<hr>
<p>Please review the dashboard for details.</p>
""",
            subtype="html",
        )
        return message

    async def send_alert(self, alert: Alert, snapshot: KpiSnapshot) -> bool:
        if not self.enabled:
            logger.info("Email configuration missing, skipping alert email for %s", snapshot.code)
            return False
        try:
            message = self.build_message(alert, snapshot)
            await asyncio.to_thread(self._deliver, message)
        except Exception:  # noqa: BLE001 - alert email is fire-and-forget
            logger.exception("Failed to send alert email for %s", snapshot.code)
            return False
        logger.info("Sent alert email for %s to %s", snapshot.code, self._settings.alert_email_to)
        return True

    def _deliver(self, message: EmailMessage) -> None:
        settings = self._settings
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout_seconds) as smtp:
            if settings.smtp_use_tls:
                smtp.starttls()
            if settings.smtp_user and settings.smtp_password:
                smtp.login(settings.smtp_user, settings.smtp_password)
            smtp.send_message(message)


__all__ = ["AlertNotifier"]
