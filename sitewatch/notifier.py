"""Notification sinks that deliver failure reports.

A sink is chosen once, when the registry is built. Delivery problems are
logged and reported through the return value of notify(); they never reach
the sweep that triggered them.
"""

import logging
import smtplib
from abc import ABC, abstractmethod
from collections.abc import Iterable
from email.mime.text import MIMEText

import requests

from .config import NotificationsConfig, SmtpConfig, WebhookConfig
from .models import FailureReport

logger = logging.getLogger(__name__)


class NotificationSink(ABC):
    """Base class for failure report delivery."""

    @abstractmethod
    def notify(self, report: FailureReport) -> bool:
        """Deliver a failure report.

        Returns:
            True if delivery succeeded, False otherwise.
        """


class NullSink(NotificationSink):
    """Sink used when no notification channel is configured."""

    def notify(self, report: FailureReport) -> bool:
        logger.debug("No notification sink configured, dropping report for %s", report.url)
        return True


class EmailSink(NotificationSink):
    """Sends failure reports as plain-text email over SMTP."""

    def __init__(self, config: SmtpConfig, timeout: int = 30) -> None:
        self._config = config
        self._timeout = timeout

    def build_message(self, report: FailureReport) -> MIMEText:
        """Build the email for a failure report."""
        body = (
            f"The website {report.url} is down with status code {report.status_code}. "
            f"Error message: {report.error_message} At: {report.timestamp.isoformat()}"
        )
        msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = f"{self._config.subject} {report.url} is down!"
        msg["From"] = self._config.from_addr
        msg["To"] = ", ".join(self._config.to_addrs)
        return msg

    def notify(self, report: FailureReport) -> bool:
        smtp_config = self._config
        if not smtp_config.enabled:
            logger.debug("SMTP disabled, skipping email for %s", report.url)
            return True

        msg = self.build_message(report)

        try:
            server = smtplib.SMTP(smtp_config.host, smtp_config.port, timeout=self._timeout)
            try:
                if smtp_config.use_tls:
                    server.starttls()

                if smtp_config.username and smtp_config.password:
                    server.login(smtp_config.username, smtp_config.password)

                server.sendmail(
                    smtp_config.from_addr,
                    smtp_config.to_addrs,
                    msg.as_string(),
                )
            finally:
                server.quit()

        except (smtplib.SMTPException, OSError) as e:
            logger.error("Could not send email for %s: %s", report.url, e)
            return False

        logger.info("Email sent for %s to %s", report.url, ", ".join(smtp_config.to_addrs))
        return True


class WebhookSink(NotificationSink):
    """POSTs failure reports as JSON to a webhook URL."""

    def __init__(self, config: WebhookConfig) -> None:
        self._config = config

    @staticmethod
    def build_payload(report: FailureReport) -> dict:
        return {"event": "url_down", **report.to_dict()}

    def notify(self, report: FailureReport) -> bool:
        if not self._config.enabled:
            logger.debug("Webhook %s disabled, skipping", self._config.url)
            return True

        try:
            response = requests.post(
                self._config.url,
                json=self.build_payload(report),
                timeout=self._config.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            logger.error("Webhook failed for %s to %s: %s", report.url, self._config.url, e)
            return False

        logger.info("Webhook sent for %s to %s", report.url, self._config.url)
        return True


class MultiSink(NotificationSink):
    """Fans a report out to several sinks.

    Every sink is tried even if an earlier one fails. The result is True only
    when all of them succeed.
    """

    def __init__(self, sinks: Iterable[NotificationSink]) -> None:
        self._sinks = list(sinks)

    @property
    def sinks(self) -> list[NotificationSink]:
        return list(self._sinks)

    def notify(self, report: FailureReport) -> bool:
        delivered = True
        for sink in self._sinks:
            try:
                ok = sink.notify(report)
            except Exception as e:
                logger.error("Notification sink %s raised for %s: %s", type(sink).__name__, report.url, e)
                ok = False
            delivered = delivered and ok
        return delivered


def build_sink(config: NotificationsConfig) -> NotificationSink:
    """Select the sink for a notifications configuration."""
    sinks: list[NotificationSink] = []
    if config.smtp is not None and config.smtp.enabled:
        sinks.append(EmailSink(config.smtp))
    sinks.extend(WebhookSink(webhook) for webhook in config.webhooks if webhook.enabled)

    if not sinks:
        return NullSink()
    if len(sinks) == 1:
        return sinks[0]
    return MultiSink(sinks)
