"""
Outbound notifications: templated emails over SMTP and a Teams webhook alert.

Everything here is best-effort. Failures are logged and reported back as
sent/failed lists, never raised to the caller.
"""

import logging
import smtplib
from dataclasses import dataclass, field
from email.mime.text import MIMEText
from typing import Iterable, List, Optional
import httpx
from roombook import config
from roombook.models.reservation import Reservation
from roombook.utils.datetime_helpers import to_local


logger = logging.getLogger(__name__)


@dataclass
class DeliveryReport:
    sent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


_STATUS_LABELS = {
    "pending": "Awaiting approval",
    "approved": "Approved",
    "rejected": "Rejected",
}

_ALERT_TITLES = {
    "pending": "New reservation request",
    "approved": "Reservation approved",
    "rejected": "Reservation rejected",
}

_THEME_COLORS = {
    "pending": "F2C94C",
    "approved": "27AE60",
    "rejected": "EB5757",
}


def _describe(reservation: Reservation) -> dict:
    start = to_local(reservation.start_time)
    end = to_local(reservation.end_time)
    return {
        "title": reservation.title,
        "room": reservation.room.name if reservation.room else str(reservation.room_id),
        "date": f"{start:%A, %d %B %Y}",
        "time": f"{start:%H:%M} - {end:%H:%M}",
    }


class Notifier:
    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        webhook_url: Optional[str] = None,
    ):
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.webhook_url = webhook_url

    def send_email(self, to: str, subject: str, body: str) -> bool:
        if not self.smtp_host:
            logger.warning(f"[EMAIL] SMTP_HOST is missing. Not sending '{subject}' to {to}")
            return False

        message = MIMEText(body, "plain", "utf-8")
        message["Subject"] = subject
        message["From"] = config.EMAIL_FROM_ADDRESS
        message["To"] = to
        try:
            with smtplib.SMTP(
                self.smtp_host, self.smtp_port, timeout=config.NOTIFICATION_TIMEOUT_SECONDS
            ) as server:
                server.starttls()
                if config.SMTP_USERNAME and config.SMTP_PASSWORD:
                    server.login(config.SMTP_USERNAME, config.SMTP_PASSWORD)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"[EMAIL] Failed to send '{subject}' to {to}: {e}")
            return False
        logger.info(f"[EMAIL] '{subject}' sent to {to}")
        return True

    def _send_bulk(self, recipients: Iterable[str], subject: str, body: str) -> DeliveryReport:
        report = DeliveryReport()
        for email in recipients:
            if self.send_email(email, subject, body):
                report.sent.append(email)
            else:
                report.failed.append(email)
        return report

    def send_invitations(self, reservation: Reservation, organizer: dict) -> DeliveryReport:
        info = _describe(reservation)
        subject = f"Invitation: {info['title']}"
        body = (
            f"{organizer.get('full_name') or organizer.get('email')} invited you to a meeting.\n\n"
            f"Title: {info['title']}\n"
            f"Room: {info['room']}\n"
            f"Date: {info['date']}\n"
            f"Time: {info['time']}\n"
        )
        if reservation.description:
            body += f"\n{reservation.description}\n"
        report = self._send_bulk(reservation.attendees or [], subject, body)
        logger.debug(f"Invitations for {reservation.id}: sent={report.sent} failed={report.failed}")
        return report

    def send_cancellations(self, reservation: Reservation) -> DeliveryReport:
        info = _describe(reservation)
        subject = f"Cancelled: {info['title']}"
        body = (
            "The following meeting has been cancelled.\n\n"
            f"Title: {info['title']}\n"
            f"Room: {info['room']}\n"
            f"Date: {info['date']}\n"
            f"Time: {info['time']}\n"
        )
        report = self._send_bulk(reservation.attendees or [], subject, body)
        logger.debug(f"Cancellations for {reservation.id}: sent={report.sent} failed={report.failed}")
        return report

    def notify_pending_approval(self, reservation: Reservation, requester: dict) -> bool:
        if not config.ADMIN_NOTIFICATION_EMAIL:
            logger.debug("ADMIN_NOTIFICATION_EMAIL not set, skipping approval alert")
            return False
        info = _describe(reservation)
        body = (
            f"New request from {requester.get('full_name') or requester.get('email')}.\n\n"
            f"Title: {info['title']}\n"
            f"Room: {info['room']}\n"
            f"Date: {info['date']}\n"
            f"Time: {info['time']}\n"
        )
        if reservation.is_recurring:
            body += f"Recurring: {reservation.recurrence_pattern}\n"
        return self.send_email(
            config.ADMIN_NOTIFICATION_EMAIL, f"Approval needed: {info['title']}", body
        )

    def notify_catering(self, reservation: Reservation, requester: dict) -> bool:
        if not config.CATERING_NOTIFICATION_EMAIL:
            logger.debug("CATERING_NOTIFICATION_EMAIL not set, skipping catering alert")
            return False
        info = _describe(reservation)
        body = (
            f"Catering requested by {requester.get('full_name') or requester.get('email')}.\n\n"
            f"Title: {info['title']}\n"
            f"Room: {info['room']}\n"
            f"Date: {info['date']}\n"
            f"Time: {info['time']}\n"
        )
        return self.send_email(
            config.CATERING_NOTIFICATION_EMAIL, f"Catering request: {info['title']}", body
        )

    def send_chat_alert(self, reservation: Reservation, requester: dict, status: str) -> bool:
        if not self.webhook_url:
            logger.warning("[TEAMS] TEAMS_WEBHOOK_URL is missing. Skipping notification.")
            return False

        info = _describe(reservation)
        requester_label = requester.get("full_name") or requester.get("username") or "Unknown"
        if requester.get("email"):
            requester_label = f"{requester_label} ({requester['email']})"
        payload = {
            "@type": "MessageCard",
            "@context": "http://schema.org/extensions",
            "summary": _ALERT_TITLES.get(status, status),
            "themeColor": _THEME_COLORS.get(status, "F2C94C"),
            "sections": [
                {
                    "activityTitle": _ALERT_TITLES.get(status, status),
                    "activitySubtitle": requester_label,
                    "facts": [
                        {"name": "Title", "value": info["title"]},
                        {"name": "Room", "value": info["room"]},
                        {"name": "Date", "value": info["date"]},
                        {"name": "Time", "value": info["time"]},
                        {"name": "Status", "value": _STATUS_LABELS.get(status, status)},
                        {"name": "Recurring", "value": reservation.recurrence_pattern if reservation.is_recurring else "No"},
                        {"name": "Catering", "value": "Yes" if reservation.catering_requested else "No"},
                        {"name": "Tags", "value": ", ".join(reservation.tags or []) or "-"},
                        {"name": "Reservation ID", "value": str(reservation.id)},
                    ],
                    "markdown": True,
                }
            ],
        }
        try:
            response = httpx.post(
                self.webhook_url, json=payload, timeout=config.NOTIFICATION_TIMEOUT_SECONDS
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"[TEAMS] Notification failed for reservation {reservation.id}: {e}")
            return False
        return True


def get_notifier() -> Notifier:
    return Notifier(
        smtp_host=config.SMTP_HOST,
        smtp_port=config.SMTP_PORT,
        webhook_url=config.TEAMS_WEBHOOK_URL,
    )
