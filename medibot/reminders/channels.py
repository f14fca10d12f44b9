"""
Channel senders: one adapter per notification channel.

Every sender exposes send(recipient, title, body) -> SendResult. Sends are
stateless and attempted once; provider errors come back as a failed result,
a missing prerequisite (no device token, no phone number, channel not
configured) as a skipped one.
"""
import logging
import re
import smtplib
import ssl
import time
import uuid
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Callable, Dict, Optional

import requests
from firebase_admin import exceptions as firebase_exceptions
from firebase_admin import messaging

from medibot.core.firebase import ensure_firebase_initialized
from .config import settings
from .models import Channel, SendResult

logger = logging.getLogger(__name__)

_PHONE_SEPARATORS = re.compile(r"[\s\-()]")
_E164 = re.compile(r"^\+?[1-9]\d{1,14}$")


def _demo_message_id() -> str:
    return f"demo_{int(time.time() * 1000)}"


class ChannelSender(ABC):
    channel: Channel

    @abstractmethod
    def send(self, recipient: str, title: str, body: str) -> SendResult:
        ...


class PushSender(ChannelSender):
    """FCM push; the recipient is a user id whose device token is looked up."""

    channel = Channel.PUSH

    def __init__(
        self,
        token_lookup: Callable[[str], Optional[str]],
        firebase_ready: Callable[[], bool] = ensure_firebase_initialized,
    ):
        self.token_lookup = token_lookup
        self.firebase_ready = firebase_ready

    def send(self, recipient: str, title: str, body: str) -> SendResult:
        token = self.token_lookup(recipient)
        if not token:
            logger.info(f"⚠️  [FCM] No device token for user {recipient} - skipping push")
            return SendResult.skipped(self.channel, "no device token")

        if not self.firebase_ready():
            return SendResult.skipped(self.channel, "firebase not configured")

        # Unique id keeps iOS from collapsing repeated reminders
        notification_id = str(uuid.uuid4())
        message = messaging.Message(
            token=token,
            notification=messaging.Notification(title=title, body=body),
            data={"notification_id": notification_id, "type": "medication_reminder"},
            apns=messaging.APNSConfig(
                headers={
                    "apns-push-type": "alert",
                    "apns-priority": "10",
                    "apns-collapse-id": notification_id,
                }
            ),
        )
        try:
            logger.info(f"🚀 [FCM] Sending to token {token[:20]}... | {title}")
            result = messaging.send(message)
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            logger.error(f"❌ [FCM] Failed to send notification: {e!r}")
            return SendResult.failed(self.channel, str(e))
        logger.info(f"✅ [FCM] Notification sent: {result}")
        return SendResult.sent(self.channel, message_id=result)


class EmailSender(ChannelSender):
    """SMTP email; the recipient is an address."""

    channel = Channel.EMAIL

    def __init__(
        self,
        smtp_server: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_username: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_email: Optional[str] = None,
        dry_run: Optional[bool] = None,
    ):
        self.smtp_server = smtp_server if smtp_server is not None else settings.SMTP_SERVER
        self.smtp_port = int(smtp_port if smtp_port is not None else settings.SMTP_PORT)
        self.smtp_username = smtp_username if smtp_username is not None else settings.SMTP_USERNAME
        self.smtp_password = smtp_password if smtp_password is not None else settings.SMTP_PASSWORD
        self.from_email = from_email or settings.FROM_EMAIL or self.smtp_username
        self.dry_run = settings.DRY_RUN if dry_run is None else dry_run

    @property
    def configured(self) -> bool:
        return bool(self.smtp_server and self.smtp_username and self.smtp_password and self.from_email)

    def send(self, recipient: str, title: str, body: str) -> SendResult:
        if self.dry_run:
            logger.info(f"📧 [Email] (dry run) To: {recipient} | Subject: {title} | {body}")
            return SendResult.sent(self.channel, message_id=_demo_message_id())
        if not self.configured:
            return SendResult.skipped(self.channel, "email not configured")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = title
        msg["From"] = self.from_email
        msg["To"] = recipient
        msg.attach(MIMEText(self._create_text(recipient, body), "plain"))
        msg.attach(MIMEText(self._create_html(recipient, title, body), "html"))

        try:
            self._send_email(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"❌ [Email] SMTP error sending to {recipient}: {e}")
            return SendResult.failed(self.channel, str(e))
        logger.info(f"✅ [Email] Sent to {recipient}")
        return SendResult.sent(self.channel)

    def _send_email(self, msg: MIMEMultipart) -> None:
        context = ssl.create_default_context()
        if self.smtp_port == 465:
            with smtplib.SMTP_SSL(self.smtp_server, self.smtp_port, context=context) as server:
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(self.smtp_server, self.smtp_port) as server:
                server.starttls(context=context)
                server.login(self.smtp_username, self.smtp_password)
                server.send_message(msg)

    def _create_text(self, recipient: str, body: str) -> str:
        name = recipient.split("@")[0] or "User"
        return f"""
        Hi {name},

        {body}

        Thanks,
        The MediBot Team
        """

    def _create_html(self, recipient: str, title: str, body: str) -> str:
        name = recipient.split("@")[0] or "User"
        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <title>{title}</title>
            <style>
                body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
                .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
                .header {{ background-color: #4f46e5; color: white; padding: 20px; text-align: center; }}
                .content {{ padding: 30px; background-color: #f9f9f9; text-align: center; }}
                .reminder {{ font-size: 20px; font-weight: bold; color: #4f46e5; margin: 20px 0; }}
                .footer {{ padding: 20px; text-align: center; color: #999; font-size: 12px; }}
            </style>
        </head>
        <body>
            <div class="container">
                <div class="header"><h1>MediBot</h1></div>
                <div class="content">
                    <p>Hi {name},</p>
                    <div class="reminder">{body}</div>
                    <p>Thanks,<br />The MediBot Team</p>
                </div>
                <div class="footer"><p>This is an automated reminder.</p></div>
            </div>
        </body>
        </html>
        """


def normalize_phone_number(phone_number: str, default_country_code: str = "+1") -> Optional[str]:
    """Return the number in E.164 form, or None when it is not a plausible phone number."""
    cleaned = _PHONE_SEPARATORS.sub("", phone_number or "")
    if not _E164.match(cleaned):
        return None
    if cleaned.startswith("+"):
        return cleaned
    return f"{default_country_code}{cleaned}"


class SmsSender(ChannelSender):
    """SMS through the Twilio REST API; the recipient is a phone number."""

    channel = Channel.SMS

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        api_base: Optional[str] = None,
        default_country_code: Optional[str] = None,
        timeout: Optional[float] = None,
        dry_run: Optional[bool] = None,
    ):
        self.account_sid = account_sid if account_sid is not None else settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token if auth_token is not None else settings.TWILIO_AUTH_TOKEN
        self.from_number = from_number if from_number is not None else settings.TWILIO_FROM_NUMBER
        self.api_base = (api_base or settings.TWILIO_API_BASE).rstrip("/")
        self.default_country_code = default_country_code or settings.SMS_DEFAULT_COUNTRY_CODE
        self.timeout = timeout or settings.CHANNEL_TIMEOUT_SECONDS
        self.dry_run = settings.DRY_RUN if dry_run is None else dry_run

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def send(self, recipient: str, title: str, body: str) -> SendResult:
        to = normalize_phone_number(recipient, self.default_country_code)
        if to is None:
            logger.error(f"❌ [SMS] Invalid phone number: {recipient}")
            return SendResult.failed(self.channel, "invalid phone number")

        if self.dry_run:
            logger.info(f"📱 [SMS] (dry run) To: {to} | {body}")
            return SendResult.sent(self.channel, message_id=_demo_message_id())
        if not self.configured:
            return SendResult.skipped(self.channel, "sms not configured")

        url = f"{self.api_base}/Accounts/{self.account_sid}/Messages.json"
        try:
            r = requests.post(
                url,
                data={"From": self.from_number, "To": to, "Body": body},
                auth=(self.account_sid, self.auth_token),
                timeout=self.timeout,
            )
            result = r.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"❌ [SMS] Request to provider failed: {e!r}")
            return SendResult.failed(self.channel, str(e))

        if not r.ok:
            error = result.get("message") or f"HTTP {r.status_code}"
            logger.error(f"❌ [SMS] Provider rejected message to {to}: {error}")
            return SendResult.failed(self.channel, error)
        logger.info(f"✅ [SMS] Sent to {to}: {result.get('sid')}")
        return SendResult.sent(self.channel, message_id=result.get("sid"))


class WhatsAppSender(ChannelSender):
    """WhatsApp Cloud API; the recipient is a phone number, sent digits-only."""

    channel = Channel.WHATSAPP

    def __init__(
        self,
        access_token: Optional[str] = None,
        phone_number_id: Optional[str] = None,
        api_base: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        dry_run: Optional[bool] = None,
    ):
        self.access_token = access_token if access_token is not None else settings.WHATSAPP_ACCESS_TOKEN
        self.phone_number_id = phone_number_id if phone_number_id is not None else settings.WHATSAPP_PHONE_NUMBER_ID
        self.api_base = (api_base or settings.WHATSAPP_API_BASE).rstrip("/")
        self.api_version = api_version or settings.WHATSAPP_API_VERSION
        self.timeout = timeout or settings.CHANNEL_TIMEOUT_SECONDS
        self.dry_run = settings.DRY_RUN if dry_run is None else dry_run

    @property
    def configured(self) -> bool:
        return bool(self.access_token and self.phone_number_id)

    def send(self, recipient: str, title: str, body: str) -> SendResult:
        to = re.sub(r"\D", "", recipient or "")
        if not to:
            return SendResult.skipped(self.channel, "no phone number")

        if self.dry_run:
            logger.info(f"📲 [WhatsApp] (dry run) To: {to} | {body}")
            return SendResult.sent(self.channel, message_id=_demo_message_id())
        if not self.configured:
            return SendResult.skipped(self.channel, "whatsapp not configured")

        url = f"{self.api_base}/{self.api_version}/{self.phone_number_id}/messages"
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
        }
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": body},
        }
        try:
            r = requests.post(url, json=payload, headers=headers, timeout=self.timeout)
            result = r.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"❌ [WhatsApp] Request to provider failed: {e!r}")
            return SendResult.failed(self.channel, str(e))

        if not r.ok or result.get("error"):
            error = (result.get("error") or {}).get("message") or "Failed to send WhatsApp message"
            logger.error(f"❌ [WhatsApp] Provider rejected message to {to}: {error}")
            return SendResult.failed(self.channel, error)

        messages = result.get("messages") or [{}]
        message_id = messages[0].get("id")
        logger.info(f"✅ [WhatsApp] Sent to {to}: {message_id}")
        return SendResult.sent(self.channel, message_id=message_id)


def build_default_senders(token_lookup: Callable[[str], Optional[str]]) -> Dict[Channel, ChannelSender]:
    return {
        Channel.PUSH: PushSender(token_lookup),
        Channel.EMAIL: EmailSender(),
        Channel.SMS: SmsSender(),
        Channel.WHATSAPP: WhatsAppSender(),
    }
