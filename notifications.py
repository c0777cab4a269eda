"""Confirmation email providers.

Exactly one provider is active per deployment, chosen by ``NOTIFY_PROVIDER``.
Every provider honours the same contract: ``send(recipient, display_name,
workshops, details)`` returns on success and raises :class:`NotificationError`
on any provider failure. ``details`` carries the stored registration fields for
providers that render their own templates. Callers decide whether a failure
matters.
"""
from __future__ import annotations

import logging
import os
import smtplib
import ssl
from email.message import EmailMessage
from html import escape
from typing import Any, Dict, Mapping, Sequence

import requests

from settings import HTTP_TIMEOUT, NOTIFY_PROVIDER, NOTIFY_SUBJECT, WORKSHOPS_SEPARATOR

log = logging.getLogger(__name__)

EMAILJS_SEND_URL = "https://api.emailjs.com/api/v1.0/email/send"
RESEND_SEND_URL = "https://api.resend.com/emails"

# extra registration fields exposed to EmailJS templates
EMAILJS_DETAIL_FIELDS = ("prenom", "nom", "poste", "startup", "telephone", "pays", "adresse")


def _get_env_setting(key: str, default: str = "") -> str:
    value = os.getenv(key)
    if value is None:
        return default.strip()
    return value.strip()


class NotificationError(Exception):
    """Raised when a provider fails to accept a confirmation email."""


def compose_confirmation(display_name: str, workshops: Sequence[str]) -> tuple[str, str, str]:
    """Return ``(subject, text_body, html_body)`` for the attendee confirmation."""
    joined = WORKSHOPS_SEPARATOR.join(workshops) or "N/A"
    text_body = (
        f"Bonjour {display_name},\n\n"
        "Votre inscription est bien enregistrée.\n\n"
        f"Ateliers : {joined}\n\n"
        "À très bientôt !"
    )
    items = "".join(f"<li>{escape(w)}</li>" for w in workshops)
    html_body = (
        f"<p>Bonjour {escape(display_name)},</p>"
        "<p>Votre inscription est bien enregistrée.</p>"
        f"<p>Ateliers :</p><ul>{items}</ul>"
        "<p>À très bientôt !</p>"
    )
    return NOTIFY_SUBJECT, text_body, html_body


class Notifier:
    name = "base"

    def send(self, recipient: str, display_name: str, workshops: Sequence[str],
             details: Mapping[str, Any] | None = None) -> None:
        raise NotImplementedError


class NullNotifier(Notifier):
    name = "none"

    def send(self, recipient: str, display_name: str, workshops: Sequence[str],
             details: Mapping[str, Any] | None = None) -> None:
        log.info("Notification provider disabled; no email for %s", recipient)


class SmtpNotifier(Notifier):
    name = "smtp"

    def __init__(self, host: str, port: int, username: str, password: str,
                 sender: str, starttls: bool = True, timeout: float | None = None):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.starttls = starttls
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> "SmtpNotifier":
        port = int(_get_env_setting("SMTP_PORT", "465"))
        starttls_default = "true" if port not in (25, 2525, 465) else "false"
        timeout_raw = _get_env_setting("SMTP_TIMEOUT")
        try:
            timeout = float(timeout_raw) if timeout_raw else None
        except ValueError:
            log.warning("Invalid SMTP_TIMEOUT value %s; ignoring", timeout_raw)
            timeout = None
        username = _get_env_setting("SMTP_USERNAME")
        return cls(
            host=_get_env_setting("SMTP_HOST", "smtp.gmail.com"),
            port=port,
            username=username,
            password=_get_env_setting("SMTP_PASSWORD"),
            sender=_get_env_setting("SMTP_FROM") or username,
            starttls=_get_env_setting("SMTP_STARTTLS", starttls_default).lower() in {"1", "true", "yes", "y", "on"},
            timeout=timeout,
        )

    def send(self, recipient: str, display_name: str, workshops: Sequence[str],
             details: Mapping[str, Any] | None = None) -> None:
        if not (self.username and self.password):
            raise NotificationError("SMTP not configured: missing SMTP_USERNAME or SMTP_PASSWORD")

        subject, text_body, html_body = compose_confirmation(display_name, workshops)
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = recipient
        msg.set_content(text_body)
        msg.add_alternative(html_body, subtype="html")

        try:
            if self.port == 465:
                with smtplib.SMTP_SSL(
                    self.host, self.port, context=ssl.create_default_context(), timeout=self.timeout
                ) as smtp:
                    smtp.login(self.username, self.password)
                    smtp.send_message(msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
                    if self.starttls:
                        smtp.ehlo()
                        smtp.starttls(context=ssl.create_default_context())
                        smtp.ehlo()
                    smtp.login(self.username, self.password)
                    smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"SMTP send failed: {exc}") from exc
        log.info("Confirmation email sent to %s via SMTP", recipient)


class EmailJSNotifier(Notifier):
    """EmailJS REST API; template rendering happens on the EmailJS side."""

    name = "emailjs"

    def __init__(self, service_id: str, template_id: str, public_key: str,
                 origin: str = "", timeout: float = HTTP_TIMEOUT):
        self.service_id = service_id
        self.template_id = template_id
        self.public_key = public_key
        self.origin = origin
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> "EmailJSNotifier":
        return cls(
            service_id=_get_env_setting("EMAILJS_SERVICE_ID"),
            template_id=_get_env_setting("EMAILJS_TEMPLATE_ID"),
            public_key=_get_env_setting("EMAILJS_PUBLIC_KEY"),
            origin=_get_env_setting("EMAILJS_ORIGIN"),
        )

    def build_payload(self, recipient: str, display_name: str, workshops: Sequence[str],
                      details: Mapping[str, Any] | None = None) -> Dict:
        # registration fields go first so the fixed keys below win
        params = {k: v for k, v in (details or {}).items() if k in EMAILJS_DETAIL_FIELDS and v is not None}
        params.update(
            to_email=recipient,
            to_name=display_name,
            name=display_name,
            email=recipient,
            ateliers=WORKSHOPS_SEPARATOR.join(workshops),
            title=NOTIFY_SUBJECT,
        )
        return {
            "service_id": self.service_id,
            "template_id": self.template_id,
            "user_id": self.public_key,
            "template_params": params,
        }

    def send(self, recipient: str, display_name: str, workshops: Sequence[str],
             details: Mapping[str, Any] | None = None) -> None:
        if not (self.service_id and self.template_id and self.public_key):
            raise NotificationError("EmailJS not configured: service, template and public key are required")

        headers = {"Content-Type": "application/json"}
        if self.origin:
            headers["Origin"] = self.origin
        try:
            response = requests.post(
                EMAILJS_SEND_URL,
                json=self.build_payload(recipient, display_name, workshops, details),
                headers=headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise NotificationError(f"EmailJS request failed: {exc}") from exc
        if not response.ok:
            raise NotificationError(f"EmailJS API error {response.status_code}: {response.text}")
        log.info("Confirmation email sent to %s via EmailJS", recipient)


class ResendNotifier(Notifier):
    name = "resend"

    def __init__(self, api_key: str, sender: str, timeout: float = HTTP_TIMEOUT):
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout

    @classmethod
    def from_env(cls) -> "ResendNotifier":
        return cls(
            api_key=_get_env_setting("RESEND_API_KEY"),
            sender=_get_env_setting("RESEND_FROM", "onboarding@resend.dev"),
        )

    def send(self, recipient: str, display_name: str, workshops: Sequence[str],
             details: Mapping[str, Any] | None = None) -> None:
        if not self.api_key:
            raise NotificationError("Resend not configured: missing RESEND_API_KEY")

        subject, text_body, html_body = compose_confirmation(display_name, workshops)
        try:
            response = requests.post(
                RESEND_SEND_URL,
                json={
                    "from": self.sender,
                    "to": [recipient],
                    "subject": subject,
                    "text": text_body,
                    "html": html_body,
                },
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as exc:
            raise NotificationError(f"Resend request failed: {exc}") from exc
        if not response.ok:
            raise NotificationError(f"Resend API error {response.status_code}: {response.text}")
        log.info("Confirmation email sent to %s via Resend", recipient)


_PROVIDERS = {
    NullNotifier.name: NullNotifier,
    SmtpNotifier.name: SmtpNotifier.from_env,
    EmailJSNotifier.name: EmailJSNotifier.from_env,
    ResendNotifier.name: ResendNotifier.from_env,
}


def build_notifier(provider: str | None = None) -> Notifier:
    """Instantiate the configured provider; unknown names fall back to no email."""
    key = (provider or NOTIFY_PROVIDER).strip().lower()
    factory = _PROVIDERS.get(key)
    if factory is None:
        log.warning("Unknown NOTIFY_PROVIDER=%s; confirmation emails disabled", key)
        factory = NullNotifier
    return factory()
