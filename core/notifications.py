# core/notifications.py
import requests
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import List, Optional
from core.config import settings
from core.logging_config import logger
from core.utils import normalize_full_name

# -----------------------------------------------------
# 📨 Send webhook (Discord, Slack, etc.)
# -----------------------------------------------------
def send_webhook_message(message: str):
    webhook_url = settings.NOTIFICATION_WEBHOOK_URL
    if not webhook_url:
        logger.debug("Webhook URL not configured: skipping.")
        return

    try:
        payload = {"content": message}
        response = requests.post(webhook_url, json=payload, timeout=10)
        logger.info(f"Webhook sent (status {response.status_code})")
    except Exception as e:
        logger.warning(f"Webhook failed: {e}")


# -----------------------------------------------------
# 📧 Send email (SMTP)
# -----------------------------------------------------
def send_email(
    subject: str,
    body: str,
    to: str = None,
    recipients: Optional[List[str]] = None,
    html_body: Optional[str] = None
):
    """
    Send email via SMTP.

    Args:
        subject: Email subject
        body: Plain text email body
        to: Single recipient email
        recipients: List of recipient email addresses
        html_body: Optional HTML email body
    """
    smtp_host = settings.SMTP_HOST
    smtp_port = settings.SMTP_PORT
    smtp_user = settings.SMTP_USER
    smtp_pass = settings.SMTP_PASS

    recipient_list = recipients or ([to] if to else [])

    if not recipient_list:
        logger.warning("No recipients specified: skipping email.")
        return

    if not all([smtp_host, smtp_port, smtp_user, smtp_pass]):
        logger.warning("Email credentials missing: skipping email.")
        return

    try:
        msg = MIMEMultipart('alternative')
        msg["From"] = smtp_user
        msg["To"] = ", ".join(recipient_list)
        msg["Subject"] = subject

        msg.attach(MIMEText(body, "plain"))

        if html_body:
            msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP_SSL(smtp_host, smtp_port) as server:
            server.login(smtp_user, smtp_pass)
            server.send_message(msg)

        logger.info(f"Email sent to {', '.join(recipient_list)}")

    except Exception as e:
        logger.error(f"Email failed: {e}")
        raise


# -----------------------------------------------------
# Best-effort notifications
# Failures are logged and never reach the caller.
# -----------------------------------------------------
def send_approval_email(
    email: Optional[str],
    first_name: Optional[str],
    last_name: Optional[str],
    organization_name: str,
) -> bool:
    if not email:
        return False

    name = normalize_full_name(first_name, last_name) or email
    login_url = f"{settings.APP_BASE_URL.rstrip('/')}/login"

    subject = f"Tu solicitud para unirte a {organization_name} fue aprobada"
    body = f"""
Hola {name},

Un administrador aprobó tu solicitud para unirte a {organization_name}.

Inicia sesión para comenzar:

{login_url}
"""

    try:
        send_email(subject=subject, body=body, to=email)
        return True
    except Exception as e:
        logger.error(f"Error sending approval email to {email}: {e}")
        return False


def notify_visitor_entry(qr_code: dict, access_log: dict) -> bool:
    """Webhook notice when a visitor code is validated at the gate."""
    try:
        visitor = qr_code.get("visitor_name") or qr_code.get("identifier") or "Visitante"
        send_webhook_message(
            f"{visitor}: {access_log.get('entry_type', 'entry')} registrada "
            f"(organización {qr_code.get('organization_id')})"
        )
        return True
    except Exception as e:
        logger.error(f"Error sending visitor notification for {qr_code.get('id')}: {e}")
        return False
