"""
Outbound email over SMTP.

Config (app.config): SMTP_SERVER, SMTP_PORT, SMTP_USE_TLS, SMTP_USERNAME, SMTP_PASSWORD, EMAIL_FROM.
Callers get `(ok, message)` back and decide whether a failure matters to them.
"""

from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app, render_template

logger = logging.getLogger(__name__)


def render_email(name: str, **context) -> tuple[str, str]:
    """Render `email/<name>.txt` and `email/<name>.html`; returns (text, html)."""
    context.setdefault("site_name", current_app.config.get("SITE_NAME") or "Campus")
    context.setdefault("site_url", current_app.config.get("SITE_URL") or "")
    text = render_template(f"email/{name}.txt", **context)
    html = render_template(f"email/{name}.html", **context)
    return text, html


def send_email(to: str, subject: str, text: str, *, html: str | None = None, reply_to: str | None = None) -> tuple[bool, str]:
    cfg = current_app.config
    smtp_server = (cfg.get("SMTP_SERVER") or "").strip()
    smtp_port = cfg.get("SMTP_PORT")
    smtp_use_tls = cfg.get("SMTP_USE_TLS", True)
    smtp_username = (cfg.get("SMTP_USERNAME") or "").strip()
    smtp_password = (cfg.get("SMTP_PASSWORD") or "").strip()
    email_from = (cfg.get("EMAIL_FROM") or "").strip()

    if not smtp_server:
        msg = "SMTP server not configured (SMTP_SERVER missing)"
        logger.error("Email to %s not sent: %s", to, msg)
        return False, msg
    if not email_from:
        msg = "Sender address not configured (EMAIL_FROM missing)"
        logger.error("Email to %s not sent: %s", to, msg)
        return False, msg

    if html:
        message = MIMEMultipart("alternative")
        message.attach(MIMEText(text, "plain", "utf-8"))
        message.attach(MIMEText(html, "html", "utf-8"))
    else:
        message = MIMEText(text, "plain", "utf-8")
    message["Subject"] = subject
    message["From"] = email_from
    message["To"] = to
    if reply_to:
        message["Reply-To"] = reply_to

    try:
        with smtplib.SMTP(smtp_server, int(smtp_port or 587), timeout=30) as server:
            if smtp_use_tls:
                server.starttls()
            if smtp_username and smtp_password:
                server.login(smtp_username, smtp_password)
            server.send_message(message)
    except smtplib.SMTPAuthenticationError as e:
        logger.error("SMTP authentication failed sending to %s: %s", to, e)
        return False, f"SMTP authentication failed: {e}"
    except (smtplib.SMTPException, OSError) as e:
        logger.exception("SMTP delivery to %s failed", to)
        return False, f"SMTP error: {e}"

    logger.info("Sent email to %s subject=%r", to, subject)
    return True, "sent"
