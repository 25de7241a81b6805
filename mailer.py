# mailer.py
import logging

import requests

import config

logger = logging.getLogger(__name__)

RESEND_URL = "https://api.resend.com/emails"


def send(to: str, subject: str, html: str) -> None:
    """Deliver one email through Resend. Without an API key, only log it."""
    if not config.RESEND_API_KEY:
        logger.info("Mail delivery disabled, not sending %r to %s", subject, to)
        logger.debug("Mail body for %s:\n%s", to, html)
        return

    res = requests.post(
        RESEND_URL,
        json={"from": config.MAIL_FROM, "to": [to], "subject": subject, "html": html},
        headers={"Authorization": f"Bearer {config.RESEND_API_KEY}"},
        timeout=10,
    )
    res.raise_for_status()
    logger.info("Sent %r to %s", subject, to)


def _layout(body: str) -> str:
    return (
        '<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto;">'
        f"{body}"
        '<p style="font-size: 12px; color: #999;">If you did not request this, you can ignore this email.</p>'
        "</div>"
    )


def send_otp(to: str, code: str) -> None:
    send(to, "[orefull] Your verification code", _layout(
        "<p>Enter this code to finish creating your account:</p>"
        f'<p style="font-size: 32px; font-weight: bold; letter-spacing: 4px;">{code}</p>'
        "<p>The code is valid for 10 minutes.</p>"
    ))


def send_password_reset(to: str, link: str) -> None:
    send(to, "[orefull] Reset your password", _layout(
        "<p>Open the link below to choose a new password:</p>"
        f'<p><a href="{link}">{link}</a></p>'
        "<p>The link is valid for 24 hours.</p>"
    ))


def send_magic_link(to: str, link: str) -> None:
    send(to, "[orefull] Your sign-in link", _layout(
        "<p>Open the link below to sign in:</p>"
        f'<p><a href="{link}">{link}</a></p>'
        "<p>The link works once and is valid for 24 hours.</p>"
    ))
