# tokens.py
"""One-time tokens: email OTP codes, password-reset links and magic links.

All three share one table and one lifecycle. Issuing a token for a
(purpose, email) pair replaces whatever was there before; a token is inert
once it is past ``expires_at`` or has been consumed. Nothing here commits,
except a wrong code: the attempt count has to survive the error it raises.
Callers run everything else inside their own transaction.
"""
import hmac
import secrets
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

import errors
from models import OneTimeToken, utcnow

EMAIL_OTP = "email_otp"
PASSWORD_RESET = "password_reset"
MAGIC_LINK = "magic_link"

TTL = {
    EMAIL_OTP: timedelta(minutes=10),
    PASSWORD_RESET: timedelta(hours=24),
    MAGIC_LINK: timedelta(hours=24),
}

MAX_ATTEMPTS = 5


def _new_value(purpose: str) -> str:
    if purpose == EMAIL_OTP:
        return f"{100000 + secrets.randbelow(900000)}"
    return secrets.token_urlsafe(32)


def issue(db: Session, purpose: str, email: str, now: datetime | None = None) -> str:
    now = now or utcnow()
    value = _new_value(purpose)
    row = db.query(OneTimeToken).filter_by(purpose=purpose, email=email).first()
    if row is None:
        row = OneTimeToken(purpose=purpose, email=email)
        db.add(row)
    row.token = value
    row.expires_at = now + TTL[purpose]
    row.created_at = now
    row.attempts = 0
    db.flush()
    return value


def check_code(db: Session, purpose: str, email: str, code: str,
               now: datetime | None = None) -> OneTimeToken:
    """Validate a code sent to ``email`` without consuming it.

    After ``MAX_ATTEMPTS`` wrong guesses the code is deleted and a new one
    has to be requested.
    """
    row = db.query(OneTimeToken).filter_by(purpose=purpose, email=email).first()
    if row is None:
        raise errors.CodeNotFound()
    # compare_digest rejects non-ASCII str, e.g. full-width digits from an IME
    if not hmac.compare_digest(row.token.encode(), str(code or "").encode()):
        row.attempts = (row.attempts or 0) + 1
        if row.attempts >= MAX_ATTEMPTS:
            db.delete(row)
        db.commit()
        raise errors.CodeMismatch()
    if (now or utcnow()) > row.expires_at:
        raise errors.CodeExpired()
    return row


def redeem(db: Session, purpose: str, value: str, now: datetime | None = None) -> OneTimeToken:
    """Look a link token up by value and consume it. Returns the deleted row."""
    row = (
        db.query(OneTimeToken)
        .filter(OneTimeToken.purpose == purpose, OneTimeToken.token == (value or ""))
        .first()
    )
    if row is None:
        raise errors.InvalidToken()
    if (now or utcnow()) > row.expires_at:
        raise errors.TokenExpired()
    db.delete(row)
    db.flush()
    return row


def discard(db: Session, purpose: str, email: str) -> None:
    db.query(OneTimeToken).filter_by(purpose=purpose, email=email).delete()
