# registration.py
"""Email-first sign-up: send a 6-digit code, check it, then create the account.

EmailEntry -> CodeSent (send_otp) -> CodeVerified (verify_otp) -> Registered
(register). Every step can be retried; register() re-checks the code so the
verify step cannot be skipped.
"""
import logging
import re
from datetime import datetime

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import errors
import mailer
import tokens
from auth import identity_for, normalize_email, session_payload, set_password, start_session
from db import get_db, transaction
from models import User
from schemas import EmailIn, RegisterIn, VerifyOtpIn

logger = logging.getLogger(__name__)

router = APIRouter()

HANDLE_RE = re.compile(r"^[A-Za-z0-9_.]{3,30}$")


def _email_taken(db: Session, email: str) -> bool:
    return db.query(User.id).filter(User.email == email).first() is not None


def send_otp(db: Session, email: str) -> None:
    email = normalize_email(email)
    if _email_taken(db, email):
        raise errors.EmailAlreadyRegistered()
    with transaction(db):
        code = tokens.issue(db, tokens.EMAIL_OTP, email)
    mailer.send_otp(email, code)
    logger.info("Verification code sent to %s", email)


def verify_otp(db: Session, email: str, code: str, now: datetime | None = None) -> None:
    tokens.check_code(db, tokens.EMAIL_OTP, normalize_email(email), code, now=now)


def register(db: Session, email: str, code: str, handle: str, name: str, password: str,
             now: datetime | None = None) -> User:
    email = normalize_email(email)
    handle = (handle or "").strip()
    name = (name or "").strip()

    tokens.check_code(db, tokens.EMAIL_OTP, email, code, now=now)
    if not HANDLE_RE.match(handle):
        raise errors.ValidationError("User ID must be 3-30 letters, digits, '_' or '.'.")
    if not name:
        raise errors.ValidationError("Display name is required.")
    if db.query(User.id).filter(User.handle == handle).first():
        raise errors.HandleAlreadyTaken()
    if _email_taken(db, email):
        raise errors.EmailAlreadyRegistered()

    try:
        with transaction(db):
            user = User(email=email, handle=handle, name=name)
            set_password(user, password)
            db.add(user)
            tokens.discard(db, tokens.EMAIL_OTP, email)
    except IntegrityError:
        # lost a race with another sign-up between the checks and the insert
        if db.query(User.id).filter(User.handle == handle).first():
            raise errors.HandleAlreadyTaken()
        raise errors.EmailAlreadyRegistered()

    logger.info("Registered user %s (%s)", user.id, handle)
    return user


@router.post("/auth/send-otp")
def send_otp_route(payload: EmailIn, db: Session = Depends(get_db)):
    send_otp(db, payload.email)
    return {"message": "Verification code sent."}


@router.post("/auth/verify-otp")
def verify_otp_route(payload: VerifyOtpIn, db: Session = Depends(get_db)):
    verify_otp(db, payload.email, payload.code)
    return {"message": "Verified."}


@router.post("/register")
def register_route(payload: RegisterIn, request: Request, db: Session = Depends(get_db)):
    user = register(db, payload.email, payload.code, payload.handle, payload.name, payload.password)
    start_session(request, user)
    return {"message": "Registered.", **session_payload(identity_for(user))}
