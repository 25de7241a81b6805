# auth.py
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import RedirectResponse
from passlib.context import CryptContext
from sqlalchemy.orm import Session

import config
import errors
import mailer
import tokens
from db import get_db, transaction
from models import User
from schemas import EmailIn, LoginIn, ResetPasswordIn

logger = logging.getLogger(__name__)

router = APIRouter()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=config.BCRYPT_ROUNDS)


def hash_password(p: str) -> str:
    return pwd_context.hash(p)


def verify_password(p: str, hp: str) -> bool:
    return pwd_context.verify(p, hp)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


@dataclass(frozen=True)
class Identity:
    """Who is making a call. Passed explicitly into every service function."""
    user_id: int
    is_admin: bool = False
    name: Optional[str] = None
    image: Optional[str] = None

    @property
    def needs_onboarding(self) -> bool:
        return not self.name


def identity_for(user: User) -> Identity:
    return Identity(user_id=user.id, is_admin=bool(user.is_admin), name=user.name, image=user.image)


# === СЕССИЯ ===
def start_session(request: Request, user: User) -> None:
    request.session.clear()
    request.session.update({
        "user_id": user.id,
        "is_admin": bool(user.is_admin),
        "name": user.name,
        "image": user.image,
        "credentials_version": user.credentials_version,
    })


def refresh_session(request: Request, user: User) -> None:
    """Push profile changes into the cookie without a new login."""
    if request.session.get("user_id") == user.id:
        request.session.update({"name": user.name, "image": user.image, "is_admin": bool(user.is_admin)})


def end_session(request: Request) -> None:
    request.session.clear()


def optional_identity(request: Request, db: Session = Depends(get_db)) -> Optional[Identity]:
    uid = request.session.get("user_id")
    if not uid:
        return None
    user = db.get(User, uid)
    if user is None or request.session.get("credentials_version") != user.credentials_version:
        # account deleted, or password changed since this cookie was issued
        end_session(request)
        return None
    return identity_for(user)


def current_identity(identity: Optional[Identity] = Depends(optional_identity)) -> Identity:
    if identity is None:
        raise errors.Unauthorized()
    return identity


def onboarded_identity(identity: Identity = Depends(current_identity)) -> Identity:
    if identity.needs_onboarding:
        raise errors.OnboardingRequired()
    return identity


def admin_identity(identity: Identity = Depends(onboarded_identity)) -> Identity:
    if not identity.is_admin:
        raise errors.Forbidden("Admin privileges required.")
    return identity


# === ПАРОЛЬ ===
def authenticate_password(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == normalize_email(email)).first()
    # same error for unknown email, passwordless account and wrong password
    if not user or not user.hashed_password:
        raise errors.InvalidCredentials()
    if not verify_password(password, user.hashed_password):
        raise errors.InvalidCredentials()
    return user


def set_password(user: User, password: str) -> None:
    user.hashed_password = hash_password(password)
    user.credentials_version = (user.credentials_version or 0) + 1


# === MAGIC LINK ===
def request_magic_link(db: Session, email: str) -> None:
    email = normalize_email(email)
    with transaction(db):
        token = tokens.issue(db, tokens.MAGIC_LINK, email)
    mailer.send_magic_link(email, f"{config.APP_DOMAIN}/auth/magic-link/callback?token={token}")


def authenticate_magic_link(db: Session, token: str) -> User:
    with transaction(db):
        row = tokens.redeem(db, tokens.MAGIC_LINK, token)
        user = db.query(User).filter(User.email == row.email).first()
        if user is None:
            # first visit doubles as sign-up; the onboarding gate asks for a name and password
            user = User(email=row.email)
            db.add(user)
            db.flush()
            logger.info("Created passwordless user %s via magic link", user.id)
    return user


# === СБРОС ПАРОЛЯ ===
def request_password_reset(db: Session, email: str) -> None:
    email = normalize_email(email)
    user = db.query(User).filter(User.email == email).first()
    if not user:
        return
    with transaction(db):
        token = tokens.issue(db, tokens.PASSWORD_RESET, email)
    mailer.send_password_reset(email, f"{config.APP_DOMAIN}/reset-password?token={token}")


def reset_password(db: Session, token: str, password: str) -> User:
    with transaction(db):
        row = tokens.redeem(db, tokens.PASSWORD_RESET, token)
        user = db.query(User).filter(User.email == row.email).first()
        if user is None:
            raise errors.InvalidToken()
        set_password(user, password)
    logger.info("Password reset for user %s", user.id)
    return user


def session_payload(identity: Optional[Identity]) -> dict:
    if identity is None:
        return {"authenticated": False, "user": None}
    return {
        "authenticated": True,
        "needsOnboarding": identity.needs_onboarding,
        "user": {"id": identity.user_id, "name": identity.name, "image": identity.image,
                 "isAdmin": identity.is_admin},
    }


# === ЛОГИН ===
@router.post("/login")
def login(payload: LoginIn, request: Request, db: Session = Depends(get_db)):
    user = authenticate_password(db, payload.email, payload.password)
    start_session(request, user)
    return session_payload(identity_for(user))


# === ЛОГАУТ ===
@router.post("/logout")
def logout(request: Request):
    end_session(request)
    return {"message": "Logged out."}


@router.get("/auth/session")
def get_session(identity: Optional[Identity] = Depends(optional_identity)):
    return session_payload(identity)


@router.post("/auth/magic-link")
def magic_link_start(payload: EmailIn, db: Session = Depends(get_db)):
    request_magic_link(db, payload.email)
    return {"message": "Sign-in link sent."}


@router.get("/auth/magic-link/callback")
def magic_link_callback(token: str, request: Request, db: Session = Depends(get_db)):
    user = authenticate_magic_link(db, token)
    start_session(request, user)
    target = "/onboarding" if not user.name else "/"
    return RedirectResponse(url=target, status_code=status.HTTP_302_FOUND)


@router.post("/auth/forgot-password")
def forgot_password(payload: EmailIn, db: Session = Depends(get_db)):
    request_password_reset(db, payload.email)
    # identical answer whether or not the address exists
    return {"message": "If that address is registered, a reset link has been sent."}


@router.post("/auth/reset-password")
def apply_password_reset(payload: ResetPasswordIn, db: Session = Depends(get_db)):
    reset_password(db, payload.token, payload.password)
    return {"message": "Password changed."}
