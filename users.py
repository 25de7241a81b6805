# users.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

import errors
from auth import (
    Identity, current_identity, end_session, onboarded_identity, optional_identity,
    refresh_session, set_password,
)
from db import get_db, transaction
from models import Course, User
from schemas import ProfileUpdateIn, SetupIn

logger = logging.getLogger(__name__)

router = APIRouter()

NAME_MAX = 100


def _load(db: Session, identity: Identity) -> User:
    user = db.get(User, identity.user_id)
    if user is None:
        raise errors.NotFound("User not found.")
    return user


def _clean_name(name: str) -> str:
    name = (name or "").strip()
    if not name:
        raise errors.ValidationError("Please enter a name.")
    if len(name) > NAME_MAX:
        raise errors.ValidationError(f"Name must be at most {NAME_MAX} characters.")
    return name


def complete_setup(db: Session, identity: Identity, name: str, password: str) -> User:
    """Onboarding: set a display name and a password.

    Bumps the credentials version, so every outstanding session for the
    account (including the caller's) stops working and the user signs in
    again with the new password.
    """
    user = _load(db, identity)
    if user.hashed_password:
        # changing an existing password goes through the reset flow
        raise errors.Conflict("Your profile is already set up.")
    name = _clean_name(name)
    if not password:
        raise errors.ValidationError("Password is required.")
    with transaction(db):
        user.name = name
        set_password(user, password)
    logger.info("User %s completed onboarding", user.id)
    return user


def profile_dict(user: User) -> dict:
    return {
        "id": user.id,
        "handle": user.handle,
        "name": user.name,
        "email": user.email,
        "image": user.image,
        "bio": user.bio,
    }


def update_profile(db: Session, identity: Identity, name: Optional[str] = None,
                   bio: Optional[str] = None, image: Optional[str] = None) -> User:
    user = _load(db, identity)
    if image and not image.startswith(("http://", "https://")):
        raise errors.ValidationError("Image must be an http(s) URL.")
    with transaction(db):
        if name is not None:
            user.name = _clean_name(name)
        if bio is not None:
            user.bio = bio.strip() or None
        if image is not None:
            user.image = image or None
    return user


def public_profile(db: Session, user_id: int, viewer: Optional[Identity]) -> dict:
    user = db.get(User, user_id)
    if user is None:
        raise errors.NotFound("User not found.")
    courses = (
        db.query(Course)
        .filter(Course.user_id == user_id)
        .order_by(Course.created_at.desc(), Course.id.desc())
        .all()
    )
    return {
        "user": {
            "id": user.id,
            "handle": user.handle,
            "name": user.name,
            "image": user.image,
            "bio": user.bio,
            "courseCount": user.course_count,
            "createdAt": user.created_at.isoformat() if user.created_at else None,
        },
        "courses": [
            {
                "id": c.id,
                "title": c.title,
                "description": c.description,
                "averageRating": c.average_rating,
                "totalRatingsCount": c.total_ratings_count,
                "wantsToEatCount": c.wants_to_eat_count,
                "triedCount": c.tried_count,
                "itemCount": len(c.items),
                "createdAt": c.created_at.isoformat() if c.created_at else None,
            }
            for c in courses
        ],
        "isOwnProfile": viewer is not None and viewer.user_id == user.id,
    }


@router.post("/user/setup")
def setup(payload: SetupIn, request: Request, identity: Identity = Depends(current_identity),
          db: Session = Depends(get_db)):
    complete_setup(db, identity, payload.name, payload.password)
    end_session(request)
    return {"message": "Profile saved. Please log in again.", "reauthenticate": True}


@router.get("/user/profile")
def get_profile(identity: Identity = Depends(current_identity), db: Session = Depends(get_db)):
    return {"user": profile_dict(_load(db, identity))}


@router.patch("/user/profile")
def patch_profile(payload: ProfileUpdateIn, request: Request,
                  identity: Identity = Depends(onboarded_identity), db: Session = Depends(get_db)):
    user = update_profile(db, identity, name=payload.name, bio=payload.bio, image=payload.image)
    refresh_session(request, user)
    return {"message": "Profile updated.", "user": profile_dict(user)}


@router.get("/user/{user_id}")
def get_public_profile(user_id: int, viewer: Optional[Identity] = Depends(optional_identity),
                       db: Session = Depends(get_db)):
    return public_profile(db, user_id, viewer)
