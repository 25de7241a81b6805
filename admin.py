# admin.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import errors
from auth import Identity, admin_identity
from db import get_db, transaction
from engagement import comment_dict, reconcile_course_counters
from models import (
    Comment, ContactSubmission, Course, Rating, SubmissionStatus, Tried, User, WantsToEat,
)
from schemas import SubmissionStatusIn

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin")


def _require_admin(identity: Identity) -> None:
    if not identity.is_admin:
        raise errors.Forbidden("Admin privileges required.")


def _target_user(db: Session, admin: Identity, user_id: int) -> User:
    _require_admin(admin)
    if user_id == admin.user_id:
        raise errors.CannotModifySelf()
    user = db.get(User, user_id)
    if user is None:
        raise errors.NotFound("User not found.")
    return user


def set_submission_status(db: Session, admin: Identity, submission_id: int,
                          status: SubmissionStatus) -> ContactSubmission:
    # any status may follow any other; the field is a triage label
    _require_admin(admin)
    submission = db.get(ContactSubmission, submission_id)
    if submission is None:
        raise errors.NotFound("Submission not found.")
    with transaction(db):
        submission.status = SubmissionStatus(status)
    logger.info("Admin %s set submission %s to %s", admin.user_id, submission_id, submission.status.value)
    return submission


def delete_user(db: Session, admin: Identity, user_id: int) -> None:
    """Delete a user with everything they own.

    Their reactions and comments on other people's courses go too, so those
    courses get their counters rebuilt in the same transaction.
    """
    user = _target_user(db, admin, user_id)
    touched = set()
    for model in (WantsToEat, Tried, Rating, Comment):
        touched.update(cid for (cid,) in db.query(model.course_id).filter(model.user_id == user_id))
    own = {cid for (cid,) in db.query(Course.id).filter(Course.user_id == user_id)}

    with transaction(db):
        db.delete(user)
        db.flush()
        reconcile_course_counters(db, touched - own)
    logger.info("Admin %s deleted user %s", admin.user_id, user_id)


def toggle_user_role(db: Session, admin: Identity, user_id: int) -> bool:
    user = _target_user(db, admin, user_id)
    with transaction(db):
        user.is_admin = not user.is_admin
    logger.info("Admin %s set is_admin=%s on user %s", admin.user_id, user.is_admin, user_id)
    return user.is_admin


def delete_comment(db: Session, admin: Identity, comment_id: int) -> None:
    _require_admin(admin)
    comment = db.get(Comment, comment_id)
    if comment is None:
        raise errors.NotFound("Comment not found.")
    course_id = comment.course_id
    with transaction(db):
        db.delete(comment)
        db.flush()
        db.query(Course).filter(Course.id == course_id).update(
            {Course.comment_count: Course.comment_count - 1}, synchronize_session=False
        )
    logger.info("Admin %s deleted comment %s on course %s", admin.user_id, comment_id, course_id)


def dashboard_counts(db: Session) -> dict:
    return {
        "users": db.query(User).count(),
        "courses": db.query(Course).count(),
        "comments": db.query(Comment).count(),
        "openSubmissions": db.query(ContactSubmission)
        .filter(ContactSubmission.status == SubmissionStatus.OPEN).count(),
    }


def reconcile_all(db: Session, admin: Identity) -> int:
    _require_admin(admin)
    with transaction(db):
        fixed = reconcile_course_counters(db)
    return fixed


def submission_dict(s: ContactSubmission) -> dict:
    return {
        "id": s.id,
        "userId": s.user_id,
        "submitterName": s.submitter_name,
        "submitterEmail": s.submitter_email,
        "type": s.type.value,
        "title": s.title,
        "details": s.details,
        "status": s.status.value,
        "createdAt": s.created_at.isoformat() if s.created_at else None,
    }


@router.get("/dashboard")
def dashboard(admin: Identity = Depends(admin_identity), db: Session = Depends(get_db)):
    return dashboard_counts(db)


@router.get("/users")
def users_index(admin: Identity = Depends(admin_identity), db: Session = Depends(get_db)):
    users = db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()
    return [
        {"id": u.id, "email": u.email, "handle": u.handle, "name": u.name,
         "isAdmin": u.is_admin, "courseCount": u.course_count}
        for u in users
    ]


@router.get("/comments")
def comments_index(admin: Identity = Depends(admin_identity), db: Session = Depends(get_db)):
    comments = db.query(Comment).order_by(Comment.created_at.desc(), Comment.id.desc()).all()
    return [comment_dict(c) for c in comments]


@router.get("/contacts")
def contacts_index(status: Optional[SubmissionStatus] = None, admin: Identity = Depends(admin_identity),
                   db: Session = Depends(get_db)):
    q = db.query(ContactSubmission)
    if status is not None:
        q = q.filter(ContactSubmission.status == status)
    return [submission_dict(s) for s in q.order_by(ContactSubmission.id.desc()).all()]


@router.patch("/contacts/{submission_id}")
def contacts_set_status(submission_id: int, payload: SubmissionStatusIn,
                        admin: Identity = Depends(admin_identity), db: Session = Depends(get_db)):
    return submission_dict(set_submission_status(db, admin, submission_id, payload.status))


@router.delete("/users/{user_id}")
def users_delete(user_id: int, admin: Identity = Depends(admin_identity), db: Session = Depends(get_db)):
    delete_user(db, admin, user_id)
    return {"message": "User deleted."}


@router.post("/users/{user_id}/toggle-role")
def users_toggle_role(user_id: int, admin: Identity = Depends(admin_identity), db: Session = Depends(get_db)):
    return {"isAdmin": toggle_user_role(db, admin, user_id)}


@router.delete("/comments/{comment_id}")
def comments_delete(comment_id: int, admin: Identity = Depends(admin_identity), db: Session = Depends(get_db)):
    delete_comment(db, admin, comment_id)
    return {"message": "Comment deleted."}


@router.post("/reconcile")
def reconcile(admin: Identity = Depends(admin_identity), db: Session = Depends(get_db)):
    return {"fixed": reconcile_all(db, admin)}
