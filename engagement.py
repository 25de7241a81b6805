# engagement.py
"""Reactions on courses: want-to-eat / tried toggles, ratings and comments.

Each course carries denormalized fields (toggle counters, comment count,
rating average and count). They are written in the same transaction as the
row change that affects them, so a committed course always agrees with its
rows. ``reconcile_course_counters`` recomputes everything from the rows and
is used for bulk deletes and repair.
"""
import logging
from typing import Iterable, Optional

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import errors
from auth import Identity, onboarded_identity
from db import get_db, transaction
from models import Comment, Course, Rating, Tried, WantsToEat
from schemas import CommentIn, RatingIn

logger = logging.getLogger(__name__)

router = APIRouter()

MIN_SCORE, MAX_SCORE = 1, 5
COMMENT_MAX = 1000

TOGGLES = {
    "wants_to_eat": (WantsToEat, Course.wants_to_eat_count),
    "tried": (Tried, Course.tried_count),
}


def get_course_or_404(db: Session, course_id: int) -> Course:
    course = db.get(Course, course_id)
    if course is None:
        raise errors.NotFound("Course not found.")
    return course


def _bump(db: Session, course_id: int, column, delta: int) -> None:
    # single UPDATE ... SET x = x + delta, so concurrent writers never lose an increment
    db.query(Course).filter(Course.id == course_id).update(
        {column: column + delta}, synchronize_session=False
    )


def toggle(db: Session, kind: str, course_id: int, user_id: int) -> dict:
    model, column = TOGGLES[kind]
    get_course_or_404(db, course_id)
    try:
        with transaction(db):
            row = db.query(model).filter_by(course_id=course_id, user_id=user_id).first()
            if row is not None:
                db.delete(row)
                db.flush()
                _bump(db, course_id, column, -1)
                added = False
            else:
                db.add(model(course_id=course_id, user_id=user_id))
                db.flush()
                _bump(db, course_id, column, +1)
                added = True
    except IntegrityError:
        # a parallel request from the same user inserted the row first
        raise errors.Conflict("This was changed by another request. Try again.")

    count = db.query(column).filter(Course.id == course_id).scalar()
    logger.info("User %s %s %s on course %s", user_id, "set" if added else "cleared", kind, course_id)
    return {"added": added, "count": count}


def toggle_wants_to_eat(db: Session, course_id: int, user_id: int) -> dict:
    return toggle(db, "wants_to_eat", course_id, user_id)


def toggle_tried(db: Session, course_id: int, user_id: int) -> dict:
    return toggle(db, "tried", course_id, user_id)


def recompute_rating(db: Session, course: Course) -> None:
    avg, count = (
        db.query(func.avg(Rating.score), func.count(Rating.id))
        .filter(Rating.course_id == course.id)
        .one()
    )
    course.total_ratings_count = count or 0
    course.average_rating = round(float(avg), 2) if count else None


def _rating_summary(course: Course) -> dict:
    return {"averageRating": course.average_rating, "totalRatingsCount": course.total_ratings_count}


def rate(db: Session, course_id: int, user_id: int, score) -> dict:
    if isinstance(score, bool) or not isinstance(score, int) or not MIN_SCORE <= score <= MAX_SCORE:
        raise errors.InvalidScore()
    course = get_course_or_404(db, course_id)
    try:
        with transaction(db):
            rating = db.query(Rating).filter_by(course_id=course_id, user_id=user_id).first()
            if rating is None:
                db.add(Rating(course_id=course_id, user_id=user_id, score=score))
            else:
                rating.score = score
            db.flush()
            recompute_rating(db, course)
    except IntegrityError:
        raise errors.Conflict("This was changed by another request. Try again.")
    return {"score": score, **_rating_summary(course)}


def unrate(db: Session, course_id: int, user_id: int) -> dict:
    course = get_course_or_404(db, course_id)
    with transaction(db):
        db.query(Rating).filter_by(course_id=course_id, user_id=user_id).delete()
        db.flush()
        recompute_rating(db, course)
    return _rating_summary(course)


def comment_dict(c: Comment) -> dict:
    return {
        "id": c.id,
        "courseId": c.course_id,
        "content": c.content,
        "createdAt": c.created_at.isoformat() if c.created_at else None,
        "user": {"id": c.user.id, "name": c.user.name, "image": c.user.image},
    }


def post_comment(db: Session, course_id: int, user_id: int, content: Optional[str]) -> Comment:
    content = (content or "").strip()
    if not content:
        raise errors.InvalidContent()
    if len(content) > COMMENT_MAX:
        raise errors.ValidationError(f"Comment must be at most {COMMENT_MAX} characters.")
    get_course_or_404(db, course_id)
    with transaction(db):
        comment = Comment(course_id=course_id, user_id=user_id, content=content)
        db.add(comment)
        db.flush()
        _bump(db, course_id, Course.comment_count, +1)
    return comment


def list_comments(db: Session, course_id: int) -> list[Comment]:
    get_course_or_404(db, course_id)
    return (
        db.query(Comment)
        .filter(Comment.course_id == course_id)
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .all()
    )


def reconcile_course_counters(db: Session, course_ids: Optional[Iterable[int]] = None) -> int:
    """Rewrite every denormalized field from the live rows. Caller commits."""
    q = db.query(Course)
    if course_ids is not None:
        ids = list(course_ids)
        if not ids:
            return 0
        q = q.filter(Course.id.in_(ids))
    fixed = 0
    for course in q.all():
        before = (course.wants_to_eat_count, course.tried_count, course.comment_count,
                  course.average_rating, course.total_ratings_count)
        course.wants_to_eat_count = db.query(WantsToEat).filter_by(course_id=course.id).count()
        course.tried_count = db.query(Tried).filter_by(course_id=course.id).count()
        course.comment_count = db.query(Comment).filter_by(course_id=course.id).count()
        recompute_rating(db, course)
        after = (course.wants_to_eat_count, course.tried_count, course.comment_count,
                 course.average_rating, course.total_ratings_count)
        if before != after:
            fixed += 1
            logger.warning("Course %s counters drifted: %s -> %s", course.id, before, after)
    db.flush()
    return fixed


@router.post("/courses/{course_id}/wants-to-eat")
def wants_to_eat_route(course_id: int, identity: Identity = Depends(onboarded_identity),
                       db: Session = Depends(get_db)):
    return toggle_wants_to_eat(db, course_id, identity.user_id)


@router.post("/courses/{course_id}/tried")
def tried_route(course_id: int, identity: Identity = Depends(onboarded_identity),
                db: Session = Depends(get_db)):
    return toggle_tried(db, course_id, identity.user_id)


@router.post("/courses/{course_id}/rating")
def rate_route(course_id: int, payload: RatingIn, identity: Identity = Depends(onboarded_identity),
               db: Session = Depends(get_db)):
    return rate(db, course_id, identity.user_id, payload.score)


@router.delete("/courses/{course_id}/rating")
def unrate_route(course_id: int, identity: Identity = Depends(onboarded_identity),
                 db: Session = Depends(get_db)):
    return unrate(db, course_id, identity.user_id)


@router.get("/courses/{course_id}/comments")
def comments_index(course_id: int, db: Session = Depends(get_db)):
    return [comment_dict(c) for c in list_comments(db, course_id)]


@router.post("/courses/{course_id}/comments", status_code=201)
def comments_create(course_id: int, payload: CommentIn, identity: Identity = Depends(onboarded_identity),
                    db: Session = Depends(get_db)):
    return comment_dict(post_comment(db, course_id, identity.user_id, payload.content))
