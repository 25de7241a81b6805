# courses.py
import logging
import math
from collections import Counter
from typing import Optional, Sequence

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

import errors
from auth import Identity, onboarded_identity, optional_identity
from db import get_db, transaction
from engagement import get_course_or_404
from models import Course, CourseItem, Product, Rating, Tried, User, WantsToEat
from products import page_bounds, product_dict
from schemas import CourseIn, CourseItemIn

logger = logging.getLogger(__name__)

router = APIRouter()

# the composer UI will not submit a course until each of these slots holds a product
MANDATORY_ROLES = ["appetizer", "snack", "main", "main", "dessert"]
TITLE_MAX = 100
ROLE_MAX = 30
DEFAULT_PAGE_SIZE = 10


def missing_mandatory_roles(items: Sequence[CourseItemIn]) -> list[str]:
    missing = Counter(MANDATORY_ROLES) - Counter(i.role.strip().lower() for i in items)
    return [role for role in dict.fromkeys(MANDATORY_ROLES) for _ in range(missing[role])]


def _validate(db: Session, title: str, description: str, items: Sequence[CourseItemIn]) -> tuple[str, str]:
    title = (title or "").strip()
    description = (description or "").strip()
    if not title or not description or not items:
        raise errors.ValidationError("Title, description and at least one item are required.")
    if len(title) > TITLE_MAX:
        raise errors.ValidationError(f"Title must be at most {TITLE_MAX} characters.")
    for item in items:
        if not item.role or not item.role.strip() or len(item.role) > ROLE_MAX:
            raise errors.ValidationError("Every item needs a role.")
    wanted = {i.product_id for i in items}
    found = {pid for (pid,) in db.query(Product.id).filter(Product.id.in_(wanted))}
    if wanted - found:
        raise errors.ValidationError(f"Unknown product id(s): {sorted(wanted - found)}")
    return title, description


def _build_items(items: Sequence[CourseItemIn]) -> list[CourseItem]:
    return [
        CourseItem(product_id=item.product_id, role=item.role.strip(), order=index)
        for index, item in enumerate(items, start=1)
    ]


def _owned(db: Session, course_id: int, identity: Identity) -> Course:
    course = get_course_or_404(db, course_id)
    if course.user_id != identity.user_id:
        raise errors.Forbidden("You can only change your own courses.")
    return course


def create_course(db: Session, identity: Identity, title: str, description: str,
                  items: Sequence[CourseItemIn]) -> Course:
    title, description = _validate(db, title, description, items)
    with transaction(db):
        course = Course(title=title, description=description, user_id=identity.user_id,
                        items=_build_items(items))
        db.add(course)
        db.flush()
        db.query(User).filter(User.id == identity.user_id).update(
            {User.course_count: User.course_count + 1}, synchronize_session=False
        )
    logger.info("User %s created course %s", identity.user_id, course.id)
    return course


def update_course(db: Session, identity: Identity, course_id: int, title: str, description: str,
                  items: Sequence[CourseItemIn]) -> Course:
    course = _owned(db, course_id, identity)
    title, description = _validate(db, title, description, items)
    with transaction(db):
        course.title = title
        course.description = description
        # replace the whole list; item ids do not survive an edit
        course.items.clear()
        db.flush()
        course.items.extend(_build_items(items))
    logger.info("User %s updated course %s", identity.user_id, course.id)
    return course


def delete_course(db: Session, identity: Identity, course_id: int) -> None:
    course = _owned(db, course_id, identity)
    with transaction(db):
        db.delete(course)
        db.query(User).filter(User.id == course.user_id).update(
            {User.course_count: User.course_count - 1}, synchronize_session=False
        )
    logger.info("User %s deleted course %s", identity.user_id, course_id)


def course_summary(course: Course) -> dict:
    return {
        "id": course.id,
        "title": course.title,
        "description": course.description,
        "user": {"id": course.user.id, "name": course.user.name, "image": course.user.image},
        "wantsToEatCount": course.wants_to_eat_count,
        "triedCount": course.tried_count,
        "commentCount": course.comment_count,
        "averageRating": course.average_rating,
        "totalRatingsCount": course.total_ratings_count,
        "createdAt": course.created_at.isoformat() if course.created_at else None,
    }


def get_course_detail(db: Session, course_id: int, viewer: Optional[Identity] = None) -> dict:
    course = get_course_or_404(db, course_id)
    data = course_summary(course)
    data["courseItems"] = [
        {"id": i.id, "role": i.role, "order": i.order, "product": product_dict(i.product)}
        for i in course.items
    ]

    is_wants, is_tried, my_score = False, False, None
    if viewer is not None:
        key = {"course_id": course_id, "user_id": viewer.user_id}
        is_wants = db.query(WantsToEat.id).filter_by(**key).first() is not None
        is_tried = db.query(Tried.id).filter_by(**key).first() is not None
        rating = db.query(Rating).filter_by(**key).first()
        my_score = rating.score if rating else None
    data.update({"isWantsToEat": is_wants, "isTried": is_tried, "userRatingScore": my_score})
    return data


def list_courses(db: Session, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> dict:
    page, limit = page_bounds(page, limit, DEFAULT_PAGE_SIZE)
    total = db.query(Course).count()
    courses = (
        db.query(Course)
        .order_by(Course.created_at.desc(), Course.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    result = []
    for c in courses:
        summary = course_summary(c)
        # up to four product images as the card thumbnail
        summary["thumbnails"] = [i.product.image_url for i in c.items[:4]]
        result.append(summary)
    return {"courses": result, "total": total, "page": page, "totalPages": math.ceil(total / limit)}


def _require_mandatory_slots(payload: CourseIn) -> None:
    missing = missing_mandatory_roles(payload.course_items)
    if missing:
        raise errors.ValidationError(
            "Pick a product for every required slot (appetizer, snack, two mains, dessert). "
            f"Missing: {', '.join(missing)}"
        )


@router.get("/courses")
def courses_index(page: int = 1, limit: int = DEFAULT_PAGE_SIZE, db: Session = Depends(get_db)):
    return list_courses(db, page=page, limit=limit)


@router.post("/courses", status_code=201)
def courses_create(payload: CourseIn, identity: Identity = Depends(onboarded_identity),
                   db: Session = Depends(get_db)):
    _require_mandatory_slots(payload)
    course = create_course(db, identity, payload.title, payload.description, payload.course_items)
    return {"message": "Course created.", "courseId": course.id}


@router.get("/courses/{course_id}")
def course_detail(course_id: int, viewer: Optional[Identity] = Depends(optional_identity),
                  db: Session = Depends(get_db)):
    return get_course_detail(db, course_id, viewer)


@router.put("/courses/{course_id}")
def courses_update(course_id: int, payload: CourseIn, identity: Identity = Depends(onboarded_identity),
                   db: Session = Depends(get_db)):
    # ownership is checked before the slot policy so strangers always see 403
    _owned(db, course_id, identity)
    _require_mandatory_slots(payload)
    update_course(db, identity, course_id, payload.title, payload.description, payload.course_items)
    return {"message": "Course updated."}


@router.delete("/courses/{course_id}")
def courses_delete(course_id: int, identity: Identity = Depends(onboarded_identity),
                   db: Session = Depends(get_db)):
    delete_course(db, identity, course_id)
    return {"message": "Course deleted."}
